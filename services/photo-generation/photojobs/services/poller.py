import asyncio
import time
from typing import Awaitable, Callable

import structlog

from photojobs.core.exceptions import GenerationTimeout, PollError, RemoteFailure
from photojobs.domain.interfaces import StatusSource
from photojobs.domain.models import JobHandle, PollOutcome, QueueStatus, TerminalResult

logger = structlog.get_logger()

ABANDONED = TerminalResult(outcome=PollOutcome.ABANDONED)


class StatusPoller:
    """
    Watches one job handle until the remote queue reports a terminal status,
    the local ceiling is hit, or the caller stops caring (should_abort).

    The remote job is never told to stop; on timeout or abandon we simply stop looking.
    """

    def __init__(
        self,
        source: StatusSource,
        interval: float = 1.5,
        timeout: float = 120.0,
        max_consecutive_failures: int = 3,
        failure_backoff: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be at least 1")
        self.source = source
        self.interval = interval
        self.timeout = timeout
        self.max_consecutive_failures = max_consecutive_failures
        self.failure_backoff = failure_backoff
        self._clock = clock
        self._sleep = sleep

    async def poll_until_terminal(
        self, handle: JobHandle, should_abort: Callable[[], bool] = lambda: False
    ) -> TerminalResult:
        log = logger.bind(request_id=handle.request_id, model=handle.model)
        started_at = self._clock()
        attempts = 0
        failures = 0

        while True:
            if should_abort():
                log.debug("poll_abandoned", attempts=attempts)
                return ABANDONED

            if self._clock() - started_at >= self.timeout:
                log.warning("poll_timed_out", attempts=attempts, timeout=self.timeout)
                return TerminalResult(
                    outcome=PollOutcome.TIMED_OUT,
                    error=GenerationTimeout("Timed out waiting for generation."),
                    attempts=attempts,
                )

            attempts += 1
            try:
                snapshot = await self.source.poll_once(handle)
            except PollError as e:
                failures += 1
                if failures >= self.max_consecutive_failures:
                    log.error("poll_failed", attempts=attempts, failures=failures, error=e.message)
                    return TerminalResult(outcome=PollOutcome.FAILED, error=e, attempts=attempts)

                delay = self.failure_backoff * 2 ** (failures - 1)
                log.warning("poll_attempt_failed", failures=failures, retry_in=delay, error=e.message)
                await self._sleep(delay)
                continue

            failures = 0

            if should_abort():
                log.debug("poll_abandoned", attempts=attempts)
                return ABANDONED

            if snapshot.status is QueueStatus.COMPLETED:
                if not snapshot.images:
                    return TerminalResult(
                        outcome=PollOutcome.FAILED, error=RemoteFailure("No images returned."), attempts=attempts
                    )
                log.info("poll_completed", attempts=attempts, images=len(snapshot.images))
                return TerminalResult(
                    outcome=PollOutcome.COMPLETED, images=tuple(snapshot.images), attempts=attempts
                )

            if snapshot.status.is_terminal:
                log.info("poll_remote_failure", status=snapshot.status.value, error=snapshot.error)
                return TerminalResult(
                    outcome=PollOutcome.FAILED,
                    error=RemoteFailure(snapshot.error or "Generation failed."),
                    attempts=attempts,
                )

            log.debug("poll_pending", status=snapshot.status.value, queue_position=snapshot.queue_position)
            await self._sleep(self.interval)
