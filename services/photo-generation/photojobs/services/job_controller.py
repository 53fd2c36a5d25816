import asyncio
import time
from typing import Awaitable, Callable, List, Optional, Set

import structlog

from photojobs.core.exceptions import GenerationJobError, SubmissionError
from photojobs.core.telemetry import tracer
from photojobs.domain.interfaces import HistoryStore, JobSubmitter, StatusSource
from photojobs.domain.models import (
    GenerationRequest,
    HistoryEntry,
    JobPhase,
    JobState,
    JobView,
    PollOutcome,
)
from photojobs.services.epoch import GenerationEpoch
from photojobs.services.poller import StatusPoller

logger = structlog.get_logger()

StateListener = Callable[[JobView], None]


class JobController:
    """
    Single-flight generation job runner for one tool surface.

    start() supersedes whatever is in flight: the old job keeps running in the
    background until its next suspension point, then notices its epoch is stale
    and exits without touching state, listeners or history.

    Lifecycle per epoch:
        SUBMITTING -> POLLING -> COMPLETED | FAILED | TIMED_OUT
        SUBMITTING -> FAILED (submission error)
    """

    def __init__(
        self,
        submitter: JobSubmitter,
        status_source: StatusSource,
        history: HistoryStore,
        tool: str,
        interval: float = 1.5,
        timeout: float = 120.0,
        max_poll_failures: int = 3,
        poll_failure_backoff: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.tool = tool
        self._submitter = submitter
        self._history = history
        self._clock = clock
        self._poller = StatusPoller(
            status_source,
            interval=interval,
            timeout=timeout,
            max_consecutive_failures=max_poll_failures,
            failure_backoff=poll_failure_backoff,
            clock=clock,
            sleep=sleep,
        )
        self._epoch = GenerationEpoch()
        self._state = JobState()
        self._listeners: List[StateListener] = []
        # Strong refs so fire-and-forget tasks aren't garbage collected mid-flight
        self._tasks: Set[asyncio.Task] = set()

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def view(self) -> JobView:
        return JobView.of(self._state)

    @property
    def is_generating(self) -> bool:
        return self._state.is_generating

    @property
    def epoch(self) -> GenerationEpoch:
        return self._epoch

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def start(
        self,
        request: GenerationRequest,
        *,
        tool: Optional[str] = None,
        property_id: Optional[str] = None,
        contact_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> "asyncio.Task[None]":
        """
        Fire-and-forget. Progress is observed through `view` / subscribe().
        The returned task can be awaited; it does not raise job errors.
        """
        if self._epoch.disposed:
            raise RuntimeError("JobController has been disposed")

        loop = asyncio.get_running_loop()
        epoch = self._epoch.next()
        self._publish(JobState(phase=JobPhase.SUBMITTING, epoch=epoch, prompt=request.prompt))

        tool = tool or self.tool
        logger.info("job_started", tool=tool, epoch=epoch, model=request.model, variants=request.num_variants)

        task = loop.create_task(
            self._run(epoch, request, tool, property_id, contact_id, note),
            name=f"{tool}-generation-{epoch}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def dispose(self) -> None:
        """The surface is going away. Nothing in flight may report back after this."""
        self._epoch.dispose()
        self._listeners.clear()
        logger.info("job_controller_disposed", tool=self.tool, in_flight=len(self._tasks))

    def _publish(self, state: JobState) -> None:
        self._state = state
        view = JobView.of(state)
        for listener in list(self._listeners):
            listener(view)

    def _transition(self, epoch: int, state: JobState) -> bool:
        if not self._epoch.is_current(epoch):
            return False
        self._publish(state)
        return True

    async def _run(
        self,
        epoch: int,
        request: GenerationRequest,
        tool: str,
        property_id: Optional[str],
        contact_id: Optional[str],
        note: Optional[str],
    ) -> None:
        log = logger.bind(tool=tool, epoch=epoch)

        with tracer.start_as_current_span("generation_job") as span:
            span.set_attribute("generation.tool", tool)
            span.set_attribute("generation.epoch", epoch)
            span.set_attribute("generation.model", request.model)

            try:
                outcome = await self._execute(epoch, request, tool, property_id, contact_id, note, log)
            except Exception as e:
                log.exception("job_crashed", error=str(e))
                outcome = "crashed"
                self._transition(
                    epoch,
                    JobState(
                        phase=JobPhase.FAILED,
                        epoch=epoch,
                        prompt=request.prompt,
                        error=GenerationJobError(str(e) or "An unknown error occurred.", original_error=e),
                    ),
                )

            span.set_attribute("generation.outcome", outcome)

    async def _execute(
        self,
        epoch: int,
        request: GenerationRequest,
        tool: str,
        property_id: Optional[str],
        contact_id: Optional[str],
        note: Optional[str],
        log,
    ) -> str:
        # 1. Submit
        try:
            handle = await self._submitter.submit(request)
        except SubmissionError as e:
            failed = JobState(phase=JobPhase.FAILED, epoch=epoch, prompt=request.prompt, error=e)
            if self._transition(epoch, failed):
                log.warning("job_submission_failed", error=e.message)
            else:
                log.debug("stale_result_dropped", stage="submit", error=e.message)
            return "submission_failed"

        log = log.bind(request_id=handle.request_id)
        polling = JobState(
            phase=JobPhase.POLLING,
            epoch=epoch,
            prompt=request.prompt,
            handle=handle,
            started_at=self._clock(),
        )
        if not self._transition(epoch, polling):
            log.debug("stale_result_dropped", stage="submit")
            return PollOutcome.ABANDONED.value

        # 2. Poll
        result = await self._poller.poll_until_terminal(handle, should_abort=lambda: not self._epoch.is_current(epoch))

        if result.outcome is PollOutcome.ABANDONED or not self._epoch.is_current(epoch):
            log.debug("stale_result_dropped", stage="poll", outcome=result.outcome.value)
            return PollOutcome.ABANDONED.value

        # 3. Reconcile
        if result.outcome is PollOutcome.COMPLETED:
            entry = HistoryEntry(
                tool=tool,
                prompt=request.prompt,
                images=result.images,
                property_id=property_id,
                contact_id=contact_id,
                note=note,
            )
            recorded = await self._history.append(entry, only_if=lambda: self._epoch.is_current(epoch))
            if not recorded:
                log.debug("stale_result_dropped", stage="history", history_id=entry.id)
                return PollOutcome.ABANDONED.value

            completed = JobState(
                phase=JobPhase.COMPLETED, epoch=epoch, prompt=request.prompt, images=result.images
            )
            if self._transition(epoch, completed):
                log.info("job_completed", images=len(result.images), attempts=result.attempts, history_id=entry.id)
            return result.outcome.value

        phase = JobPhase.TIMED_OUT if result.outcome is PollOutcome.TIMED_OUT else JobPhase.FAILED
        error = result.error or GenerationJobError("Generation failed.")
        if self._transition(epoch, JobState(phase=phase, epoch=epoch, prompt=request.prompt, error=error)):
            log.warning("job_failed", outcome=result.outcome.value, attempts=result.attempts, error=error.message)
        return result.outcome.value
