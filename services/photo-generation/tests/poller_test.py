from typing import List, Union

import pytest

from photojobs.core.exceptions import GenerationTimeout, PollError, RemoteFailure
from photojobs.domain.interfaces import StatusSource
from photojobs.domain.models import GeneratedImage, JobHandle, PollOutcome, QueueStatus, StatusSnapshot
from photojobs.services.poller import StatusPoller

HANDLE = JobHandle(request_id="r1", model="fal-ai/nano-banana-pro/edit")
IMAGE = GeneratedImage(url="https://cdn.example/out-1.png", width=1024, height=768, content_type="image/png")


# --- Test doubles ---


class FakeClock:
    """Monotonic clock that only moves when the poller sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedSource(StatusSource):
    """Replays a script of snapshots/errors; the last item repeats forever."""

    def __init__(self, script: List[Union[StatusSnapshot, Exception]]):
        self.script = list(script)
        self.calls = 0

    async def poll_once(self, handle: JobHandle) -> StatusSnapshot:
        self.calls += 1
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        return item


def snap(status: QueueStatus, **kwargs) -> StatusSnapshot:
    return StatusSnapshot(status=status, **kwargs)


@pytest.fixture
def clock():
    return FakeClock()


def make_poller(source, clock, **kwargs) -> StatusPoller:
    return StatusPoller(source, clock=clock, sleep=clock.sleep, **kwargs)


# --- Tests ---


@pytest.mark.asyncio
async def test_pending_statuses_continue_until_completed(clock):
    source = ScriptedSource(
        [
            snap(QueueStatus.IN_QUEUE, queue_position=2),
            snap(QueueStatus.IN_PROGRESS),
            snap(QueueStatus.COMPLETED, images=[IMAGE]),
        ]
    )

    result = await make_poller(source, clock, interval=1.5).poll_until_terminal(HANDLE)

    assert result.outcome is PollOutcome.COMPLETED
    assert result.images == (IMAGE,)
    assert result.attempts == 3
    assert clock.sleeps == [1.5, 1.5], "Fixed cadence between checks"


@pytest.mark.asyncio
async def test_completed_without_images_is_a_failure(clock):
    source = ScriptedSource([snap(QueueStatus.COMPLETED, images=[])])

    result = await make_poller(source, clock).poll_until_terminal(HANDLE)

    assert result.outcome is PollOutcome.FAILED
    assert isinstance(result.error, RemoteFailure)
    assert result.error.message == "No images returned."
    assert result.images == ()


@pytest.mark.asyncio
async def test_remote_failure_carries_remote_reason(clock):
    source = ScriptedSource([snap(QueueStatus.FAILED, error="Content policy violation")])

    result = await make_poller(source, clock).poll_until_terminal(HANDLE)

    assert result.outcome is PollOutcome.FAILED
    assert isinstance(result.error, RemoteFailure)
    assert result.error.message == "Content policy violation"


@pytest.mark.asyncio
async def test_cancelled_without_reason_uses_generic_message(clock):
    source = ScriptedSource([snap(QueueStatus.CANCELLED)])

    result = await make_poller(source, clock).poll_until_terminal(HANDLE)

    assert result.outcome is PollOutcome.FAILED
    assert result.error.message == "Generation failed."


@pytest.mark.asyncio
async def test_times_out_once_after_ceiling(clock):
    source = ScriptedSource([snap(QueueStatus.IN_PROGRESS)])

    result = await make_poller(source, clock, interval=1.5, timeout=120.0).poll_until_terminal(HANDLE)

    assert result.outcome is PollOutcome.TIMED_OUT
    assert isinstance(result.error, GenerationTimeout)
    # checks at t=0, 1.5, ..., 118.5 and the ceiling is hit at t=120
    assert source.calls == 80
    assert result.attempts == 80


@pytest.mark.asyncio
async def test_abort_before_first_check_skips_network(clock):
    source = ScriptedSource([snap(QueueStatus.COMPLETED, images=[IMAGE])])

    result = await make_poller(source, clock).poll_until_terminal(HANDLE, should_abort=lambda: True)

    assert result.outcome is PollOutcome.ABANDONED
    assert source.calls == 0


@pytest.mark.asyncio
async def test_abort_while_request_in_flight_discards_response(clock):
    source = ScriptedSource([snap(QueueStatus.COMPLETED, images=[IMAGE])])
    checks = iter([False, True])

    result = await make_poller(source, clock).poll_until_terminal(HANDLE, should_abort=lambda: next(checks))

    assert result.outcome is PollOutcome.ABANDONED
    assert result.images == ()
    assert source.calls == 1


@pytest.mark.asyncio
async def test_transient_poll_failures_are_tolerated_with_backoff(clock):
    source = ScriptedSource(
        [
            PollError("connection reset"),
            PollError("connection reset"),
            snap(QueueStatus.COMPLETED, images=[IMAGE]),
        ]
    )

    result = await make_poller(
        source, clock, max_consecutive_failures=3, failure_backoff=0.5
    ).poll_until_terminal(HANDLE)

    assert result.outcome is PollOutcome.COMPLETED
    assert clock.sleeps == [0.5, 1.0]


@pytest.mark.asyncio
async def test_consecutive_poll_failures_become_fatal(clock):
    boom = PollError("Failed to fetch generation status.")
    source = ScriptedSource([boom])

    result = await make_poller(source, clock, max_consecutive_failures=3).poll_until_terminal(HANDLE)

    assert result.outcome is PollOutcome.FAILED
    assert result.error is boom
    assert source.calls == 3


@pytest.mark.asyncio
async def test_failure_counter_resets_after_successful_check(clock):
    source = ScriptedSource(
        [
            PollError("blip"),
            PollError("blip"),
            snap(QueueStatus.IN_PROGRESS),
            PollError("blip"),
            PollError("blip"),
            snap(QueueStatus.COMPLETED, images=[IMAGE]),
        ]
    )

    result = await make_poller(source, clock, max_consecutive_failures=3).poll_until_terminal(HANDLE)

    assert result.outcome is PollOutcome.COMPLETED
    assert source.calls == 6


@pytest.mark.asyncio
async def test_single_failure_is_fatal_when_retries_disabled(clock):
    source = ScriptedSource([PollError("Failed to poll status."), snap(QueueStatus.COMPLETED, images=[IMAGE])])

    result = await make_poller(source, clock, max_consecutive_failures=1).poll_until_terminal(HANDLE)

    assert result.outcome is PollOutcome.FAILED
    assert source.calls == 1


def test_rejects_non_positive_failure_budget(clock):
    with pytest.raises(ValueError):
        StatusPoller(ScriptedSource([snap(QueueStatus.IN_QUEUE)]), max_consecutive_failures=0)


@pytest.mark.parametrize(
    "status,terminal",
    [
        (QueueStatus.IN_QUEUE, False),
        (QueueStatus.IN_PROGRESS, False),
        (QueueStatus.COMPLETED, True),
        (QueueStatus.FAILED, True),
        (QueueStatus.CANCELLED, True),
    ],
)
def test_terminal_queue_statuses(status, terminal):
    assert status.is_terminal is terminal
