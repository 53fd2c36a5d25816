from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from photojobs.core.exceptions import GenerationJobError


class OutputFormat(str, Enum):
    PNG = "png"
    JPEG = "jpeg"
    WEBP = "webp"


class QueueStatus(str, Enum):
    IN_QUEUE = "IN_QUEUE"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (QueueStatus.COMPLETED, QueueStatus.FAILED, QueueStatus.CANCELLED)


# Domain Models
class GenerationRequest(BaseModel):
    """A fully rendered edit request. Consumed once by JobController.start()."""

    model_config = ConfigDict(frozen=True)

    prompt: str = Field(..., min_length=1)
    input_images: tuple[str, ...] = Field(..., min_length=1)  # remote URLs or data URIs
    model: str = Field(..., min_length=1)
    num_variants: int = Field(default=1, ge=1, le=4)
    output_format: OutputFormat = OutputFormat.PNG


class GeneratedImage(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    width: Optional[int] = None
    height: Optional[int] = None
    content_type: Optional[str] = None
    file_name: Optional[str] = None


class JobHandle(BaseModel):
    model_config = ConfigDict(frozen=True)

    request_id: str = Field(..., min_length=1)
    model: str  # the status lookup has to hit the same model the job was queued on


class StatusSnapshot(BaseModel):
    """One parsed answer of the status endpoint."""

    status: QueueStatus
    images: list[GeneratedImage] = Field(default_factory=list)
    queue_position: Optional[int] = None
    error: Optional[str] = None


def _history_id() -> str:
    return f"pg_{uuid4().hex[:12]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_history_id)
    tool: str
    prompt: str
    images: tuple[GeneratedImage, ...]
    property_id: Optional[str] = None
    contact_id: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class HistoryFilter(BaseModel):
    tool: Optional[str] = None
    property_id: Optional[str] = None
    contact_id: Optional[str] = None

    def matches(self, entry: HistoryEntry) -> bool:
        if self.tool is not None and entry.tool != self.tool:
            return False
        if self.property_id is not None and entry.property_id != self.property_id:
            return False
        if self.contact_id is not None and entry.contact_id != self.contact_id:
            return False
        return True


# Poller / Controller state


class PollOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    ABANDONED = "abandoned"  # caller moved on, nothing may be reported


@dataclass(frozen=True)
class TerminalResult:
    outcome: PollOutcome
    images: tuple[GeneratedImage, ...] = ()
    error: Optional[GenerationJobError] = None
    attempts: int = 0


class JobPhase(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class JobState:
    """
    Controller-owned state of the job the caller currently cares about.
    Callers should read JobView instead.
    """

    phase: JobPhase = JobPhase.IDLE
    epoch: int = 0
    prompt: Optional[str] = None
    handle: Optional[JobHandle] = None
    started_at: Optional[float] = None  # monotonic seconds, set when polling begins
    images: tuple[GeneratedImage, ...] = ()
    error: Optional[GenerationJobError] = None

    @property
    def is_generating(self) -> bool:
        return self.phase in (JobPhase.SUBMITTING, JobPhase.POLLING)


@dataclass(frozen=True)
class JobView:
    is_generating: bool
    images: tuple[GeneratedImage, ...]
    error: Optional[str]
    prompt: Optional[str]
    request_id: Optional[str]

    @classmethod
    def of(cls, state: JobState) -> "JobView":
        return cls(
            is_generating=state.is_generating,
            images=state.images,
            error=state.error.message if state.error else None,
            prompt=state.prompt,
            request_id=state.handle.request_id if state.handle else None,
        )


# Edit endpoint payloads


class EditSubmitBody(BaseModel):
    model: Optional[str] = None
    prompt: Optional[str] = None
    image_url: Optional[str] = None
    image_urls: Optional[list[str]] = None
    num_images: Any = None  # clamped server-side, anything non-numeric becomes 1
    output_format: OutputFormat = OutputFormat.PNG
    sync_mode: bool = False
