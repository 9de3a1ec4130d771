# vidq/models/job.py
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from ..errors import ErrorKind
from .media import ProgressSnapshot, SourceMetadata
from .profile import DEFAULT_PROFILE, CompressionProfile


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

    @property
    def is_live(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.PROCESSING)


# pending -> failed is only taken by the disk-space pre-flight check
_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.CANCELLED, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED},
}


def can_transition(current: JobStatus, new: JobStatus) -> bool:
    return new in _TRANSITIONS.get(current, set())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class JobOptions:
    remove_audio: bool = False
    delete_source: bool = False
    hardware_acceleration: bool = True
    output_dir: Path | None = None       # None => next to the source
    output_suffix: str = "_compressed"


@dataclass
class Job:
    source: Path
    destination: Path
    profile: CompressionProfile = DEFAULT_PROFILE
    options: JobOptions = field(default_factory=JobOptions)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: JobStatus = JobStatus.PENDING
    progress: ProgressSnapshot | None = None
    metadata: SourceMetadata | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    original_size: int | None = None
    compressed_size: int | None = None

    @property
    def name(self) -> str:
        return self.source.name

    @property
    def duration(self) -> float:
        return self.metadata.duration if self.metadata else 0.0
