"""Processing job datastructures."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from .paths import VaultPath


class JobStatus(str, Enum):
    """Lifecycle of a job: pending -> processing -> done | error."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.ERROR)


@dataclass
class ProcessingJob:
    """One image's progress through the pipeline."""

    initial_file: VaultPath
    working_file: Optional[VaultPath] = None
    status: JobStatus = JobStatus.PENDING
    error: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    def __post_init__(self):
        if self.working_file is None:
            self.working_file = self.initial_file

    @property
    def key(self) -> str:
        return self.initial_file.key

    @property
    def is_active(self) -> bool:
        return self.status in (JobStatus.PENDING, JobStatus.PROCESSING)

    def as_dict(self) -> dict:
        """Return a JSON serialisable payload for the admin API."""
        return {
            "initial_file": str(self.initial_file),
            "working_file": str(self.working_file),
            "status": self.status.value,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
