"""
Migration state types.

MigrationState is owned by MigrationJob; everything outside the job reads
copies obtained through MigrationJob.get_progress().
"""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class MigrationStatus(Enum):
    """
    Lifecycle of a migration run.

    idle -> running -> completed
    running -> aborting -> failed
    running -> failed
    completed/failed -> running (next run)
    """

    IDLE = "idle"
    RUNNING = "running"
    ABORTING = "aborting"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (MigrationStatus.RUNNING, MigrationStatus.ABORTING)

    @property
    def is_terminal(self) -> bool:
        return self in (MigrationStatus.COMPLETED, MigrationStatus.FAILED)


VALID_TRANSITIONS: dict[MigrationStatus, set[MigrationStatus]] = {
    MigrationStatus.IDLE: {MigrationStatus.RUNNING},
    MigrationStatus.RUNNING: {
        MigrationStatus.ABORTING,
        MigrationStatus.COMPLETED,
        MigrationStatus.FAILED,
    },
    MigrationStatus.ABORTING: {MigrationStatus.FAILED},
    MigrationStatus.COMPLETED: {MigrationStatus.RUNNING},
    MigrationStatus.FAILED: {MigrationStatus.RUNNING},
}


class LogLevel(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class MigrationLogEntry:
    """
    One entry of the migration log.

    Attributes:
        sequence: Unique, increasing for the lifetime of the log
        timestamp: When the entry was appended
        level: info, warning or error
        message: Human-readable text
        detail: Optional structured data (e.g. key and cause of a failure)
    """

    sequence: int
    timestamp: datetime
    level: LogLevel
    message: str
    detail: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sequence": self.sequence,
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "message": self.message,
            "detail": self.detail,
        }


@dataclass
class MigrationState:
    """
    Progress of the current (or last) migration run.

    Counters never decrease within a run and are reset by the next start.
    While enumeration is in progress, total_objects is "at least this many".
    """

    run_id: str | None = None
    status: MigrationStatus = MigrationStatus.IDLE
    started_at: datetime | None = None
    finished_at: datetime | None = None
    total_objects: int = 0
    migrated_objects: int = 0
    failed_objects: int = 0
    total_bytes: int = 0
    migrated_bytes: int = 0
    current_key: str = ""
    last_error: str | None = None
    aborted: bool = False
    source: str = ""
    destination: str = ""

    def copy(self) -> "MigrationState":
        return replace(self)

    @property
    def processed_objects(self) -> int:
        return self.migrated_objects + self.failed_objects

    @property
    def elapsed_seconds(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.finished_at or datetime.now(UTC)
        return max((end - self.started_at).total_seconds(), 0.0)

    @property
    def bytes_per_second(self) -> float:
        elapsed = self.elapsed_seconds
        if elapsed <= 0:
            return 0.0
        return self.migrated_bytes / elapsed

    @property
    def percent_complete(self) -> float:
        if self.total_objects == 0:
            return 100.0 if self.status == MigrationStatus.COMPLETED else 0.0
        return (self.processed_objects / self.total_objects) * 100

    @property
    def estimated_seconds_remaining(self) -> float | None:
        """Rough ETA from the object rate; None when unknown or finished."""
        if self.status != MigrationStatus.RUNNING or self.processed_objects == 0:
            return None
        elapsed = self.elapsed_seconds
        if elapsed <= 0:
            return None  # pragma: no cover
        rate = self.processed_objects / elapsed
        return (self.total_objects - self.processed_objects) / rate

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for status endpoints."""
        eta = self.estimated_seconds_remaining
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "total_objects": self.total_objects,
            "migrated_objects": self.migrated_objects,
            "failed_objects": self.failed_objects,
            "total_bytes": self.total_bytes,
            "migrated_bytes": self.migrated_bytes,
            "current_key": self.current_key,
            "last_error": self.last_error,
            "aborted": self.aborted,
            "source": self.source,
            "destination": self.destination,
            "percent_complete": round(self.percent_complete, 2),
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "bytes_per_second": round(self.bytes_per_second, 2),
            "estimated_seconds_remaining": round(eta, 2) if eta is not None else None,
        }


@dataclass
class StartResult:
    """Outcome of MigrationJob.start()."""

    started: bool
    error: str | None = None
    run_id: str | None = None
    error_type: str | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"started": self.started}
        if self.error:
            result["error"] = self.error
        if self.run_id:
            result["run_id"] = self.run_id
        return result
