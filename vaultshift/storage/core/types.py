"""
Value types returned by storage providers.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass(frozen=True)
class ObjectInfo:
    """
    A listed object.

    Attributes:
        key: Slash-delimited key, unique within the provider namespace
        size: Size in bytes when the listing reports it
        last_modified: Modification time when the listing reports it
    """

    key: str
    size: int | None = None
    last_modified: datetime | None = None


@dataclass(frozen=True)
class ObjectStat:
    """Size and modification time of a stored object."""

    size: int
    last_modified: datetime | None = None


@dataclass
class ConnectionTestResult:
    """
    Outcome of a provider connectivity test.

    Attributes:
        success: Whether the backend is usable
        message: Human-readable status message
        details: Backend-specific diagnostics
        latency_ms: Time taken for the test in milliseconds
        checked_at: Timestamp of the test
    """

    success: bool
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    latency_ms: float = 0.0
    checked_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "success": self.success,
            "message": self.message,
            "details": self.details,
            "latency_ms": round(self.latency_ms, 2),
            "checked_at": self.checked_at.isoformat(),
        }
