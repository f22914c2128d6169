"""
Bounded, cursor-readable migration log.

Pollers remember the highest sequence they have seen and ask only for newer
entries:

    >>> log = MigrationLog(capacity=1000)
    >>> log.append(LogLevel.INFO, "Starting migration")
    >>> new = log.entries(since=last_seen)
"""

import logging
import threading
from collections import deque
from datetime import UTC, datetime
from typing import Any

from .types import LogLevel, MigrationLogEntry

logger = logging.getLogger("vaultshift.migration")

_LOGGING_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class MigrationLog:
    """
    Append-only ring buffer of MigrationLogEntry.

    The oldest entries are evicted once capacity is exceeded. Sequence
    numbers are never reused, not even after clear().
    """

    def __init__(self, capacity: int = 1000):
        if capacity < 1:
            msg = f"capacity must be >= 1, got {capacity}"
            raise ValueError(msg)
        self.capacity = capacity
        self._entries: deque[MigrationLogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._next_sequence = 1

    def append(
        self,
        level: LogLevel | str,
        message: str,
        detail: dict[str, Any] | None = None,
    ) -> MigrationLogEntry:
        """Append an entry and mirror it to the package logger."""
        level = LogLevel(level)
        with self._lock:
            entry = MigrationLogEntry(
                sequence=self._next_sequence,
                timestamp=datetime.now(UTC),
                level=level,
                message=message,
                detail=dict(detail) if detail else None,
            )
            self._next_sequence += 1
            self._entries.append(entry)

        extra = {"migration_sequence": entry.sequence}
        if detail:
            extra.update({k: v for k, v in detail.items() if k in ("key", "error_type", "size")})
        logger.log(_LOGGING_LEVELS[level], message, extra=extra)
        return entry

    def info(self, message: str, detail: dict[str, Any] | None = None) -> MigrationLogEntry:
        return self.append(LogLevel.INFO, message, detail)

    def warning(self, message: str, detail: dict[str, Any] | None = None) -> MigrationLogEntry:
        return self.append(LogLevel.WARNING, message, detail)

    def error(self, message: str, detail: dict[str, Any] | None = None) -> MigrationLogEntry:
        return self.append(LogLevel.ERROR, message, detail)

    def entries(self, since: int | None = None) -> list[MigrationLogEntry]:
        """Entries with sequence > since (all when since is None), ascending."""
        with self._lock:
            snapshot = list(self._entries)
        if since is None:
            return snapshot
        return [entry for entry in snapshot if entry.sequence > since]

    def clear(self) -> None:
        """Drop all entries; numbering continues where it left off."""
        with self._lock:
            self._entries.clear()

    @property
    def latest_sequence(self) -> int:
        """Sequence of the most recent entry ever appended (0 if none)."""
        with self._lock:
            return self._next_sequence - 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
