"""
Storage migration engine.

Quick Start:
    >>> from vaultshift.migration import MigrationJob
    >>> job = MigrationJob(registry)
    >>> await job.start(destination_config)
    >>> job.get_progress().to_dict()
"""

from .job import MigrationJob
from .log import MigrationLog
from .types import (
    LogLevel,
    MigrationLogEntry,
    MigrationState,
    MigrationStatus,
    StartResult,
)

__all__ = [
    "LogLevel",
    "MigrationJob",
    "MigrationLog",
    "MigrationLogEntry",
    "MigrationState",
    "MigrationStatus",
    "StartResult",
]
