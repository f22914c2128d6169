"""
Structured logging for migration runs

Every record emitted while a run is active carries the run id and the
source/destination descriptions, so log lines from concurrent requests and
from the copy loop can be told apart.
"""

import json
import logging
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variables for propagating migration context
migration_context: ContextVar[dict[str, Any]] = ContextVar("migration_context", default={})


class MigrationJsonFormatter(logging.Formatter):
    """
    JSON formatter for migration logs with structured fields
    """

    # Fields to extract from log record if present
    _EXTRA_FIELDS = (
        "key",
        "size",
        "duration_ms",
        "error_type",
        "operation",
        "backend",
        "migration_sequence",
    )

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON"""
        log_entry = self._build_base_entry(record)
        self._add_migration_context(log_entry)
        self._add_record_extras(log_entry, record)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)

    def _build_base_entry(self, record: logging.LogRecord) -> dict[str, Any]:
        return {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

    def _add_migration_context(self, log_entry: dict[str, Any]) -> None:
        context = migration_context.get({})
        if context:
            log_entry.update(
                {
                    "run_id": context.get("run_id"),
                    "source": context.get("source"),
                    "destination": context.get("destination"),
                }
            )

    def _add_record_extras(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        for field in self._EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)


class MigrationContextFilter(logging.Filter):
    """
    Logging filter that adds migration context to log records
    """

    def filter(self, record: logging.LogRecord) -> bool:
        context = migration_context.get({})
        record.run_id = context.get("run_id", "-")
        record.source = context.get("source", "")
        record.destination = context.get("destination", "")
        return True


def set_migration_context(run_id: str, source: str, destination: str):
    """Bind run details to the current context; returns the reset token."""
    return migration_context.set(
        {"run_id": run_id, "source": source, "destination": destination}
    )


def configure_json_logging(
    log_level: str = "INFO",
    json_format: bool = True,
    logger_name: str = "vaultshift",
) -> logging.Logger:
    """
    Set up structured logging for vaultshift

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON formatting for structured logs
        logger_name: Logger to configure

    Returns:
        The configured logger
    """
    root_logger = logging.getLogger(logger_name)
    root_logger.setLevel(getattr(logging, log_level.upper()))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.addFilter(MigrationContextFilter())
    if json_format:
        console_handler.setFormatter(MigrationJsonFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - [%(run_id)s] - %(message)s")
        )
    root_logger.addHandler(console_handler)

    return root_logger
