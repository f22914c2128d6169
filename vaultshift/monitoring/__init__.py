"""
Migration monitoring and observability utilities

Quick Start:
    >>> from vaultshift.monitoring import configure_json_logging
    >>> configure_json_logging("INFO")

    # Enable Prometheus metrics (requires prometheus-client)
    >>> from vaultshift.monitoring import MigrationMetrics, start_metrics_server
    >>> start_metrics_server(port=9108)
    >>> metrics = MigrationMetrics()
"""

from .logging import (
    MigrationContextFilter,
    MigrationJsonFormatter,
    configure_json_logging,
    migration_context,
    set_migration_context,
)
from .prometheus import MigrationMetrics, is_prometheus_available, start_metrics_server

__all__ = [
    "MigrationContextFilter",
    "MigrationJsonFormatter",
    "MigrationMetrics",
    "configure_json_logging",
    "is_prometheus_available",
    "migration_context",
    "set_migration_context",
    "start_metrics_server",
]
