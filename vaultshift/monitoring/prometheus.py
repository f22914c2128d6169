# ============================================
# FILE: vaultshift/monitoring/prometheus.py
# ============================================

"""
Prometheus metrics integration for vaultshift.

Quick Start:
    >>> from vaultshift.monitoring.prometheus import MigrationMetrics, start_metrics_server
    >>>
    >>> start_metrics_server(port=9108)
    >>> metrics = MigrationMetrics()
    >>> service = StorageService(settings, metrics=metrics)

Requirements:
    pip install prometheus-client
"""

import logging
from typing import Any

# Check if prometheus_client is installed
try:
    from prometheus_client import REGISTRY, Counter, Gauge, Histogram, start_http_server

    PROMETHEUS_AVAILABLE = True
except ImportError:  # pragma: no cover
    PROMETHEUS_AVAILABLE = False
    REGISTRY: Any = None  # type: ignore[no-redef]
    Counter: Any = None  # type: ignore[no-redef]
    Gauge: Any = None  # type: ignore[no-redef]
    Histogram: Any = None  # type: ignore[no-redef]
    start_http_server: Any = None  # type: ignore[no-redef]


logger = logging.getLogger(__name__)


class MigrationMetrics:
    """
    Prometheus metrics collector for migration runs.

    Exposes the following metrics:
        - vaultshift_migration_objects_total: Counter of copied objects by result
        - vaultshift_migration_bytes_total: Counter of bytes copied
        - vaultshift_migration_runs_total: Counter of finished runs by status
        - vaultshift_migration_running: Gauge, 1 while a run is active
        - vaultshift_migration_object_duration_seconds: Histogram of per-object copy time
    """

    def __init__(self, prefix: str = "vaultshift_migration", registry: Any = None):
        """
        Initialize Prometheus metrics.

        Args:
            prefix: Metric name prefix
            registry: CollectorRegistry to register with (default: global registry)
        """
        if not PROMETHEUS_AVAILABLE:
            logger.warning(
                "prometheus-client not installed. Metrics will not be collected. "
                "Install with: pip install prometheus-client"
            )
            self._enabled = False
            return

        self._enabled = True
        self._prefix = prefix
        registry = registry if registry is not None else REGISTRY

        self._objects_total = Counter(
            f"{prefix}_objects_total",
            "Objects processed by migration runs",
            ["result"],
            registry=registry,
        )

        self._bytes_total = Counter(
            f"{prefix}_bytes_total",
            "Bytes copied by migration runs",
            registry=registry,
        )

        self._runs_total = Counter(
            f"{prefix}_runs_total",
            "Finished migration runs",
            ["status"],
            registry=registry,
        )

        self._running = Gauge(
            f"{prefix}_running",
            "Whether a migration run is active",
            registry=registry,
        )

        self._object_duration = Histogram(
            f"{prefix}_object_duration_seconds",
            "Time to copy a single object",
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=registry,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    def run_started(self) -> None:
        if not self._enabled:
            return
        self._running.set(1)

    def run_finished(self, status: Any) -> None:
        """
        Record the end of a run.

        Args:
            status: Final MigrationStatus (or its string value)
        """
        if not self._enabled:
            return

        status_str = status.value if hasattr(status, "value") else str(status)
        self._runs_total.labels(status=status_str).inc()
        self._running.set(0)

    def object_migrated(self, size: int, duration: float) -> None:
        if not self._enabled:
            return
        self._objects_total.labels(result="migrated").inc()
        self._bytes_total.inc(size)
        self._object_duration.observe(duration)

    def object_failed(self, duration: float) -> None:
        if not self._enabled:
            return
        self._objects_total.labels(result="failed").inc()
        self._object_duration.observe(duration)


def start_metrics_server(port: int = 9108, addr: str = "0.0.0.0") -> None:
    """
    Start a Prometheus HTTP metrics server.

    Args:
        port: Port to listen on
        addr: Address to bind to (default: 0.0.0.0 for all interfaces)
    """
    if not PROMETHEUS_AVAILABLE:
        logger.error(
            "Cannot start metrics server: prometheus-client not installed. "
            "Install with: pip install prometheus-client"
        )
        return

    start_http_server(port, addr)
    logger.info(f"Prometheus metrics server started on port {port}")


def is_prometheus_available() -> bool:
    """Check if prometheus-client is installed."""
    return PROMETHEUS_AVAILABLE
