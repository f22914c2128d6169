"""
Migration Job - copies every object from the active provider to a new one.

One MigrationJob owns one MigrationState and one MigrationLog. start()
returns as soon as the copy loop has been scheduled; callers poll
get_progress() and get_logs() while the application keeps serving traffic
from the old provider.

Usage:
    >>> job = MigrationJob(registry)
    >>> result = await job.start(S3StorageConfig(...))
    >>> if not result.started:
    ...     print(result.error)
    >>> state = job.get_progress()
    >>> entries = job.get_logs(since=last_seen)
    >>> job.abort()
"""

import asyncio
import json
import threading
import time
from contextlib import aclosing
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from vaultshift.core.config import SETTING_KEYS, MigrationOptions, StorageConfig
from vaultshift.core.exceptions import AlreadyRunningError, MigrationAbortedError, MigrationError
from vaultshift.core.logger import get_logger
from vaultshift.core.settings import SettingsStore
from vaultshift.monitoring.logging import migration_context, set_migration_context
from vaultshift.monitoring.prometheus import MigrationMetrics
from vaultshift.storage.core import (
    IncompleteConfigError,
    ObjectCopyError,
    ObjectInfo,
    ObjectStat,
    StorageProvider,
    VerificationError,
    format_bytes,
    guess_content_type,
)
from vaultshift.storage.factory import ProviderFactory, create_provider
from vaultshift.storage.registry import ActiveProviderRegistry

from .log import MigrationLog
from .types import (
    VALID_TRANSITIONS,
    MigrationLogEntry,
    MigrationState,
    MigrationStatus,
    StartResult,
)

logger = get_logger(__name__)


class MigrationJob:
    """
    State machine and copy loop of a migration run.

    Only one run can be active per instance. Counters are updated under a
    short-held threading.Lock that is never held across an await, so
    get_progress() and get_logs() never wait on storage I/O.
    """

    def __init__(
        self,
        registry: ActiveProviderRegistry,
        factory: ProviderFactory = create_provider,
        options: MigrationOptions | None = None,
        settings: SettingsStore | None = None,
        metrics: MigrationMetrics | None = None,
    ):
        """
        Initialize the job.

        Args:
            registry: Supplies the source provider at start()
            factory: Builds the destination provider from its configuration
            options: Concurrency, verification and log tunables
            settings: When given, status and a progress summary are persisted
            metrics: Optional Prometheus collector
        """
        self.registry = registry
        self.factory = factory
        self.options = options or MigrationOptions()
        self.settings = settings
        self.metrics = metrics

        self._lock = threading.Lock()
        self._abort_event = threading.Event()
        self._state = MigrationState()
        self._log = MigrationLog(capacity=self.options.log_capacity)
        self._task: asyncio.Task | None = None
        self._source: StorageProvider | None = None
        self._destination_config: StorageConfig | None = None
        self._migrated: dict[str, ObjectStat] = {}
        self._settings_key: str | None = None

    # =========================================================================
    # Read side
    # =========================================================================

    @property
    def log(self) -> MigrationLog:
        return self._log

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._state.status.is_active

    @property
    def source(self) -> StorageProvider | None:
        """Source provider snapshotted by the most recent start()."""
        return self._source

    @property
    def destination_config(self) -> StorageConfig | None:
        """Destination configuration of the most recent run."""
        return self._destination_config

    def get_progress(self) -> MigrationState:
        """Snapshot of the current state; safe from any thread."""
        with self._lock:
            return self._state.copy()

    def get_logs(self, since: int | None = None) -> list[MigrationLogEntry]:
        """Log entries with sequence > since, ascending."""
        return self._log.entries(since)

    def migrated_keys(self) -> list[str]:
        """Keys copied successfully by the most recent run."""
        with self._lock:
            return list(self._migrated)

    def migrated_objects(self) -> dict[str, ObjectStat]:
        """Size and modification time each copied object had when it was read."""
        with self._lock:
            return dict(self._migrated)

    # =========================================================================
    # Control
    # =========================================================================

    async def start(self, destination_config: StorageConfig) -> StartResult:
        """
        Start a run copying the active provider into destination_config.

        Returns immediately once the copy loop is scheduled. Never raises for
        the expected refusals; they are reported in the result.
        """
        with self._lock:
            if self._state.status.is_active:
                error = AlreadyRunningError(self._state.run_id)
                return StartResult(
                    started=False,
                    error=str(error),
                    run_id=self._state.run_id,
                    error_type=type(error).__name__,
                )

        try:
            destination_config.validate()
            destination = self.factory(destination_config)
        except IncompleteConfigError as e:
            logger.warning(f"Migration not started: {e.message}")
            return StartResult(started=False, error=e.message, error_type=type(e).__name__)
        except Exception as e:
            logger.warning(f"Migration not started, cannot create destination storage: {e}")
            return StartResult(
                started=False,
                error=f"Cannot create destination storage: {e}",
                error_type=type(e).__name__,
            )

        # No await between the status check above and this reset
        run_id = uuid4().hex
        with self._lock:
            self._check_transition(MigrationStatus.RUNNING)
            self._state = MigrationState(
                run_id=run_id,
                status=MigrationStatus.RUNNING,
                started_at=datetime.now(UTC),
                destination=destination.describe(),
            )
            self._migrated = {}
        self._abort_event.clear()
        self._log.clear()
        self._destination_config = destination_config
        self._source = None

        try:
            source = await self.registry.get()
        except Exception as e:
            message = f"Source storage is unreachable: {e}"
            self._log.error(message, {"reason": "SourceUnreachable", "error_type": type(e).__name__})
            self._finish(message)
            await destination.close()
            await self._persist()
            return StartResult(
                started=False,
                error=message,
                run_id=run_id,
                error_type="SourceUnreachable",
            )

        with self._lock:
            self._state.source = source.describe()
        self._source = source
        self._settings_key = self._find_settings_key(source)
        self.registry.retain(source)

        self._task = asyncio.create_task(
            self._run(source, destination),
            name=f"vaultshift-migration-{run_id[:8]}",
        )
        self._task.add_done_callback(self._on_task_done)
        return StartResult(started=True, run_id=run_id)

    def abort(self) -> bool:
        """
        Request cooperative cancellation of the active run.

        The object being copied finishes first. Idempotent; a no-op when no
        run is active.

        Returns:
            True if this call moved the run to aborting
        """
        with self._lock:
            if self._state.status != MigrationStatus.RUNNING:
                return False
            self._check_transition(MigrationStatus.ABORTING)
            self._state.status = MigrationStatus.ABORTING
            self._state.aborted = True
            self._abort_event.set()

        self._log.warning("Migration abort requested by user")
        return True

    async def wait(self, timeout: float | None = None) -> MigrationState:
        """Wait for the active run to finish (or timeout) and return a snapshot."""
        task = self._task
        if task is not None and not task.done():
            await asyncio.wait({task}, timeout=timeout)
        return self.get_progress()

    async def close(self, timeout: float | None = 30.0) -> None:
        """Abort an active run and wait for it; cancel it after timeout."""
        task = self._task
        if task is None or task.done():
            return

        self.abort()
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.warning("Migration task cancelled during shutdown")

    # =========================================================================
    # Copy loop
    # =========================================================================

    def _find_settings_key(self, source: StorageProvider) -> str | None:
        """Key under which the source holds vaultshift's own settings file, if it does."""
        if self.settings is None or self.settings.path is None:
            return None
        key = source.key_for_path(self.settings.path)
        if key is not None:
            self._log.info(f"Settings file {key} lies inside the source storage and is not migrated")
        return key

    def _is_internal(self, key: str) -> bool:
        """The settings file, or a temporary file it is being rewritten through."""
        if self._settings_key is None:
            return False
        if key == self._settings_key:
            return True
        directory, _, name = self._settings_key.rpartition("/")
        key_dir, _, key_name = key.rpartition("/")
        return key_dir == directory and key_name.startswith(f".{name}.") and key_name.endswith(".tmp")

    async def _run(self, source: StorageProvider, destination: StorageProvider) -> None:
        state = self.get_progress()
        token = set_migration_context(state.run_id or "", state.source, state.destination)
        if self.metrics:
            self.metrics.run_started()

        try:
            self._log.info(
                f"Starting migration from {source.describe()} to {destination.describe()}",
                {"run_id": state.run_id},
            )
            await self._persist()

            try:
                fatal = await self._execute(source, destination)
            except asyncio.CancelledError:
                self._finish("Migration task was cancelled")
                raise
            except Exception as e:
                logger.exception("Migration run failed")
                fatal = f"Migration failed: {e}"
                self._log.error(fatal, {"error": str(e), "error_type": type(e).__name__})

            self._finish(fatal)
            await self._persist()
        finally:
            self.registry.release(source)
            await destination.close()
            migration_context.reset(token)

    async def _execute(self, source: StorageProvider, destination: StorageProvider) -> str | None:
        """Pre-flight and copy; returns the fatal error message, if any."""
        timeout = self.options.connection_timeout_seconds

        self._log.info("Testing source and destination connectivity...")
        source_result, destination_result = await asyncio.gather(
            source.test_connection(timeout_seconds=timeout),
            destination.test_connection(probe_write=True, timeout_seconds=timeout),
        )
        if not source_result.success:
            message = f"Source storage is unreachable: {source_result.message}"
            self._log.error(message, {"reason": "SourceUnreachable", **source_result.details})
            return message
        if not destination_result.success:
            message = f"Destination storage is unreachable: {destination_result.message}"
            self._log.error(
                message, {"reason": "DestinationUnreachable", **destination_result.details}
            )
            return message

        self._log.info(
            "Source and destination storage verified",
            {
                "source_latency_ms": round(source_result.latency_ms, 2),
                "destination_latency_ms": round(destination_result.latency_ms, 2),
            },
        )

        if self.options.concurrency > 1:
            await self._copy_concurrent(source, destination)
        else:
            await self._copy_sequential(source, destination)
        return None

    async def _copy_sequential(self, source: StorageProvider, destination: StorageProvider) -> None:
        async with aclosing(source.list("")) as objects:
            async for info in objects:
                if self._abort_event.is_set():
                    break
                if self._is_internal(info.key):
                    continue
                self._record_discovered(info)
                await self._copy_object(source, destination, info)

    async def _copy_concurrent(self, source: StorageProvider, destination: StorageProvider) -> None:
        """Up to options.concurrency objects in flight; in-flight objects always finish."""
        limit = self.options.concurrency
        pending: set[asyncio.Task] = set()

        try:
            async with aclosing(source.list("")) as objects:
                async for info in objects:
                    if self._abort_event.is_set():
                        break
                    if self._is_internal(info.key):
                        continue
                    self._record_discovered(info)
                    pending.add(asyncio.create_task(self._copy_object(source, destination, info)))
                    if len(pending) >= limit:
                        _, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            for task in pending:
                task.cancel()
            raise
        finally:
            if pending:
                await asyncio.wait(pending)

    async def _copy_object(
        self,
        source: StorageProvider,
        destination: StorageProvider,
        info: ObjectInfo,
    ) -> None:
        """Copy one object. Failures are recorded, never raised."""
        key = info.key
        with self._lock:
            self._state.current_key = key

        started = time.perf_counter()
        try:
            if info.size is not None and info.last_modified is not None:
                read_as = ObjectStat(size=info.size, last_modified=info.last_modified)
            else:
                read_as = await source.stat(key)
            data = await source.get(key)
            await destination.put(key, data, content_type=guess_content_type(key))
            if self.options.verify:
                stat = await destination.stat(key)
                if stat.size != len(data):
                    raise VerificationError(key, len(data), stat.size)
        except Exception as e:
            error = e if isinstance(e, ObjectCopyError) else ObjectCopyError(key, e)
            processed = self._record_failure(error, time.perf_counter() - started)
        else:
            processed = self._record_success(key, read_as, len(data), time.perf_counter() - started)

        if processed % self.options.progress_log_interval == 0:
            self._log_progress()
            await self._persist()

    # =========================================================================
    # State updates
    # =========================================================================

    def _check_transition(self, target: MigrationStatus) -> None:
        """Caller holds self._lock."""
        current = self._state.status
        if target not in VALID_TRANSITIONS[current]:
            msg = f"Invalid migration transition: {current.value} -> {target.value}"
            raise MigrationError(msg)

    def _record_discovered(self, info: ObjectInfo) -> None:
        with self._lock:
            self._state.total_objects += 1
            self._state.total_bytes += info.size or 0

    def _record_success(self, key: str, read_as: ObjectStat, size: int, duration: float) -> int:
        with self._lock:
            self._state.migrated_objects += 1
            self._state.migrated_bytes += size
            self._state.current_key = key
            self._migrated[key] = read_as
            processed = self._state.processed_objects

        logger.debug(
            f"Migrated {key}",
            extra={"key": key, "size": size, "duration_ms": round(duration * 1000, 2)},
        )
        if self.metrics:
            self.metrics.object_migrated(size, duration)
        return processed

    def _record_failure(self, error: ObjectCopyError, duration: float) -> int:
        with self._lock:
            self._state.failed_objects += 1
            self._state.last_error = error.message
            processed = self._state.processed_objects

        self._log.error(error.message, error.details)
        if self.metrics:
            self.metrics.object_failed(duration)
        return processed

    def _log_progress(self) -> None:
        state = self.get_progress()
        self._log.info(
            f"Progress: {state.processed_objects} of {state.total_objects} objects discovered so far "
            f"({state.migrated_objects} migrated, {state.failed_objects} failed, "
            f"{format_bytes(state.migrated_bytes)} / {format_bytes(state.total_bytes)})",
            {
                "migrated_objects": state.migrated_objects,
                "failed_objects": state.failed_objects,
                "total_objects": state.total_objects,
                "bytes_per_second": round(state.bytes_per_second, 2),
            },
        )

    def _finish(self, fatal: str | None) -> MigrationState:
        """Move the run to its terminal status and append the summary entry."""
        with self._lock:
            state = self._state
            # abort() sets the status and the event under this lock
            aborted = self._abort_event.is_set() or state.status == MigrationStatus.ABORTING
            state.finished_at = datetime.now(UTC)
            state.current_key = ""
            if fatal is not None:
                self._check_transition(MigrationStatus.FAILED)
                state.status = MigrationStatus.FAILED
                state.last_error = fatal
            elif aborted:
                self._check_transition(MigrationStatus.FAILED)
                state.status = MigrationStatus.FAILED
                state.last_error = str(MigrationAbortedError())
            else:
                self._check_transition(MigrationStatus.COMPLETED)
                state.status = MigrationStatus.COMPLETED
            state.aborted = aborted
            final = state.copy()

        if aborted and fatal is None:
            self._log.warning(final.last_error or "Migration aborted by user")

        summary = (
            f"Migration {final.status.value}: {final.migrated_objects} migrated, "
            f"{final.failed_objects} failed of {final.total_objects} objects "
            f"({format_bytes(final.migrated_bytes)}) in {final.elapsed_seconds:.1f}s"
        )
        detail = {
            "run_id": final.run_id,
            "total_objects": final.total_objects,
            "migrated_objects": final.migrated_objects,
            "failed_objects": final.failed_objects,
            "migrated_bytes": final.migrated_bytes,
            "duration_seconds": round(final.elapsed_seconds, 3),
            "aborted": final.aborted,
        }
        if final.status == MigrationStatus.COMPLETED and final.failed_objects == 0:
            self._log.info(summary, detail)
        elif final.status == MigrationStatus.COMPLETED:
            self._log.warning(summary, detail)
        else:
            self._log.error(summary, detail)

        if self.metrics:
            self.metrics.run_finished(final.status)
        return final

    async def _persist(self) -> None:
        """Write status and a progress summary to the settings store (informational)."""
        if self.settings is None:
            return

        state = self.get_progress()
        summary: dict[str, Any] = {
            "run_id": state.run_id,
            "status": state.status.value,
            "total_objects": state.total_objects,
            "migrated_objects": state.migrated_objects,
            "failed_objects": state.failed_objects,
            "total_bytes": state.total_bytes,
            "migrated_bytes": state.migrated_bytes,
            "started_at": state.started_at.isoformat() if state.started_at else None,
            "finished_at": state.finished_at.isoformat() if state.finished_at else None,
            "last_error": state.last_error,
        }
        try:
            await self.settings.set_many(
                {
                    SETTING_KEYS.MIGRATION_STATUS: state.status.value,
                    SETTING_KEYS.MIGRATION_PROGRESS: json.dumps(summary),
                }
            )
        except Exception as e:
            logger.warning(f"Failed to persist migration progress: {e}")

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Migration task crashed: {error}", exc_info=error)
