"""
Storage Service - the entry point used by request handlers.

Wires the settings store, the active provider registry and the migration
job together. Construct one per process and inject it; every consumer
shares the same instance.

Usage:
    >>> settings = JsonFileSettingsStore(".vaultshift/settings.json")
    >>> async with StorageService(settings) as service:
    ...     result = await service.test_connection(s3_config)
    ...     await service.start_migration(s3_config)
    ...     service.get_migration_progress().to_dict()
"""

from typing import Any

from vaultshift.core.config import (
    LocalStorageConfig,
    MigrationOptions,
    S3StorageConfig,
    StorageConfig,
)
from vaultshift.core.exceptions import MigrationError
from vaultshift.core.logger import get_logger
from vaultshift.core.settings import (
    SettingsStore,
    load_s3_config,
    load_storage_config,
    save_s3_settings,
    save_storage_config,
)
from vaultshift.migration import MigrationJob, MigrationLogEntry, MigrationState, MigrationStatus, StartResult
from vaultshift.monitoring.prometheus import MigrationMetrics
from vaultshift.storage.core import (
    ConnectionTestResult,
    IncompleteConfigError,
    NotFoundError,
    StorageError,
    StorageProvider,
)
from vaultshift.storage.factory import ProviderFactory, create_provider
from vaultshift.storage.registry import ActiveProviderRegistry

logger = get_logger(__name__)


class StorageService:
    """
    Facade over storage configuration, the active provider and migrations.

    Attributes:
        settings: External key/value settings store
        registry: Provider serving live traffic
        job: The (single) migration job
    """

    def __init__(
        self,
        settings: SettingsStore,
        *,
        registry: ActiveProviderRegistry | None = None,
        job: MigrationJob | None = None,
        factory: ProviderFactory | None = None,
        options: MigrationOptions | None = None,
        metrics: MigrationMetrics | None = None,
        default_root: str | None = None,
    ):
        self.settings = settings
        self.factory = factory or create_provider
        self.options = options or MigrationOptions()
        self.registry = registry or ActiveProviderRegistry(
            settings, factory=self.factory, default_root=default_root
        )
        self.job = job or MigrationJob(
            self.registry,
            factory=self.factory,
            options=self.options,
            settings=settings,
            metrics=metrics,
        )
        self._activated_run_id: str | None = None

    # =========================================================================
    # Active provider
    # =========================================================================

    async def get_provider(self) -> StorageProvider:
        """Provider application traffic should use right now."""
        return await self.registry.get()

    async def get_storage_config(self) -> StorageConfig:
        return await load_storage_config(self.settings, self.registry.default_root)

    async def get_saved_s3_config(self) -> S3StorageConfig:
        """Saved S3 settings, whether or not S3 is the active storage."""
        return await load_s3_config(self.settings)

    async def update_storage_config(self, config: StorageConfig, activate: bool = True) -> StorageConfig:
        """
        Persist a configuration, then invalidate the cached provider.

        Args:
            config: New configuration; a masked S3 secret keeps the saved one
            activate: Make it the active storage (False only saves S3 settings)

        Raises:
            IncompleteConfigError: If required fields are missing
        """
        config = await self._resolve_secret(config)
        config.validate()

        if activate or isinstance(config, LocalStorageConfig):
            await save_storage_config(self.settings, config)
        else:
            await save_s3_settings(self.settings, config)

        # Before returning to the caller that changed it
        self.registry.invalidate()
        logger.info(f"Storage configuration updated ({config.type.value}, activate={activate})")
        return config

    async def test_connection(
        self,
        config: StorageConfig,
        probe_write: bool = True,
    ) -> ConnectionTestResult:
        """
        Test a configuration without saving it or starting a run.

        Never raises; an incomplete configuration yields a failed result.
        """
        config = await self._resolve_secret(config)
        try:
            config.validate()
            provider = self.factory(config)
        except IncompleteConfigError as e:
            return ConnectionTestResult(success=False, message=e.message, details=e.details)
        except Exception as e:
            return ConnectionTestResult(
                success=False,
                message=f"Cannot create storage provider: {e}",
                details={"error_type": type(e).__name__},
            )

        async with provider:
            return await provider.test_connection(
                probe_write=probe_write,
                timeout_seconds=self.options.connection_timeout_seconds,
            )

    # =========================================================================
    # Migration
    # =========================================================================

    async def start_migration(self, destination_config: StorageConfig | None = None) -> StartResult:
        """
        Start copying the active storage into destination_config.

        Without a configuration the saved S3 settings are used.
        """
        if destination_config is None:
            destination_config = await load_s3_config(self.settings)
        else:
            destination_config = await self._resolve_secret(destination_config)

        result = await self.job.start(destination_config)
        if result.started:
            self._activated_run_id = None
        return result

    def abort_migration(self) -> None:
        self.job.abort()

    def get_migration_progress(self) -> MigrationState:
        return self.job.get_progress()

    def get_migration_logs(self, since_sequence: int | None = None) -> list[MigrationLogEntry]:
        return self.job.get_logs(since_sequence)

    async def activate_destination(self) -> StorageConfig:
        """
        Make the destination of the last run the active storage.

        Raises:
            MigrationError: Unless the last run completed without failures
        """
        state = self.job.get_progress()
        config = self.job.destination_config
        if config is None or state.status != MigrationStatus.COMPLETED:
            msg = "No completed migration to activate"
            raise MigrationError(msg)
        if state.failed_objects:
            msg = (
                f"Migration finished with {state.failed_objects} failed objects; "
                "fix the errors and run it again before switching storage"
            )
            raise MigrationError(msg)

        await save_storage_config(self.settings, config)
        self.registry.invalidate()
        self._activated_run_id = state.run_id
        self.job.log.info(
            f"Storage switched to {config.type.value}. New objects will be stored in the destination."
        )
        return config

    async def cleanup_source(self) -> dict[str, Any]:
        """
        Delete migrated objects from the previous storage.

        Only allowed once the destination of that run has been activated.
        Objects whose size or modification time changed after they were
        copied are kept; the destination only holds their older content.

        Returns:
            {"deleted": int, "skipped": int, "failed": int, "pruned_dirs": int}
        """
        state = self.job.get_progress()
        source = self.job.source
        if source is None or state.run_id is None or self._activated_run_id != state.run_id:
            msg = "Activate the migration destination before cleaning up the source"
            raise MigrationError(msg)

        self.job.log.info(f"Cleaning up {source.describe()}...")
        self.registry.retain(source)
        try:
            report = await self._delete_unchanged(source)
        finally:
            self.registry.release(source)

        self.job.log.info(
            f"Source cleanup: {report['deleted']} objects deleted, {report['skipped']} kept as modified, "
            f"{report['failed']} failed, {report['pruned_dirs']} empty directories removed"
        )
        return report

    async def _delete_unchanged(self, source: StorageProvider) -> dict[str, int]:
        """Delete migrated objects still as they were when copied, then prune."""
        deleted = skipped = failed = 0
        for key, copied in self.job.migrated_objects().items():
            try:
                current = await source.stat(key)
                if current.size != copied.size or current.last_modified != copied.last_modified:
                    skipped += 1
                    self.job.log.warning(
                        f"Kept source object {key}: modified after it was migrated",
                        {"key": key, "copied_size": copied.size, "current_size": current.size},
                    )
                    continue
                await source.delete(key)
                deleted += 1
            except NotFoundError:
                continue
            except (StorageError, OSError) as e:
                failed += 1
                self.job.log.warning(
                    f"Failed to delete source object {key}: {e}",
                    {"key": key, "error": str(e), "error_type": type(e).__name__},
                )

        pruned = 0
        prune = getattr(source, "prune_empty_dirs", None)
        if prune is not None:
            try:
                pruned = await prune()
            except OSError as e:
                self.job.log.warning(f"Failed to clean empty directories: {e}")

        return {"deleted": deleted, "skipped": skipped, "failed": failed, "pruned_dirs": pruned}

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def _resolve_secret(self, config: StorageConfig) -> StorageConfig:
        """Replace a masked or empty S3 secret with the saved one."""
        if isinstance(config, S3StorageConfig):
            saved = await load_s3_config(self.settings)
            return config.with_secret_from(saved)
        return config

    async def close(self) -> None:
        await self.job.close()
        await self.registry.close()

    async def __aenter__(self) -> "StorageService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
