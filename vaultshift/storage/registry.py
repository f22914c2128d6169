"""
Active Provider Registry - the provider serving application traffic.

The provider is built lazily from the persisted storage configuration and
cached. Configuration updates call invalidate() right after persisting, so
the next get() rebuilds against the new settings.

Swapped-out providers are closed once retire_grace_seconds have passed and
nothing retains them; a migration retains its source for the whole run.

Usage:
    >>> registry = ActiveProviderRegistry(settings)
    >>> provider = await registry.get()
    >>> await save_storage_config(settings, new_config)
    >>> registry.invalidate()
    >>> provider = await registry.get()  # built from new_config
"""

import asyncio
import time
from collections import Counter

from vaultshift.core.logger import get_logger
from vaultshift.core.settings import SettingsStore, load_storage_config
from vaultshift.storage.core import StorageProvider
from vaultshift.storage.factory import ProviderFactory, create_provider

logger = get_logger(__name__)

DEFAULT_RETIRE_GRACE_SECONDS = 60.0


class ActiveProviderRegistry:
    """
    Holder of the provider currently used by live traffic.

    The cached reference is replaced in a single assignment, so a reader
    sees either the old or the new provider and never a partial build.
    Builds are serialized by an asyncio.Lock; concurrent callers share one.
    """

    def __init__(
        self,
        settings: SettingsStore,
        factory: ProviderFactory = create_provider,
        default_root: str | None = None,
        retire_grace_seconds: float = DEFAULT_RETIRE_GRACE_SECONDS,
    ):
        """
        Initialize the registry.

        Args:
            settings: Store holding the persisted configuration
            factory: Builds a provider from a configuration
            default_root: Local root used when none is persisted
            retire_grace_seconds: How long a swapped-out provider stays open
                for requests that fetched it before the swap
        """
        self.settings = settings
        self.factory = factory
        self.default_root = default_root
        self.retire_grace_seconds = retire_grace_seconds

        self._provider: StorageProvider | None = None
        self._generation = 0
        self._lock = asyncio.Lock()
        # (monotonic time of the swap, provider)
        self._retired: list[tuple[float, StorageProvider]] = []
        self._retained: Counter[int] = Counter()

    @property
    def generation(self) -> int:
        """Incremented by every invalidate()."""
        return self._generation

    @property
    def current(self) -> StorageProvider | None:
        """The cached provider, or None before the first build."""
        return self._provider

    @property
    def retired(self) -> list[StorageProvider]:
        """Swapped-out providers that are not closed yet."""
        return [provider for _, provider in self._retired]

    async def get(self) -> StorageProvider:
        """
        Get the active provider, building it from settings if necessary.

        Raises:
            IncompleteConfigError, MissingDependencyError: If the
                persisted configuration cannot be turned into a provider
        """
        if self._retired:
            await self.close_retired()

        provider = self._provider
        if provider is not None:
            return provider

        async with self._lock:
            if self._provider is not None:
                return self._provider

            generation = self._generation
            config = await load_storage_config(self.settings, self.default_root)
            provider = self.factory(config)

            if generation == self._generation:
                self._provider = provider
                logger.info(f"Active storage provider: {provider.describe()}")
            else:
                # Invalidated mid-build; serve this caller without caching
                self._retire(provider)
                logger.debug(
                    f"Provider {provider.describe()} built for stale generation "
                    f"{generation}, not cached"
                )
            return provider

    def invalidate(self) -> None:
        """Drop the cached provider; the next get() rebuilds it."""
        self._generation += 1
        provider, self._provider = self._provider, None
        if provider is not None:
            self._retire(provider)
        logger.debug(f"Storage provider invalidated (generation {self._generation})")

    def retain(self, provider: StorageProvider) -> None:
        """Keep provider open after it is swapped out, until release()."""
        self._retained[id(provider)] += 1

    def release(self, provider: StorageProvider) -> None:
        self._retained[id(provider)] -= 1
        if self._retained[id(provider)] <= 0:
            del self._retained[id(provider)]

    def _retire(self, provider: StorageProvider) -> None:
        self._retired.append((time.monotonic(), provider))

    async def close_retired(self, force: bool = False) -> int:
        """
        Close swapped-out providers past their grace period.

        Args:
            force: Ignore the grace period and retain counts (shutdown)

        Returns:
            Number of providers closed
        """
        now = time.monotonic()
        expired: list[StorageProvider] = []
        remaining: list[tuple[float, StorageProvider]] = []
        for retired_at, provider in self._retired:
            if provider.is_closed:
                continue
            in_grace = now - retired_at < self.retire_grace_seconds
            if not force and (in_grace or id(provider) in self._retained):
                remaining.append((retired_at, provider))
            else:
                expired.append(provider)
        self._retired = remaining

        for provider in expired:
            await provider.close()
            logger.debug(f"Closed retired storage provider {provider.describe()}")
        return len(expired)

    async def close(self) -> None:
        """Close the cached provider and every provider swapped out before it."""
        provider, self._provider = self._provider, None
        if provider is not None:
            self._retire(provider)
        await self.close_retired(force=True)
        self._retained.clear()
