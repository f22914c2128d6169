"""
Environment variable management with .env file support.

All vaultshift environment variables use the ``VAULTSHIFT_`` prefix:

    VAULTSHIFT_SETTINGS_FILE          JSON settings file used by the CLI
    VAULTSHIFT_LOCAL_ROOT             Root directory of the local provider
    VAULTSHIFT_MIGRATION_CONCURRENCY  Objects copied in parallel
    VAULTSHIFT_VERIFY                 Stat the destination after each copy
    VAULTSHIFT_LOG_CAPACITY           Migration log ring size
    VAULTSHIFT_LOG_LEVEL              DEBUG, INFO, WARNING, ERROR
    VAULTSHIFT_METRICS_PORT           Prometheus exporter port (0 = disabled)
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "VAULTSHIFT_"


class EnvManager:
    """
    Manages environment variables for vaultshift.

    Example:
        >>> env = EnvManager()
        >>> env.load()  # Loads .env if exists
        >>> root = env.get("VAULTSHIFT_LOCAL_ROOT", ".")
    """

    def __init__(self, project_root: Path | str | None = None, auto_load: bool = True):
        """
        Initialize the environment manager.

        Args:
            project_root: Directory searched for the .env file
            auto_load: Automatically load .env file if found
        """
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self._loaded = False

        if auto_load:
            self.load()

    @property
    def loaded(self) -> bool:
        return self._loaded

    def load(self, env_file: str | Path | None = None, override: bool = False) -> bool:
        """
        Load environment variables from .env file.

        Args:
            env_file: Path to .env file (defaults to .env in project root)
            override: Whether to override existing environment variables

        Returns:
            True if .env file was loaded, False otherwise
        """
        env_file = self.project_root / ".env" if env_file is None else Path(env_file)

        if not env_file.exists():
            return False

        load_dotenv(env_file, override=override)
        self._loaded = True
        return True

    def get(self, key: str, default: str | None = None, required: bool = False) -> str | None:
        """
        Get an environment variable value.

        Raises:
            ValueError: If required=True and variable not found
        """
        value = os.environ.get(key, default)

        if required and value is None:
            msg = f"Required environment variable not set: {key}"
            raise ValueError(msg)

        return value

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Get environment variable as boolean."""
        value = (self.get(key, "") or "").lower()
        if value in ("true", "1", "yes", "on"):
            return True
        if value in ("false", "0", "no", "off"):
            return False
        return default

    def get_int(self, key: str, default: int = 0) -> int:
        """Get environment variable as integer."""
        try:
            return int(self.get(key, str(default)))  # type: ignore[arg-type]
        except (ValueError, TypeError):
            return default


# Global instance
_global_env: EnvManager | None = None


def get_env() -> EnvManager:
    """Get the global environment manager instance."""
    global _global_env
    if _global_env is None:
        _global_env = EnvManager()
    return _global_env
