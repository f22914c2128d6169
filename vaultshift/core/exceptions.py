# ============================================
# FILE: vaultshift/core/exceptions.py
# ============================================

"""
Package-level exceptions.

Storage-specific errors live in ``vaultshift.storage.core.errors``; this
module holds the errors raised by the migration engine and the optional
dependency guard shared by every backend.
"""


class VaultshiftError(Exception):
    """Base vaultshift error"""


class MigrationError(VaultshiftError):
    """Error raised by the migration engine"""


class AlreadyRunningError(MigrationError):
    """
    Raised when a migration is requested while another one is in flight.

    Callers should surface this as a conflict, not as a server error.
    """

    def __init__(self, run_id: str | None = None):
        self.run_id = run_id
        message = "Migration is already in progress"
        if run_id:
            message = f"{message} (run {run_id})"
        super().__init__(message)


class MigrationAbortedError(MigrationError):
    """Terminal cause recorded when a run observes the abort flag"""

    def __init__(self, message: str = "Migration aborted by user"):
        super().__init__(message)


class MissingDependencyError(VaultshiftError):
    """
    Raised when an optional dependency is not installed.

    This exception provides clear installation instructions to help users
    quickly resolve missing package issues.
    """

    INSTALL_COMMANDS = {
        "aioboto3": "pip install 'vaultshift[s3]'",
        "prometheus-client": "pip install prometheus-client",
    }

    def __init__(self, package: str, feature: str | None = None):
        self.package = package
        self.feature = feature

        install_cmd = self.INSTALL_COMMANDS.get(package, f"pip install {package}")

        if feature:
            message = (
                f"\n╔══════════════════════════════════════════════════════════════╗\n"
                f"║  Missing Dependency: {package:<40} ║\n"
                f"╠══════════════════════════════════════════════════════════════╣\n"
                f"║  Required for: {feature:<45} ║\n"
                f"║  Install with: {install_cmd:<45} ║\n"
                f"╚══════════════════════════════════════════════════════════════╝"
            )
        else:
            message = (
                f"\n╔══════════════════════════════════════════════════════════════╗\n"
                f"║  Missing Dependency: {package:<40} ║\n"
                f"╠══════════════════════════════════════════════════════════════╣\n"
                f"║  Install with: {install_cmd:<45} ║\n"
                f"╚══════════════════════════════════════════════════════════════╝"
            )

        super().__init__(message)
