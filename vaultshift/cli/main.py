"""
vaultshift CLI - operator commands for storage configuration and migration.

Configuration:
    vaultshift config show
    vaultshift config set-local --root /srv/vault
    vaultshift config set-s3 --endpoint localhost:9000 --bucket vault ...

Migration:
    vaultshift test-connection
    vaultshift migrate --concurrency 4 --activate
    vaultshift activate

Environment variables (VAULTSHIFT_*) are read from the process environment
and from a .env file in the working directory.

This creates the 'vaultshift' command via entry point in pyproject.toml.
"""

from vaultshift.core.env import get_env


def main():
    """Main entry point for the vaultshift CLI."""
    # .env must be loaded before click resolves envvar defaults
    get_env()

    from vaultshift.cli.app import cli

    cli()


if __name__ == "__main__":
    main()
