"""
Logger lookup for vaultshift modules.

Modules log through ``get_logger(__name__)``. Every logger lives under the
"vaultshift" namespace, whose root carries a NullHandler so applications
that never configure logging see no "No handlers" warnings. The CLI installs
real handlers through vaultshift.monitoring.logging.configure_json_logging.
"""

import logging

ROOT_LOGGER_NAME = "vaultshift"

logging.getLogger(ROOT_LOGGER_NAME).addHandler(logging.NullHandler())


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Logger for a vaultshift module.

    Names outside the namespace (scripts run as "__main__", plugins) are
    nested under it so the package's handlers and level apply to them too.
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
