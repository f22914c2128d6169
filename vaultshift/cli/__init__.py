# ============================================
# FILE: vaultshift/cli/__init__.py
# ============================================
"""
CLI module for vaultshift - contains command-line interface components.
"""

from vaultshift.cli.main import main

__all__ = ["main"]
