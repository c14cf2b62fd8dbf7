"""txsync CLI package.

This package provides the command-line interface for registering Plaid items,
running sync cycles and reviewing potential duplicates.
"""

from .main import app, main

__all__ = ["app", "main"]
