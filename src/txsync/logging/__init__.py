"""Centralized logging configuration for txsync.

Standard usage:
    ```python
    import logging
    from txsync.logging import setup_logging

    # Configure once at application startup, from TxSyncSettings.logging
    setup_logging()

    # Get loggers in each module
    logger = logging.getLogger(__name__)
    ```
"""

from .config import setup_logging

__all__ = ["setup_logging"]
