"""Logging setup driven by the ``logging`` section of the txsync settings.

Level, file logging and rotation come from ``TxSyncSettings.logging`` and can
be set with ``TXSYNC_LOGGING__LEVEL``, ``TXSYNC_LOGGING__LOG_TO_FILE`` and
friends.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler

from ..config import LoggingConfig, get_settings

LOG_FORMAT = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"
CLI_FORMAT = "%(message)s"

# Third-party loggers that drown out sync progress at INFO
QUIET_LOGGERS = {"urllib3": logging.WARNING, "plaid": logging.INFO}


def _console_handler(cli_mode: bool) -> logging.Handler:
    # stdout carries command output; log lines go to stderr
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(CLI_FORMAT if cli_mode else LOG_FORMAT))
    return handler


def _file_handler(config: LoggingConfig) -> logging.Handler:
    config.log_file_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        config.log_file_path,
        maxBytes=config.max_file_size_mb * 1024 * 1024,
        backupCount=config.backup_count,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def setup_logging(
    config: LoggingConfig | None = None,
    cli_mode: bool = False,
    verbose: bool = False,
    force: bool = False,
) -> None:
    """Configure the root logger.

    Args:
        config: Logging section of the settings; ``get_settings().logging`` if None
        cli_mode: Print bare messages instead of timestamped records
        verbose: Log at DEBUG regardless of the configured level
        force: Replace handlers installed by an earlier call
    """
    if config is None:
        config = get_settings().logging

    level = logging.DEBUG if verbose else getattr(logging, config.level)

    handlers = [_console_handler(cli_mode)]
    if config.log_to_file:
        handlers.append(_file_handler(config))

    logging.basicConfig(level=level, handlers=handlers, force=force)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
