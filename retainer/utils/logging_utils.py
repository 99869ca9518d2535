"""Simple logging utilities for retainer.

Standard Logger Initialization Pattern
--------------------------------------
Library modules use the standard Python pattern:

    import logging
    logger = logging.getLogger(__name__)

Handlers are only attached by the CLI through `setup_cli_logging()`, so
applications embedding the scheduler keep control of their own logging.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler

from ..config.constants import LOG_BACKUP_COUNT, LOG_FILENAME, MAX_LOG_BYTES
from ..config.settings import get_config_dir, get_env_var

_FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_CONSOLE_FORMAT = "%(levelname)s: %(message)s"


def setup_cli_logging(verbose: bool = False, quiet: bool = False) -> logging.Logger:
    """Configure the `retainer` logger for command line use.

    Writes a rotating log file under the config directory and mirrors
    records to stderr: WARNING by default, DEBUG with verbose, ERROR with quiet.

    Returns:
        The configured package logger.
    """
    package_logger = logging.getLogger("retainer")
    package_logger.setLevel(logging.DEBUG)

    # Reconfiguring replaces the handlers from a previous call
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    try:
        log_file = get_config_dir() / LOG_FILENAME
        file_handler = RotatingFileHandler(
            log_file, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUP_COUNT
        )
        file_handler.setLevel(getattr(logging, (get_env_var("RETAINER_LOG_LEVEL") or "INFO").upper()))
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        package_logger.addHandler(file_handler)
    except OSError as e:
        # We can't log this failure through the file handler that failed
        print(f"Warning: log file setup failed: {e}", file=sys.stderr)

    console_handler = logging.StreamHandler(sys.stderr)
    if verbose:
        console_handler.setLevel(logging.DEBUG)
    elif quiet:
        console_handler.setLevel(logging.ERROR)
    else:
        console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    package_logger.addHandler(console_handler)

    return package_logger
