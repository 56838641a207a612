"""folio.log - Logging setup for the command line"""

import logging
import sys
from typing import Optional

from . import config

# Map -v count to log levels (0 = configured default)
_VERBOSITY_MAP = {
    1: logging.INFO,
    2: logging.DEBUG,
}


def setup_logging(verbosity: int = 0, level: Optional[str] = None) -> logging.Logger:
    """
    Send folio's log records to stderr.

    Level comes from `level`, then -v count, then FOLIO_LOG_LEVEL
    (default WARNING). Library modules only create loggers; handlers are
    configured here, by the CLI.
    """
    if level is None and verbosity:
        resolved = _VERBOSITY_MAP[min(verbosity, 2)]
    else:
        name = (level or config.log_level()).upper()
        resolved = getattr(logging, name, logging.WARNING)
        if not isinstance(resolved, int):
            resolved = logging.WARNING

    logger = logging.getLogger("folio")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(name)s - %(message)s'))
    logger.addHandler(handler)
    logger.setLevel(resolved)

    logging.captureWarnings(True)
    return logger
