"""Package-wide logger."""
from __future__ import annotations

import logging
import sys

logger = logging.getLogger("pxwriter")

_LEVELS = {0: logging.WARNING, 1: logging.INFO, 2: logging.DEBUG}


def configure(diagnostics_level: int = 1) -> None:
    """Attach a stdout handler and map diagnostics_level 0/1/2 to a log level."""
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(_LEVELS.get(diagnostics_level, logging.DEBUG))
