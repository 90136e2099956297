"""
Debug logging for shellfix.

Every module logs through ``logging.getLogger(__name__)`` under the
``shellfix`` logger. Nothing is written unless debug is turned on, in
which case records go to <state dir>/assistant-debug.log. The pane is
never used for log output.
"""

import logging
from pathlib import Path
from typing import Optional

from .config import get_state_dir

LOGGER_NAME = "shellfix"
DEBUG_LOG_FILENAME = "assistant-debug.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_file_handler: Optional[logging.Handler] = None


def setup_logging(debug: bool = False, state_dir: Optional[Path] = None) -> Optional[Path]:
    """
    Configure the shellfix logger.

    Safe to call repeatedly: the file handler is added on the first call
    with debug on and removed again when debug is turned off.

    Returns:
        Path of the debug log when enabled, else None
    """
    global _file_handler

    logger = logging.getLogger(LOGGER_NAME)
    if not any(isinstance(h, logging.NullHandler) for h in logger.handlers):
        logger.addHandler(logging.NullHandler())

    if not debug:
        if _file_handler is not None:
            logger.removeHandler(_file_handler)
            _file_handler.close()
            _file_handler = None
        logger.setLevel(logging.WARNING)
        return None

    log_path = (state_dir or get_state_dir()) / DEBUG_LOG_FILENAME
    if _file_handler is None:
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(log_path, encoding="utf-8")
        except OSError:
            # Unwritable state dir: stay silent rather than fail the session
            logger.setLevel(logging.WARNING)
            return None
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        _file_handler = handler

    logger.setLevel(logging.DEBUG)
    return log_path
