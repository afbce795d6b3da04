import logging
import sys
from pathlib import Path
from typing import Optional

FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(
    name: str = "sysdash",
    level: int = logging.WARNING,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """Set up and return the package logger.

    With ``log_file`` set, records go to that file (the dashboard owns the
    terminal); otherwise to stderr.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    handler: logging.Handler
    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError:
            # Unwritable location: drop records rather than corrupt the screen
            handler = logging.NullHandler()
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FORMAT))

    logger.addHandler(handler)
    logger.propagate = False
    return logger
