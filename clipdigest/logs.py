from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_HANDLER_MARK = "_clipdigest_handler"


def configure_logging(logs_dir: Path, level: str = "INFO", *, console: Console | None = None) -> logging.Logger:
    """Console logging through rich plus combined.log and error.log under *logs_dir*.

    Safe to call more than once; handlers from an earlier call are replaced.
    """
    logs_dir = Path(logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger("clipdigest")
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            logger.removeHandler(handler)
            handler.close()

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    console_handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    console_handler.setLevel(numeric_level)

    formatter = logging.Formatter(_FILE_FORMAT)
    combined = logging.FileHandler(logs_dir / "combined.log", encoding="utf-8")
    combined.setLevel(numeric_level)
    combined.setFormatter(formatter)
    errors = logging.FileHandler(logs_dir / "error.log", encoding="utf-8")
    errors.setLevel(logging.ERROR)
    errors.setFormatter(formatter)

    for handler in (console_handler, combined, errors):
        setattr(handler, _HANDLER_MARK, True)
        logger.addHandler(handler)
    return logger
