"""Logging configuration for the effectflow CLI and host applications."""

from __future__ import annotations

import logging
import os

RUNTIME_LOGGER = "effectflow"

_CONSOLE_FORMAT = "%(levelname)-8s | %(name)s | %(message)s"
_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging(
    verbose: bool = False,
    log_file: str | None = None,
    child_loggers: list[str] | None = None,
) -> logging.Logger:
    """
    Configure dual-handler logging (console + file).

    Args:
        verbose: Enable DEBUG level on console (default INFO)
        log_file: Path to log file (None for no file logging)
        child_loggers: Additional loggers to configure with same handlers
            (e.g. the host application's own package)

    Returns:
        The configured ``effectflow`` logger
    """
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))

    file_handler = None
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        )

    names = [RUNTIME_LOGGER, *(child_loggers or [])]
    for name in names:
        logger = logging.getLogger(name)
        logger.setLevel(logging.DEBUG)
        # Repeated setup (tests, re-entrant CLI calls) must not stack handlers
        for handler in list(logger.handlers):
            if getattr(handler, "_effectflow", False):
                logger.removeHandler(handler)
                handler.close()
        for handler in (console_handler, file_handler):
            if handler is not None:
                handler._effectflow = True  # type: ignore[attr-defined]
                logger.addHandler(handler)

    # Suppress noisy 3rd party loggers
    for noisy in ["urllib3", "httpx", "httpcore", "asyncio"]:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logging.getLogger(RUNTIME_LOGGER)
