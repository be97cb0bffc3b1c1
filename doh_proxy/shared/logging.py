"""Logging configuration for the DoH proxy."""

import logging
import sys

# Per-request chatter from the HTTP stack, kept quiet unless debugging.
NOISY_LOGGERS = ("uvicorn.access", "aiohttp.client", "aiohttp.internal")


def setup_logging(level: int | str = logging.INFO) -> None:
    """
    Configure logging for the proxy and the libraries it runs on.

    Installs a single stdout handler on the root logger, replacing any
    handler already present so repeated calls do not duplicate output.
    uvicorn is started with ``log_config=None`` and propagates here.

    Args:
        level: Logging level name or number (default: INFO)
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    format_string = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(format_string, datefmt="%Y-%m-%d %H:%M:%S"))
    root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (typically for ``__name__``)."""
    return logging.getLogger(name)
