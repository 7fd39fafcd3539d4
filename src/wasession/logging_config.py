"""Route library and third-party logs through a single loguru sink on stderr."""

from __future__ import annotations

import logging
import sys

from loguru import logger

from .constants import LOG_FORMAT


class InterceptHandler(logging.Handler):
    """Forward stdlib `logging` records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.bind(component=record.name).opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def configure_logging(log_level: str = "INFO") -> None:
    """
    Install the stderr sink.

    stdout is left untouched because it carries the tool-call protocol.
    """

    logger.remove()
    logger.configure(extra={"component": "-"})
    logger.add(
        sys.stderr,
        level=log_level,
        format=LOG_FORMAT,
        colorize=False,
        backtrace=False,
        diagnose=False,
    )
    logging.basicConfig(handlers=[InterceptHandler()], level=log_level, force=True)
