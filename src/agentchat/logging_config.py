"""Logging for the chat server.

Everything is logged through loguru.  ``setup_logging`` installs a single
stderr sink and routes the stdlib loggers of the web stack and the model and
tool SDKs into it.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger

_TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

# These log one INFO line per provider or tool request; a streamed turn with
# tools makes several.
_CHATTY = ("httpx", "httpcore", "openai", "e2b")

_ROUTED = ("uvicorn", "uvicorn.access", "uvicorn.error", "fastapi", "pydantic_ai", *_CHATTY)


class InterceptHandler(logging.Handler):
    """Forward stdlib records to loguru, keeping the caller's location."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back  # type: ignore[assignment]
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(*, level: str = "INFO", json: bool = False) -> None:
    """Make loguru the only logging backend.

    Args:
        level: Minimum level for the sink.
        json: Emit one JSON object per line instead of coloured text.

    Tracebacks never include local variable values, which would put chat
    content and tokens into the log.  Request logs from ``_CHATTY`` libraries
    are kept only at DEBUG.
    """
    logger.remove()
    if json:
        logger.add(sys.stderr, level=level, serialize=True, backtrace=False, diagnose=False)
    else:
        logger.add(sys.stderr, level=level, format=_TEXT_FORMAT, colorize=True, diagnose=False)

    intercept = InterceptHandler()
    for name in _ROUTED:
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.handlers = [intercept]
        stdlib_logger.propagate = False
    quiet = logging.DEBUG if level.upper() == "DEBUG" else logging.WARNING
    for name in _CHATTY:
        logging.getLogger(name).setLevel(quiet)

    logging.root.handlers = [intercept]
    logging.root.setLevel(logging.DEBUG)
