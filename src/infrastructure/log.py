"""
Centralised logging configuration - powered by **loguru**.

Usage (any module)::

    from loguru import logger
    logger.info("Hello")

Usage (entry-points - scripts, CLI, hosting runtime)::

    from infrastructure.log import setup_logging
    setup_logging()              # defaults: INFO, stderr
    setup_logging("DEBUG")       # more verbose

Every line carries the conversation it belongs to.  ``ChatService``
binds it per turn with ``logger.contextualize(chat_id=...)``; lines
logged outside a turn show ``-``.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from loguru import logger


#  Format strings

_FMT_FULL = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[chat_id]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

_FMT_CLI = (
    "<level>{level.icon}</level> "
    "<level>{message}</level>"
)


#  Intercept handler

class _InterceptHandler(logging.Handler):
    """Route stdlib ``logging`` records into **loguru**.

    httpx, openai and LangChain log through ``logging.getLogger``;
    this handler sends them to the same sinks.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller frame that originated the log call
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


#  Public API

def setup_logging(
    level: str = "INFO",
    *,
    for_cli: bool = False,
    intercept_stdlib: bool = True,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure loguru for the current process.

    Call this **once** at your entry-point.

    Args:
        level: Minimum log level (``DEBUG``, ``INFO``, ``WARNING``, …).
        for_cli: Minimal format for the interactive chat script.
        intercept_stdlib: Route stdlib ``logging`` through loguru.
        log_file: Optional path to a rotating log file.
    """
    logger.remove()
    logger.configure(extra={"chat_id": "-"})

    fmt = _FMT_CLI if for_cli else _FMT_FULL

    logger.add(
        sys.stderr,
        format=fmt,
        level=level.upper(),
        colorize=True,
        backtrace=True,
        diagnose=False,
    )

    if log_file:
        logger.add(
            log_file,
            format=_FMT_FULL,
            level=level.upper(),
            rotation="10 MB",
            retention="7 days",
            compression="gz",
            enqueue=True,
        )

    if intercept_stdlib:
        logging.basicConfig(
            handlers=[_InterceptHandler()], level=0, force=True)
        # httpx logs every request at INFO
        logging.getLogger("httpx").setLevel(logging.WARNING)

    logger.debug("Loguru configured - level={}, cli={}", level, for_cli)
