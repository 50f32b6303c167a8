"""
Logging configuration for the AcademiaLink backend.
All modules share one structlog logger; events carry key/value context
(paper_id, chunk_count, time_ms, ...).
"""

import logging
import sys

import structlog

from .config import LOG_JSON, LOG_LEVEL

# HTTP clients log every request at INFO; only their warnings are interesting here
NOISY_LOGGERS = ("httpx", "openai", "aiohttp.access", "pypdf")


def setup_logging(log_level: str = "INFO", json_logs: bool = False):
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_logs: JSON lines when True, colored console output otherwise
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # stdlib logging still carries uvicorn and library output
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]

    if json_logs:
        renderers = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        renderers = [
            structlog.dev.ConsoleRenderer(
                colors=sys.stdout.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        ]

    structlog.configure(
        processors=shared + renderers,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )

    return structlog.get_logger("academialink")


logger = setup_logging(log_level=LOG_LEVEL, json_logs=LOG_JSON)
