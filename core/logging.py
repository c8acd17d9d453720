"""Structured logging configuration."""
import logging
from typing import Optional
import structlog
from core.config import settings


def configure_logging(level: Optional[str] = None, json_output: Optional[bool] = None):
    """
    Configure structured logging with structlog.

    Args:
        level: Log level name (defaults to settings.log_level)
        json_output: Render JSON lines instead of console output
            (defaults to JSON unless settings.debug is set)
    """
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)
    if json_output is None:
        json_output = not settings.debug

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_output:
        processors += [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str):
    """Get a logger instance."""
    return structlog.get_logger(name)
