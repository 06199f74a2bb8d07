"""Logging configuration for the attendance station.

Every entry is a structlog event rendered through the standard library root
logger. While a station is open its class and session ids are bound as
context variables, so log lines written by the detection loops, the
submitter and the API handlers all carry them.
"""
import logging
import sys
from typing import List

import structlog
from structlog.stdlib import ProcessorFormatter

from attendance_station.core.config import settings

SESSION_CONTEXT_KEYS = ("class_id", "session_id")

# Libraries that log every request or frame at INFO
_NOISY_LOGGERS = ("urllib3", "PIL", "multipart")


def _renderer(shared_processors: List[structlog.types.Processor]) -> structlog.types.Processor:
    if settings.ENVIRONMENT == "development":
        return structlog.dev.ConsoleRenderer(colors=True)
    # Exceptions must be rendered before the JSON step
    shared_processors.insert(-1, structlog.processors.format_exc_info)
    return structlog.processors.JSONRenderer()


def setup_logging() -> None:
    """Configure structured logging for the application.

    Coloured console output in development, JSON lines elsewhere.
    """
    shared_processors: List[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]
    final_processor = _renderer(shared_processors)

    structlog.configure(
        processors=shared_processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ProcessorFormatter(processor=final_processor))

    root_logger = logging.getLogger()
    if root_logger.hasHandlers():
        root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    logging.getLogger("uvicorn.error").propagate = False
    logging.getLogger("uvicorn.access").disabled = not settings.DEBUG
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(
        f"Logging setup complete. Environment: {settings.ENVIRONMENT}, Level: {settings.LOG_LEVEL}"
    )


def bind_session_context(class_id: str, session_id: str) -> None:
    """Tag subsequent log entries of the current context with the open session.

    Tasks created afterwards (detection loops, deferred refreshes) inherit
    the binding.
    """
    structlog.contextvars.bind_contextvars(class_id=class_id, session_id=session_id)


def clear_session_context() -> None:
    structlog.contextvars.unbind_contextvars(*SESSION_CONTEXT_KEYS)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance compatible with standard logging.

    Args:
        name: Name for the logger, typically __name__

    Returns:
        structlog.stdlib.BoundLogger: Configured logger instance
    """
    return structlog.get_logger(name)
