"""Structured logging configuration using structlog.

JSON output in production (one event per attempt, retry, fallback, breaker
transition and budget decision) and colored console output in development.
The engine binds per-call context (agent type, tenant, call id) through
structlog contextvars so every nested log line carries it.
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, WrappedLogger

APP_LOG_NAME = "llm-reliability-layer"

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "redis")


def add_app_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Stamp every event with the application name."""
    event_dict["app"] = APP_LOG_NAME
    return event_dict


def _build_processors(is_production: bool) -> list[structlog.types.Processor]:
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        add_app_context,
    ]
    if is_production:
        processors.append(structlog.processors.format_exc_info)
    else:
        processors.append(structlog.processors.ExceptionPrettyPrinter())
    return processors


def configure_logging(
    log_level: str = "INFO",
    environment: str = "development",
    stream: Optional[Any] = None,
) -> None:
    """Configure structlog on top of the stdlib root logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        environment: "production" selects the JSON renderer, anything else
            the console renderer
        stream: Output stream for the root handler (defaults to stdout)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    is_production = environment.lower() == "production"
    shared_processors = _build_processors(is_production)

    renderer: structlog.types.Processor
    if is_production:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=shared_processors,
        )
    )
    handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "Logging configured",
        log_level=log_level,
        environment=environment,
        renderer="json" if is_production else "console",
    )


def bind_call_context(**values: Any) -> None:
    """Bind key/values to every log event emitted by the current task."""
    structlog.contextvars.bind_contextvars(**values)


def clear_call_context(*keys: str) -> None:
    """Drop keys previously bound with bind_call_context."""
    structlog.contextvars.unbind_contextvars(*keys)
