"""
Logging Configuration

structlog setup for immostats. Ingestion runs bind their source and run id
so every entry logged during a run can be traced back to its ingestion_runs row.
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

from config.settings import settings


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add application context to all log entries.
    """
    event_dict["environment"] = settings.environment
    event_dict["app"] = "immostats"
    event_dict["version"] = settings.app_version
    return event_dict


def bind_run_context(source: str, run_id: Optional[int] = None) -> None:
    """
    Tag every log entry emitted from this context with the ingestion run.

    Context variables follow asyncio tasks and asyncio.to_thread workers,
    so a run started by the scheduler stays tagged end to end.

    Args:
        source: Source feed of the run ("dvf", "demo")
        run_id: ingestion_runs row id, when one was recorded
    """
    structlog.contextvars.bind_contextvars(ingestion_source=source)
    if run_id is not None:
        structlog.contextvars.bind_contextvars(ingestion_run_id=run_id)


def clear_run_context() -> None:
    structlog.contextvars.unbind_contextvars("ingestion_source", "ingestion_run_id")


def setup_logging() -> structlog.BoundLogger:
    """
    Configure structured logging for the application.

    Returns:
        Configured structlog logger instance
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper()),
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        add_app_context,
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.processors.ExceptionRenderer())
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger()


def get_logger(name: str = None) -> structlog.BoundLogger:
    """
    Get a logger instance for a specific module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()
