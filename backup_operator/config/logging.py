"""
Structured logging for the operator.

Every record carries the operator's name, version and watched namespace.
The reconcilers bind the kind, namespace and name of the resource they work
on through structlog contextvars, so a pass can be followed across modules.
"""
import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from backup_operator.config.settings import settings


def add_operator_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["app"] = settings.app_name
    event_dict["version"] = settings.app_version
    event_dict.setdefault("watch_namespace", settings.namespace)
    return event_dict


def configure_logging() -> None:
    """Configure structlog and route stdlib logging through the same output."""
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_operator_context,
    ]

    if settings.log_format == "json":
        renderer: list[Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [structlog.dev.ConsoleRenderer(colors=not settings.is_production)]

    structlog.configure(
        processors=shared_processors + renderer,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    # Probe requests and client chatter drown out reconciliation logs
    for noisy in ("uvicorn.access", "kubernetes_asyncio", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
