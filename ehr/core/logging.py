"""
core/logging.py
---------------
Structured logging using structlog.
DEBUG=true  → human-readable console output
DEBUG=false → JSON (for log aggregators like Datadog, CloudWatch)

merge_contextvars is first in the chain so that values bound with
structlog.contextvars (the router binds tenant_id / schema for the lifetime of
a tenant scope) appear on every event logged inside that scope.
"""

import contextvars
import logging
import sys
from typing import Mapping

import structlog

from ehr.core.config import settings


def configure_logging() -> None:
    log_level = logging.DEBUG if settings.DEBUG else logging.INFO

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    if settings.DEBUG:
        # Pool checkout/checkin tracing: one line per borrowed tenant connection
        logging.getLogger("sqlalchemy.pool").setLevel(logging.DEBUG)
    else:
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("asyncpg").setLevel(logging.WARNING)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.DEBUG
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__):
    return structlog.get_logger(name)


def bind_tenant(tenant_id: str, schema_name: str) -> Mapping[str, contextvars.Token]:
    """Attach tenant_id / schema to every event logged in the current context."""
    return structlog.contextvars.bind_contextvars(
        tenant_id=tenant_id, schema=schema_name
    )


def unbind_tenant(tokens: Mapping[str, contextvars.Token]) -> None:
    structlog.contextvars.reset_contextvars(**tokens)
