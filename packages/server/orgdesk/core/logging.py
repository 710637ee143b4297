"""
structlog configuration.

Request handlers bind ``request_id``, ``organization_id`` and ``user_id``
through ``structlog.contextvars``; every log line emitted while handling the
request carries them.
"""

from __future__ import annotations

import logging

import structlog


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure structlog with the specified level and format."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if fmt == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
    )


def bind_tenant(organization_id, user_id) -> None:
    """Attach the resolved tenant to every subsequent log line of this request."""
    structlog.contextvars.bind_contextvars(
        organization_id=str(organization_id),
        user_id=str(user_id),
    )
