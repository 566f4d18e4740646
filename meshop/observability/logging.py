"""Structured logging configuration using structlog.

Every reconcile cycle binds the owning CR into the structlog context vars,
so log lines emitted by discovery, resource reconciliation and the restart
orchestrator all carry ``cr_namespace``/``cr_name`` without passing them down.
"""

from __future__ import annotations

import logging
import sys

import structlog


def setup_logging(level: str = "info", json_output: bool = True) -> None:
    """Configure structlog; JSON to stderr unless *json_output* is False."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]


def bind_cr_context(namespace: str, name: str) -> None:
    """Attach the CR being reconciled to all subsequent log lines."""
    structlog.contextvars.bind_contextvars(cr_namespace=namespace, cr_name=name)


def clear_cr_context() -> None:
    structlog.contextvars.unbind_contextvars("cr_namespace", "cr_name")
