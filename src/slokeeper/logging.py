"""
Structured logging for the evaluation engine.

Events are snake_case names with keyword fields. Per-SLO work logs through
``bind_context(slo_id=..., team_id=...)`` so every line of one evaluation can
be correlated.
"""

import logging
from typing import Any

import structlog


def _processors(json: bool) -> list[Any]:
    renderer: Any = (
        structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
    )
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]


def configure_logging(
    level: int | str = logging.INFO, *, json: bool = True, **static: Any
) -> None:
    """
    Route structlog through the standard library at ``level``.

    ``json=False`` switches to the console renderer for local runs. Keyword
    fields in ``static`` (e.g. ``component="scheduler"``) are attached to
    every event emitted afterwards.
    """
    structlog.configure(
        processors=_processors(json),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(level=level, format="%(message)s")

    structlog.contextvars.clear_contextvars()
    if static:
        structlog.contextvars.bind_contextvars(**static)


def bind_context(**kwargs: Any) -> structlog.stdlib.BoundLogger:
    """Return a logger carrying ``kwargs`` on every event."""
    return structlog.get_logger().bind(**kwargs)
