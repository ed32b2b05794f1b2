"""Tests for structured logging setup."""

import structlog
from structlog.testing import capture_logs

from slokeeper.logging import bind_context, configure_logging


def test_static_fields_bound():
    configure_logging("DEBUG", json=False, component="scheduler")
    try:
        assert structlog.contextvars.get_contextvars() == {"component": "scheduler"}
    finally:
        structlog.contextvars.clear_contextvars()
        structlog.reset_defaults()


def test_bind_context_fields():
    with capture_logs() as logs:
        bind_context(slo_id="slo-1", team_id="team-a").info("status_evaluated")

    assert logs == [
        {"slo_id": "slo-1", "team_id": "team-a", "event": "status_evaluated", "log_level": "info"}
    ]
