"""Root test configuration."""

import logging
from datetime import datetime, timedelta, timezone

import pytest
import structlog

from slokeeper.slos.models import (
    SLO,
    AlertSeverity,
    BuilderSLI,
    BurnAlertConfig,
    BurnAlertThreshold,
    NotificationChannel,
)

NOW = datetime(2025, 1, 31, 12, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class FixedClock:
    """Settable clock for deterministic evaluation times."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def make_slo():
    """Factory for builder-mode SLOs with sensible defaults."""

    def _make(**overrides) -> SLO:
        values = {
            "id": "slo-checkout-availability",
            "team_id": "team-payments",
            "service_name": "checkout",
            "slo_name": "availability",
            "target_value": 99.9,
            "time_window": "30d",
            "sli": BuilderSLI(
                filter="ServiceName = 'checkout'",
                good_condition="SeverityText != 'error'",
            ),
        }
        values.update(overrides)
        return SLO(**values)

    return _make


@pytest.fixture
def alerting_config():
    return BurnAlertConfig(
        enabled=True,
        thresholds=(
            BurnAlertThreshold(burn_rate=2.0, severity=AlertSeverity.WARNING),
            BurnAlertThreshold(burn_rate=5.0, severity=AlertSeverity.CRITICAL),
        ),
        channel="webhook-oncall",
    )


@pytest.fixture
def webhook_channel():
    return NotificationChannel(
        id="webhook-oncall",
        team_id="team-payments",
        url="https://hooks.example.com/slo",
        name="On-call",
    )
