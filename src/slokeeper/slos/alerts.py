"""
Burn rate alerting.

Decides whether an SLO's current burn rate warrants a notification and
renders the notification text. Repeated alerts at the same severity are
suppressed for ``realert_interval``; a severity change always fires.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Iterable

import structlog

from slokeeper.slos.models import (
    SLO,
    AlertSeverity,
    BurnAlertState,
    BurnAlertThreshold,
    NotificationChannel,
    StatusResult,
    utcnow,
)

logger = structlog.get_logger()

DEFAULT_REALERT_INTERVAL = timedelta(hours=1)


class AlertAction(str, Enum):
    """Outcome of a burn alert evaluation."""

    NONE = "none"
    ALERT = "alert"
    RESOLVE = "resolve"


@dataclass(frozen=True)
class BurnAlertDecision:
    """Alert decision for one SLO evaluation."""

    action: AlertAction
    severity: AlertSeverity | None = None
    threshold: BurnAlertThreshold | None = None
    reason: str = ""

    @property
    def should_notify(self) -> bool:
        return self.action is not AlertAction.NONE

    def next_state(self, at: datetime) -> BurnAlertState | None:
        """Alert memory to persist after this decision is dispatched."""
        if self.action is AlertAction.ALERT and self.severity is not None:
            return BurnAlertState(severity=self.severity, timestamp=at)
        if self.action is AlertAction.RESOLVE and self.severity is not None:
            return BurnAlertState(severity=self.severity, timestamp=at, resolved=True)
        return None


@dataclass(frozen=True)
class AlertMessage:
    """Rendered notification, independent of the webhook flavour."""

    title: str
    body: str
    state: str  # "ALERT" or "OK"
    event_id: str
    link: str
    start_time: datetime
    end_time: datetime
    severity: AlertSeverity | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "body": self.body,
            "state": self.state,
            "eventId": self.event_id,
            "link": self.link,
            "startTime": int(self.start_time.timestamp() * 1000),
            "endTime": int(self.end_time.timestamp() * 1000),
            "severity": self.severity.value if self.severity else None,
        }


def match_threshold(
    thresholds: Iterable[BurnAlertThreshold], burn_rate: float
) -> BurnAlertThreshold | None:
    """Highest threshold the burn rate has reached, if any."""
    for threshold in sorted(thresholds, key=lambda t: t.burn_rate, reverse=True):
        if burn_rate >= threshold.burn_rate:
            return threshold
    return None


def event_id(slo_id: str, severity: AlertSeverity, at: datetime) -> str:
    """Stable notification id: ``slo-burn-{slo_id}-{severity}-{epoch_ms}``."""
    return f"slo-burn-{slo_id}-{severity.value}-{int(at.timestamp() * 1000)}"


class AlertEvaluator:
    """Evaluates burn alert thresholds with re-alert suppression."""

    def __init__(
        self,
        realert_interval: timedelta = DEFAULT_REALERT_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.realert_interval = realert_interval
        self.clock = clock

    def match_threshold(
        self, thresholds: Iterable[BurnAlertThreshold], burn_rate: float
    ) -> BurnAlertThreshold | None:
        return match_threshold(thresholds, burn_rate)

    def evaluate(
        self,
        slo: SLO,
        burn_rate: float,
        channel: NotificationChannel | None,
    ) -> BurnAlertDecision:
        """
        Evaluate the burn alert ladder of an SLO.

        Args:
            slo: SLO with its burn alert config and last alert state
            burn_rate: Current burn rate from the status evaluation
            channel: Resolved notification destination, if any

        Returns:
            BurnAlertDecision; ``action`` is NONE when nothing should be sent
        """
        config = slo.burn_alerts
        if not config.enabled or not config.thresholds:
            return BurnAlertDecision(AlertAction.NONE, reason="disabled")

        if channel is None:
            logger.warning("burn_alert_channel_missing", slo_id=slo.id, channel=config.channel)
            return BurnAlertDecision(AlertAction.NONE, reason="no_channel")

        prior = slo.last_burn_alert_state
        threshold = self.match_threshold(config.thresholds, burn_rate)

        if threshold is None:
            if config.notify_on_recovery and prior is not None and not prior.resolved:
                logger.info("burn_alert_recovered", slo_id=slo.id, burn_rate=burn_rate)
                return BurnAlertDecision(
                    AlertAction.RESOLVE, severity=prior.severity, reason="recovered"
                )
            return BurnAlertDecision(AlertAction.NONE, reason="below_threshold")

        if self._suppressed(prior, threshold.severity):
            return BurnAlertDecision(
                AlertAction.NONE,
                severity=threshold.severity,
                threshold=threshold,
                reason="suppressed",
            )

        logger.info(
            "burn_rate_triggered",
            slo_id=slo.id,
            burn_rate=burn_rate,
            threshold=threshold.burn_rate,
            severity=threshold.severity.value,
        )
        if prior is None or prior.resolved:
            reason = "threshold_exceeded"
        elif prior.severity != threshold.severity:
            reason = "severity_changed"
        else:
            reason = "realert"

        return BurnAlertDecision(
            AlertAction.ALERT,
            severity=threshold.severity,
            threshold=threshold,
            reason=reason,
        )

    def _suppressed(self, prior: BurnAlertState | None, severity: AlertSeverity) -> bool:
        if prior is None or prior.resolved:
            return False
        if prior.severity != severity:
            return False
        return prior.timestamp >= self.clock() - self.realert_interval


def _format_burn(value: float) -> str:
    return "∞" if math.isinf(value) else f"{value:.2f}"


def render_burn_alert(
    slo: SLO,
    decision: BurnAlertDecision,
    status: StatusResult,
    link: str,
    at: datetime | None = None,
) -> AlertMessage:
    """Compose the burn alert notification."""
    at = at or utcnow()
    severity = decision.severity or AlertSeverity.WARNING
    emoji = "🔴" if severity is AlertSeverity.CRITICAL else "⚠️"
    burn = _format_burn(status.burn_rate)

    title = f"{emoji} SLO Burn Alert: {slo.service_name} - {slo.slo_name}"
    body = (
        f'SLO "{slo.slo_name}" for service "{slo.service_name}" is burning error budget '
        f"at {burn}x the expected rate.\n\n"
        f"**Current Status:**\n"
        f"- Target: {status.target:.2f}%\n"
        f"- Achieved: {status.achieved:.2f}%\n"
        f"- Error Budget Remaining: {status.error_budget_remaining:.2f}%\n"
        f"- Burn Rate: {burn}x\n\n"
        f"**Severity:** {severity.value.upper()}\n\n"
        f"A burn rate of {burn} means the error budget is being consumed {burn} times "
        f"faster than expected. At this rate, the error budget will be depleted before "
        f"the SLO window ends."
    )

    return AlertMessage(
        title=title,
        body=body,
        state="ALERT",
        event_id=event_id(slo.id, severity, at),
        link=link,
        start_time=at,
        end_time=at,
        severity=severity,
    )


def render_recovery(
    slo: SLO,
    decision: BurnAlertDecision,
    status: StatusResult,
    link: str,
    at: datetime | None = None,
) -> AlertMessage:
    """Compose the notification sent when the burn rate drops below every threshold."""
    at = at or utcnow()
    severity = decision.severity or AlertSeverity.WARNING

    title = f"✅ SLO Burn Resolved: {slo.service_name} - {slo.slo_name}"
    body = (
        f'SLO "{slo.slo_name}" for service "{slo.service_name}" is no longer burning '
        f"error budget above its alert thresholds.\n\n"
        f"**Current Status:**\n"
        f"- Target: {status.target:.2f}%\n"
        f"- Achieved: {status.achieved:.2f}%\n"
        f"- Error Budget Remaining: {status.error_budget_remaining:.2f}%\n"
        f"- Burn Rate: {_format_burn(status.burn_rate)}x\n\n"
        f"**Previous Severity:** {severity.value.upper()}"
    )

    return AlertMessage(
        title=title,
        body=body,
        state="OK",
        event_id=event_id(slo.id, severity, at),
        link=link,
        start_time=at,
        end_time=at,
        severity=severity,
    )
