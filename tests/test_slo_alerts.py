"""Tests for burn alert evaluation and message rendering."""

import dataclasses
import math
from datetime import timedelta

import pytest

from slokeeper.slos.alerts import (
    AlertAction,
    AlertEvaluator,
    BurnAlertDecision,
    event_id,
    match_threshold,
    render_burn_alert,
    render_recovery,
)
from slokeeper.slos.calculator import ErrorBudgetCalculator
from slokeeper.slos.models import AlertSeverity, BurnAlertConfig, BurnAlertState


@pytest.fixture
def evaluator(clock):
    return AlertEvaluator(clock=clock)


@pytest.fixture
def slo(make_slo, alerting_config):
    return make_slo(burn_alerts=alerting_config)


def with_state(slo, severity, age, resolved=False, now=None):
    return dataclasses.replace(
        slo,
        last_burn_alert_state=BurnAlertState(severity, now - age, resolved=resolved),
    )


class TestMatchThreshold:
    """Tests for threshold selection."""

    def test_highest_reached_wins(self, alerting_config):
        assert match_threshold(alerting_config.thresholds, 4.0).severity is AlertSeverity.WARNING
        assert match_threshold(alerting_config.thresholds, 5.0).severity is AlertSeverity.CRITICAL
        assert match_threshold(alerting_config.thresholds, math.inf).severity is AlertSeverity.CRITICAL

    def test_below_all(self, alerting_config):
        assert match_threshold(alerting_config.thresholds, 1.99) is None

    def test_boundary_is_inclusive(self, alerting_config):
        assert match_threshold(alerting_config.thresholds, 2.0).burn_rate == 2.0


class TestAlertEvaluator:
    """Tests for alert decisions and hysteresis."""

    def test_first_alert_fires(self, evaluator, slo, webhook_channel):
        decision = evaluator.evaluate(slo, 4.0, webhook_channel)

        assert decision.action is AlertAction.ALERT
        assert decision.severity is AlertSeverity.WARNING
        assert decision.threshold.burn_rate == 2.0

    def test_disabled(self, evaluator, make_slo, webhook_channel):
        decision = evaluator.evaluate(make_slo(), 50.0, webhook_channel)
        assert decision.action is AlertAction.NONE
        assert decision.reason == "disabled"

    def test_missing_channel(self, evaluator, slo):
        decision = evaluator.evaluate(slo, 50.0, None)
        assert decision.action is AlertAction.NONE
        assert decision.reason == "no_channel"

    def test_below_threshold(self, evaluator, slo, webhook_channel):
        decision = evaluator.evaluate(slo, 1.0, webhook_channel)
        assert decision.action is AlertAction.NONE
        assert not decision.should_notify

    def test_same_severity_suppressed_within_interval(self, evaluator, slo, webhook_channel, clock):
        recent = with_state(slo, AlertSeverity.WARNING, timedelta(minutes=30), now=clock.now)

        decision = evaluator.evaluate(recent, 3.0, webhook_channel)

        assert decision.action is AlertAction.NONE
        assert decision.reason == "suppressed"

    def test_same_severity_realerts_after_interval(self, evaluator, slo, webhook_channel, clock):
        stale = with_state(slo, AlertSeverity.WARNING, timedelta(minutes=90), now=clock.now)

        decision = evaluator.evaluate(stale, 3.0, webhook_channel)

        assert decision.action is AlertAction.ALERT
        assert decision.severity is AlertSeverity.WARNING

    def test_escalation_fires_immediately(self, evaluator, slo, webhook_channel, clock):
        recent = with_state(slo, AlertSeverity.WARNING, timedelta(minutes=5), now=clock.now)

        decision = evaluator.evaluate(recent, 6.0, webhook_channel)

        assert decision.action is AlertAction.ALERT
        assert decision.severity is AlertSeverity.CRITICAL
        assert decision.reason == "severity_changed"

    def test_suppressed_critical_does_not_fall_back_to_warning(
        self, evaluator, slo, webhook_channel, clock
    ):
        recent = with_state(slo, AlertSeverity.CRITICAL, timedelta(minutes=5), now=clock.now)

        decision = evaluator.evaluate(recent, 6.0, webhook_channel)

        assert decision.action is AlertAction.NONE

    def test_resolved_state_never_suppresses(self, evaluator, slo, webhook_channel, clock):
        resolved = with_state(
            slo, AlertSeverity.WARNING, timedelta(minutes=1), resolved=True, now=clock.now
        )

        decision = evaluator.evaluate(resolved, 3.0, webhook_channel)

        assert decision.action is AlertAction.ALERT

    def test_custom_realert_interval(self, slo, webhook_channel, clock):
        evaluator = AlertEvaluator(realert_interval=timedelta(minutes=10), clock=clock)
        state = with_state(slo, AlertSeverity.WARNING, timedelta(minutes=11), now=clock.now)

        assert evaluator.evaluate(state, 3.0, webhook_channel).action is AlertAction.ALERT


class TestRecovery:
    """Tests for opt-in recovery notifications."""

    def test_no_recovery_by_default(self, evaluator, slo, webhook_channel, clock):
        firing = with_state(slo, AlertSeverity.CRITICAL, timedelta(minutes=5), now=clock.now)

        decision = evaluator.evaluate(firing, 0.5, webhook_channel)

        assert decision.action is AlertAction.NONE
        assert decision.next_state(clock.now) is None

    def test_recovery_when_enabled(self, evaluator, slo, webhook_channel, clock):
        opted_in = dataclasses.replace(
            slo, burn_alerts=dataclasses.replace(slo.burn_alerts, notify_on_recovery=True)
        )
        firing = with_state(opted_in, AlertSeverity.CRITICAL, timedelta(minutes=5), now=clock.now)

        decision = evaluator.evaluate(firing, 0.5, webhook_channel)

        assert decision.action is AlertAction.RESOLVE
        assert decision.severity is AlertSeverity.CRITICAL
        state = decision.next_state(clock.now)
        assert state.resolved
        assert state.timestamp == clock.now

    def test_recovery_sent_once(self, evaluator, slo, webhook_channel, clock):
        opted_in = dataclasses.replace(
            slo, burn_alerts=dataclasses.replace(slo.burn_alerts, notify_on_recovery=True)
        )
        resolved = with_state(
            opted_in, AlertSeverity.CRITICAL, timedelta(minutes=5), resolved=True, now=clock.now
        )

        assert evaluator.evaluate(resolved, 0.5, webhook_channel).action is AlertAction.NONE

    def test_no_recovery_without_prior_alert(self, evaluator, slo, webhook_channel):
        opted_in = dataclasses.replace(
            slo,
            burn_alerts=BurnAlertConfig(
                enabled=True,
                thresholds=slo.burn_alerts.thresholds,
                channel="webhook-oncall",
                notify_on_recovery=True,
            ),
        )
        assert evaluator.evaluate(opted_in, 0.5, webhook_channel).action is AlertAction.NONE


class TestRendering:
    """Tests for notification text."""

    @pytest.fixture
    def status(self, slo, clock):
        return ErrorBudgetCalculator(slo).calculate(
            998, 1000, clock.now - timedelta(days=30), clock.now
        )

    def test_burn_alert_message(self, slo, status, clock):
        decision = BurnAlertDecision(AlertAction.ALERT, severity=AlertSeverity.WARNING)

        message = render_burn_alert(slo, decision, status, "https://app/slos/x", at=clock.now)

        assert message.title == "⚠️ SLO Burn Alert: checkout - availability"
        assert "Target: 99.90%" in message.body
        assert "Achieved: 99.80%" in message.body
        assert "Error Budget Remaining: 0.00%" in message.body
        assert "Burn Rate: 2.00x" in message.body
        assert "**Severity:** WARNING" in message.body
        assert message.state == "ALERT"
        assert message.link == "https://app/slos/x"
        assert message.start_time == message.end_time == clock.now

    def test_critical_title(self, slo, status, clock):
        decision = BurnAlertDecision(AlertAction.ALERT, severity=AlertSeverity.CRITICAL)
        message = render_burn_alert(slo, decision, status, "", at=clock.now)
        assert message.title.startswith("🔴")

    def test_recovery_message(self, slo, status, clock):
        decision = BurnAlertDecision(AlertAction.RESOLVE, severity=AlertSeverity.CRITICAL)

        message = render_recovery(slo, decision, status, "", at=clock.now)

        assert message.state == "OK"
        assert "Resolved" in message.title
        assert "Target: 99.90%" in message.body

    def test_event_id(self, clock):
        ms = int(clock.now.timestamp() * 1000)
        assert event_id("slo-1", AlertSeverity.CRITICAL, clock.now) == f"slo-burn-slo-1-critical-{ms}"
