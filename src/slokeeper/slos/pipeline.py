"""
Per-SLO evaluation pipeline.

Wires status evaluation, burn alert decision, notification dispatch and
the alert state write into a single ``evaluate_slo`` entry-point. The
state write is always the last step, so a cancelled evaluation leaves no
partial state behind.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from slokeeper.config import Settings, get_settings
from slokeeper.core.errors import (
    NotificationDeliveryError,
    SLOKeeperError,
    format_error_message,
    guard_storage,
)
from slokeeper.logging import bind_context
from slokeeper.slos.alerts import (
    AlertAction,
    AlertEvaluator,
    BurnAlertDecision,
    render_burn_alert,
    render_recovery,
)
from slokeeper.slos.models import SLO, NotificationChannel, StatusResult
from slokeeper.slos.notifiers import WebhookNotifier
from slokeeper.slos.sources import ChannelDirectory, SLOStore
from slokeeper.slos.status import StatusEvaluator


@dataclass
class EvaluationOutcome:
    """Result of evaluating one SLO."""

    slo_id: str
    status: StatusResult | None = None
    decision: BurnAlertDecision | None = None
    notified: bool = False
    state_updated: bool = False
    error: SLOKeeperError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "slo_id": self.slo_id,
            "status": self.status.to_dict() if self.status else None,
            "action": self.decision.action.value if self.decision else None,
            "reason": self.decision.reason if self.decision else None,
            "notified": self.notified,
            "state_updated": self.state_updated,
            "error": format_error_message(self.error) if self.error else None,
        }


class SLOEvaluationPipeline:
    """
    Orchestrate end-to-end evaluation for a single SLO.

    1. Compute status from the aggregate store
    2. Resolve the alert channel and decide on a burn alert
    3. Dispatch the notification
    4. Compare-and-set the alert state
    """

    def __init__(
        self,
        status_evaluator: StatusEvaluator,
        alert_evaluator: AlertEvaluator,
        notifier: WebhookNotifier,
        slo_store: SLOStore,
        channels: ChannelDirectory,
        settings: Settings | None = None,
    ) -> None:
        self.status_evaluator = status_evaluator
        self.alert_evaluator = alert_evaluator
        self.notifier = notifier
        self.slo_store = slo_store
        self.channels = channels
        self.settings = settings or get_settings()

    async def evaluate_slo(self, slo: SLO) -> EvaluationOutcome:
        """
        Run the pipeline for one SLO.

        slokeeper errors are captured on the outcome; anything else
        propagates to the caller.
        """
        log = bind_context(slo_id=slo.id, team_id=slo.team_id)
        outcome = EvaluationOutcome(slo_id=slo.id)

        try:
            outcome.status = await self.status_evaluator.evaluate(slo)
        except SLOKeeperError as exc:
            log.warning(
                "slo_status_failed",
                error=format_error_message(exc),
                error_type=type(exc).__name__,
            )
            outcome.error = exc
            return outcome

        try:
            channel = await self._resolve_channel(slo)
        except SLOKeeperError as exc:
            log.warning(
                "burn_alert_channel_lookup_failed",
                error=format_error_message(exc),
                error_type=type(exc).__name__,
            )
            outcome.error = exc
            return outcome

        decision = self.alert_evaluator.evaluate(slo, outcome.status.burn_rate, channel)
        outcome.decision = decision
        if not decision.should_notify or channel is None:
            return outcome

        at = self.alert_evaluator.clock()
        link = f"{self.settings.frontend_url}/slos/{slo.id}"
        if decision.action is AlertAction.RESOLVE:
            message = render_recovery(slo, decision, outcome.status, link, at=at)
        else:
            message = render_burn_alert(slo, decision, outcome.status, link, at=at)

        try:
            await self.notifier.send(channel, message)
            outcome.notified = True
            log.info(
                "burn_alert_sent",
                action=decision.action.value,
                severity=decision.severity.value if decision.severity else None,
                burn_rate=outcome.status.burn_rate,
            )
        except NotificationDeliveryError as exc:
            outcome.error = exc
            if not self.settings.advance_alert_state_on_delivery_failure:
                log.warning("burn_alert_state_retained", error=format_error_message(exc))
                return outcome

        new_state = decision.next_state(at)
        if new_state is None:
            return outcome

        try:
            async with guard_storage("compare_and_set_alert_state", slo_id=slo.id):
                outcome.state_updated = await asyncio.wait_for(
                    self.slo_store.compare_and_set_alert_state(
                        slo.id, slo.alert_state_version, new_state
                    ),
                    self.settings.query_timeout_seconds,
                )
        except SLOKeeperError as exc:
            log.error(
                "burn_alert_state_write_failed",
                error=format_error_message(exc),
                error_type=type(exc).__name__,
            )
            outcome.error = outcome.error or exc
            return outcome

        if not outcome.state_updated:
            log.warning(
                "burn_alert_state_conflict",
                expected_version=slo.alert_state_version,
            )

        return outcome

    async def _resolve_channel(self, slo: SLO) -> NotificationChannel | None:
        channel_id = slo.burn_alerts.channel
        if not slo.burn_alerts.enabled or not channel_id:
            return None
        async with guard_storage("get_channel", slo_id=slo.id, channel_id=channel_id):
            return await asyncio.wait_for(
                self.channels.get_channel(slo.team_id, channel_id),
                self.settings.query_timeout_seconds,
            )
