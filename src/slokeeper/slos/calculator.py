"""
Error budget calculator.

Turns numerator/denominator event counts into achieved percentage,
remaining error budget, burn rate and a health classification.
"""

from __future__ import annotations

import math
from datetime import datetime

from slokeeper.slos.models import SLO, SLOStatus, StatusResult, utcnow

AT_RISK_BUDGET_PERCENT = 10.0


def achieved_percent(numerator: int, denominator: int) -> float:
    """Percentage of good events. 100 when there are no events."""
    if denominator <= 0:
        return 100.0
    return numerator / denominator * 100


def error_budget_remaining_percent(target: float, achieved: float, window_ms: float) -> float:
    """
    Remaining error budget as a percentage of the total budget.

    The budget is expressed in window-milliseconds; a 100% target has no
    budget at all and always reports 0.
    """
    budget_total = (1 - target / 100) * window_ms
    budget_used = (1 - achieved / 100) * window_ms
    budget_remaining = max(0.0, budget_total - budget_used)
    if budget_total <= 0:
        return 0.0
    return budget_remaining / budget_total * 100


def burn_rate(target: float, numerator: int, denominator: int) -> float:
    """
    Ratio of actual to expected error rate.

    Burn rate of 1.0 consumes the budget exactly over the window; 2.0
    exhausts it in half the window. A 100% target tolerates no errors, so
    any error is an infinite burn.
    """
    expected_error_rate = 1 - target / 100
    actual_error_rate = 1 - numerator / denominator if denominator > 0 else 0.0

    if expected_error_rate > 0:
        return actual_error_rate / expected_error_rate
    return math.inf if actual_error_rate > 0 else 0.0


def classify_status(achieved: float, target: float, budget_remaining_percent: float) -> SLOStatus:
    """Health classification; 0% budget remaining is BREACHED, not AT_RISK."""
    if achieved >= target:
        return SLOStatus.HEALTHY
    if 0 < budget_remaining_percent <= AT_RISK_BUDGET_PERCENT:
        return SLOStatus.AT_RISK
    return SLOStatus.BREACHED


class ErrorBudgetCalculator:
    """Calculator for SLO status over a trailing window."""

    def __init__(self, slo: SLO) -> None:
        self.slo = slo

    def calculate(
        self,
        numerator: int,
        denominator: int,
        window_start: datetime,
        window_end: datetime,
        computed_at: datetime | None = None,
    ) -> StatusResult:
        """
        Calculate status from windowed event counts.

        Args:
            numerator: Good events in the window
            denominator: Total events in the window
            window_start: Start of evaluation window
            window_end: End of evaluation window
            computed_at: Evaluation timestamp (defaults to now)

        Returns:
            StatusResult for the window
        """
        computed_at = computed_at or utcnow()
        target = self.slo.target_value

        # No traffic is not a violation
        if numerator == 0 and denominator == 0:
            return StatusResult(
                slo_id=self.slo.id,
                achieved=100.0,
                target=target,
                error_budget_remaining=100.0,
                burn_rate=0.0,
                numerator=0,
                denominator=0,
                window_start=window_start,
                window_end=window_end,
                computed_at=computed_at,
                status=SLOStatus.HEALTHY,
            )

        achieved = achieved_percent(numerator, denominator)
        remaining = error_budget_remaining_percent(
            target, achieved, self.slo.time_window.to_milliseconds()
        )

        return StatusResult(
            slo_id=self.slo.id,
            achieved=achieved,
            target=target,
            error_budget_remaining=remaining,
            burn_rate=burn_rate(target, numerator, denominator),
            numerator=numerator,
            denominator=denominator,
            window_start=window_start,
            window_end=window_end,
            computed_at=computed_at,
            status=classify_status(achieved, target, remaining),
        )

    def format_status(self, result: StatusResult) -> str:
        """
        Format SLO status for display.

        Returns:
            Formatted string with status details
        """
        status_emoji = {
            SLOStatus.HEALTHY: "✅",
            SLOStatus.AT_RISK: "⚠️ ",
            SLOStatus.BREACHED: "❌",
        }
        emoji = status_emoji.get(result.status, "❓")
        burn = "∞" if math.isinf(result.burn_rate) else f"{result.burn_rate:.2f}x"

        lines = [
            f"SLO Status: {self.slo.service_name} / {self.slo.slo_name}",
            "━" * 60,
            f"Target: {result.target:.2f}%",
            f"Window: {self.slo.time_window.duration} "
            f"({result.window_start.strftime('%Y-%m-%d %H:%M')} → "
            f"{result.window_end.strftime('%Y-%m-%d %H:%M')} UTC)",
            "",
            f"  Achieved: {result.achieved:.3f}% ({result.numerator}/{result.denominator})",
            f"  Error Budget Remaining: {result.error_budget_remaining:.1f}%",
            f"  Burn Rate: {burn}",
            f"  Status: {emoji} {result.status.value.upper()}",
        ]

        if not result.has_data:
            lines.append("")
            lines.append("No events in window; reporting healthy by default.")

        return "\n".join(lines)
