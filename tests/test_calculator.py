"""Tests for error budget and burn rate math."""

import math
from datetime import timedelta

import pytest

from slokeeper.slos.calculator import (
    ErrorBudgetCalculator,
    achieved_percent,
    burn_rate,
    classify_status,
    error_budget_remaining_percent,
)
from slokeeper.slos.models import SLOStatus

DAY_MS = 86_400_000


class TestAchieved:
    def test_ratio(self):
        assert achieved_percent(998, 1000) == pytest.approx(99.8)

    def test_no_events_is_fully_achieved(self):
        assert achieved_percent(0, 0) == 100.0


class TestErrorBudgetRemaining:
    def test_full_budget_without_errors(self):
        assert error_budget_remaining_percent(99.0, 100.0, 30 * DAY_MS) == pytest.approx(100.0)

    def test_half_budget(self):
        assert error_budget_remaining_percent(99.0, 99.5, 30 * DAY_MS) == pytest.approx(50.0)

    def test_exhausted_at_target(self):
        assert error_budget_remaining_percent(99.0, 99.0, 30 * DAY_MS) == 0.0

    def test_clamped_at_zero(self):
        assert error_budget_remaining_percent(99.9, 90.0, 30 * DAY_MS) == 0.0

    def test_target_100_has_no_budget(self):
        assert error_budget_remaining_percent(100.0, 100.0, 30 * DAY_MS) == 0.0

    @pytest.mark.parametrize("achieved", [0.0, 50.0, 98.0, 99.0, 99.95, 100.0])
    def test_always_within_bounds(self, achieved):
        remaining = error_budget_remaining_percent(99.0, achieved, 7 * DAY_MS)
        assert 0.0 <= remaining <= 100.0


class TestBurnRate:
    def test_double_rate(self):
        assert burn_rate(99.0, 98, 100) == pytest.approx(2.0)

    def test_no_errors(self):
        assert burn_rate(99.9, 1000, 1000) == 0.0

    def test_no_events(self):
        assert burn_rate(99.9, 0, 0) == 0.0

    def test_target_100_with_errors_is_infinite(self):
        assert math.isinf(burn_rate(100.0, 999, 1000))

    def test_target_100_without_errors_is_zero(self):
        assert burn_rate(100.0, 1000, 1000) == 0.0

    def test_never_negative(self):
        assert burn_rate(50.0, 10, 10) >= 0


class TestMonotonicity:
    """More good events never lower achievement or raise the burn."""

    @pytest.mark.parametrize("target", [90.0, 99.0, 99.9, 100.0])
    @pytest.mark.parametrize("denominator", [1, 7, 1000])
    def test_numerator_sweep(self, target, denominator):
        numerators = range(denominator + 1)
        achieved = [achieved_percent(n, denominator) for n in numerators]
        burns = [burn_rate(target, n, denominator) for n in numerators]

        assert all(lo <= hi for lo, hi in zip(achieved, achieved[1:]))
        assert all(hi >= lo for hi, lo in zip(burns, burns[1:]))
        assert achieved[0] == 0.0
        assert achieved[-1] == 100.0
        assert burns[-1] == 0.0

    def test_target_100_drops_from_infinite_to_zero(self):
        burns = [burn_rate(100.0, n, 10) for n in range(11)]

        assert all(math.isinf(b) for b in burns[:-1])
        assert burns[-1] == 0.0

    @pytest.mark.parametrize("target", [95.0, 99.9])
    def test_budget_grows_with_achievement(self, target):
        remaining = [
            error_budget_remaining_percent(target, achieved_percent(n, 1000), 30 * DAY_MS)
            for n in range(1001)
        ]

        assert all(lo <= hi for lo, hi in zip(remaining, remaining[1:]))


class TestClassifyStatus:
    def test_healthy_when_target_met(self):
        assert classify_status(99.9, 99.9, 0.0) is SLOStatus.HEALTHY

    def test_at_risk_band(self):
        assert classify_status(99.0, 99.9, 10.0) is SLOStatus.AT_RISK
        assert classify_status(99.0, 99.9, 0.5) is SLOStatus.AT_RISK

    def test_exhausted_budget_is_breached(self):
        assert classify_status(99.0, 99.9, 0.0) is SLOStatus.BREACHED

    def test_above_band_is_breached(self):
        assert classify_status(99.0, 99.9, 10.5) is SLOStatus.BREACHED


class TestErrorBudgetCalculator:
    """Tests for full status calculation."""

    def test_no_data_is_healthy(self, make_slo, clock):
        result = ErrorBudgetCalculator(make_slo()).calculate(
            0, 0, clock.now - timedelta(days=30), clock.now
        )
        assert result.status is SLOStatus.HEALTHY
        assert result.achieved == 100.0
        assert result.error_budget_remaining == 100.0
        assert result.burn_rate == 0.0
        assert not result.has_data

    def test_thirty_day_scenario(self, make_slo, clock):
        """99.9% over 30d with 998 of 1000 good events."""
        result = ErrorBudgetCalculator(make_slo()).calculate(
            998, 1000, clock.now - timedelta(days=30), clock.now, computed_at=clock.now
        )
        assert result.achieved == pytest.approx(99.8)
        assert result.burn_rate == pytest.approx(2.0)
        assert result.error_budget_remaining == 0.0
        assert result.status is SLOStatus.BREACHED
        assert result.computed_at == clock.now

    def test_format_status(self, make_slo, clock):
        calculator = ErrorBudgetCalculator(make_slo())
        result = calculator.calculate(998, 1000, clock.now - timedelta(days=30), clock.now)
        text = calculator.format_status(result)

        assert "checkout / availability" in text
        assert "Target: 99.90%" in text
        assert "BREACHED" in text
        assert "2.00x" in text
