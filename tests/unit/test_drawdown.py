"""Unit tests for drawdown estimates and their decomposition."""

from __future__ import annotations

import math

import pytest

from portfolio_risk.analytics.drawdown import (
    calculate_historical_drawdown,
    calculate_statistical_drawdown,
    calculate_theoretical_extreme,
    decompose_drawdowns,
    enhanced_drawdown,
    expected_max_drawdown,
)


class TestExpectedMaxDrawdown:
    def test_closed_form(self):
        expected = (-2 * 0.20 * math.sqrt(10) + 0.10 * 10) * 100
        assert expected_max_drawdown(20, 10, 10) == pytest.approx(expected)

    def test_bounded_above(self):
        assert expected_max_drawdown(5, 1, 20) == -8.0

    def test_bounded_below(self):
        assert expected_max_drawdown(80, 30, 0) == -85.0

    def test_non_finite_inputs_use_defaults(self):
        nan = float("nan")
        assert expected_max_drawdown(nan, nan, nan) == pytest.approx(expected_max_drawdown(20, 10, 10))

    def test_enhanced_adds_tail(self):
        result = enhanced_drawdown(20, 10, 10)
        assert result == {"standard": -26.0, "tail_risk": -47.0, "delta": -21.0}


class TestComponents:
    def test_historical_requires_a_year_of_data(self):
        assert calculate_historical_drawdown(None) is None
        assert calculate_historical_drawdown([0.01] * 11) is None

    def test_historical_peak_to_trough(self):
        returns = [0.1] * 6 + [-0.5] + [0.0] * 5
        assert calculate_historical_drawdown(returns) == pytest.approx(-50.0)

    def test_historical_rising_series(self):
        assert calculate_historical_drawdown([0.02] * 12) == 0.0

    def test_historical_clamped(self, monthly_returns):
        value = calculate_historical_drawdown(monthly_returns)
        assert -85.0 <= value <= 0.0

    def test_statistical_tails(self):
        result = calculate_statistical_drawdown(20, 10, 10)
        assert result["percentile95"] == pytest.approx((-2.015 * 0.2 * math.sqrt(10) + 1.0) * 100)
        assert result["percentile99"] == -85.0
        assert result["confidence"] == "95%"
        assert "Student's t" in result["methodology"]

    def test_statistical_ceilings(self):
        result = calculate_statistical_drawdown(1, 1, 30)
        assert result["percentile95"] == -8.0
        assert result["percentile99"] == -10.0

    @pytest.mark.parametrize(
        ("vol", "beta", "corr", "expected"),
        [(20, 1.0, 0.5, -75.0), (20, 1.5, 0.7, -85.0), (3, 1.0, 0.5, -24.0), (0, 1.0, 0.5, -15.0)],
    )
    def test_theoretical_extreme(self, vol, beta, corr, expected):
        assert calculate_theoretical_extreme(vol, beta, corr) == pytest.approx(expected)


class TestDecomposeDrawdowns:
    def test_views_are_kept_separate_and_ordered(self):
        result = decompose_drawdowns(20, 10, 10)
        priorities = [view.display_priority for view in result.views]
        assert priorities == [1, 2, 3, 4]
        assert result.percentile95.value != result.theoretical.value

    def test_historical_unavailable_without_returns(self):
        result = decompose_drawdowns(20, 10, 10)
        assert not result.historical.available
        assert result.historical.value is None
        assert result.historical.confidence == "Insufficient data"

    def test_historical_available_with_returns(self, monthly_returns):
        result = decompose_drawdowns(20, 10, 10, historical_returns=monthly_returns)
        assert result.historical.available
        assert result.historical.label == "Historical Worst-Case"
        assert result.historical.value <= 0.0

    def test_theoretical_is_de_emphasized(self):
        theoretical = decompose_drawdowns(20, 10, 10).theoretical
        assert theoretical.label == "Theoretical Extreme (Educational)"
        assert theoretical.visual_emphasis == "de-emphasize"
        assert "not a forecast" in theoretical.disclaimer

    def test_to_dict(self):
        payload = decompose_drawdowns(20, 10, 10).to_dict()
        assert set(payload) == {"historical", "statistical", "theoretical", "presentation_rules"}
        assert payload["historical"]["value"] is None
        assert "disclaimer" not in payload["historical"]
        assert payload["statistical"]["percentile99"]["label"] == "Statistical Tail (99th %ile)"
        assert payload["presentation_rules"]["never_merge"] is True
