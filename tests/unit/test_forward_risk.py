"""Unit tests for VIX-regime forward-looking risk."""

from __future__ import annotations

import pytest

from portfolio_risk.analytics.correlation import get_correlation_matrix
from portfolio_risk.analytics.forward_risk import (
    adjust_correlation_for_regime,
    adjust_correlation_matrix_for_regime,
    adjust_expected_return,
    blend_volatility,
    calculate_forward_looking_risk,
    classify_vix_regime,
    stress_correlation_matrix,
)
from portfolio_risk.common.enums import VolatilityRegime
from portfolio_risk.models import VixData


class TestRegimes:
    @pytest.mark.parametrize(
        ("vix", "expected"),
        [
            (10.0, VolatilityRegime.LOW),
            (15.0, VolatilityRegime.NORMAL),
            (24.9, VolatilityRegime.NORMAL),
            (25.0, VolatilityRegime.ELEVATED),
            (35.0, VolatilityRegime.HIGH),
            (40.0, VolatilityRegime.EXTREME),
        ],
    )
    def test_classify(self, vix, expected):
        assert classify_vix_regime(vix) is expected

    def test_correlation_factor_and_bounds(self):
        assert adjust_correlation_for_regime(0.5, classify_vix_regime(45)) == pytest.approx(0.95)
        assert adjust_correlation_for_regime(0.5, "low") == pytest.approx(0.35)
        assert adjust_correlation_for_regime(-0.5, VolatilityRegime.HIGH) == pytest.approx(-0.3)

    def test_unknown_regime_is_normal(self):
        assert adjust_correlation_for_regime(0.5, None) == pytest.approx(0.5)
        assert adjust_correlation_for_regime(0.5, "panic") == pytest.approx(0.5)

    def test_matrix_diagonal_preserved(self):
        adjusted = adjust_correlation_matrix_for_regime([[1.0, 0.6], [0.6, 1.0]], "extreme")
        assert adjusted[0][0] == 1.0
        assert adjusted[1][1] == 1.0
        assert adjusted[0][1] == pytest.approx(0.95)

    def test_stress_matrix_scales_with_vix(self):
        base = [[1.0, 0.5], [0.5, 1.0]]
        assert stress_correlation_matrix(base, 45)[0][1] == pytest.approx(0.75)
        assert stress_correlation_matrix(base, 100)[0][1] == pytest.approx(0.75)
        assert stress_correlation_matrix(base, 10)[0][1] == pytest.approx(0.4)
        assert stress_correlation_matrix(base, 45)[1][1] == 1.0


class TestVolatilityAndReturns:
    def test_blend(self):
        result = blend_volatility(20.0, 30.0, 1.5)
        assert result["implied"] == 45.0
        assert result["blended"] == 30.0
        assert result["adjustment"] == 10.0
        assert result["method"] == "60% historical + 40% VIX-implied"

    def test_negative_beta_uses_magnitude(self):
        assert blend_volatility(20.0, 30.0, -1.0)["implied"] == 30.0

    def test_fear_regime_adds_premium(self):
        result = adjust_expected_return(10.0, "high", 38.0)
        assert result["adjusted"] == 12.0
        assert result["adjustment"] == 2.0
        assert result["reasoning"].startswith("VIX 38.0 indicates market fear")

    def test_complacency_reduces_return(self):
        result = adjust_expected_return(10.0, VolatilityRegime.LOW, 12.0)
        assert result["adjusted"] == 9.0
        assert "complacency" in result["reasoning"]


class TestForwardLookingRisk:
    def test_elevated_regime_raises_risk(self, asset_trio, vix_payload):
        weights = [1 / 3] * 3
        corr = get_correlation_matrix(asset_trio)
        report = calculate_forward_looking_risk(asset_trio, weights, corr, vix_payload)

        assert report is not None
        assert report.regime is VolatilityRegime.ELEVATED
        assert report.vix_level == 28.0
        assert report.vix_data_source == "test"
        assert report.forward_risk > report.historical_risk
        assert report.regime_impact == pytest.approx(report.forward_risk - report.historical_risk, abs=0.11)
        forward = {adj.symbol: adj.forward_looking for adj in report.asset_adjustments}
        assert forward == {"AAA": 12.7, "BBB": 22.0, "CCC": 35.9}

    def test_regime_inferred_from_level(self, asset_trio):
        corr = get_correlation_matrix(asset_trio)
        report = calculate_forward_looking_risk(asset_trio, [0.4, 0.3, 0.3], corr, VixData(current_vix=45.0))
        assert report.regime is VolatilityRegime.EXTREME
        assert report.regime_description == "Extreme volatility"
        assert report.vix_data_source == "unknown"

    def test_missing_vix_returns_none(self, asset_trio):
        corr = get_correlation_matrix(asset_trio)
        assert calculate_forward_looking_risk(asset_trio, [0.4, 0.3, 0.3], corr, None) is None
        assert calculate_forward_looking_risk(asset_trio, [0.4, 0.3, 0.3], corr, {"regime": "low"}) is None

    def test_inconsistent_inputs_return_none(self, asset_trio, vix_payload):
        corr = get_correlation_matrix(asset_trio)
        assert calculate_forward_looking_risk(asset_trio, [0.5, 0.5], corr, vix_payload) is None
        assert calculate_forward_looking_risk(asset_trio, [0.4, 0.3, 0.3], [[1.0]], vix_payload) is None
        assert calculate_forward_looking_risk([], [], corr, vix_payload) is None

    def test_to_dict(self, asset_trio, vix_payload):
        corr = get_correlation_matrix(asset_trio)
        payload = calculate_forward_looking_risk(asset_trio, [0.4, 0.3, 0.3], corr, vix_payload).to_dict()
        assert payload["regime"] == "elevated"
        assert len(payload["asset_adjustments"]) == 3
