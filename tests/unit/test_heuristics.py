"""Unit tests for the closed-form allocation heuristics."""

from __future__ import annotations

import pytest

from portfolio_risk.analytics.heuristics import (
    black_litterman_weights,
    construct_heuristic_portfolio,
    equal_weights,
    hrp_weights,
    market_cap_weights,
    max_diversification_weights,
    minimum_variance_weights,
    risk_parity_weights,
)


class TestWeightingSchemes:
    def test_risk_parity_is_inverse_volatility(self):
        assert risk_parity_weights([10.0, 20.0]) == [0.6667, 0.3333]

    def test_minimum_variance_uncorrelated(self):
        assert minimum_variance_weights([10.0, 20.0], [[1.0, 0.0], [0.0, 1.0]]) == [0.8, 0.2]

    def test_equal_weights(self):
        assert equal_weights(3) == [0.3333, 0.3333, 0.3333]
        assert equal_weights(0) == []

    def test_max_diversification_single_asset(self):
        assert max_diversification_weights([15.0], [[1.0]]) == [1.0]

    def test_max_diversification_penalizes_correlated_asset(self):
        corr = [[1.0, 0.8, 0.1], [0.8, 1.0, 0.1], [0.1, 0.1, 1.0]]
        weights = max_diversification_weights([10.0, 10.0, 10.0], corr)
        assert weights[2] > weights[0] == weights[1]

    def test_hrp_penalizes_crowded_assets(self):
        corr = [[1.0, 0.8, 0.2], [0.8, 1.0, 0.2], [0.2, 0.2, 1.0]]
        weights = hrp_weights([10.0, 10.0, 10.0], corr)
        assert weights[2] > weights[0] == weights[1]
        assert sum(weights) == pytest.approx(1.0, abs=1e-3)

    def test_black_litterman_blend(self):
        assert black_litterman_weights([0.5, 0.5], [10.0, 20.0], [10.0, 10.0]) == [0.45, 0.55]

    def test_market_cap_weights(self, asset_factory):
        assets = [asset_factory("AAA", 10.0, 20.0, market_cap="3T"), asset_factory("BBB", 12.0, 25.0, market_cap="1T")]
        assert market_cap_weights(assets) == pytest.approx([0.75, 0.25])

    def test_unknown_cap_falls_back_to_equal(self, asset_factory):
        assets = [asset_factory("AAA", 10.0, 20.0, market_cap=None), asset_factory("BBB", 12.0, 25.0)]
        assert market_cap_weights(assets) == [0.5, 0.5]


class TestConstructHeuristicPortfolio:
    @pytest.mark.parametrize(
        "method", ["risk_parity", "min_variance", "equal_weight", "max_diversification", "hrp", "black_litterman"]
    )
    def test_every_method_covers_all_assets(self, asset_trio, method):
        result = construct_heuristic_portfolio(asset_trio, method)
        assert set(result.weights) == {"AAA", "BBB", "CCC"}
        assert sum(result.weights.values()) == pytest.approx(1.0, abs=1e-3)
        assert result.expected_volatility_pct > 0

    def test_equal_weight_metrics(self, asset_trio):
        result = construct_heuristic_portfolio(asset_trio, "equal_weight")
        assert result.expected_return_pct == pytest.approx(15.0, abs=0.01)

    def test_black_litterman_notes_derived_market_weights(self, asset_trio):
        result = construct_heuristic_portfolio(asset_trio, "black_litterman")
        assert result.notes == ["Market weights derived from market capitalization"]

    def test_supplied_market_weights(self, asset_trio):
        result = construct_heuristic_portfolio(asset_trio, "black_litterman", market_weights=[0.6, 0.2, 0.2])
        assert result.notes == []
        assert result.weights["AAA"] > result.weights["BBB"]

    def test_unknown_method(self, asset_trio):
        with pytest.raises(ValueError, match="Unknown heuristic method"):
            construct_heuristic_portfolio(asset_trio, "astrology")

    def test_empty(self):
        result = construct_heuristic_portfolio([], "risk_parity")
        assert result.weights == {}
        assert result.to_dict()["expected_sharpe"] == 0.0
