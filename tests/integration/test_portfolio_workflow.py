"""
End-to-end workflow through the public entry points.

Covers the path a caller takes: optimize a basket, then feed the optimal
weights into forward-looking risk, drawdown decomposition, goal simulation
and stress testing.
"""

from __future__ import annotations

import pytest

import portfolio_risk
from portfolio_risk import ErrorKind, Ok
from portfolio_risk.analytics import decompose_drawdowns
from portfolio_risk.common.enums import CorrelationTier, VolatilityRegime
from portfolio_risk.errors import InvalidAssetError
from portfolio_risk.observability.metrics import MetricsCollector


@pytest.fixture
def raw_assets() -> list[dict[str, object]]:
    return [
        {"symbol": "aaa", "expectedReturn": 8.0, "risk": 10.0, "sector": "Technology", "beta": 0.6,
         "marketCap": "20B", "peRatio": 18.0},
        {"symbol": "bbb", "expectedReturn": 15.0, "risk": 18.0, "sector": "Healthcare", "beta": 1.0,
         "marketCap": "20B", "peRatio": 18.0},
        {"symbol": "ccc", "expectedReturn": 22.0, "risk": 30.0, "sector": "Energy", "beta": 1.6,
         "marketCap": "20B", "peRatio": 18.0},
    ]


class TestOptimizationWorkflow:
    @pytest.mark.integration
    def test_optimize_returns_ok_with_warnings(self, raw_assets):
        metrics = MetricsCollector()
        result = portfolio_risk.optimize_all_portfolios(raw_assets, metrics=metrics)

        assert isinstance(result, Ok)
        optimization = result.unwrap()
        assert optimization.correlation_tier is CorrelationTier.MODERATE
        assert set(optimization.optimal.weights) == {"AAA", "BBB", "CCC"}
        assert sum(optimization.optimal.weights.values()) == pytest.approx(1.0, abs=1e-9)
        assert any("correlation" in warning.lower() for warning in result.warnings)
        assert metrics.counter_value("optimizations_total", {"tier": "moderate"}) == 1.0

    @pytest.mark.integration
    def test_extreme_correlation_returns_err_with_details(self, asset_factory):
        assets = [
            asset_factory("AAA", 10.0, 20.0, beta=1.0),
            asset_factory("BBB", 12.0, 24.0, beta=1.1),
            asset_factory("CCC", 14.0, 28.0, beta=1.2),
        ]
        result = portfolio_risk.optimize_all_portfolios(assets)

        assert not result.is_ok
        assert result.kind is ErrorKind.EXTREME_CORRELATION
        assert "80%" in result.message
        assert result.details["avg_correlation"] == pytest.approx(0.80)
        assert {"quality", "validation", "return_cap_adjustments"} <= set(result.details)

    @pytest.mark.integration
    def test_identical_metrics_returns_err(self, asset_factory):
        assets = [asset_factory(symbol, 10.0, 20.0) for symbol in ("AAA", "BBB", "CCC")]
        result = portfolio_risk.optimize_all_portfolios(assets)
        assert result.kind is ErrorKind.IDENTICAL_METRICS

    @pytest.mark.integration
    def test_duplicate_symbols_return_err(self, raw_assets):
        raw_assets[1] = dict(raw_assets[1], symbol="AAA")
        result = portfolio_risk.optimize_all_portfolios(raw_assets)

        assert not result.is_ok
        assert result.kind is ErrorKind.INVALID_INPUT
        assert "AAA" in result.message

    @pytest.mark.integration
    def test_invalid_asset_rejected_at_boundary(self):
        with pytest.raises(InvalidAssetError):
            portfolio_risk.optimize_all_portfolios([{"symbol": "AAA", "expectedReturn": 10.0, "risk": 0}])


class TestRiskWorkflow:
    @pytest.fixture
    def optimization(self, raw_assets):
        return portfolio_risk.optimize_all_portfolios(raw_assets).unwrap()

    @pytest.mark.integration
    def test_forward_risk_on_optimal_weights(self, optimization, vix_payload):
        symbols = [asset.symbol for asset in optimization.assets]
        weights = optimization.optimal.weight_vector(symbols)
        report = portfolio_risk.calculate_forward_looking_risk(
            optimization.assets, weights, optimization.correlation_matrix, vix_payload
        )
        assert report is not None
        assert report.regime is VolatilityRegime.ELEVATED
        assert report.forward_risk > report.historical_risk

    @pytest.mark.integration
    def test_forward_risk_without_vix(self, optimization):
        symbols = [asset.symbol for asset in optimization.assets]
        weights = optimization.optimal.weight_vector(symbols)
        assert portfolio_risk.calculate_forward_looking_risk(optimization.assets, weights) is None

    @pytest.mark.integration
    def test_drawdown_decomposition(self, optimization, monthly_returns):
        optimal = optimization.optimal
        result = decompose_drawdowns(optimal.risk, 10, optimal.expected_return, historical_returns=monthly_returns)
        assert result.historical.available
        assert result.percentile99.value <= result.percentile95.value < 0
        assert result.theoretical.value < 0

    @pytest.mark.integration
    def test_goal_probability(self, optimization, sim_settings):
        optimal = optimization.optimal
        result = portfolio_risk.run_goal_simulation(
            25_000.0,
            500.0,
            optimal.expected_return / 100,
            optimal.risk / 100,
            60_000.0,
            60,
            settings=sim_settings,
        )
        assert 0.0 <= result.probability <= 1.0
        assert result.trials_completed == sim_settings.goal_trials
        assert result.probability == portfolio_risk.monte_carlo_goal_probability(
            25_000.0, 500.0, optimal.expected_return / 100, optimal.risk / 100, 60_000.0, 60, settings=sim_settings
        )

    @pytest.mark.integration
    def test_negative_months_rejected(self, sim_settings):
        with pytest.raises(ValueError):
            portfolio_risk.run_goal_simulation(1_000.0, 0.0, 0.05, 0.1, 2_000.0, -1, settings=sim_settings)

    @pytest.mark.integration
    def test_stress_scenarios(self, optimization):
        symbols = [asset.symbol for asset in optimization.assets]
        weights = optimization.optimal.weight_vector(symbols)
        impacts = {
            key: portfolio_risk.calculate_stress_impact(optimization.assets, weights, key).portfolio_impact
            for key in ("marketCrash", "sectorCollapse", "blackSwan")
        }
        assert impacts["blackSwan"] < impacts["marketCrash"] < 0
        assert portfolio_risk.calculate_stress_impact(optimization.assets, weights, "unknown") is None

    @pytest.mark.integration
    def test_stress_weight_length_mismatch(self, optimization):
        with pytest.raises(ValueError):
            portfolio_risk.calculate_stress_impact(optimization.assets, [1.0], "marketCrash")
