"""
Unit tests for portfolio_risk.analytics.optimizer.

The three-asset fixture is an equicorrelated (0.55) mid-cap set, so the
tangency and minimum-variance solutions can be checked by hand.
"""

from __future__ import annotations

import pytest

from portfolio_risk.analytics.correlation import get_correlation_matrix
from portfolio_risk.analytics.optimizer import (
    METHOD_HIGH_CORRELATION,
    METHOD_MAX_RETURN,
    METHOD_MIN_VARIANCE,
    METHOD_MODERATE_CORRELATION,
    allocation_rationale,
    build_portfolio,
    ensure_distinct_metrics,
    optimize_all_portfolios,
    optimize_max_sharpe,
    optimize_maximum_return,
    optimize_minimum_variance,
    top_return_index,
)
from portfolio_risk.common.enums import CorrelationTier, Severity
from portfolio_risk.errors import IdenticalMetricsError
from portfolio_risk.observability.metrics import MetricsCollector


# ---------------------------------------------------------------------------
# Solvers
# ---------------------------------------------------------------------------


class TestSolvers:
    def test_max_sharpe_hits_ceiling_and_floor(self, asset_trio, uncapped_settings):
        portfolio = optimize_max_sharpe(asset_trio, tier=CorrelationTier.MODERATE, settings=uncapped_settings)

        assert sum(portfolio.weights.values()) == pytest.approx(1.0)
        assert portfolio.weights["AAA"] == pytest.approx(0.2, abs=1e-6)
        assert portfolio.weights["BBB"] == pytest.approx(0.4, abs=1e-6)
        assert portfolio.weights["CCC"] == pytest.approx(0.4, abs=1e-6)
        assert portfolio.expected_return == pytest.approx(16.4, abs=1e-4)
        assert portfolio.constraints_applied

    def test_unconstrained_max_sharpe_clips_negative_weights(self, asset_trio, uncapped_settings):
        portfolio = optimize_max_sharpe(asset_trio, apply_constraints=False, settings=uncapped_settings)
        assert portfolio.weights["AAA"] == 0.0
        assert portfolio.weights["BBB"] > portfolio.weights["CCC"]

    def test_minimum_variance_prefers_low_risk(self, asset_trio, uncapped_settings):
        portfolio = optimize_minimum_variance(asset_trio, settings=uncapped_settings)
        weights = portfolio.weights

        assert portfolio.method == METHOD_MIN_VARIANCE
        assert weights["AAA"] == pytest.approx(0.4, abs=1e-6)
        assert weights["AAA"] > weights["CCC"] > weights["BBB"]
        assert min(weights.values()) >= 0.10 - 1e-9

    def test_minimum_variance_risk_below_tangency(self, asset_trio, uncapped_settings):
        tangency = optimize_max_sharpe(asset_trio, settings=uncapped_settings)
        min_var = optimize_minimum_variance(asset_trio, settings=uncapped_settings)
        assert min_var.risk <= tangency.risk
        assert tangency.sharpe_ratio >= min_var.sharpe_ratio

    def test_maximum_return_is_concentrated(self, asset_trio):
        portfolio = optimize_maximum_return(asset_trio)
        assert portfolio.weights == {"AAA": 0.0, "BBB": 0.0, "CCC": 1.0}
        assert portfolio.method == METHOD_MAX_RETURN
        assert portfolio.expected_return == 22.0
        assert portfolio.risk == pytest.approx(30.0)

    def test_top_return_tie_prefers_higher_risk(self, asset_factory):
        assets = [asset_factory("AAA", 15, 20), asset_factory("BBB", 15, 25), asset_factory("CCC", 12, 30)]
        assert top_return_index(assets) == 1

    def test_build_portfolio_metrics(self, asset_trio):
        corr = get_correlation_matrix(asset_trio)
        portfolio = build_portfolio(asset_trio, [1.0, 0.0, 0.0], corr, risk_free_rate=4.5)
        assert portfolio.expected_return == 8.0
        assert portfolio.risk == pytest.approx(10.0)
        assert portfolio.sharpe_ratio == pytest.approx(0.35)
        assert portfolio.allocations["AAA"] == 100.0


class TestDistinctMetrics:
    def test_identical_assets_rejected(self, asset_factory):
        assets = [asset_factory(sym, 10.0, 20.0) for sym in ("AAA", "BBB", "CCC")]
        with pytest.raises(IdenticalMetricsError):
            ensure_distinct_metrics(assets)

    def test_single_asset_allowed(self, asset_factory):
        ensure_distinct_metrics([asset_factory("AAA", 10.0, 20.0)])


class TestAllocationRationale:
    def test_defensive_mid_position(self, asset_trio):
        text = allocation_rationale(asset_trio[0], 20.0, 4.5)
        assert text == (
            "Moderate risk-adjusted returns (Sharpe: 0.35) • Defensive characteristics (β=0.60) • "
            "Substantial allocation for portfolio contribution"
        )

    def test_large_cap_high_beta(self, asset_factory):
        asset = asset_factory("BIG", 20.0, 25.0, market_cap="2.8T", beta=1.7)
        text = allocation_rationale(asset, 40.0, 4.5)
        assert "Strong risk-adjusted returns" in text
        assert "Mega/large-cap stability (2.8T)" in text
        assert "High market sensitivity (β=1.70)" in text
        assert text.endswith("Major position for diversification balance")


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


class TestOptimizeAllPortfolios:
    def test_portfolio_ordering(self, asset_trio, uncapped_settings):
        result = optimize_all_portfolios(asset_trio, uncapped_settings)

        assert result.correlation_tier is CorrelationTier.MODERATE
        assert result.optimal.method == METHOD_MODERATE_CORRELATION
        assert result.optimal.sharpe_ratio >= result.minimum_variance.sharpe_ratio
        assert result.optimal.sharpe_ratio >= result.maximum_return.sharpe_ratio
        assert result.minimum_variance.risk <= result.optimal.risk
        assert result.maximum_return.weights["CCC"] == 1.0
        assert result.return_cap_adjustments == []

    def test_weights_sum_to_one(self, asset_trio):
        result = optimize_all_portfolios(asset_trio)
        for portfolio in result.portfolios.values():
            assert sum(portfolio.weights.values()) == pytest.approx(1.0, abs=1e-9)
            assert sum(portfolio.allocations.values()) == pytest.approx(100.0, abs=0.1)

    def test_return_caps_applied_by_default(self, asset_trio):
        result = optimize_all_portfolios(asset_trio)
        assert [adj.symbol for adj in result.return_cap_adjustments] == ["CCC"]
        assert result.maximum_return.expected_return == 16.0
        assert result.maximum_return.weights["CCC"] == 1.0

    def test_duplicate_allocations_warn(self, asset_trio, uncapped_settings):
        result = optimize_all_portfolios(asset_trio, uncapped_settings)
        assert any("identical allocations" in warning for warning in result.warnings)

    def test_identical_allocations_invalidate_report(self, asset_trio, uncapped_settings):
        result = optimize_all_portfolios(asset_trio, uncapped_settings)
        violations = result.validation.integrity_violations

        assert [issue.detail for issue in violations] == ["Optimal Portfolio"]
        assert violations[0].type == "allocation_uniqueness"
        assert violations[0].severity is Severity.CRITICAL
        assert not result.validation.is_valid
        assert not result.to_dict()["validation"]["is_valid"]

    def test_two_asset_minimum_variance_favors_low_risk(self, asset_factory, uncapped_settings):
        pair = [asset_factory("AAA", 8.0, 10.0), asset_factory("BBB", 20.0, 35.0)]
        result = optimize_all_portfolios(pair, uncapped_settings)
        min_var = result.minimum_variance.weights

        assert min_var["AAA"] > 0.75
        assert min_var["AAA"] > result.optimal.weights["AAA"]
        assert min_var != result.optimal.weights
        assert result.validation.integrity_violations == []

    def test_recomputed_metrics_agree(self, asset_trio):
        result = optimize_all_portfolios(asset_trio)
        assert [issue for issue in result.validation.warnings if issue.type == "consistency"] == []

    def test_high_correlation_stabilized(self, asset_factory):
        assets = [
            asset_factory("AAA", 10.0, 15.0, market_cap="2.8T", beta=0.5),
            asset_factory("BBB", 12.0, 20.0, market_cap="1.9T", beta=1.0),
            asset_factory("CCC", 14.0, 25.0, market_cap="900B", beta=1.5),
        ]
        result = optimize_all_portfolios(assets)
        assert result.correlation_tier is CorrelationTier.HIGH
        assert result.optimal.method == METHOD_HIGH_CORRELATION
        assert result.optimal.stabilization_applied
        assert result.optimal.constraints_applied
        assert [issue.type for issue in result.validation.warnings][0] == "high_correlation"

    def test_rationale_for_every_asset(self, asset_trio):
        result = optimize_all_portfolios(asset_trio)
        assert set(result.rationale) == {"AAA", "BBB", "CCC"}

    def test_metrics_recorded(self, asset_trio):
        metrics = MetricsCollector()
        optimize_all_portfolios(asset_trio, metrics=metrics)
        assert metrics.counter_value("optimizations_total", {"tier": "moderate"}) == 1.0
        assert metrics.snapshot()["gauges"]["average_correlation"] == pytest.approx(0.55)

    def test_identical_assets_raise(self, asset_factory):
        assets = [asset_factory(sym, 10.0, 20.0) for sym in ("AAA", "BBB", "CCC")]
        with pytest.raises(IdenticalMetricsError):
            optimize_all_portfolios(assets)

    def test_to_dict_shape(self, asset_trio):
        payload = optimize_all_portfolios(asset_trio).to_dict()
        assert set(payload) == {
            "optimal_portfolio",
            "minimum_variance_portfolio",
            "maximum_return_portfolio",
            "validation",
            "portfolio_quality",
            "return_cap_adjustments",
            "allocation_rationale",
        }
        assert payload["validation"]["can_show_frontier"]
