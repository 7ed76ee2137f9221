"""
Closed-form mean-variance portfolio optimizer.

Three solvers share one covariance estimate:

- tangency (max Sharpe): ``w ∝ Σ⁻¹(μ − rf)``
- global minimum variance: ``w ∝ Σ⁻¹·1``
- maximum return: 100% in the highest-return asset

The first two are long-only (negatives clipped) and projected onto the
floor/ceiling box by :mod:`.constraints`. A singular or degenerate system
falls back to equal weights (tangency) or inverse-risk weights (minimum
variance) without raising.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from portfolio_risk.common.enums import AssetClass, CorrelationTier
from portfolio_risk.errors import (
    AllocationIntegrityError,
    IdenticalMetricsError,
    NumericDegeneracyError,
    SingularMatrixError,
)
from portfolio_risk.models import Asset, Portfolio, ValidationReport
from portfolio_risk.settings import DEFAULT_SETTINGS, EngineSettings

from .constraints import ReturnCapAdjustment, apply_portfolio_constraints, apply_return_caps
from .core_metrics import (
    PIVOT_EPSILON,
    Matrix,
    invert_matrix,
    matrix_vector_multiply,
    portfolio_expected_return,
    portfolio_risk,
    safe_divide,
    sharpe_ratio,
)
from .correlation import (
    build_correlation_matrix,
    build_covariance_matrix,
    shrink_covariance,
)
from .quality import QualityReport, calculate_portfolio_quality
from .validation import (
    IntegrityReport,
    check_portfolio_consistency,
    consistency_issues,
    integrity_issues,
    validate_allocation_integrity,
    validate_portfolio_results,
)

logger = logging.getLogger(__name__)

METHOD_MAX_SHARPE = "Tangency (Max Sharpe)"
METHOD_MIN_VARIANCE = "Global Minimum Variance"
METHOD_MAX_RETURN = "Maximum Return (Concentrated)"
METHOD_HIGH_CORRELATION = "Constrained (High Correlation)"
METHOD_MODERATE_CORRELATION = "Standard (Moderate Correlation)"

IDENTICAL_METRICS_PRECISION = 6

CorrelationTable = Mapping[frozenset[AssetClass], float]


# ---------------------------------------------------------------------------
# Data Classes
# ---------------------------------------------------------------------------


@dataclass
class OptimizationResult:
    optimal: Portfolio
    minimum_variance: Portfolio
    maximum_return: Portfolio
    validation: ValidationReport
    quality: QualityReport
    return_cap_adjustments: list[ReturnCapAdjustment]
    correlation_matrix: Matrix
    avg_correlation: float
    correlation_tier: CorrelationTier
    assets: list[Asset] = field(default_factory=list)
    rationale: dict[str, str] = field(default_factory=dict)
    integrity: dict[str, IntegrityReport] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @property
    def portfolios(self) -> dict[str, Portfolio]:
        return {
            "optimal": self.optimal,
            "minimum_variance": self.minimum_variance,
            "maximum_return": self.maximum_return,
        }

    def to_dict(self) -> dict[str, Any]:
        def _portfolio(p: Portfolio) -> dict[str, Any]:
            return {
                "allocations": p.allocations,
                "expected_return": p.expected_return,
                "risk": p.risk,
                "sharpe_ratio": p.sharpe_ratio,
                "constraints_applied": p.constraints_applied,
                "optimization_method": p.method,
                "stabilization_applied": p.stabilization_applied,
                "fallback": p.fallback,
            }

        return {
            "optimal_portfolio": _portfolio(self.optimal),
            "minimum_variance_portfolio": _portfolio(self.minimum_variance),
            "maximum_return_portfolio": _portfolio(self.maximum_return),
            "validation": {
                "critical_errors": [issue.__dict__ for issue in self.validation.critical_errors],
                "warnings": [issue.__dict__ for issue in self.validation.warnings],
                "integrity_violations": [issue.__dict__ for issue in self.validation.integrity_violations],
                "is_valid": self.validation.is_valid,
                "can_show_frontier": self.validation.can_show_frontier,
            },
            "portfolio_quality": self.quality.to_dict(),
            "return_cap_adjustments": [adj.to_dict() for adj in self.return_cap_adjustments],
            "allocation_rationale": dict(self.rationale),
        }


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _settings(settings: EngineSettings | None) -> EngineSettings:
    return settings if settings is not None else DEFAULT_SETTINGS


def _record_fallback(metrics: Any, solver: str) -> None:
    if metrics is not None:
        metrics.increment("optimizer_fallbacks_total", labels={"solver": solver})


def build_portfolio(
    assets: Sequence[Asset],
    weights: Sequence[float],
    correlation_matrix: Matrix,
    *,
    risk_free_rate: float,
    method: str | None = None,
    constraints_applied: bool = False,
    fallback: str | None = None,
) -> Portfolio:
    """Attach return, risk and Sharpe (all in percent) to a weight vector."""
    returns = [asset.expected_return for asset in assets]
    risks = [asset.risk for asset in assets]
    port_return = portfolio_expected_return(weights, returns)
    port_risk = portfolio_risk(weights, risks, correlation_matrix)
    return Portfolio(
        weights={asset.symbol: float(w) for asset, w in zip(assets, weights)},
        expected_return=port_return,
        risk=port_risk,
        sharpe_ratio=sharpe_ratio(port_return, port_risk, risk_free_rate),
        constraints_applied=constraints_applied,
        method=method,
        fallback=fallback,
    )


def _normalize_raw(raw: Sequence[float]) -> list[float]:
    """Normalize solver output to sum 1, clip negatives, renormalize."""
    total = sum(raw)
    if abs(total) < PIVOT_EPSILON:
        raise NumericDegeneracyError("Solver weights sum to zero")
    scaled = [w / total for w in raw]
    clipped = [max(0.0, w) for w in scaled]
    clipped_total = sum(clipped)
    if clipped_total <= PIVOT_EPSILON:
        raise NumericDegeneracyError("No positive weights remain after clipping")
    return [w / clipped_total for w in clipped]


def _project(
    weights: list[float],
    assets: Sequence[Asset],
    settings: EngineSettings,
    apply_constraints: bool,
) -> tuple[list[float], bool]:
    if not apply_constraints or len(assets) < 2:
        return weights, False
    outcome = apply_portfolio_constraints(
        weights,
        assets,
        settings.max_single_asset,
        risk_free_rate=settings.risk_free_rate,
    )
    return outcome.weights, outcome.constraints_applied


def ensure_distinct_metrics(assets: Sequence[Asset]) -> None:
    """Raise :class:`IdenticalMetricsError` when every asset shares one return/risk pair."""
    if len(assets) < 2:
        return
    signatures = {
        (round(a.expected_return, IDENTICAL_METRICS_PRECISION), round(a.risk, IDENTICAL_METRICS_PRECISION))
        for a in assets
    }
    if len(signatures) == 1:
        ret, risk = next(iter(signatures))
        raise IdenticalMetricsError(
            f"All {len(assets)} assets have identical expected return and risk ({ret}%, {risk}%)",
            user_message=(
                f"All assets have identical expected return ({ret:.2f}%) and risk ({risk:.2f}%), "
                "so no meaningful allocation exists. Select assets with more diverse "
                "risk/return profiles."
            ),
        )


# ---------------------------------------------------------------------------
# Solvers
# ---------------------------------------------------------------------------


def optimize_max_sharpe(
    assets: Sequence[Asset],
    *,
    apply_constraints: bool = True,
    tier: CorrelationTier = CorrelationTier.LOW,
    settings: EngineSettings | None = None,
    correlation_table: CorrelationTable | None = None,
    metrics: Any = None,
) -> Portfolio:
    """Tangency portfolio. High-correlation inputs are solved on a shrunk covariance."""
    cfg = _settings(settings)
    covariance = build_covariance_matrix(assets, correlation_table)
    correlation = build_correlation_matrix(covariance)
    solve_cov = covariance
    shrunk = tier == CorrelationTier.HIGH
    if shrunk:
        logger.info("Applying covariance shrinkage for high correlation environment")
        solve_cov = shrink_covariance(covariance, 0.3, 0.01)

    rf = cfg.risk_free_rate / 100
    excess = [asset.expected_return / 100 - rf for asset in assets]
    try:
        inverse = invert_matrix(solve_cov, strict=True)
        weights = _normalize_raw(matrix_vector_multiply(inverse, excess))
    except (SingularMatrixError, NumericDegeneracyError, ArithmeticError) as exc:
        logger.warning("Tangency solve failed (%s), using equal weights", exc)
        _record_fallback(metrics, "max_sharpe")
        n = len(assets)
        return build_portfolio(
            assets,
            [1.0 / n] * n,
            correlation,
            risk_free_rate=cfg.risk_free_rate,
            method=METHOD_MAX_SHARPE,
            fallback="equal_weight",
        )

    weights, applied = _project(weights, assets, cfg, apply_constraints)
    return build_portfolio(
        assets,
        weights,
        correlation,
        risk_free_rate=cfg.risk_free_rate,
        method=METHOD_MAX_SHARPE,
        constraints_applied=applied or shrunk,
    )


def optimize_minimum_variance(
    assets: Sequence[Asset],
    *,
    apply_constraints: bool = True,
    settings: EngineSettings | None = None,
    correlation_table: CorrelationTable | None = None,
    metrics: Any = None,
) -> Portfolio:
    """Global minimum-variance portfolio with an inverse-risk fallback."""
    cfg = _settings(settings)
    covariance = build_covariance_matrix(assets, correlation_table)
    correlation = build_correlation_matrix(covariance)
    fallback = None
    try:
        inverse = invert_matrix(covariance, strict=True)
        weights = _normalize_raw([sum(row) for row in inverse])
    except (SingularMatrixError, NumericDegeneracyError, ArithmeticError) as exc:
        logger.warning("Minimum-variance solve failed (%s), using inverse risk weighting", exc)
        _record_fallback(metrics, "minimum_variance")
        inverse_risk = [safe_divide(1.0, asset.risk, 0.0) for asset in assets]
        total = sum(inverse_risk)
        weights = [w / total for w in inverse_risk]
        fallback = "inverse_risk"

    weights, applied = _project(weights, assets, cfg, apply_constraints)
    return build_portfolio(
        assets,
        weights,
        correlation,
        risk_free_rate=cfg.risk_free_rate,
        method=METHOD_MIN_VARIANCE,
        constraints_applied=applied,
        fallback=fallback,
    )


def top_return_index(assets: Sequence[Asset]) -> int:
    """Index of the highest expected return; exact ties go to the higher-risk asset."""
    best = 0
    for idx in range(1, len(assets)):
        candidate, current = assets[idx], assets[best]
        if candidate.expected_return > current.expected_return or (
            candidate.expected_return == current.expected_return and candidate.risk > current.risk
        ):
            best = idx
    return best


def optimize_maximum_return(
    assets: Sequence[Asset],
    *,
    settings: EngineSettings | None = None,
    correlation_table: CorrelationTable | None = None,
) -> Portfolio:
    cfg = _settings(settings)
    correlation = build_correlation_matrix(build_covariance_matrix(assets, correlation_table))
    best = top_return_index(assets)
    weights = [1.0 if idx == best else 0.0 for idx in range(len(assets))]
    return build_portfolio(
        assets,
        weights,
        correlation,
        risk_free_rate=cfg.risk_free_rate,
        method=METHOD_MAX_RETURN,
    )


# ---------------------------------------------------------------------------
# Allocation rationale
# ---------------------------------------------------------------------------


def allocation_rationale(asset: Asset, weight_pct: float, risk_free_rate: float) -> str:
    """Human-readable reasons behind one asset's optimal allocation."""
    sharpe = safe_divide(asset.expected_return - risk_free_rate, asset.risk, 0.0)
    parts: list[str] = []
    if sharpe > 0.5:
        parts.append(f"Strong risk-adjusted returns (Sharpe: {sharpe:.2f})")
    elif sharpe > 0.2:
        parts.append(f"Moderate risk-adjusted returns (Sharpe: {sharpe:.2f})")
    else:
        parts.append(f"Lower risk-adjusted returns (Sharpe: {sharpe:.2f})")

    unit = asset.market_cap_unit
    billions = asset.market_cap_billions
    if unit in {"B", "T"} and billions is not None and billions > 50:
        parts.append(f"Mega/large-cap stability ({asset.market_cap})")
    elif unit is None or unit == "M":
        parts.append(f"Small/micro-cap higher risk ({asset.market_cap or 'unknown'})")

    if asset.beta > 1.5:
        parts.append(f"High market sensitivity (β={asset.beta:.2f})")
    elif asset.beta < 0.8:
        parts.append(f"Defensive characteristics (β={asset.beta:.2f})")

    if weight_pct >= 25:
        parts.append("Major position for diversification balance")
    elif weight_pct >= 15:
        parts.append("Substantial allocation for portfolio contribution")
    elif weight_pct >= 8:
        parts.append("Meaningful allocation for diversification")

    return " • ".join(parts)


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


def _spreads(assets: Sequence[Asset]) -> tuple[float, float]:
    returns = [a.expected_return for a in assets]
    risks = [a.risk for a in assets]
    return max(returns) - min(returns), max(risks) - min(risks)


def _duplicate_optimal_allocations(optimal: Portfolio) -> dict[str, list[str]]:
    groups: dict[str, list[str]] = {}
    for symbol, pct in optimal.allocations.items():
        groups.setdefault(f"{pct:.3f}", []).append(symbol)
    return {key: syms for key, syms in groups.items() if len(syms) > 1}


def optimize_all_portfolios(
    assets: Sequence[Asset],
    settings: EngineSettings | None = None,
    *,
    correlation_table: CorrelationTable | None = None,
    metrics: Any = None,
) -> OptimizationResult:
    """
    Produce the optimal, minimum-variance and maximum-return portfolios.

    Steps: return caps, quality scoring, similarity diagnostics, correlation
    tier, the three solvers, cross-portfolio validation, tier labels,
    rationale, and allocation-integrity checks.

    Raises:
        IdenticalMetricsError: every asset shares the same return and risk.
        AllocationIntegrityError: a portfolio's allocations do not sum to 100%.
    """
    cfg = _settings(settings)
    started = time.perf_counter()
    original = list(assets)
    if not original:
        raise ValueError("At least one asset is required")

    for idx, asset in enumerate(original, start=1):
        logger.debug(
            "Pre-optimization %d. %s: return=%.3f%% risk=%.3f%%",
            idx, asset.symbol, asset.expected_return, asset.risk,
        )

    if cfg.apply_return_caps:
        working, adjustments = apply_return_caps(original)
    else:
        working, adjustments = original, []

    ensure_distinct_metrics(working)

    quality = calculate_portfolio_quality(working, risk_free_rate=cfg.risk_free_rate)
    avg_corr = quality.avg_correlation
    tier = quality.correlation_tier
    warnings: list[str] = []

    return_spread, risk_spread = _spreads(working)
    if return_spread < 2.0 or risk_spread < 3.0:
        logger.warning(
            "Asset similarity detected: return spread %.2f%%, risk spread %.2f%%",
            return_spread, risk_spread,
        )
    logger.info(
        "Correlation tier %s (%.0f%%), confidence %s",
        str(tier).upper(), avg_corr * 100, quality.confidence_level,
    )

    solver_kwargs = {"settings": cfg, "correlation_table": correlation_table}
    optimal = optimize_max_sharpe(working, tier=tier, metrics=metrics, **solver_kwargs)
    minimum_variance = optimize_minimum_variance(working, metrics=metrics, **solver_kwargs)
    maximum_return = optimize_maximum_return(working, **solver_kwargs)

    highest = max(a.expected_return for a in working)
    if (
        maximum_return.expected_return <= optimal.expected_return
        or maximum_return.expected_return <= minimum_variance.expected_return
        or maximum_return.expected_return < highest - 0.01
    ) and len(working) > 1:
        logger.warning("Maximum Return validation failed, forcing 100% allocation to top asset")
        maximum_return = optimize_maximum_return(working, **solver_kwargs)
        maximum_return.fallback = "forced_top_asset"

    correlation_matrix = build_correlation_matrix(build_covariance_matrix(working, correlation_table))
    validation = validate_portfolio_results(optimal, minimum_variance, maximum_return, working, avg_corr)

    if tier == CorrelationTier.HIGH:
        optimal.method = METHOD_HIGH_CORRELATION
        optimal.stabilization_applied = True
    elif tier == CorrelationTier.MODERATE:
        optimal.method = METHOD_MODERATE_CORRELATION

    duplicates = _duplicate_optimal_allocations(optimal)
    if duplicates and len(working) >= 3:
        message = f"Some assets have identical allocations despite different metrics: {duplicates}"
        logger.warning(message)
        warnings.append(message)

    optimal_pct = optimal.allocations
    rationale = {
        asset.symbol: allocation_rationale(asset, optimal_pct.get(asset.symbol, 0.0), cfg.risk_free_rate)
        for asset in working
    }

    integrity: dict[str, IntegrityReport] = {}
    for key, name, portfolio in (
        ("optimal", "Optimal Portfolio", optimal),
        ("minimum_variance", "Minimum Variance Portfolio", minimum_variance),
        ("maximum_return", "Maximum Return Portfolio", maximum_return),
    ):
        consistency = check_portfolio_consistency(
            portfolio, working, correlation_matrix, risk_free_rate=cfg.risk_free_rate
        )
        validation.warnings.extend(consistency_issues(consistency, name))

        allocations = portfolio.allocations
        if key == "maximum_return" and any(abs(v - 100) < 0.01 for v in allocations.values()):
            continue
        report = validate_allocation_integrity(allocations, working, name, risk_free_rate=cfg.risk_free_rate)
        integrity[key] = report
        if not report.sum_valid:
            raise AllocationIntegrityError(
                report.messages[0],
                user_message=f"{name} allocations do not sum to 100% ({report.sum_pct:.4f}%)",
            )
        violations = integrity_issues(report)
        validation.integrity_violations.extend(violations)
        warnings.extend(report.messages[len(violations):])

    for issue in validation.critical_errors:
        logger.warning("Validation alert %s: %s", issue.type, issue.message)
    for issue in validation.integrity_violations:
        logger.warning("Integrity violation %s: %s", issue.type, issue.message)
    for issue in validation.warnings:
        logger.info("Validation warning [%s] %s", issue.severity, issue.message)
    logger.info(
        "Optimization complete: optimal %.2f%%/%.2f%%/%.3f, min-var %.2f%%/%.2f%%/%.3f, max-ret %.2f%%/%.2f%%/%.3f",
        optimal.expected_return, optimal.risk, optimal.sharpe_ratio,
        minimum_variance.expected_return, minimum_variance.risk, minimum_variance.sharpe_ratio,
        maximum_return.expected_return, maximum_return.risk, maximum_return.sharpe_ratio,
    )

    if metrics is not None:
        metrics.increment("optimizations_total", labels={"tier": str(tier)})
        metrics.set_gauge("average_correlation", avg_corr)
        metrics.observe("optimization_duration_seconds", time.perf_counter() - started)

    return OptimizationResult(
        optimal=optimal,
        minimum_variance=minimum_variance,
        maximum_return=maximum_return,
        validation=validation,
        quality=quality,
        return_cap_adjustments=adjustments,
        correlation_matrix=correlation_matrix,
        avg_correlation=avg_corr,
        correlation_tier=tier,
        assets=list(working),
        rationale=rationale,
        integrity=integrity,
        warnings=warnings,
    )


__all__ = [
    "OptimizationResult",
    "build_portfolio",
    "ensure_distinct_metrics",
    "optimize_max_sharpe",
    "optimize_minimum_variance",
    "optimize_maximum_return",
    "top_return_index",
    "allocation_rationale",
    "optimize_all_portfolios",
]
