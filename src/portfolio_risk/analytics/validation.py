"""
Consistency and integrity validation for optimizer output.

Recomputation parity checks compare a reported figure against one rebuilt
from the inputs. Cross-portfolio checks flag ordering anomalies and
correlation tiers. Integrity checks detect weight-sum defects and
duplicate allocations for assets with distinguishable metrics.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from portfolio_risk.common.enums import Severity
from portfolio_risk.models import Asset, Portfolio, ValidationIssue, ValidationReport

from .core_metrics import (
    RISK_FREE_RATE,
    Matrix,
    herfindahl_index,
    portfolio_expected_return,
    portfolio_risk,
    round_to,
    safe_divide,
    sharpe_ratio,
)

logger = logging.getLogger(__name__)

WEIGHT_SUM_TOLERANCE = 0.001
RETURN_TOLERANCE = 0.01
RISK_TOLERANCE = 0.1
SHARPE_TOLERANCE = 0.01
ALLOCATION_SUM_TOLERANCE_PCT = 0.1

EXTREME_CORRELATION_THRESHOLD = 0.75
HIGH_CORRELATION_THRESHOLD = 0.6
MODERATE_CORRELATION_THRESHOLD = 0.5


# ---------------------------------------------------------------------------
# Recomputation parity
# ---------------------------------------------------------------------------


@dataclass
class ConsistencyCheck:
    name: str
    valid: bool
    message: str
    expected: float | None = None
    actual: float | None = None
    corrected: Any = None


@dataclass
class ConsistencyReport:
    checks: dict[str, ConsistencyCheck]

    @property
    def consistent(self) -> bool:
        return all(check.valid for check in self.checks.values())

    @property
    def summary(self) -> str:
        if self.consistent:
            return "All portfolio metrics are internally consistent"
        return "Some portfolio metrics are inconsistent and have been corrected"


def check_weights(weights: Sequence[float], tolerance: float = WEIGHT_SUM_TOLERANCE) -> ConsistencyCheck:
    """Weights must sum to 1 within ``tolerance``; otherwise a rescaled copy is attached."""
    if not weights:
        return ConsistencyCheck("weights", False, "No weights provided", corrected=[])
    total = sum(weights)
    if abs(total - 1.0) <= tolerance:
        return ConsistencyCheck(
            "weights", True, "Weights sum to 100%", expected=1.0, actual=round_to(total, 6),
            corrected=list(weights),
        )
    adjusted = [round_to(safe_divide(w, total, 0.0), 6) for w in weights]
    return ConsistencyCheck(
        "weights",
        False,
        f"Weights sum to {round_to(total * 100, 2)}%, adjusted to 100%",
        expected=1.0,
        actual=round_to(total, 6),
        corrected=adjusted,
    )


def check_portfolio_return(
    weights: Sequence[float],
    returns: Sequence[float],
    reported_return: float,
    tolerance: float = RETURN_TOLERANCE,
) -> ConsistencyCheck:
    if len(weights) != len(returns):
        return ConsistencyCheck("portfolio_return", False, "Mismatched weights and returns arrays")
    expected = portfolio_expected_return(weights, returns)
    if abs(expected - reported_return) <= tolerance:
        return ConsistencyCheck(
            "portfolio_return", True, "Portfolio return is consistent",
            expected=expected, actual=reported_return,
        )
    return ConsistencyCheck(
        "portfolio_return",
        False,
        f"Portfolio return inconsistent. Expected {round_to(expected, 2)}%, got {round_to(reported_return, 2)}%",
        expected=expected,
        actual=reported_return,
        corrected=round_to(expected, 4),
    )


def check_portfolio_risk(
    weights: Sequence[float],
    risks: Sequence[float],
    correlation_matrix: Matrix,
    reported_risk: float,
    tolerance: float = RISK_TOLERANCE,
) -> ConsistencyCheck:
    if not weights or not risks or not correlation_matrix:
        return ConsistencyCheck("portfolio_risk", False, "Missing required inputs for risk validation")
    expected = portfolio_risk(weights, risks, correlation_matrix)
    if abs(expected - reported_risk) <= tolerance:
        return ConsistencyCheck(
            "portfolio_risk", True, "Portfolio risk is consistent",
            expected=expected, actual=reported_risk,
        )
    return ConsistencyCheck(
        "portfolio_risk",
        False,
        f"Portfolio risk inconsistent. Expected {round_to(expected, 2)}%, got {round_to(reported_risk, 2)}%",
        expected=expected,
        actual=reported_risk,
        corrected=round_to(expected, 4),
    )


def check_sharpe_ratio(
    reported_return: float,
    reported_risk: float,
    risk_free_rate: float,
    reported_sharpe: float,
    tolerance: float = SHARPE_TOLERANCE,
) -> ConsistencyCheck:
    if reported_risk == 0:
        return ConsistencyCheck("sharpe_ratio", False, "Cannot calculate Sharpe ratio with zero risk")
    expected = sharpe_ratio(reported_return, reported_risk, risk_free_rate)
    if abs(expected - reported_sharpe) <= tolerance:
        return ConsistencyCheck(
            "sharpe_ratio", True, "Sharpe ratio is consistent",
            expected=expected, actual=reported_sharpe,
        )
    return ConsistencyCheck(
        "sharpe_ratio",
        False,
        f"Sharpe ratio inconsistent. Expected {round_to(expected, 3)}, got {round_to(reported_sharpe, 3)}",
        expected=expected,
        actual=reported_sharpe,
        corrected=round_to(expected, 4),
    )


def check_portfolio_consistency(
    portfolio: Portfolio,
    assets: Sequence[Asset],
    correlation_matrix: Matrix,
    risk_free_rate: float = RISK_FREE_RATE,
) -> ConsistencyReport:
    """Run every parity check against one optimizer portfolio."""
    symbols = [asset.symbol for asset in assets]
    weights = portfolio.weight_vector(symbols)
    returns = [asset.expected_return for asset in assets]
    risks = [asset.risk for asset in assets]
    checks = {
        "weights": check_weights(weights),
        "portfolio_return": check_portfolio_return(weights, returns, portfolio.expected_return),
        "portfolio_risk": check_portfolio_risk(weights, risks, correlation_matrix, portfolio.risk),
        "sharpe_ratio": check_sharpe_ratio(
            portfolio.expected_return, portfolio.risk, risk_free_rate, portfolio.sharpe_ratio
        ),
    }
    return ConsistencyReport(checks=checks)


def consistency_issues(report: ConsistencyReport, portfolio_name: str) -> list[ValidationIssue]:
    """Failed parity checks as high-severity validation issues."""
    return [
        ValidationIssue(
            type="consistency",
            message=f"{portfolio_name}: {check.message}",
            severity=Severity.HIGH,
            detail=check.name,
        )
        for check in report.checks.values()
        if not check.valid
    ]


# ---------------------------------------------------------------------------
# Allocation feasibility
# ---------------------------------------------------------------------------


@dataclass
class AllocationCheck:
    valid: bool
    errors: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[dict[str, Any]] = field(default_factory=list)
    metrics: dict[str, float] = field(default_factory=dict)

    @property
    def summary(self) -> str:
        if self.valid:
            return f"Valid allocation with {len(self.warnings)} warnings"
        return f"Invalid allocation with {len(self.errors)} errors"


def validate_allocation(
    weights: Sequence[float],
    *,
    max_position: float = 0.40,
    min_position: float = 0.01,
    max_positions: int = 50,
    require_diversification: bool = True,
) -> AllocationCheck:
    """Check a decimal weight vector against position-size and concentration limits."""
    errors: list[dict[str, Any]] = []
    warnings: list[dict[str, Any]] = []

    total = sum(weights)
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
        errors.append({
            "type": "sum_constraint",
            "message": f"Weights sum to {round_to(total * 100, 2)}% instead of 100%",
        })

    for idx, w in enumerate(weights):
        if w < 0:
            errors.append({
                "type": "negative_weight",
                "asset_index": idx,
                "message": f"Asset {idx} has negative weight {round_to(w * 100, 2)}%",
            })
        if w > max_position:
            warnings.append({
                "type": "max_position",
                "asset_index": idx,
                "message": (
                    f"Asset {idx} exceeds max position size "
                    f"({round_to(w * 100, 1)}% > {round_to(max_position * 100, 1)}%)"
                ),
            })
        if 0 < w < min_position:
            warnings.append({
                "type": "dust_position",
                "asset_index": idx,
                "message": f"Asset {idx} has very small position ({round_to(w * 100, 2)}%)",
            })

    positions = sum(1 for w in weights if w >= min_position)
    if positions > max_positions:
        warnings.append({
            "type": "too_many_positions",
            "message": f"{positions} positions exceeds recommended maximum of {max_positions}",
        })

    hhi = herfindahl_index(weights)
    if require_diversification and hhi > 0.25:
        warnings.append({
            "type": "high_concentration",
            "message": f"Portfolio is highly concentrated (HHI: {round_to(hhi, 3)})",
        })

    return AllocationCheck(
        valid=not errors,
        errors=errors,
        warnings=warnings,
        metrics={
            "sum": round_to(total, 6),
            "non_zero_positions": float(positions),
            "max_weight": round_to(max(weights, default=0.0) * 100, 1),
            "hhi": round_to(hhi, 4),
        },
    )


# ---------------------------------------------------------------------------
# Cross-portfolio validation
# ---------------------------------------------------------------------------


def _spread(values: Sequence[float]) -> float:
    return max(values) - min(values) if values else 0.0


def validate_portfolio_results(
    optimal: Portfolio,
    minimum_variance: Portfolio,
    maximum_return: Portfolio,
    assets: Sequence[Asset],
    avg_correlation: float,
) -> ValidationReport:
    """Correlation-tier gating plus ordering and diversity sanity checks."""
    report = ValidationReport()
    pct = round_to(avg_correlation * 100, 0)

    if avg_correlation > EXTREME_CORRELATION_THRESHOLD:
        report.critical_errors.append(
            ValidationIssue(
                type="extreme_correlation",
                message="Efficient frontier disabled due to extreme asset similarity",
                severity=Severity.CRITICAL,
                detail=(
                    f"Average correlation: {pct:.0f}%. MPT requires diversification. You can still "
                    "view individual metrics, projections, and scenario analysis."
                ),
                recoverable=False,
            )
        )
    elif avg_correlation > HIGH_CORRELATION_THRESHOLD:
        report.warnings.append(
            ValidationIssue(
                type="high_correlation",
                severity=Severity.HIGH,
                message=(
                    f"High asset correlation ({pct:.0f}%). Stabilization applied - results should "
                    "be interpreted with caution."
                ),
            )
        )
    elif avg_correlation >= MODERATE_CORRELATION_THRESHOLD:
        report.warnings.append(
            ValidationIssue(
                type="moderate_correlation",
                severity=Severity.MEDIUM,
                message=f"Moderate asset correlation ({pct:.0f}%). Diversification benefits are limited.",
            )
        )

    portfolios = (optimal, minimum_variance, maximum_return)
    min_risk = min(p.risk for p in portfolios)
    max_ret = max(p.expected_return for p in portfolios)
    max_sharpe = max(p.sharpe_ratio for p in portfolios)

    if minimum_variance.risk > min_risk + 0.5:
        report.warnings.append(
            ValidationIssue(
                type="risk_ordering",
                message=(
                    f"Minimum Variance portfolio risk ({minimum_variance.risk:.1f}%) is not the absolute "
                    "minimum. This can occur with highly correlated assets."
                ),
            )
        )
    if maximum_return.expected_return < max_ret - 0.5:
        report.warnings.append(
            ValidationIssue(
                type="return_ordering",
                message=(
                    f"Maximum Return portfolio ({maximum_return.expected_return:.1f}%) may not be fully "
                    "optimized. Consider reviewing allocations."
                ),
            )
        )
    if optimal.sharpe_ratio < max_sharpe - 0.1:
        report.warnings.append(
            ValidationIssue(
                type="sharpe_ordering",
                severity=Severity.LOW,
                message="Sharpe ratio ordering suggests portfolio constraints may be affecting optimization.",
            )
        )

    return_spread = _spread([a.expected_return for a in assets])
    risk_spread = _spread([a.risk for a in assets])
    if return_spread < 2.0 or risk_spread < 5.0:
        report.warnings.append(
            ValidationIssue(
                type="low_diversity",
                message=(
                    f"Assets show limited variation (return spread: {return_spread:.1f}%, risk spread: "
                    f"{risk_spread:.1f}%). Diversification potential is constrained by asset selection."
                ),
            )
        )

    return report


# ---------------------------------------------------------------------------
# Allocation integrity
# ---------------------------------------------------------------------------


@dataclass
class IntegrityReport:
    portfolio_name: str
    sum_pct: float
    sum_valid: bool = True
    duplicate_groups: dict[str, list[str]] = field(default_factory=dict)
    low_sharpe_allocations: list[str] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.sum_valid and not self.duplicate_groups


def _metric_signature(asset: Asset, risk_free_rate: float) -> str:
    sharpe = safe_divide(asset.expected_return - risk_free_rate, asset.risk, 0.0)
    return f"{asset.expected_return:.2f}_{asset.risk:.2f}_{sharpe:.3f}"


def validate_allocation_integrity(
    allocations: Mapping[str, float],
    assets: Sequence[Asset],
    portfolio_name: str = "Portfolio",
    *,
    risk_free_rate: float = RISK_FREE_RATE,
) -> IntegrityReport:
    """
    Check percentage allocations for sum and uniqueness defects.

    Allocations must sum to 100 within 0.1 percentage points. When every asset
    has a distinct (return, risk, Sharpe) signature, no two allocations may
    coincide at one decimal place. High-Sharpe assets holding less than 70% of
    the second-largest allocation are reported but do not fail the check.
    """
    values = list(allocations.values())
    total = sum(values)
    report = IntegrityReport(portfolio_name=portfolio_name, sum_pct=total)

    if abs(total - 100.0) > ALLOCATION_SUM_TOLERANCE_PCT:
        report.sum_valid = False
        message = f"{portfolio_name}: Allocations sum to {total:.4f}%, expected 100%"
        report.messages.append(message)
        logger.error(message)
        return report

    by_symbol = {asset.symbol: asset for asset in assets}
    signatures = {_metric_signature(asset, risk_free_rate) for asset in assets}
    rounded = {symbol: f"{value:.1f}" for symbol, value in allocations.items()}

    if len(set(rounded.values())) < len(values) and len(signatures) == len(values):
        groups: dict[str, list[str]] = {}
        for symbol, key in rounded.items():
            groups.setdefault(key, []).append(symbol)
        report.duplicate_groups = {key: syms for key, syms in groups.items() if len(syms) > 1}
        message = (
            f"{portfolio_name}: ALLOCATION UNIQUENESS VIOLATION - assets with different metrics "
            f"received identical allocations {report.duplicate_groups}"
        )
        report.messages.append(message)
        logger.error(message)
        return report

    ranked = sorted(
        (
            (symbol, weight, safe_divide(by_symbol[symbol].expected_return - risk_free_rate, by_symbol[symbol].risk))
            for symbol, weight in allocations.items()
            if symbol in by_symbol
        ),
        key=lambda item: item[2],
        reverse=True,
    )
    ordered_allocations = sorted(values, reverse=True)
    if len(ordered_allocations) >= 2:
        threshold = ordered_allocations[1] * 0.7
        for symbol, weight, sharpe in ranked[:2]:
            if weight < threshold:
                report.low_sharpe_allocations.append(symbol)
                message = (
                    f"{portfolio_name}: Asset {symbol} has Sharpe {sharpe:.3f} but allocation "
                    f"{weight:.1f}% is low"
                )
                report.messages.append(message)
                logger.warning(message)

    logger.debug(
        "%s: allocation integrity validated (sum %.2f%%, unique %d/%d, range %.1f%%-%.1f%%)",
        portfolio_name,
        total,
        len(set(rounded.values())),
        len(values),
        min(values, default=0.0),
        max(values, default=0.0),
    )
    return report


def integrity_issues(report: IntegrityReport) -> list[ValidationIssue]:
    """Sum and uniqueness defects from ``report`` as critical validation issues."""
    if report.passed:
        return []
    issue_type = "allocation_sum" if not report.sum_valid else "allocation_uniqueness"
    return [
        ValidationIssue(
            type=issue_type,
            message=report.messages[0],
            severity=Severity.CRITICAL,
            detail=report.portfolio_name,
            recoverable=False,
        )
    ]


__all__ = [
    "ConsistencyCheck",
    "ConsistencyReport",
    "AllocationCheck",
    "IntegrityReport",
    "check_weights",
    "check_portfolio_return",
    "check_portfolio_risk",
    "check_sharpe_ratio",
    "check_portfolio_consistency",
    "consistency_issues",
    "validate_allocation",
    "validate_portfolio_results",
    "validate_allocation_integrity",
    "integrity_issues",
]
