"""
Public entry points.

Each function validates its inputs at the boundary, runs one calculation on
its own snapshot of the inputs and returns either a report value or a
:data:`~portfolio_risk.result.Result`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Sequence

from .analytics import forward_risk, monte_carlo, optimizer, stress
from .analytics.correlation import get_correlation_matrix
from .analytics.core_metrics import Matrix, round_to, validate_weights
from .common.enums import CorrelationTier
from .errors import (
    DuplicateSymbolError,
    ExtremeCorrelationError,
    IdenticalMetricsError,
    NumericDegeneracyError,
    SingularMatrixError,
)
from .jobs.executor import BatchExecutor, CancellationToken
from .models import Asset, StressScenario, VixData, coerce_assets
from .observability.metrics import MetricsCollector
from .result import Err, Ok, Result
from .settings import DEFAULT_SETTINGS, EngineSettings

logger = logging.getLogger(__name__)


def _checked_weights(assets: Sequence[Asset], weights: Sequence[float]) -> list[float]:
    values = [float(w) for w in weights]
    if len(values) != len(assets):
        raise ValueError(f"Expected {len(assets)} weights, got {len(values)}")
    if not validate_weights(values, tolerance=0.01):
        logger.warning("Weights sum to %.4f, expected 1.0", sum(values))
    return values


# ---------------------------------------------------------------------------
# Optimization
# ---------------------------------------------------------------------------


def optimize_all_portfolios(
    assets: Sequence[Asset | Mapping[str, Any]],
    settings: EngineSettings | None = None,
    *,
    correlation_table: optimizer.CorrelationTable | None = None,
    metrics: MetricsCollector | None = None,
) -> Result[optimizer.OptimizationResult]:
    """
    Optimal, minimum-variance and maximum-return portfolios for ``assets``.

    Returns ``Err`` for duplicate symbols, identical asset metrics, numeric
    failures and the extreme correlation tier. A weight-sum violation raises
    :class:`~portfolio_risk.errors.AllocationIntegrityError`.
    """
    cfg = settings or DEFAULT_SETTINGS
    try:
        records = coerce_assets(assets)
    except DuplicateSymbolError as exc:
        logger.error("Optimization rejected: %s", exc)
        return Err.from_exception(exc)

    try:
        result = optimizer.optimize_all_portfolios(
            records, cfg, correlation_table=correlation_table, metrics=metrics
        )
    except IdenticalMetricsError as exc:
        logger.error("Optimization rejected: %s", exc)
        return Err.from_exception(exc)
    except (SingularMatrixError, NumericDegeneracyError) as exc:
        logger.error("Optimization failed: %s", exc)
        return Err.from_exception(exc)

    if result.correlation_tier == CorrelationTier.EXTREME:
        pct = round_to(result.avg_correlation * 100, 0)
        exc = ExtremeCorrelationError(
            f"Average pairwise correlation {result.avg_correlation:.3f} exceeds 0.75",
            user_message=(
                f"Average correlation of {pct:.0f}% is too high for a meaningful optimization. "
                "Add assets from different sectors or asset classes."
            ),
        )
        logger.warning("Optimization blocked: %s", exc)
        return Err.from_exception(
            exc,
            quality=result.quality,
            validation=result.validation,
            return_cap_adjustments=result.return_cap_adjustments,
            avg_correlation=result.avg_correlation,
        )

    warnings = list(result.warnings)
    warnings.extend(issue.message for issue in result.validation.warnings)
    warnings.extend(issue.message for issue in result.validation.critical_errors)
    warnings.extend(issue.message for issue in result.validation.integrity_violations)
    return Ok(result, warnings=tuple(warnings))


# ---------------------------------------------------------------------------
# Forward-looking risk
# ---------------------------------------------------------------------------


def calculate_forward_looking_risk(
    assets: Sequence[Asset | Mapping[str, Any]],
    weights: Sequence[float],
    correlation_matrix: Matrix | None = None,
    vix_data: VixData | Mapping[str, Any] | None = None,
) -> forward_risk.ForwardRiskReport | None:
    """Regime-adjusted portfolio risk, or ``None`` when VIX data is missing or inputs are invalid."""
    records = coerce_assets(assets)
    corr = correlation_matrix if correlation_matrix is not None else get_correlation_matrix(records)
    return forward_risk.calculate_forward_looking_risk(records, weights, corr, vix_data)


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------


def run_goal_simulation(
    principal: float,
    monthly_contribution: float,
    annual_return: float,
    volatility: float,
    goal: float,
    months: int,
    fat_tails: bool = True,
    *,
    settings: EngineSettings | None = None,
    seed: int | None = None,
    token: CancellationToken | None = None,
    executor: BatchExecutor | None = None,
    metrics: MetricsCollector | None = None,
) -> monte_carlo.GoalSimulationResult:
    """Goal simulation with trial counts and cancellation/timeout flags."""
    if months < 0:
        raise ValueError("months must be non-negative")
    return monte_carlo.run_goal_simulation(
        principal,
        monthly_contribution,
        annual_return,
        volatility,
        goal,
        months,
        fat_tails,
        settings=settings,
        seed=seed,
        token=token,
        executor=executor,
        metrics=metrics,
    )


def monte_carlo_goal_probability(
    principal: float,
    monthly_contribution: float,
    annual_return: float,
    volatility: float,
    goal: float,
    months: int,
    fat_tails: bool = True,
    *,
    settings: EngineSettings | None = None,
    seed: int | None = None,
) -> float:
    """Probability in ``[0, 1]`` that the balance reaches ``goal`` after ``months``."""
    return run_goal_simulation(
        principal,
        monthly_contribution,
        annual_return,
        volatility,
        goal,
        months,
        fat_tails,
        settings=settings,
        seed=seed,
    ).probability


# ---------------------------------------------------------------------------
# Stress testing
# ---------------------------------------------------------------------------


def calculate_stress_impact(
    assets: Sequence[Asset | Mapping[str, Any]],
    weights: Sequence[float],
    scenario_key: str | StressScenario,
    *,
    scenarios: Mapping[str, StressScenario] | None = None,
) -> stress.StressReport | None:
    """Scenario stress report, or ``None`` for an unknown scenario key."""
    records = coerce_assets(assets)
    return stress.calculate_stress_impact(
        records, _checked_weights(records, weights), scenario_key, scenarios=scenarios
    )


__all__ = [
    "optimize_all_portfolios",
    "calculate_forward_looking_risk",
    "run_goal_simulation",
    "monte_carlo_goal_probability",
    "calculate_stress_impact",
]
