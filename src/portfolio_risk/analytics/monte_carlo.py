"""
Monte Carlo simulation and tail-probability estimates.

Goal probability and recovery-time estimates are simulated in vectorized
``numpy`` batches on the :class:`~portfolio_risk.jobs.executor.BatchExecutor`;
each batch draws from its own seeded generator. Crash probabilities use a
closed-form tail approximation and need no sampling.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

import numpy as np

from portfolio_risk.jobs.executor import BatchExecutor, CancellationToken
from portfolio_risk.observability.metrics import MetricsCollector
from portfolio_risk.settings import DEFAULT_SETTINGS, EngineSettings

from .core_metrics import normal_cdf, round_to, sanitize

logger = logging.getLogger(__name__)

CRASH_THRESHOLDS = {"mild": -20.0, "moderate": -35.0, "severe": -50.0}
RECOVERY_START_VALUE = 100.0


# ---------------------------------------------------------------------------
# Shock generation
# ---------------------------------------------------------------------------


def draw_shocks(rng: np.random.Generator, size: int, *, fat_tails: bool, df: int) -> np.ndarray:
    """
    Standard-normal shocks, or Student-t shocks when ``fat_tails`` is set.

    The Student-t variate is ``z / sqrt(chi2(df) / df)``, rescaled by
    ``sqrt((df - 2) / df)`` to unit variance.
    """
    z = rng.standard_normal(size)
    if not fat_tails:
        return z
    chi_squared = rng.chisquare(df, size)
    return z / np.sqrt(chi_squared / df) * np.sqrt((df - 2) / df)


# ---------------------------------------------------------------------------
# Goal probability
# ---------------------------------------------------------------------------


@dataclass
class GoalSimulationResult:
    probability: float
    successes: int
    trials_requested: int
    trials_completed: int
    fat_tails: bool
    cancelled: bool = False
    timed_out: bool = False
    duration_seconds: float = 0.0
    seed: int | None = None

    @property
    def is_partial(self) -> bool:
        return self.trials_completed < self.trials_requested

    def to_dict(self) -> dict[str, Any]:
        return {
            "probability": self.probability,
            "successes": self.successes,
            "trials_requested": self.trials_requested,
            "trials_completed": self.trials_completed,
            "fat_tails": self.fat_tails,
            "cancelled": self.cancelled,
            "timed_out": self.timed_out,
            "duration_seconds": self.duration_seconds,
            "seed": self.seed,
        }


def _goal_batch(
    principal: float,
    monthly_contribution: float,
    monthly_return: float,
    monthly_vol: float,
    goal: float,
    months: int,
    fat_tails: bool,
    df: int,
):
    def run_batch(trials: int, rng: np.random.Generator) -> int:
        balances = np.full(trials, principal, dtype=float)
        for _ in range(months):
            shocks = draw_shocks(rng, trials, fat_tails=fat_tails, df=df)
            balances = balances * (1 + monthly_return + shocks * monthly_vol) + monthly_contribution
        return int(np.count_nonzero(balances >= goal))

    return run_batch


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
    trials: int | None = None,
    seed: int | None = None,
    token: CancellationToken | None = None,
    executor: BatchExecutor | None = None,
    metrics: MetricsCollector | None = None,
) -> GoalSimulationResult:
    """
    Simulate monthly compounding with contributions and count goal hits.

    ``annual_return`` and ``volatility`` are decimals (0.10 for 10%). A
    cancelled or timed-out run reports the probability over the trials that
    completed.
    """
    settings = settings or DEFAULT_SETTINGS
    n_trials = int(trials if trials is not None else settings.goal_trials)
    seed = seed if seed is not None else settings.seed
    executor = executor or BatchExecutor(max_workers=settings.max_workers)

    batch = _goal_batch(
        principal=sanitize(principal, 0.0),
        monthly_contribution=sanitize(monthly_contribution, 0.0),
        monthly_return=sanitize(annual_return, 0.0) / 12,
        monthly_vol=sanitize(volatility, 0.0) / math.sqrt(12),
        goal=sanitize(goal, 0.0),
        months=max(0, int(months)),
        fat_tails=fat_tails,
        df=settings.student_t_df,
    )
    outcome = executor.run(
        batch,
        n_trials,
        batch_size=settings.batch_size,
        seed=seed,
        timeout=settings.simulation_timeout_seconds,
        token=token,
    )

    successes = sum(outcome.values)
    completed = outcome.completed_trials
    probability = successes / completed if completed else 0.0

    logger.info(
        "Goal simulation: %d/%d trials, probability %.4f",
        completed,
        outcome.requested_trials,
        probability,
        extra={"event": "goal_simulation", "trials": completed, "duration_ms": outcome.duration_seconds * 1000},
    )
    if metrics is not None:
        metrics.increment("simulation_trials_total", completed, labels={"kind": "goal"})
        metrics.observe("simulation_duration_seconds", outcome.duration_seconds, labels={"kind": "goal"})

    return GoalSimulationResult(
        probability=probability,
        successes=successes,
        trials_requested=outcome.requested_trials,
        trials_completed=completed,
        fat_tails=fat_tails,
        cancelled=outcome.cancelled,
        timed_out=outcome.timed_out,
        duration_seconds=outcome.duration_seconds,
        seed=seed,
    )


def monte_carlo_goal_probability(
    principal: float,
    monthly_contribution: float,
    annual_return: float,
    volatility: float,
    goal: float,
    months: int,
    fat_tails: bool = True,
    **kwargs: Any,
) -> float:
    """Fraction of simulated paths whose final balance reaches ``goal``."""
    return run_goal_simulation(
        principal,
        monthly_contribution,
        annual_return,
        volatility,
        goal,
        months,
        fat_tails,
        **kwargs,
    ).probability


# ---------------------------------------------------------------------------
# Crash probability
# ---------------------------------------------------------------------------


def tail_probability(z: float) -> float:
    """Normal tail mass inflated by ``1 + 0.15|z|``, bounded to ``[0.001, 0.5]``."""
    adjusted = min(0.5, normal_cdf(z) * (1 + abs(z) * 0.15))
    return max(0.001, adjusted)


def crash_probability(portfolio_risk: float, target_return: float) -> dict[str, dict[str, float]]:
    """Annual and ten-year probabilities (percent) of mild, moderate and severe crashes."""
    risk = sanitize(portfolio_risk, 0.0)
    if risk <= 0:
        risk = 1e-6
    annual: dict[str, float] = {}
    ten_year: dict[str, float] = {}
    for label, threshold in CRASH_THRESHOLDS.items():
        p = tail_probability((threshold - sanitize(target_return, 0.0)) / risk)
        annual[label] = round_to(p * 100, 2)
        ten_year[label] = round_to((1 - (1 - p) ** 10) * 100, 2)
    return {"annual_probabilities": annual, "ten_year_probabilities": ten_year}


# ---------------------------------------------------------------------------
# Recovery time
# ---------------------------------------------------------------------------


def _recovery_batch(start_value: float, monthly_return: float, monthly_vol: float, max_months: int):
    def run_batch(trials: int, rng: np.random.Generator) -> np.ndarray:
        values = np.full(trials, start_value, dtype=float)
        months_taken = np.where(values >= RECOVERY_START_VALUE, 0, max_months)
        for month in range(1, max_months + 1):
            active = values < RECOVERY_START_VALUE
            if not active.any():
                break
            reversion = np.where(values < 80, 1.2, np.where(values < 90, 1.1, 1.0))
            shocks = rng.standard_normal(trials)
            step = monthly_return * reversion + shocks * monthly_vol
            values = np.where(active, values * (1 + step), values)
            recovered = active & (values >= RECOVERY_START_VALUE)
            months_taken = np.where(recovered, month, months_taken)
        return months_taken[months_taken < max_months]

    return run_batch


def estimate_recovery_time(
    drawdown_percent: float,
    expected_return: float,
    volatility: float,
    *,
    settings: EngineSettings | None = None,
    seed: int | None = None,
    token: CancellationToken | None = None,
    executor: BatchExecutor | None = None,
    metrics: MetricsCollector | None = None,
) -> dict[str, float] | None:
    """
    Simulated time (years) to climb back from ``drawdown_percent``.

    Mean reversion amplifies drift by 1.2x below 80% of the prior peak and
    by 1.1x below 90%. Returns median/p75/p90, or ``None`` when no trial
    recovers within the month cap.
    """
    settings = settings or DEFAULT_SETTINGS
    seed = seed if seed is not None else settings.seed
    executor = executor or BatchExecutor(max_workers=settings.max_workers)

    batch = _recovery_batch(
        start_value=RECOVERY_START_VALUE * (1 + sanitize(drawdown_percent, 0.0) / 100),
        monthly_return=sanitize(expected_return, 0.0) / 12 / 100,
        monthly_vol=sanitize(volatility, 0.0) / math.sqrt(12) / 100,
        max_months=settings.recovery_max_months,
    )
    outcome = executor.run(
        batch,
        settings.recovery_trials,
        batch_size=settings.batch_size,
        seed=seed,
        timeout=settings.simulation_timeout_seconds,
        token=token,
    )
    if metrics is not None:
        metrics.increment("simulation_trials_total", outcome.completed_trials, labels={"kind": "recovery"})
        metrics.observe("simulation_duration_seconds", outcome.duration_seconds, labels={"kind": "recovery"})

    times = np.sort(np.concatenate(outcome.values)) if outcome.values else np.array([])
    if times.size == 0:
        logger.info("No simulated path recovered from %.1f%% within %d months", drawdown_percent, settings.recovery_max_months)
        return None

    def pick(q: float) -> float:
        return round_to(float(times[int(math.floor(times.size * q))]) / 12, 1)

    return {"median": pick(0.5), "p75": pick(0.75), "p90": pick(0.90)}


# ---------------------------------------------------------------------------
# Crisis path
# ---------------------------------------------------------------------------


def crisis_scenario_path(
    initial_value: float,
    peak_decline: float,
    recovery_months: int,
    *,
    rng: np.random.Generator | None = None,
    seed: int | None = None,
) -> list[float]:
    """
    Monthly value path through a crash and recovery.

    The first quarter of ``recovery_months`` is a convex decline to the
    trough; the remainder recovers on a concave curve with +/-1.5% noise.
    """
    rng = rng or np.random.default_rng(seed)
    total = max(0, int(recovery_months))
    crash_months = int(round_to(total * 0.25, 0))
    recovery_phase = total - crash_months

    path = [float(initial_value)]
    for month in range(1, crash_months + 1):
        progress = month / crash_months
        path.append(round_to(initial_value * (1 + peak_decline / 100 * progress ** 1.5), 0))

    bottom = path[-1]
    noise = rng.random(recovery_phase)
    for month in range(1, recovery_phase + 1):
        progress = month / recovery_phase
        base = bottom + (initial_value - bottom) * progress ** 0.7
        path.append(round_to(base + (noise[month - 1] - 0.5) * initial_value * 0.03, 0))
    return path


__all__ = [
    "GoalSimulationResult",
    "draw_shocks",
    "run_goal_simulation",
    "monte_carlo_goal_probability",
    "tail_probability",
    "crash_probability",
    "estimate_recovery_time",
    "crisis_scenario_path",
]
