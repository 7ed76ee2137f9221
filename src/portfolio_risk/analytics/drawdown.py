"""
Drawdown estimates, kept separate by provenance.

Historical, statistical-tail and theoretical drawdowns answer different
questions and are never merged into one number. Each view carries its own
label, confidence tier and display priority
(historical > statistical 95th > statistical 99th > theoretical).
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Sequence

from .core_metrics import clamp, round_to, sanitize

logger = logging.getLogger(__name__)

DRAWDOWN_FLOOR = -85.0
DRAWDOWN_CEILING = -8.0
MIN_HISTORY_POINTS = 12

# Student-t (df=5) one-sided critical values
T_CRITICAL_95 = 2.015
T_CRITICAL_99 = 3.365
NORMAL_CRITICAL_99 = 2.33

STATISTICAL_METHODOLOGY = "Student's t-distribution (df=5) with drift adjustment"


def _decimal_inputs(volatility: Any, time_horizon: Any, expected_return: Any) -> tuple[float, float, float]:
    sigma = sanitize(volatility, 20.0) / 100
    mu = sanitize(expected_return, 10.0) / 100
    horizon = sanitize(time_horizon, 10.0)
    return sigma, mu, max(horizon, 0.0)


def expected_max_drawdown(volatility: float, time_horizon: float, expected_return: float) -> float:
    """
    Closed-form expected maximum drawdown in percent.

    ``DD = -2σ√T + μT`` with σ, μ as decimals and T in years, bounded to
    ``[-85, -8]``. Non-finite inputs fall back to 20% volatility, 10% return
    and a ten year horizon.
    """
    sigma, mu, horizon = _decimal_inputs(volatility, time_horizon, expected_return)
    drawdown = (-2 * sigma * math.sqrt(horizon) + mu * horizon) * 100
    return clamp(sanitize(drawdown, DRAWDOWN_FLOOR), DRAWDOWN_FLOOR, DRAWDOWN_CEILING)


def enhanced_drawdown(portfolio_risk: float, time_horizon: float, expected_return: float) -> dict[str, float]:
    """Standard drawdown next to a 99% normal-tail drawdown (floored at -99)."""
    sigma, mu, horizon = _decimal_inputs(portfolio_risk, time_horizon, expected_return)
    dd95 = expected_max_drawdown(portfolio_risk, time_horizon, expected_return)
    dd99 = (-NORMAL_CRITICAL_99 * sigma * math.sqrt(horizon) + mu * horizon) * 100
    return {
        "standard": round_to(dd95, 0),
        "tail_risk": round_to(max(-99.0, dd99), 0),
        "delta": round_to(dd99 - dd95, 0),
    }


# ---------------------------------------------------------------------------
# Decomposition
# ---------------------------------------------------------------------------


def calculate_historical_drawdown(historical_returns: Sequence[float] | None) -> float | None:
    """
    Worst peak-to-trough decline of a monthly return series, in percent.

    Returns ``None`` for fewer than 12 observations.
    """
    if historical_returns is None or len(historical_returns) < MIN_HISTORY_POINTS:
        return None

    cumulative = 1.0
    peak = 1.0
    max_drawdown = 0.0
    for monthly_return in historical_returns:
        cumulative *= 1 + sanitize(monthly_return, 0.0)
        peak = max(peak, cumulative)
        if peak > 0:
            max_drawdown = min(max_drawdown, (cumulative - peak) / peak)
    return clamp(max_drawdown * 100, DRAWDOWN_FLOOR, 0.0)


def calculate_statistical_drawdown(
    volatility: float,
    time_horizon: float,
    expected_return: float,
) -> dict[str, Any]:
    sigma, mu, horizon = _decimal_inputs(volatility, time_horizon, expected_return)
    root_t = math.sqrt(horizon)
    dd95 = (-T_CRITICAL_95 * sigma * root_t + mu * horizon) * 100
    dd99 = (-T_CRITICAL_99 * sigma * root_t + mu * horizon) * 100
    return {
        "percentile95": clamp(dd95, DRAWDOWN_FLOOR, -8.0),
        "percentile99": clamp(dd99, DRAWDOWN_FLOOR, -10.0),
        "confidence": "95%",
        "methodology": STATISTICAL_METHODOLOGY,
    }


def calculate_theoretical_extreme(
    volatility: float,
    portfolio_beta: float,
    avg_correlation: float,
) -> float:
    """3-sigma move plus beta amplification, correlation spike and a liquidity haircut."""
    sigma = sanitize(volatility, 20.0)
    beta = sanitize(portfolio_beta, 1.0)
    corr = sanitize(avg_correlation, 0.5)

    base = -3 * sigma
    beta_amplification = abs(beta - 1) * 15
    correlation_breakdown = 10 if corr > 0.6 else 5
    liquidity = 10
    return clamp(base - beta_amplification - correlation_breakdown - liquidity, DRAWDOWN_FLOOR, -15.0)


@dataclass
class DrawdownView:
    value: float | None
    label: str
    confidence: str
    display_priority: int
    description: str = ""
    available: bool = True
    methodology: str | None = None
    explanation: str | None = None
    disclaimer: str | None = None
    visual_emphasis: str | None = None
    ui_guidance: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None or key == "value"}


def _default_presentation_rules() -> dict[str, Any]:
    return {
        "never_merge": True,
        "use_clear_labels": True,
        "prioritize_statistical": True,
        "de_emphasize_theoretical": True,
        "forbidden_language": ["expected extreme", "likely worst-case", "forecast"],
        "required_language": ["illustrative", "educational model", "theoretical scenario"],
    }


@dataclass
class DrawdownDecomposition:
    historical: DrawdownView
    percentile95: DrawdownView
    percentile99: DrawdownView
    theoretical: DrawdownView
    presentation_rules: dict[str, Any] = field(default_factory=_default_presentation_rules)

    @property
    def views(self) -> list[DrawdownView]:
        """All views ordered by display priority."""
        return sorted(
            [self.historical, self.percentile95, self.percentile99, self.theoretical],
            key=lambda view: view.display_priority,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "historical": self.historical.to_dict(),
            "statistical": {
                "percentile95": self.percentile95.to_dict(),
                "percentile99": self.percentile99.to_dict(),
            },
            "theoretical": self.theoretical.to_dict(),
            "presentation_rules": dict(self.presentation_rules),
        }


def decompose_drawdowns(
    volatility: float,
    time_horizon: float,
    expected_return: float,
    portfolio_beta: float = 1.0,
    avg_correlation: float = 0.5,
    historical_returns: Sequence[float] | None = None,
) -> DrawdownDecomposition:
    historical_value = calculate_historical_drawdown(historical_returns)
    available = historical_value is not None
    historical = DrawdownView(
        value=historical_value,
        label="Historical Worst-Case",
        confidence="Based on actual past data" if available else "Insufficient data",
        display_priority=1,
        description="Maximum decline observed in available historical data",
        available=available,
    )

    statistical = calculate_statistical_drawdown(volatility, time_horizon, expected_return)
    percentile95 = DrawdownView(
        value=statistical["percentile95"],
        label="Statistical Tail (95th %ile)",
        confidence="High",
        display_priority=2,
        description="Expected worst-case in 1-in-20 years scenario",
        methodology=statistical["methodology"],
    )
    percentile99 = DrawdownView(
        value=statistical["percentile99"],
        label="Statistical Tail (99th %ile)",
        confidence="Medium",
        display_priority=3,
        description="Extreme tail event (1-in-100 years)",
        methodology=statistical["methodology"],
    )

    theoretical = DrawdownView(
        value=calculate_theoretical_extreme(volatility, portfolio_beta, avg_correlation),
        label="Theoretical Extreme (Educational)",
        confidence="Illustrative Model",
        display_priority=4,
        explanation=(
            "Combines 3-sigma move, beta amplification, correlation spike, and liquidity crisis. "
            "Probability <1% but non-zero."
        ),
        disclaimer="This is a mathematical scenario, not a forecast or expected outcome",
        visual_emphasis="de-emphasize",
        ui_guidance="Display with muted styling and explicit educational disclaimer",
    )

    logger.debug(
        "Drawdown decomposition: historical=%s p95=%.1f p99=%.1f theoretical=%.1f",
        historical_value,
        percentile95.value,
        percentile99.value,
        theoretical.value,
    )
    return DrawdownDecomposition(
        historical=historical,
        percentile95=percentile95,
        percentile99=percentile99,
        theoretical=theoretical,
    )


__all__ = [
    "DRAWDOWN_FLOOR",
    "DRAWDOWN_CEILING",
    "DrawdownView",
    "DrawdownDecomposition",
    "expected_max_drawdown",
    "enhanced_drawdown",
    "calculate_historical_drawdown",
    "calculate_statistical_drawdown",
    "calculate_theoretical_extreme",
    "decompose_drawdowns",
]
