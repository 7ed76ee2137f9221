"""
Alternative allocation heuristics.

Closed-form weightings that need no matrix inversion: inverse volatility,
row-sum minimum variance, 1/n, correlation-adjusted maximum
diversification, a correlation-penalised inverse variance (HRP-lite) and a
market/return blend in the spirit of Black-Litterman. Weights are rounded
to four decimals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Sequence

from portfolio_risk.models import Asset

from .core_metrics import (
    RISK_FREE_RATE,
    Matrix,
    portfolio_expected_return,
    portfolio_risk,
    round_to,
    safe_divide,
    sharpe_ratio,
)
from .correlation import get_correlation_matrix

logger = logging.getLogger(__name__)

HeuristicMethod = Literal[
    "risk_parity", "min_variance", "equal_weight", "max_diversification", "hrp", "black_litterman"
]

HRP_CORRELATION_THRESHOLD = 0.7
HRP_PENALTY = 0.95
BLACK_LITTERMAN_MARKET_SHARE = 0.7


def _to_fixed(values: Sequence[float], digits: int = 4) -> list[float]:
    return [round_to(v, digits) for v in values]


def _normalize(values: Sequence[float]) -> list[float]:
    total = sum(values)
    if total <= 0:
        return [1.0 / len(values)] * len(values) if values else []
    return [v / total for v in values]


# ---------------------------------------------------------------------------
# Weighting schemes
# ---------------------------------------------------------------------------


def risk_parity_weights(risks: Sequence[float]) -> list[float]:
    """Inverse-volatility weights."""
    return _to_fixed(_normalize([safe_divide(1.0, r, 0.0) for r in risks]))


def minimum_variance_weights(risks: Sequence[float], correlations: Matrix) -> list[float]:
    """Weights inversely proportional to covariance row sums."""
    n = len(risks)
    row_sums = [
        sum((risks[i] / 100) * (risks[j] / 100) * correlations[i][j] for j in range(n))
        for i in range(n)
    ]
    return _to_fixed(_normalize([safe_divide(1.0, s, 0.0) for s in row_sums]))


def equal_weights(n: int) -> list[float]:
    if n <= 0:
        return []
    return [round_to(1.0 / n, 4)] * n


def max_diversification_weights(risks: Sequence[float], correlations: Matrix) -> list[float]:
    """Inverse of volatility inflated by each asset's average off-diagonal correlation."""
    n = len(risks)
    if n == 1:
        return [1.0]
    avg_corr = [(sum(row) - 1) / (n - 1) for row in correlations]
    adjusted = [r * (1 + avg_corr[i]) for i, r in enumerate(risks)]
    return _to_fixed(_normalize([safe_divide(1.0, a, 0.0) for a in adjusted]))


def hrp_weights(risks: Sequence[float], correlations: Matrix) -> list[float]:
    """Inverse variance, shrunk by 5% for every peer correlated above 0.7."""
    n = len(risks)
    weights = _normalize([safe_divide(1.0, r * r, 0.0) for r in risks])
    for i in range(n):
        crowded = sum(1 for j in range(n) if i != j and correlations[i][j] > HRP_CORRELATION_THRESHOLD)
        weights[i] *= HRP_PENALTY ** crowded
    return _to_fixed(_normalize(weights))


def black_litterman_weights(
    market_weights: Sequence[float],
    expected_returns: Sequence[float],
    risks: Sequence[float],
) -> list[float]:
    """70% market weights blended with 30% return-per-unit-risk weights."""
    scores = [safe_divide(r, risks[i], 0.0) for i, r in enumerate(expected_returns)]
    total = sum(scores)
    view_weights = [safe_divide(s, total, 0.0) for s in scores]
    share = BLACK_LITTERMAN_MARKET_SHARE
    return _to_fixed([share * mw + (1 - share) * view_weights[i] for i, mw in enumerate(market_weights)])


def market_cap_weights(assets: Sequence[Asset]) -> list[float]:
    """Cap-weighted market portfolio; equal weight when any cap is unknown."""
    caps = [asset.market_cap_billions for asset in assets]
    if not caps or any(cap is None or cap <= 0 for cap in caps):
        return [1.0 / len(assets)] * len(assets) if assets else []
    return _normalize([float(cap) for cap in caps])


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


@dataclass
class HeuristicPortfolioResult:
    method: HeuristicMethod
    weights: dict[str, float]
    expected_return_pct: float
    expected_volatility_pct: float
    expected_sharpe: float
    notes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "weights": dict(self.weights),
            "expected_return_pct": self.expected_return_pct,
            "expected_volatility_pct": self.expected_volatility_pct,
            "expected_sharpe": self.expected_sharpe,
            "notes": list(self.notes),
        }


def construct_heuristic_portfolio(
    assets: Sequence[Asset],
    method: HeuristicMethod,
    correlation_matrix: Matrix | None = None,
    market_weights: Sequence[float] | None = None,
    *,
    risk_free_rate: float = RISK_FREE_RATE,
) -> HeuristicPortfolioResult:
    """Multi-method heuristic portfolio construction."""
    if not assets:
        return HeuristicPortfolioResult(
            method=method, weights={}, expected_return_pct=0.0, expected_volatility_pct=0.0, expected_sharpe=0.0
        )

    risks = [a.risk for a in assets]
    returns = [a.expected_return for a in assets]
    corr = correlation_matrix if correlation_matrix is not None else get_correlation_matrix(list(assets))
    notes: list[str] = []

    if method == "risk_parity":
        weights = risk_parity_weights(risks)
    elif method == "min_variance":
        weights = minimum_variance_weights(risks, corr)
    elif method == "equal_weight":
        weights = equal_weights(len(assets))
    elif method == "max_diversification":
        weights = max_diversification_weights(risks, corr)
    elif method == "hrp":
        weights = hrp_weights(risks, corr)
    elif method == "black_litterman":
        if market_weights is None:
            market_weights = market_cap_weights(assets)
            notes.append("Market weights derived from market capitalization")
        weights = black_litterman_weights(market_weights, returns, risks)
    else:
        raise ValueError(f"Unknown heuristic method: {method}")

    exp_ret = portfolio_expected_return(weights, returns)
    exp_vol = portfolio_risk(weights, risks, corr)
    sharpe = sharpe_ratio(exp_ret, exp_vol, risk_free_rate)
    logger.debug("Heuristic %s: return=%.2f risk=%.2f sharpe=%.3f", method, exp_ret, exp_vol, sharpe)

    return HeuristicPortfolioResult(
        method=method,
        weights={asset.symbol: weights[i] for i, asset in enumerate(assets)},
        expected_return_pct=round_to(exp_ret, 2),
        expected_volatility_pct=round_to(exp_vol, 2),
        expected_sharpe=round_to(sharpe, 3),
        notes=notes,
    )


__all__ = [
    "HeuristicMethod",
    "HeuristicPortfolioResult",
    "risk_parity_weights",
    "minimum_variance_weights",
    "equal_weights",
    "max_diversification_weights",
    "hrp_weights",
    "black_litterman_weights",
    "market_cap_weights",
    "construct_heuristic_portfolio",
]
