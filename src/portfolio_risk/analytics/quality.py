"""
Portfolio quality scoring.

Composite 0-95 score blending four component scores mapped from fixed
breakpoints:

    Sharpe 40% | correlation 30% | diversification 20% | maturity 10%

Diversification combines allocation-weighted sector, market-cap tier and
asset-type concentration with a liquidity proxy.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from portfolio_risk.common.enums import CorrelationTier
from portfolio_risk.models import Asset

from .core_metrics import (
    RISK_FREE_RATE,
    average_correlation,
    clamp,
    herfindahl_index,
    mean,
    round_to,
    sharpe_ratio,
)
from .correlation import correlation_tier, get_correlation_matrix

logger = logging.getLogger(__name__)

_BOND_SYMBOLS = frozenset({"BND", "AGG", "TLT", "LQD", "SHY"})
_ETF_SYMBOLS = frozenset({"SPY", "QQQ", "VTI", "VOO", "GLD", "VNQ"})
_LIQUID_SYMBOLS = frozenset({"SPY", "QQQ", "VTI", "VOO", "BND", "AGG", "GLD"})
_NON_SPECULATIVE_ETFS = frozenset({"SPY", "QQQ", "VTI", "VOO", "IVV", "BND", "AGG", "GLD", "VNQ"})
_DIVERSIFIERS = frozenset({"BND", "AGG", "TLT", "GLD", "VNQ", "VXUS"})

_CONFIDENCE_BY_TIER = {
    CorrelationTier.EXTREME: "blocked",
    CorrelationTier.HIGH: "low",
    CorrelationTier.MODERATE: "medium",
    CorrelationTier.LOW: "high",
}


@dataclass
class QualityReport:
    quality_score: int
    quality_band: str
    band_explanation: str
    avg_sharpe: float
    avg_correlation: float
    correlation_tier: CorrelationTier
    confidence_level: str
    sharpe_range: tuple[float, float]
    speculative_ratio: float
    warnings: list[str] = field(default_factory=list)
    score_justification: str = ""
    components: dict[str, int] = field(default_factory=dict)
    diversity_metrics: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "quality_score": self.quality_score,
            "quality_band": self.quality_band,
            "band_explanation": self.band_explanation,
            "avg_sharpe": self.avg_sharpe,
            "avg_correlation": self.avg_correlation,
            "correlation_tier": str(self.correlation_tier),
            "confidence_level": self.confidence_level,
            "sharpe_range": list(self.sharpe_range),
            "speculative_ratio": self.speculative_ratio,
            "warnings": list(self.warnings),
            "score_justification": self.score_justification,
            "components": dict(self.components),
            "diversity_metrics": dict(self.diversity_metrics),
        }


# ---------------------------------------------------------------------------
# Component scores
# ---------------------------------------------------------------------------


def sharpe_score(avg_sharpe: float, sharpe_spread: float) -> float:
    if avg_sharpe < -0.2:
        score = 5.0
    elif avg_sharpe < -0.1:
        score = 15.0
    elif avg_sharpe < 0:
        score = 30.0
    elif avg_sharpe < 0.2:
        score = 45.0
    elif avg_sharpe < 0.4:
        score = 60.0
    elif avg_sharpe < 0.6:
        score = 75.0
    elif avg_sharpe < 0.8:
        score = 85.0
    else:
        score = 95.0

    if sharpe_spread > 0.5:
        score += 5
    elif sharpe_spread < 0.15:
        score -= 10
    return clamp(score, 0.0, 100.0)


def correlation_score(avg_correlation: float) -> float:
    breakpoints = ((0.2, 100.0), (0.3, 90.0), (0.4, 80.0), (0.5, 65.0), (0.6, 45.0), (0.7, 25.0), (0.75, 10.0))
    for upper, score in breakpoints:
        if avg_correlation < upper:
            return score
    return 0.0


def market_cap_bucket(asset: Asset) -> str:
    unit = asset.market_cap_unit
    if unit is None:
        return "unknown"
    if unit == "M":
        millions = (asset.market_cap_billions or 0.0) * 1000
        return "micro" if millions < 300 else "small"
    billions = asset.market_cap_billions or 0.0
    if billions < 2:
        return "small"
    if billions < 10:
        return "mid"
    if billions < 50:
        return "large"
    return "mega"


def asset_type(asset: Asset) -> str:
    if asset.symbol in _BOND_SYMBOLS:
        return "bond"
    if asset.is_index_fund or asset.symbol in _ETF_SYMBOLS:
        return "etf"
    return "stock"


def is_highly_liquid(asset: Asset) -> bool:
    if asset.is_index_fund or asset.symbol in _LIQUID_SYMBOLS:
        return True
    billions = asset.market_cap_billions
    return asset.market_cap_unit in {"B", "T"} and billions is not None and billions > 10


def is_speculative_holding(asset: Asset) -> bool:
    """Unprofitable or millions-denominated stock. ETFs are never speculative."""
    if asset.is_index_fund or asset.symbol in _NON_SPECULATIVE_ETFS:
        return False
    return not asset.has_positive_pe or asset.market_cap_unit == "M"


def _frame(assets: Sequence[Asset], weights: Sequence[float]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "symbol": [a.symbol for a in assets],
            "sector": [a.sector for a in assets],
            "cap_bucket": [market_cap_bucket(a) for a in assets],
            "asset_type": [asset_type(a) for a in assets],
            "liquid": [is_highly_liquid(a) for a in assets],
            "speculative": [is_speculative_holding(a) for a in assets],
            "diversifier": [a.symbol in _DIVERSIFIERS for a in assets],
            "weight": list(weights),
        }
    )


def _concentration(frame: pd.DataFrame, column: str) -> tuple[float, pd.Series]:
    grouped = frame.groupby(column, sort=False)["weight"].sum()
    return float((grouped ** 2).sum()), grouped


def diversification_components(frame: pd.DataFrame) -> dict[str, float]:
    sector_hhi, sector_weights = _concentration(frame, "sector")
    cap_hhi, cap_weights = _concentration(frame, "cap_bucket")
    type_hhi, _ = _concentration(frame, "asset_type")
    liquid_weight = float(frame.loc[frame["liquid"], "weight"].sum())

    sector_div = (1 - sector_hhi) * 100
    cap_div = (1 - cap_hhi) * 100
    type_div = (1 - type_hhi) * 100
    liquidity = 40 + liquid_weight * 60
    return {
        "sector_diversity": sector_div,
        "market_cap_diversity": cap_div,
        "asset_type_diversity": type_div,
        "liquidity": liquidity,
        "score": sector_div * 0.35 + cap_div * 0.25 + type_div * 0.25 + liquidity * 0.15,
        "unique_sectors": float(len(sector_weights)),
        "unique_market_caps": float(int((cap_weights > 0).sum())),
    }


def maturity_score(speculative_ratio: float, diversifier_weight: float) -> float:
    if speculative_ratio > 0.8:
        score = 10.0
    elif speculative_ratio > 0.6:
        score = 30.0
    elif speculative_ratio > 0.4:
        score = 50.0
    elif speculative_ratio > 0.2:
        score = 70.0
    elif speculative_ratio > 0.1:
        score = 85.0
    else:
        score = 95.0
    if diversifier_weight > 0.15:
        score = min(100.0, score + 10)
    return score


def quality_band(score: float) -> tuple[str, str]:
    if score >= 80:
        return "Exceptional", "Institutional-quality diversification and risk management"
    if score >= 65:
        return "Strong", "Well-constructed with good diversification"
    if score >= 45:
        return "Acceptable", "Moderate quality with room for improvement"
    if score >= 25:
        return "Weak", "Significant risks - consider rebalancing"
    return "Poor", "High-risk portfolio - educational exploration only"


# ---------------------------------------------------------------------------
# Composite
# ---------------------------------------------------------------------------


def calculate_portfolio_quality(
    assets: Sequence[Asset],
    weights: Sequence[float] | None = None,
    *,
    risk_free_rate: float = RISK_FREE_RATE,
) -> QualityReport:
    """
    Score a set of assets, optionally under a specific allocation.

    Weights default to equal weighting when omitted or misaligned with
    ``assets``.
    """
    n = len(assets)
    if n == 0:
        raise ValueError("At least one asset is required to score portfolio quality")
    portfolio_weights = list(weights) if weights is not None and len(weights) == n else [1.0 / n] * n

    sharpes = [sharpe_ratio(a.expected_return, a.risk, risk_free_rate) for a in assets]
    avg_sharpe = mean(sharpes)
    min_sharpe, max_sharpe = min(sharpes), max(sharpes)
    avg_corr = average_correlation(get_correlation_matrix(assets))

    s_score = sharpe_score(avg_sharpe, max_sharpe - min_sharpe)
    c_score = correlation_score(avg_corr)

    frame = _frame(assets, portfolio_weights)
    diversity = diversification_components(frame)
    d_score = diversity["score"]

    speculative_ratio = float(frame.loc[frame["speculative"], "weight"].sum())
    diversifier_weight = float(frame.loc[frame["diversifier"], "weight"].sum())
    m_score = maturity_score(speculative_ratio, diversifier_weight)

    raw = round_to(s_score * 0.40 + c_score * 0.30 + d_score * 0.20 + m_score * 0.10, 0)
    final_score = int(clamp(raw, 0, 95))
    band, explanation = quality_band(final_score)
    tier = correlation_tier(avg_corr)

    warnings: list[str] = []
    justification: list[str] = []

    if avg_sharpe < 0:
        warnings.append("Negative risk-adjusted returns - portfolio expected to underperform risk-free rate")
        warnings.append("CRITICAL: Reconsider asset selection or reduce speculative exposure")
        justification.append(f"Negative Sharpe (-{round_to((100 - s_score) * 0.4, 0):.0f} pts)")
    elif avg_sharpe < 0.15:
        warnings.append("Low Sharpe ratio (<0.15) - poor risk-adjusted performance")
        justification.append(f"Low Sharpe (-{round_to((100 - s_score) * 0.4, 0):.0f} pts)")

    corr_penalty = round_to((100 - c_score) * 0.3, 0)
    if avg_corr > 0.85:
        warnings.append(
            "Extreme correlation (>85%) - assets move nearly in lockstep, eliminating diversification"
        )
        warnings.append(
            "STRONG RECOMMENDATION: Add uncorrelated assets (bonds, gold, utilities, international)"
        )
        justification.append(f"Extreme correlation (-{corr_penalty:.0f} pts)")
    elif avg_corr > 0.75:
        warnings.append("Very high correlation (>75%) - limited diversification benefit")
        warnings.append("Consider adding uncorrelated assets to improve risk-adjusted returns")
        justification.append(f"Very high correlation (-{corr_penalty:.0f} pts)")
    elif avg_corr > 0.60:
        warnings.append("High correlation - diversification benefits are reduced")
        justification.append(f"High correlation (-{corr_penalty:.0f} pts)")

    maturity_penalty = round_to((100 - m_score) * 0.1, 0)
    if speculative_ratio >= 0.95:
        warnings.append("Portfolio dominated by speculative/unprofitable assets (>95%)")
        warnings.append("High volatility expected - risk of severe drawdowns")
        warnings.append("Consider balancing with established blue-chip stocks or index funds")
        justification.append(f"100% speculative (-{maturity_penalty:.0f} pts)")
    elif speculative_ratio >= 0.70:
        warnings.append(
            f"High speculative exposure ({speculative_ratio * 100:.0f}%) increases portfolio fragility"
        )
        warnings.append("Recommend adding profitable companies with proven business models")
        justification.append(f"High speculative exposure (-{maturity_penalty:.0f} pts)")
    elif speculative_ratio >= 0.50:
        warnings.append(f"Moderate speculative allocation ({speculative_ratio * 100:.0f}%) - monitor closely")

    if d_score < 40:
        hhi = herfindahl_index(portfolio_weights)
        if hhi > 0.60:
            warnings.append("Severe concentration risk - single-asset outcomes dominate portfolio")
        elif hhi > 0.40:
            warnings.append("High concentration - portfolio heavily dependent on few positions")
        justification.append(f"Poor diversification (-{round_to((100 - d_score) * 0.2, 0):.0f} pts)")

    if n < 3:
        warnings.append("Fewer than 3 assets - insufficient diversification")
    else:
        sectors = {a.sector for a in assets if a.sector and a.sector != "Unknown"}
        if len(sectors) == 1:
            warnings.append(f"All assets from {next(iter(sectors))} sector - sector concentration risk")

    components = {
        "sharpe_score": int(round_to(s_score, 0)),
        "correlation_score": int(round_to(c_score, 0)),
        "diversification_score": int(round_to(d_score, 0)),
        "maturity_score": int(round_to(m_score, 0)),
    }
    if justification:
        score_justification = ", ".join(justification)
    else:
        score_justification = (
            "Score reflects balance of all factors: "
            f"Sharpe={components['sharpe_score']}, Correlation={components['correlation_score']}, "
            f"Diversification={components['diversification_score']}, Maturity={components['maturity_score']}"
        )

    logger.debug("Quality score %d (%s), avg correlation %.3f", final_score, band, avg_corr)

    return QualityReport(
        quality_score=final_score,
        quality_band=band,
        band_explanation=explanation,
        avg_sharpe=avg_sharpe,
        avg_correlation=avg_corr,
        correlation_tier=tier,
        confidence_level=_CONFIDENCE_BY_TIER[tier],
        sharpe_range=(min_sharpe, max_sharpe),
        speculative_ratio=speculative_ratio,
        warnings=warnings,
        score_justification=score_justification,
        components=components,
        diversity_metrics={
            "sector_diversity": int(round_to(diversity["sector_diversity"], 0)),
            "market_cap_diversity": int(round_to(diversity["market_cap_diversity"], 0)),
            "asset_type_diversity": int(round_to(diversity["asset_type_diversity"], 0)),
            "unique_sectors": int(diversity["unique_sectors"]),
            "unique_market_caps": int(diversity["unique_market_caps"]),
        },
    )


__all__ = [
    "QualityReport",
    "sharpe_score",
    "correlation_score",
    "maturity_score",
    "quality_band",
    "market_cap_bucket",
    "asset_type",
    "is_speculative_holding",
    "calculate_portfolio_quality",
]
