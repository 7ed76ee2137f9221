"""
Forward-looking risk from market-implied volatility.

Asset volatilities are blended with VIX-implied volatility scaled by beta,
and the correlation matrix is pushed toward 1 as the volatility regime
worsens. VIX data is supplied by the caller; without it the forward view
is not computed.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np

from portfolio_risk.common.enums import VolatilityRegime
from portfolio_risk.models import Asset, VixData

from .core_metrics import Matrix, clamp, round_to, sanitize

logger = logging.getLogger(__name__)

HISTORICAL_BLEND = 0.6
IMPLIED_BLEND = 0.4
BLEND_METHOD = "60% historical + 40% VIX-implied"
DEFAULT_VIX = 18.0

REGIME_CORRELATION_FACTORS: dict[VolatilityRegime, float] = {
    VolatilityRegime.LOW: 0.7,
    VolatilityRegime.NORMAL: 1.0,
    VolatilityRegime.ELEVATED: 1.2,
    VolatilityRegime.HIGH: 1.5,
    VolatilityRegime.EXTREME: 2.0,
}

REGIME_RETURN_ADJUSTMENTS: dict[VolatilityRegime, float] = {
    VolatilityRegime.LOW: -1.0,
    VolatilityRegime.NORMAL: 0.0,
    VolatilityRegime.ELEVATED: 0.5,
    VolatilityRegime.HIGH: 2.0,
    VolatilityRegime.EXTREME: 3.0,
}

REGIME_DESCRIPTIONS: dict[VolatilityRegime, str] = {
    VolatilityRegime.LOW: "Low volatility",
    VolatilityRegime.NORMAL: "Normal volatility",
    VolatilityRegime.ELEVATED: "Elevated volatility",
    VolatilityRegime.HIGH: "High volatility",
    VolatilityRegime.EXTREME: "Extreme volatility",
}

CORRELATION_FLOOR = -0.3
CORRELATION_CEILING = 0.95


# ---------------------------------------------------------------------------
# Regime helpers
# ---------------------------------------------------------------------------


def classify_vix_regime(vix: float) -> VolatilityRegime:
    """Map a VIX level onto a volatility regime."""
    level = sanitize(vix, DEFAULT_VIX)
    if level < 15:
        return VolatilityRegime.LOW
    if level < 25:
        return VolatilityRegime.NORMAL
    if level < 35:
        return VolatilityRegime.ELEVATED
    if level < 40:
        return VolatilityRegime.HIGH
    return VolatilityRegime.EXTREME


def _coerce_regime(regime: VolatilityRegime | str | None) -> VolatilityRegime:
    return VolatilityRegime.coerce(regime) or VolatilityRegime.NORMAL


def adjust_correlation_for_regime(base_correlation: float, regime: VolatilityRegime | str | None) -> float:
    """Scale a correlation by the regime factor, bounded to ``[-0.3, 0.95]``."""
    corr = sanitize(base_correlation, 0.5)
    factor = REGIME_CORRELATION_FACTORS[_coerce_regime(regime)]
    return clamp(corr * factor, CORRELATION_FLOOR, CORRELATION_CEILING)


def adjust_correlation_matrix_for_regime(
    correlation_matrix: Matrix,
    regime: VolatilityRegime | str | None,
) -> Matrix:
    """Apply :func:`adjust_correlation_for_regime` off the diagonal; the diagonal stays 1.0."""
    return [
        [1.0 if i == j else adjust_correlation_for_regime(value, regime) for j, value in enumerate(row)]
        for i, row in enumerate(correlation_matrix)
    ]


def stress_correlation_matrix(correlation_matrix: Matrix, vix_level: float) -> Matrix:
    """
    Continuous stress adjustment driven by the VIX level.

    Off-diagonal correlations are multiplied by ``min(1.5, 1 + (vix - 20) / 50)``
    and bounded to ``[-0.3, 0.95]``. Unit entries are left untouched.
    """
    stress_factor = min(1.5, 1 + (sanitize(vix_level, 20.0) - 20) / 50)
    adjusted: Matrix = []
    for i, row in enumerate(correlation_matrix):
        new_row = []
        for j, value in enumerate(row):
            if i == j or value == 1.0:
                new_row.append(1.0)
                continue
            new_row.append(clamp(sanitize(value, 0.5) * stress_factor, CORRELATION_FLOOR, CORRELATION_CEILING))
        adjusted.append(new_row)
    return adjusted


def blend_volatility(historical_vol: float, vix_level: float, beta: float = 1.0) -> dict[str, Any]:
    """Blend trailing volatility with VIX-implied volatility scaled by ``|beta|``."""
    hist = sanitize(historical_vol, 20.0)
    vix = sanitize(vix_level, DEFAULT_VIX)
    clean_beta = sanitize(beta, 1.0)

    implied = vix * abs(clean_beta)
    blended = hist * HISTORICAL_BLEND + implied * IMPLIED_BLEND
    return {
        "historical": round_to(hist, 1),
        "implied": round_to(implied, 1),
        "blended": round_to(blended, 1),
        "adjustment": round_to(blended - hist, 1),
        "method": BLEND_METHOD,
    }


def _return_reasoning(regime: VolatilityRegime, vix: float) -> str:
    vix_text = f"{vix:.1f}"
    if regime is VolatilityRegime.LOW:
        return (
            f"VIX {vix_text} indicates market complacency. Mean reversion principles suggest "
            "modest forward returns and potential correction risk."
        )
    if regime is VolatilityRegime.ELEVATED:
        return f"VIX {vix_text} shows elevated uncertainty. Modest risk premium added to base expectations."
    if regime is VolatilityRegime.HIGH:
        return (
            f"VIX {vix_text} indicates market fear. Historical data shows high VIX periods precede "
            "above-average forward returns (contrarian signal)."
        )
    if regime is VolatilityRegime.EXTREME:
        return (
            f"VIX {vix_text} indicates extreme market panic. Historical data shows extreme fear periods "
            "often precede strong forward returns (contrarian opportunity)."
        )
    return (
        f"VIX {vix_text} in normal range (15-25). Using base CAPM and historical return expectations "
        "without adjustment."
    )


def adjust_expected_return(
    base_return: float,
    regime: VolatilityRegime | str | None,
    current_vix: float,
) -> dict[str, Any]:
    """Add the regime return premium (contrarian for fear regimes, negative for complacency)."""
    base = sanitize(base_return, 10.0)
    vix = sanitize(current_vix, DEFAULT_VIX)
    resolved = _coerce_regime(regime)
    adjustment = REGIME_RETURN_ADJUSTMENTS[resolved]
    return {
        "adjusted": round_to(base + adjustment, 2),
        "adjustment": round_to(adjustment, 1),
        "reasoning": _return_reasoning(resolved, vix),
    }


# ---------------------------------------------------------------------------
# Portfolio report
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssetVolatilityAdjustment:
    symbol: str
    name: str
    sector: str
    beta: float
    historical: float
    forward_looking: float
    delta: float
    weight: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "sector": self.sector,
            "beta": self.beta,
            "historical": self.historical,
            "forward_looking": self.forward_looking,
            "delta": self.delta,
            "weight": self.weight,
        }


@dataclass
class ForwardRiskReport:
    forward_risk: float
    historical_risk: float
    regime_impact: float
    regime: VolatilityRegime
    regime_description: str
    vix_level: float
    asset_adjustments: list[AssetVolatilityAdjustment] = field(default_factory=list)
    methodology: dict[str, str] = field(default_factory=dict)
    vix_data_source: str = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {
            "forward_risk": self.forward_risk,
            "historical_risk": self.historical_risk,
            "regime_impact": self.regime_impact,
            "regime": self.regime.value,
            "regime_description": self.regime_description,
            "vix_level": self.vix_level,
            "asset_adjustments": [adj.to_dict() for adj in self.asset_adjustments],
            "methodology": dict(self.methodology),
            "vix_data_source": self.vix_data_source,
        }


def _resolve_vix(vix_data: VixData | Mapping[str, Any] | None) -> VixData | None:
    if isinstance(vix_data, VixData):
        return vix_data
    return VixData.from_mapping(vix_data)


def _square_matrix(matrix: Any, n: int) -> np.ndarray | None:
    try:
        array = np.asarray(matrix, dtype=float)
    except (TypeError, ValueError):
        return None
    if array.shape != (n, n):
        return None
    return np.where(np.isfinite(array), array, 0.5)


def _quadratic_risk(weights: np.ndarray, vols: np.ndarray, corr: np.ndarray) -> float:
    scaled = weights * vols / 100
    variance = float(scaled @ corr @ scaled)
    return float(np.sqrt(max(0.0, variance)) * 100)


def calculate_forward_looking_risk(
    assets: Sequence[Asset],
    weights: Sequence[float],
    correlation_matrix: Matrix,
    vix_data: VixData | Mapping[str, Any] | None,
) -> ForwardRiskReport | None:
    """
    Portfolio volatility under the current volatility regime.

    Returns ``None`` (and logs why) when the inputs are inconsistent or VIX
    data is missing.
    """
    if not assets:
        logger.error("Forward-looking risk skipped: no assets supplied")
        return None
    if weights is None or len(weights) == 0:
        logger.error("Forward-looking risk skipped: no weights supplied")
        return None
    n = len(assets)
    if len(weights) != n:
        logger.error("Forward-looking risk skipped: %d assets but %d weights", n, len(weights))
        return None
    base_corr = _square_matrix(correlation_matrix, n)
    if base_corr is None:
        logger.error("Forward-looking risk skipped: correlation matrix is not %dx%d", n, n)
        return None
    vix = _resolve_vix(vix_data)
    if vix is None:
        logger.error("Forward-looking risk skipped: VIX data missing or invalid")
        return None

    current_vix = sanitize(vix.current_vix, DEFAULT_VIX)
    implied_vol = sanitize(vix.implied_annual_vol or current_vix, DEFAULT_VIX)
    regime = VolatilityRegime.coerce(vix.regime) or classify_vix_regime(current_vix)
    description = vix.regime_description or REGIME_DESCRIPTIONS[regime]

    w = np.array([sanitize(x, 0.0) for x in weights], dtype=float)
    historical_vols = np.array([sanitize(a.risk, 20.0) for a in assets], dtype=float)
    forward_vols = np.array(
        [blend_volatility(a.risk, implied_vol, a.beta)["blended"] for a in assets],
        dtype=float,
    )
    regime_corr = np.array(adjust_correlation_matrix_for_regime(base_corr.tolist(), regime), dtype=float)

    forward_risk = _quadratic_risk(w, forward_vols, regime_corr)
    historical_risk = _quadratic_risk(w, historical_vols, base_corr)

    adjustments = [
        AssetVolatilityAdjustment(
            symbol=asset.symbol,
            name=asset.name,
            sector=asset.sector,
            beta=round_to(asset.beta, 3),
            historical=round_to(historical_vols[i], 1),
            forward_looking=round_to(forward_vols[i], 1),
            delta=round_to(forward_vols[i] - historical_vols[i], 1),
            weight=round_to(w[i] * 100, 1),
        )
        for i, asset in enumerate(assets)
    ]

    logger.info(
        "Forward-looking risk %.1f%% vs historical %.1f%% (regime=%s, vix=%.1f)",
        forward_risk,
        historical_risk,
        regime.value,
        current_vix,
    )
    return ForwardRiskReport(
        forward_risk=round_to(forward_risk, 1),
        historical_risk=round_to(historical_risk, 1),
        regime_impact=round_to(forward_risk - historical_risk, 1),
        regime=regime,
        regime_description=description,
        vix_level=round_to(current_vix, 1),
        asset_adjustments=adjustments,
        methodology={
            "volatility_blend": BLEND_METHOD,
            "correlation_adjustment": f"{regime.value} regime factor applied",
            "data_source": "VIX: caller supplied, Beta: 5Y regression, Historical vol: 252-day sigma",
        },
        vix_data_source=vix.data_source or "unknown",
    )


__all__ = [
    "REGIME_CORRELATION_FACTORS",
    "REGIME_RETURN_ADJUSTMENTS",
    "AssetVolatilityAdjustment",
    "ForwardRiskReport",
    "classify_vix_regime",
    "adjust_correlation_for_regime",
    "adjust_correlation_matrix_for_regime",
    "stress_correlation_matrix",
    "blend_volatility",
    "adjust_expected_return",
    "calculate_forward_looking_risk",
]
