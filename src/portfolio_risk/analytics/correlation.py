"""
Correlation estimation from asset characteristics.

No return history is needed: each asset is classified into a coarse asset
class, a calibrated base correlation is looked up for every pair, and small
adjustments are applied for shared sectors and similar betas.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence

from portfolio_risk.common.enums import AssetClass, CorrelationTier
from portfolio_risk.models import Asset

from .core_metrics import Matrix, average_correlation, clamp, safe_divide

logger = logging.getLogger(__name__)

BROAD_MARKET_ETFS = frozenset({"SPY", "QQQ", "VTI", "VOO", "IVV", "DIA", "IWM"})
BOND_ETFS = frozenset({"BND", "AGG", "TLT", "LQD"})
COMMODITY_ETFS = frozenset({"GLD", "SLV", "IAU"})
REAL_ESTATE_ETFS = frozenset({"VNQ", "IYR"})

LARGE_CAP_THRESHOLD_BILLIONS = 50.0
DEFAULT_CORRELATION = 0.40
SAME_SECTOR_BONUS = 0.20
SIMILAR_BETA_BONUS = 0.05
SIMILAR_BETA_THRESHOLD = 0.3
CORRELATION_FLOOR = -0.30
CORRELATION_CEILING = 0.95

_BM = AssetClass.BROAD_MARKET_ETF
_BOND = AssetClass.BOND_ETF
_COMM = AssetClass.COMMODITY_ETF
_RE = AssetClass.REAL_ESTATE_ETF
_LARGE = AssetClass.LARGE_CAP_STOCK
_MID = AssetClass.MID_SMALL_CAP_STOCK
_SPEC = AssetClass.SPECULATIVE_STOCK

BASE_CORRELATIONS: dict[frozenset[AssetClass], float] = {
    # ETF vs ETF
    frozenset({_BM}): 0.95,
    frozenset({_BM, _BOND}): -0.10,
    frozenset({_BM, _COMM}): 0.05,
    frozenset({_BM, _RE}): 0.60,
    frozenset({_BOND}): 0.90,
    frozenset({_BOND, _COMM}): -0.15,
    frozenset({_BOND, _RE}): 0.10,
    frozenset({_COMM}): 0.85,
    frozenset({_COMM, _RE}): 0.15,
    frozenset({_RE}): 0.80,
    # ETF vs stock
    frozenset({_BM, _LARGE}): 0.35,
    frozenset({_BM, _MID}): 0.30,
    frozenset({_BM, _SPEC}): 0.20,
    frozenset({_BOND, _LARGE}): -0.05,
    frozenset({_BOND, _MID}): -0.10,
    frozenset({_BOND, _SPEC}): -0.15,
    frozenset({_COMM, _LARGE}): 0.10,
    frozenset({_COMM, _MID}): 0.15,
    frozenset({_COMM, _SPEC}): 0.20,
    frozenset({_RE, _LARGE}): 0.40,
    frozenset({_RE, _MID}): 0.35,
    frozenset({_RE, _SPEC}): 0.30,
    # Stock vs stock
    frozenset({_LARGE}): 0.50,
    frozenset({_LARGE, _MID}): 0.45,
    frozenset({_LARGE, _SPEC}): 0.40,
    frozenset({_MID}): 0.55,
    frozenset({_MID, _SPEC}): 0.50,
    frozenset({_SPEC}): 0.65,
}


def classify_asset(asset: Asset) -> AssetClass:
    """Map an asset onto the coarse class used by the correlation table."""
    symbol = asset.symbol
    if asset.is_index_fund or symbol in BROAD_MARKET_ETFS:
        return AssetClass.BROAD_MARKET_ETF
    if symbol in BOND_ETFS:
        return AssetClass.BOND_ETF
    if symbol in COMMODITY_ETFS:
        return AssetClass.COMMODITY_ETF
    if symbol in REAL_ESTATE_ETFS:
        return AssetClass.REAL_ESTATE_ETF

    if not asset.has_positive_pe or asset.market_cap_unit == "M":
        return AssetClass.SPECULATIVE_STOCK
    cap = asset.market_cap_billions
    if cap is not None and cap > LARGE_CAP_THRESHOLD_BILLIONS:
        return AssetClass.LARGE_CAP_STOCK
    return AssetClass.MID_SMALL_CAP_STOCK


def base_correlation(
    first: AssetClass,
    second: AssetClass,
    table: Mapping[frozenset[AssetClass], float] | None = None,
) -> float:
    lookup = BASE_CORRELATIONS if table is None else table
    return float(lookup.get(frozenset({first, second}), DEFAULT_CORRELATION))


def estimate_correlation(
    a: Asset,
    b: Asset,
    table: Mapping[frozenset[AssetClass], float] | None = None,
) -> float:
    """Pairwise correlation for two distinct assets, clamped to [-0.30, 0.95]."""
    class_a = classify_asset(a)
    class_b = classify_asset(b)
    rho = base_correlation(class_a, class_b, table)

    if not class_a.is_etf and not class_b.is_etf:
        if a.sector == b.sector and a.sector != "Unknown":
            rho += SAME_SECTOR_BONUS

    if abs(a.beta - b.beta) < SIMILAR_BETA_THRESHOLD:
        rho += SIMILAR_BETA_BONUS

    return clamp(rho, CORRELATION_FLOOR, CORRELATION_CEILING)


def build_covariance_matrix(
    assets: Sequence[Asset],
    table: Mapping[frozenset[AssetClass], float] | None = None,
) -> Matrix:
    """
    Covariance matrix in decimal units.

    Diagonal entries are ``(risk/100)²``; off-diagonal entries are
    ``ρ_ij · (risk_i/100) · (risk_j/100)``.
    """
    n = len(assets)
    sigmas = [asset.risk / 100 for asset in assets]
    cov = [[0.0] * n for _ in range(n)]
    for i in range(n):
        cov[i][i] = sigmas[i] ** 2
        for j in range(i + 1, n):
            rho = estimate_correlation(assets[i], assets[j], table)
            value = rho * sigmas[i] * sigmas[j]
            cov[i][j] = value
            cov[j][i] = value
    return cov


def build_correlation_matrix(covariance_matrix: Matrix) -> Matrix:
    """Normalize a covariance matrix: unit diagonal, ``cov_ij / sqrt(cov_ii·cov_jj)`` elsewhere."""
    n = len(covariance_matrix)
    corr = [[0.0] * n for _ in range(n)]
    for i in range(n):
        for j in range(n):
            if i == j:
                corr[i][j] = 1.0
            else:
                scale = math.sqrt(max(covariance_matrix[i][i] * covariance_matrix[j][j], 0.0))
                corr[i][j] = safe_divide(covariance_matrix[i][j], scale, 0.0)
    return corr


def get_correlation_matrix(
    assets: Sequence[Asset],
    table: Mapping[frozenset[AssetClass], float] | None = None,
) -> Matrix:
    return build_correlation_matrix(build_covariance_matrix(assets, table))


def shrink_covariance(covariance_matrix: Matrix, off_diagonal: float = 0.3, ridge: float = 0.01) -> Matrix:
    """Scale off-diagonal terms by ``off_diagonal`` and inflate the diagonal by ``1 + ridge``."""
    n = len(covariance_matrix)
    return [
        [
            covariance_matrix[i][j] * (1 + ridge) if i == j else covariance_matrix[i][j] * off_diagonal
            for j in range(n)
        ]
        for i in range(n)
    ]


def correlation_tier(avg_correlation: float) -> CorrelationTier:
    if avg_correlation > 0.75:
        return CorrelationTier.EXTREME
    if avg_correlation > 0.6:
        return CorrelationTier.HIGH
    if avg_correlation >= 0.5:
        return CorrelationTier.MODERATE
    return CorrelationTier.LOW


def portfolio_correlation_tier(assets: Sequence[Asset]) -> tuple[float, CorrelationTier]:
    avg = average_correlation(get_correlation_matrix(assets))
    tier = correlation_tier(avg)
    logger.debug("Average pairwise correlation %.3f -> %s tier", avg, tier)
    return avg, tier


__all__ = [
    "BASE_CORRELATIONS",
    "BROAD_MARKET_ETFS",
    "BOND_ETFS",
    "COMMODITY_ETFS",
    "REAL_ESTATE_ETFS",
    "CORRELATION_FLOOR",
    "CORRELATION_CEILING",
    "classify_asset",
    "base_correlation",
    "estimate_correlation",
    "build_covariance_matrix",
    "build_correlation_matrix",
    "get_correlation_matrix",
    "shrink_covariance",
    "correlation_tier",
    "portfolio_correlation_tier",
]
