"""
Realism constraints applied around the analytical solvers.

``apply_portfolio_constraints`` projects raw solver weights onto the
floor/ceiling box and redistributes any excess by risk-adjusted merit.
Each step returns a new weight list; input sequences are never mutated.

``apply_return_caps`` bounds long-horizon return estimates for individual
stocks before optimization (mean reversion).
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field, replace

from portfolio_risk.models import Asset

from .core_metrics import RISK_FREE_RATE, safe_divide

logger = logging.getLogger(__name__)

MAX_SINGLE_ASSET = 0.40
MAX_PROJECTION_ITERATIONS = 15
SUM_TOLERANCE = 1e-4
DUPLICATE_PRECISION = 4

_RETURN_CAP_BROAD_MARKET = frozenset({"SPY", "QQQ", "VTI", "VOO", "IVV", "DIA", "IWM"})
_RETURN_CAP_BOND = frozenset({"BND", "AGG", "TLT", "LQD", "SHY"})
_RETURN_CAP_COMMODITY = frozenset({"GLD", "SLV", "IAU", "DBC"})
_RETURN_CAP_REAL_ESTATE = frozenset({"VNQ", "IYR"})

BLUE_CHIP_CAP = 14.0
SPECULATIVE_CAP = 20.0
GROWTH_CAP = 16.0


# ---------------------------------------------------------------------------
# Constraint projection
# ---------------------------------------------------------------------------


@dataclass
class ConstraintOutcome:
    weights: list[float]
    constraints_applied: bool
    iterations: int = 0
    duplicate_groups: list[list[str]] = field(default_factory=list)


def minimum_allocation(n_assets: int) -> float:
    """Per-asset floor: 10% for portfolios of up to four assets, 8% above that."""
    return 0.10 if n_assets <= 4 else 0.08


def _merit(asset: Asset, index: int, risk_free_rate: float) -> float:
    sharpe = safe_divide(asset.expected_return - risk_free_rate, asset.risk, 0.0)
    return max(0.01, sharpe) * 10_000 + asset.expected_return * 100 + index * index * 0.1


def _normalized(weights: Sequence[float]) -> list[float]:
    total = sum(weights)
    if total <= 0:
        return list(weights)
    return [w / total for w in weights]


def _raise_to_floor(weights: Sequence[float], floor: float) -> tuple[list[float], bool]:
    raised = [max(w, floor) for w in weights]
    changed = any(w < floor for w in weights)
    return _normalized(raised), changed


def _cap_one(
    weights: Sequence[float],
    capped_index: int,
    ceiling: float,
    merits: Sequence[float],
) -> list[float]:
    """Cap ``weights[capped_index]`` and hand the excess to eligible peers by merit."""
    excess = weights[capped_index] - ceiling
    eligible = [
        idx for idx, w in enumerate(weights) if w < ceiling and idx != capped_index
    ]
    total_merit = sum(merits[idx] for idx in eligible)

    updated = list(weights)
    updated[capped_index] = ceiling
    if not eligible or total_merit <= 0:
        return updated

    share = {idx: excess * merits[idx] / total_merit for idx in eligible}
    updated = [w + share.get(idx, 0.0) for idx, w in enumerate(updated)]
    total = sum(updated)
    if abs(total - 1.0) > SUM_TOLERANCE:
        updated = [w / total for w in updated]
    return updated


def _duplicate_groups(weights: Sequence[float], assets: Sequence[Asset]) -> list[list[str]]:
    rounded = [round(w, DUPLICATE_PRECISION) for w in weights]
    counts = Counter(rounded)
    groups = []
    for value, count in counts.items():
        if count < 2:
            continue
        groups.append([assets[idx].symbol for idx, w in enumerate(rounded) if w == value])
    return groups


def apply_portfolio_constraints(
    weights: Sequence[float],
    assets: Sequence[Asset],
    max_single_asset: float = MAX_SINGLE_ASSET,
    *,
    risk_free_rate: float = RISK_FREE_RATE,
) -> ConstraintOutcome:
    """
    Project weights onto ``[floor, max_single_asset]`` and renormalize.

    1. Raise weights below the floor, renormalize.
    2. Cap weights above the ceiling and redistribute the excess to the other
       below-ceiling assets in proportion to a compound merit score
       (Sharpe first, expected return second, a positional tie-breaker last).
    3. Repeat step 2 for at most 15 passes.
    4. Renormalize, clip negative residue, renormalize.
    """
    n = len(weights)
    if n != len(assets):
        raise ValueError("Weights and assets must have the same length")
    if n == 0:
        return ConstraintOutcome(weights=[], constraints_applied=False)

    floor = minimum_allocation(n)
    if n * max_single_asset < 1.0:
        logger.info(
            "Ceiling %.0f%% is infeasible for %d assets, skipping the per-asset cap",
            max_single_asset * 100,
            n,
        )
        max_single_asset = 1.0

    current, applied = _raise_to_floor([float(w) for w in weights], floor)
    merits = [_merit(asset, idx, risk_free_rate) for idx, asset in enumerate(assets)]

    iterations = 0
    while iterations < MAX_PROJECTION_ITERATIONS:
        adjusted = False
        for idx in range(n):
            if current[idx] > max_single_asset:
                current = _cap_one(current, idx, max_single_asset, merits)
                adjusted = True
        if not adjusted:
            break
        applied = True
        iterations += 1

    duplicates = _duplicate_groups(current, assets)
    if duplicates:
        logger.warning(
            "Detected %d duplicate allocation group(s) after merit redistribution: %s",
            len(duplicates),
            duplicates,
        )

    total = sum(current)
    if abs(total - 1.0) > SUM_TOLERANCE:
        logger.warning("Weight sum %.6f != 1.0 after projection, normalizing", total)
        current = [w / total for w in current]
    current = _normalized([max(0.0, w) for w in current])

    return ConstraintOutcome(
        weights=current,
        constraints_applied=applied,
        iterations=iterations,
        duplicate_groups=duplicates,
    )


# ---------------------------------------------------------------------------
# Return caps
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReturnCapAdjustment:
    symbol: str
    original: float
    capped: float
    asset_class: str

    @property
    def reason(self) -> str:
        return f"{self.asset_class} max: {self.capped:.2f}% (long-term mean reversion for speculative assets)"

    def to_dict(self) -> dict[str, object]:
        return {
            "symbol": self.symbol,
            "original": self.original,
            "capped": self.capped,
            "asset_class": self.asset_class,
            "reason": self.reason,
        }


def return_cap_class(asset: Asset) -> tuple[str, float, bool]:
    """Return ``(label, cap, is_etf)`` for an asset."""
    symbol = asset.symbol
    if asset.is_index_fund or symbol in _RETURN_CAP_BROAD_MARKET:
        return "Broad Market ETF", 12.0, True
    if symbol in _RETURN_CAP_BOND:
        return "Bond ETF", 6.0, True
    if symbol in _RETURN_CAP_COMMODITY:
        return "Commodity ETF", 8.0, True
    if symbol in _RETURN_CAP_REAL_ESTATE:
        return "Real Estate ETF", 10.0, True

    cap = asset.market_cap_billions
    if cap is not None and cap > 50 and asset.has_positive_pe:
        return "Blue-chip Stock", BLUE_CHIP_CAP, False
    speculative = (
        not asset.has_positive_pe
        or asset.market_cap_unit == "M"
        or abs(asset.beta) > 1.8
    )
    if speculative:
        return "Speculative Stock", SPECULATIVE_CAP, False
    return "Growth Stock", GROWTH_CAP, False


def apply_return_caps(assets: Sequence[Asset]) -> tuple[list[Asset], list[ReturnCapAdjustment]]:
    """Cap individual-stock returns by class. ETFs keep their modeled returns."""
    capped_assets: list[Asset] = []
    adjustments: list[ReturnCapAdjustment] = []
    for asset in assets:
        label, cap, is_etf = return_cap_class(asset)
        if is_etf or asset.expected_return <= cap:
            capped_assets.append(asset)
            continue
        adjustments.append(
            ReturnCapAdjustment(
                symbol=asset.symbol,
                original=asset.expected_return,
                capped=cap,
                asset_class=label,
            )
        )
        capped_assets.append(replace(asset, expected_return=cap))

    for adj in adjustments:
        logger.info("Return cap applied to %s: %.2f%% -> %.2f%% (%s)", adj.symbol, adj.original, adj.capped, adj.asset_class)
    return capped_assets, adjustments


__all__ = [
    "MAX_SINGLE_ASSET",
    "ConstraintOutcome",
    "ReturnCapAdjustment",
    "minimum_allocation",
    "apply_portfolio_constraints",
    "return_cap_class",
    "apply_return_caps",
]
