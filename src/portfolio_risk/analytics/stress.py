"""
Scenario stress testing.

Per-asset shocks are composed from the scenario's sector drop, a beta
adjustment, a market-cap tier adjustment and a profitability adjustment,
then bounded to realistic ranges for the asset's class. Scenario
definitions come from the packaged YAML library (or a caller-supplied one).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Sequence

import pandas as pd

from portfolio_risk.common.config_manager import load_stress_scenarios
from portfolio_risk.common.enums import MarketCapTier
from portfolio_risk.models import Asset, StressScenario, parse_market_cap

from .core_metrics import Matrix, clamp, round_to, sanitize

logger = logging.getLogger(__name__)

BETA_ADJUSTMENT_PER_UNIT = 8.0
SYSTEMIC_SCENARIOS = frozenset({"marketCrash", "blackSwan"})
DEFAULT_DIVERSIFIER_DROP = -40.0
DEFAULT_DIVERSIFIER = ("SPY", 0.20)

_LARGE_TIERS = frozenset({MarketCapTier.MEGA, MarketCapTier.LARGE})
_SMALL_TIERS = frozenset({MarketCapTier.SMALL, MarketCapTier.MICRO})


# ---------------------------------------------------------------------------
# Per-asset shock model
# ---------------------------------------------------------------------------


def market_cap_adjustment(asset: Asset) -> tuple[MarketCapTier, float]:
    """Resilience adjustment (percentage points) and tier from the market-cap string."""
    parsed = parse_market_cap(asset.market_cap)
    if parsed is None:
        return MarketCapTier.UNKNOWN, 0.0
    value, unit = parsed
    if unit == "T":
        return MarketCapTier.MEGA, 12.0
    if unit == "B":
        if value >= 200:
            return MarketCapTier.MEGA, 10.0
        if value >= 50:
            return MarketCapTier.LARGE, 8.0
        if value >= 10:
            return MarketCapTier.LARGE, 3.0
        if value >= 2:
            return MarketCapTier.MID, -3.0
        return MarketCapTier.SMALL, -8.0
    if value >= 300:
        return MarketCapTier.SMALL, -10.0
    return MarketCapTier.MICRO, -18.0


def profitability_adjustment(is_profitable: bool, tier: MarketCapTier) -> float:
    if is_profitable:
        return 8.0 if tier in _LARGE_TIERS else 5.0
    return -15.0 if tier in _SMALL_TIERS else -10.0


def bound_asset_drop(drop: float, is_profitable: bool, tier: MarketCapTier) -> float:
    """Profitable large caps stay within [-65, -15], profitable mid caps [-75, -20], the rest [-95, -25]."""
    if is_profitable and tier in _LARGE_TIERS:
        return clamp(drop, -65.0, -15.0)
    if is_profitable and tier is MarketCapTier.MID:
        return clamp(drop, -75.0, -20.0)
    return clamp(drop, -95.0, -25.0)


def risk_flag(drop: float) -> str:
    if drop < -70:
        return "extreme"
    if drop < -50:
        return "high"
    if drop < -35:
        return "moderate"
    return "low"


def is_speculative(asset: Asset) -> bool:
    """Unprofitable, or a sub-$300M micro cap."""
    if not asset.is_profitable:
        return True
    parsed = parse_market_cap(asset.market_cap)
    return parsed is not None and parsed[1] == "M" and parsed[0] < 300


def asset_stress_drop(asset: Asset, scenario: StressScenario) -> tuple[float, MarketCapTier, bool]:
    """Bounded scenario drop for one asset, with its tier and profitability."""
    sector_drop = scenario.sector_drop(asset.sector)
    beta_adjustment = (abs(asset.beta) - 1.0) * BETA_ADJUSTMENT_PER_UNIT
    tier, cap_adjustment = market_cap_adjustment(asset)
    profitable = asset.is_profitable
    raw = sector_drop - beta_adjustment + cap_adjustment + profitability_adjustment(profitable, tier)
    return bound_asset_drop(raw, profitable, tier), tier, profitable


# ---------------------------------------------------------------------------
# Scenario impact
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssetStressImpact:
    symbol: str
    name: str
    sector: str
    weight: float
    drop: float
    contribution: float
    beta: float
    market_cap: str
    market_cap_tier: MarketCapTier
    is_profitable: bool
    risk_flag: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "sector": self.sector,
            "weight": self.weight,
            "drop": self.drop,
            "contribution": self.contribution,
            "beta": self.beta,
            "market_cap": self.market_cap,
            "market_cap_tier": self.market_cap_tier.value,
            "is_profitable": self.is_profitable,
            "risk_flag": self.risk_flag,
        }


@dataclass
class StressReport:
    scenario_key: str
    scenario: str
    description: str
    probability: str
    portfolio_impact: float
    duration: int
    recovery_time: int
    asset_impacts: list[AssetStressImpact] = field(default_factory=list)
    narrative: str = ""

    @property
    def worst_asset(self) -> AssetStressImpact | None:
        return self.asset_impacts[0] if self.asset_impacts else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenario_key": self.scenario_key,
            "scenario": self.scenario,
            "description": self.description,
            "probability": self.probability,
            "portfolio_impact": self.portfolio_impact,
            "duration": self.duration,
            "recovery_time": self.recovery_time,
            "asset_impacts": [impact.to_dict() for impact in self.asset_impacts],
            "narrative": self.narrative,
        }


def resolve_scenario(
    scenario: str | StressScenario,
    scenarios: Mapping[str, StressScenario] | None = None,
) -> StressScenario | None:
    if isinstance(scenario, StressScenario):
        return scenario
    library = scenarios if scenarios is not None else load_stress_scenarios()
    return library.get(str(scenario))


def _check_alignment(assets: Sequence[Asset], weights: Sequence[float]) -> None:
    if len(assets) != len(weights):
        raise ValueError("Weights and assets must have the same length")


def _unique_positions(assets: Sequence[Asset], weights: Sequence[float]) -> list[tuple[Asset, float]]:
    seen: set[str] = set()
    positions = []
    for asset, weight in zip(assets, weights):
        if asset.symbol in seen:
            continue
        seen.add(asset.symbol)
        positions.append((asset, sanitize(weight, 0.0)))
    return positions


def scenario_recovery_months(positions: Sequence[tuple[Asset, float]], base_recovery: int) -> int:
    """Scale base recovery by portfolio beta and speculative weight."""
    avg_beta = sum(asset.beta * weight for asset, weight in positions)
    speculative_weight = sum(weight for asset, weight in positions if is_speculative(asset))
    beta_factor = 1 + (avg_beta - 1.0) * 0.15
    speculative_factor = 1 + speculative_weight * 0.25
    return int(round_to(base_recovery * beta_factor * speculative_factor, 0))


def stress_narrative(
    scenario: StressScenario,
    portfolio_impact: float,
    impacts: Sequence[AssetStressImpact],
    recovery_time: int | None = None,
) -> str:
    if not impacts:
        return ""
    worst, best = impacts[0], impacts[-1]
    severity = abs(portfolio_impact)
    tone = "severe" if severity > 60 else "significant" if severity > 40 else "moderate"
    months = scenario.recovery_time if recovery_time is None else recovery_time
    return (
        f"In a {scenario.name.lower()} scenario, your portfolio would experience a {tone} decline of "
        f"approximately {severity:.1f}%. {worst.symbol} ({worst.sector}) would be hardest hit with a "
        f"{abs(worst.drop):.1f}% decline, while {best.symbol} would show relative resilience at "
        f"{abs(best.drop):.1f}%. The recovery period is estimated at {months} months, assuming normal "
        "market conditions return."
    )


def calculate_stress_impact(
    assets: Sequence[Asset],
    weights: Sequence[float],
    scenario: str | StressScenario,
    *,
    scenarios: Mapping[str, StressScenario] | None = None,
) -> StressReport | None:
    """
    Portfolio loss under a named scenario.

    Duplicate symbols keep their first occurrence. Returns ``None`` for an
    unknown scenario key.
    """
    _check_alignment(assets, weights)
    definition = resolve_scenario(scenario, scenarios)
    if definition is None:
        logger.warning("Unknown stress scenario: %s", scenario)
        return None

    positions = _unique_positions(assets, weights)
    total_impact = 0.0
    impacts: list[AssetStressImpact] = []
    for asset, weight in positions:
        drop, tier, profitable = asset_stress_drop(asset, definition)
        contribution = weight * drop
        total_impact += contribution
        impacts.append(
            AssetStressImpact(
                symbol=asset.symbol,
                name=asset.name,
                sector=asset.sector,
                weight=weight * 100,
                drop=round_to(drop, 1),
                contribution=round_to(contribution, 1),
                beta=round_to(asset.beta, 2),
                market_cap=asset.market_cap or "N/A",
                market_cap_tier=tier,
                is_profitable=profitable,
                risk_flag=risk_flag(drop),
            )
        )
    impacts.sort(key=lambda impact: impact.drop)

    recovery = scenario_recovery_months(positions, definition.recovery_time)
    logger.info(
        "Stress scenario %s: portfolio impact %.1f%%, recovery %d months",
        definition.key,
        total_impact,
        recovery,
        extra={"event": "stress_test"},
    )
    return StressReport(
        scenario_key=definition.key,
        scenario=definition.name,
        description=definition.description,
        probability=definition.probability,
        portfolio_impact=round_to(total_impact, 1),
        duration=definition.duration,
        recovery_time=recovery,
        asset_impacts=impacts,
        narrative=stress_narrative(definition, total_impact, impacts, recovery),
    )


# ---------------------------------------------------------------------------
# Compound shocks
# ---------------------------------------------------------------------------


def calculate_compound_shock(
    assets: Sequence[Asset],
    weights: Sequence[float],
    market_shock: float,
    vulnerable_sector: str,
    sector_shock: float,
) -> dict[str, Any]:
    """Simultaneous beta-scaled market shock and a shock to one sector, floored at -95%."""
    _check_alignment(assets, weights)
    total_impact = 0.0
    impacts = []
    for asset, raw_weight in zip(assets, weights):
        weight = sanitize(raw_weight, 0.0)
        market_component = market_shock * abs(asset.beta)
        vulnerable = asset.sector == vulnerable_sector
        sector_component = sector_shock if vulnerable else 0.0
        drop = max(-95.0, market_component + sector_component)
        contribution = weight * drop
        total_impact += contribution
        impacts.append(
            {
                "symbol": asset.symbol,
                "name": asset.name,
                "sector": asset.sector,
                "weight": round_to(weight * 100, 1),
                "market_component": round_to(market_component, 1),
                "sector_component": round_to(sector_component, 1),
                "total_drop": round_to(drop, 1),
                "contribution": round_to(contribution, 1),
                "is_vulnerable": vulnerable,
            }
        )
    impacts.sort(key=lambda item: item["total_drop"])

    return {
        "portfolio_impact": round_to(total_impact, 1),
        "market_shock": market_shock,
        "sector_shock": sector_shock,
        "vulnerable_sector": vulnerable_sector,
        "recovery_time": int(round_to(24 * abs(total_impact) / 40, 0)),
        "asset_impacts": impacts,
    }


# ---------------------------------------------------------------------------
# Sector vulnerability
# ---------------------------------------------------------------------------


def _beta_bucket(beta: float) -> str:
    magnitude = abs(beta)
    if magnitude < 0.8:
        return "defensive"
    if magnitude > 1.2:
        return "aggressive"
    return "neutral"


def analyze_sector_vulnerability(assets: Sequence[Asset], weights: Sequence[float]) -> dict[str, Any]:
    """Sector and beta exposure, sector HHI (0-100) and the dominant sector."""
    _check_alignment(assets, weights)
    if not assets:
        return {
            "sector_exposure": {},
            "beta_exposure": {"defensive": 0.0, "neutral": 0.0, "aggressive": 0.0},
            "concentration_risk": 0.0,
            "dominant_sector": None,
        }

    frame = pd.DataFrame(
        {
            "sector": [asset.sector for asset in assets],
            "weight": [sanitize(w, 0.0) for w in weights],
            "beta": [asset.beta for asset in assets],
            "speculative": [is_speculative(asset) for asset in assets],
        }
    )
    frame["weighted_beta"] = frame["beta"] * frame["weight"]
    frame["beta_bucket"] = frame["beta"].map(_beta_bucket)

    grouped = frame.groupby("sector", sort=False).agg(
        weight=("weight", "sum"),
        weighted_beta=("weighted_beta", "sum"),
        count=("weight", "size"),
        speculative_count=("speculative", "sum"),
    )

    sector_exposure: dict[str, dict[str, float | int]] = {}
    for sector, row in grouped.iterrows():
        weight = float(row["weight"])
        avg_beta = float(row["weighted_beta"]) / weight if weight > 0 else float(row["weighted_beta"])
        sector_exposure[str(sector)] = {
            "allocation": weight * 100,
            "avg_beta": avg_beta,
            "count": int(row["count"]),
            "speculative_count": int(row["speculative_count"]),
        }

    bucket_totals = frame.groupby("beta_bucket")["weight"].sum() * 100
    beta_exposure = {
        bucket: round_to(float(bucket_totals.get(bucket, 0.0)), 1)
        for bucket in ("defensive", "neutral", "aggressive")
    }
    hhi = float((grouped["weight"] ** 2).sum())

    return {
        "sector_exposure": sector_exposure,
        "beta_exposure": beta_exposure,
        "concentration_risk": round_to(hhi * 100, 0),
        "dominant_sector": str(grouped["weight"].idxmax()),
    }


# ---------------------------------------------------------------------------
# Diversifier analysis
# ---------------------------------------------------------------------------


def _diversification_interpretation(systemic: bool, improved: bool, symbol: str) -> str:
    if systemic:
        if improved:
            return (
                f"Modest improvement from reducing concentration. {symbol} still declines in market "
                "crashes (β≈1.0)."
            )
        return (
            f"Limited benefit in systemic crashes. {symbol} declines with market (β≈1.0). "
            "Main benefit is concentration reduction."
        )
    if improved:
        return f"Meaningful improvement from sector diversification. {symbol} reduces sector-specific risk."
    return f"Minimal benefit. Portfolio may already be well-diversified or {symbol} has similar exposures."


def calculate_diversification_benefit(
    assets: Sequence[Asset],
    weights: Sequence[float],
    scenario: str | StressScenario,
    diversifier: tuple[str, float] = DEFAULT_DIVERSIFIER,
    *,
    scenarios: Mapping[str, StressScenario] | None = None,
) -> dict[str, Any] | None:
    """
    Stress impact after carving ``allocation`` out of every holding for a broad-market ETF.

    A beta-one diversifier reduces concentration risk; it does not protect
    against a systemic crash, and the interpretation text says so.
    """
    definition = resolve_scenario(scenario, scenarios)
    current = calculate_stress_impact(assets, weights, definition) if definition is not None else None
    if definition is None or current is None:
        return None

    symbol, allocation = diversifier
    diversifier_drop = (
        definition.diversifier_drop if definition.diversifier_drop is not None else DEFAULT_DIVERSIFIER_DROP
    )
    retained = 1 - allocation
    adjusted = sum(
        weight * retained * asset_stress_drop(asset, definition)[0]
        for asset, weight in _unique_positions(assets, weights)
    )
    adjusted = round_to(adjusted + allocation * diversifier_drop, 1)

    # both sides carry one decimal, matching the reported figures
    current_impact = round_to(current.portfolio_impact, 1)
    change = round_to(adjusted - current_impact, 1)
    improved = change > 0
    systemic = definition.key in SYSTEMIC_SCENARIOS
    allocation_pct = round_to(allocation * 100, 0)
    allocation_text = f"{allocation_pct:g}%"

    if improved:
        effect = (
            "reduces concentration but offers limited crash protection"
            if systemic
            else "improves sector diversification"
        )
        recommendation = f"Adding {allocation_text} {symbol} {effect}."
    else:
        effect = "has minimal impact" if abs(change) < 2 else "may worsen outcomes"
        recommendation = f"Adding {allocation_text} {symbol} {effect} in this scenario."

    return {
        "current_impact": current_impact,
        "with_diversifier": adjusted,
        "change": change,
        "change_percent": round_to(change / abs(current_impact) * 100, 1) if current_impact else 0.0,
        "is_improvement": improved,
        "diversifier": {"symbol": symbol, "allocation": allocation_pct},
        "interpretation": _diversification_interpretation(systemic, improved, symbol),
        "recommendation": recommendation,
    }


def calculate_correlation_diversification_benefit(
    assets: Sequence[Asset],
    weights: Sequence[float],
    correlation_matrix: Matrix,
    diversifier_symbol: str = "SPY",
    diversifier_correlation: float = 0.3,
    allocation: float = 0.2,
) -> dict[str, Any]:
    """Weighted pairwise correlation and a tail-risk proxy, before and after adding a diversifier."""
    _check_alignment(assets, weights)
    n = len(assets)
    clean = [sanitize(w, 0.0) for w in weights]

    current = 0.0
    pairs = 0
    for i in range(n):
        for j in range(i + 1, n):
            current += correlation_matrix[i][j] * clean[i] * clean[j]
            pairs += 1
    current = current / pairs if pairs else 0.0

    scaled = [w * (1 - allocation) for w in clean]
    new = 0.0
    new_pairs = 0
    for i in range(n):
        for j in range(i + 1, n):
            new += correlation_matrix[i][j] * scaled[i] * scaled[j]
            new_pairs += 1
        new += diversifier_correlation * scaled[i] * allocation
        new_pairs += 1
    new = new / new_pairs if new_pairs else 0.0

    current_tail = current * 50
    new_tail = new * 50
    return {
        "current_correlation": round_to(current, 3),
        "new_correlation": round_to(new, 3),
        "correlation_reduction": round_to((current - new) * 100, 1),
        "current_tail_risk": round_to(current_tail, 1),
        "new_tail_risk": round_to(new_tail, 1),
        "tail_risk_reduction": round_to(current_tail - new_tail, 1),
        "diversifier": {"symbol": diversifier_symbol, "allocation": round_to(allocation * 100, 1)},
    }


__all__ = [
    "AssetStressImpact",
    "StressReport",
    "market_cap_adjustment",
    "profitability_adjustment",
    "bound_asset_drop",
    "risk_flag",
    "is_speculative",
    "asset_stress_drop",
    "resolve_scenario",
    "scenario_recovery_months",
    "stress_narrative",
    "calculate_stress_impact",
    "calculate_compound_shock",
    "analyze_sector_vulnerability",
    "calculate_diversification_benefit",
    "calculate_correlation_diversification_benefit",
]
