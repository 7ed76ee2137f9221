"""
Configuration Manager - Portfolio Risk Engine

Loads the stress-scenario library and optional correlation-table overrides
from YAML. The packaged defaults live in ``portfolio_risk/configs``; callers
may point at their own files to recalibrate without code changes.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from portfolio_risk.common.enums import AssetClass
from portfolio_risk.models import StressScenario

logger = logging.getLogger(__name__)

CONFIGS_DIR = Path(__file__).resolve().parents[1] / "configs"
DEFAULT_SCENARIOS_FILE = CONFIGS_DIR / "stress_scenarios.yaml"

_REQUIRED_SCENARIO_KEYS = ("name", "market_drop", "duration", "recovery_time", "sector_impact")


class ConfigError(ValueError):
    """Raised when a configuration file is missing or malformed."""


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ConfigError(f"Expected a mapping at the top level of {path}")
    return payload


def _parse_scenario(key: str, raw: Any) -> StressScenario:
    if not isinstance(raw, Mapping):
        raise ConfigError(f"Scenario '{key}' must be a mapping")
    missing = [name for name in _REQUIRED_SCENARIO_KEYS if name not in raw]
    if missing:
        raise ConfigError(f"Scenario '{key}' is missing keys: {', '.join(missing)}")

    sector_impact = raw["sector_impact"]
    if not isinstance(sector_impact, Mapping) or not sector_impact:
        raise ConfigError(f"Scenario '{key}' sector_impact must be a non-empty mapping")
    try:
        impacts = MappingProxyType({str(sector): float(drop) for sector, drop in sector_impact.items()})
        diversifier_drop = raw.get("diversifier_drop")
        return StressScenario(
            key=str(key),
            name=str(raw["name"]),
            description=str(raw.get("description", "")),
            probability=str(raw.get("probability", "")),
            market_drop=float(raw["market_drop"]),
            sector_impact=impacts,
            duration=int(raw["duration"]),
            recovery_time=int(raw["recovery_time"]),
            diversifier_drop=float(diversifier_drop) if diversifier_drop is not None else None,
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Scenario '{key}' has a non-numeric field: {exc}") from exc


def load_stress_scenarios(path: str | Path | None = None) -> dict[str, StressScenario]:
    """Load and validate a scenario library keyed by scenario id."""
    if path is None:
        return dict(_default_scenarios())
    return _load_scenarios_uncached(Path(path))


def _load_scenarios_uncached(path: Path) -> dict[str, StressScenario]:
    payload = _read_yaml(path)
    if not payload:
        raise ConfigError(f"No scenarios defined in {path}")
    scenarios = {str(key): _parse_scenario(key, raw) for key, raw in payload.items()}
    logger.debug("Loaded %d stress scenarios from %s", len(scenarios), path)
    return scenarios


@lru_cache(maxsize=1)
def _default_scenarios() -> dict[str, StressScenario]:
    return _load_scenarios_uncached(DEFAULT_SCENARIOS_FILE)


def load_correlation_table(path: str | Path) -> dict[frozenset[AssetClass], float]:
    """
    Load base-correlation overrides.

    The file maps ``"<class>-<class>"`` keys (e.g. ``bond_etf-large_cap_stock``)
    to correlations in [-1, 1]. Unlisted pairs keep the built-in calibration.
    """
    from portfolio_risk.analytics.correlation import BASE_CORRELATIONS

    payload = _read_yaml(Path(path))
    table = dict(BASE_CORRELATIONS)
    for key, value in payload.items():
        parts = str(key).split("-")
        classes = [AssetClass.coerce(part) for part in parts]
        if len(parts) != 2 or any(cls is None for cls in classes):
            raise ConfigError(f"Unknown asset-class pair '{key}'")
        try:
            rho = float(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Correlation for '{key}' must be numeric") from exc
        if not -1.0 <= rho <= 1.0:
            raise ConfigError(f"Correlation for '{key}' must lie in [-1, 1], got {rho}")
        table[frozenset(classes)] = rho
    return table
