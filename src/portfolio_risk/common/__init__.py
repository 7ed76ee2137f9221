"""
Portfolio Risk Common Utilities.

Shared enums and YAML configuration loading.
"""

from __future__ import annotations

from .enums import AssetClass, CorrelationTier, MarketCapTier, Severity, VolatilityRegime

__all__ = [
    "AssetClass",
    "ConfigError",
    "CorrelationTier",
    "MarketCapTier",
    "Severity",
    "VolatilityRegime",
    "load_correlation_table",
    "load_stress_scenarios",
]

_CONFIG_EXPORTS = {"ConfigError", "load_correlation_table", "load_stress_scenarios"}


def __getattr__(name: str):
    if name in _CONFIG_EXPORTS:
        from . import config_manager

        return getattr(config_manager, name)
    raise AttributeError(name)
