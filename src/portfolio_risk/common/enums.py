from __future__ import annotations

from enum import Enum
from typing import Any


class _CoercibleEnum(str, Enum):
    def __str__(self) -> str:
        return self.value

    @classmethod
    def coerce(cls, value: Any):
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            text = value.strip()
            for member in cls:
                if text == member.value:
                    return member
            lowered = text.lower()
            for member in cls:
                if lowered == member.value.lower() or lowered == member.name.lower():
                    return member
        return None


class AssetClass(_CoercibleEnum):
    BROAD_MARKET_ETF = "broad_market_etf"
    BOND_ETF = "bond_etf"
    COMMODITY_ETF = "commodity_etf"
    REAL_ESTATE_ETF = "real_estate_etf"
    LARGE_CAP_STOCK = "large_cap_stock"
    MID_SMALL_CAP_STOCK = "mid_small_cap_stock"
    SPECULATIVE_STOCK = "speculative_stock"

    @property
    def is_etf(self) -> bool:
        return self.value.endswith("_etf")


class CorrelationTier(_CoercibleEnum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    EXTREME = "extreme"


class VolatilityRegime(_CoercibleEnum):
    LOW = "low"
    NORMAL = "normal"
    ELEVATED = "elevated"
    HIGH = "high"
    EXTREME = "extreme"


class Severity(_CoercibleEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class MarketCapTier(_CoercibleEnum):
    MEGA = "mega-cap"
    LARGE = "large-cap"
    MID = "mid-cap"
    SMALL = "small-cap"
    MICRO = "micro-cap"
    UNKNOWN = "unknown"
