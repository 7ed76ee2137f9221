"""
Domain records consumed and produced by the engine.

Assets are validated once at construction; every analytics function can then
assume finite returns, strictly positive risk and a usable beta.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .common.enums import Severity
from .errors import DuplicateSymbolError, InvalidAssetError
from .settings.environment import parse_bool

_MARKET_CAP_PATTERN = re.compile(r"([-+]?\d+(?:\.\d+)?)\s*([TBM])", re.IGNORECASE)
_UNIT_TO_BILLIONS = {"T": 1000.0, "B": 1.0, "M": 0.001}


def parse_market_cap(text: str | None) -> tuple[float, str] | None:
    """Parse strings such as ``"2.8T"``, ``"$45.2B"`` or ``"850M"`` into (value, unit)."""
    if not text:
        return None
    match = _MARKET_CAP_PATTERN.search(str(text).replace(",", ""))
    if match is None:
        return None
    return float(match.group(1)), match.group(2).upper()


def _optional_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


@dataclass(frozen=True)
class Asset:
    """
    Per-asset estimate supplied by the caller.

    Attributes:
        symbol: Unique ticker, stored upper-case.
        expected_return: Annual expected return in percent.
        risk: Annualized volatility in percent, strictly positive.
        beta: Sensitivity to the market, defaults to 1.0.
        market_cap: Display string such as ``"2.8T"`` or ``"450M"``.
        pe_ratio: Trailing P/E, ``None`` when unavailable.
    """

    symbol: str
    expected_return: float
    risk: float
    name: str = ""
    sector: str = "Unknown"
    beta: float = 1.0
    market_cap: str | None = None
    pe_ratio: float | None = None
    is_index_fund: bool = False
    eps_ttm: float | None = None
    profit_margin: float | None = None

    def __post_init__(self) -> None:
        symbol = str(self.symbol or "").strip().upper()
        if not symbol:
            raise InvalidAssetError("Asset symbol must be a non-empty string")
        object.__setattr__(self, "symbol", symbol)

        expected_return = _optional_float(self.expected_return)
        if expected_return is None:
            raise InvalidAssetError(f"{symbol}: expected_return must be a finite number")
        object.__setattr__(self, "expected_return", expected_return)

        risk = _optional_float(self.risk)
        if risk is None or risk <= 0:
            raise InvalidAssetError(f"{symbol}: risk must be a finite number greater than zero")
        object.__setattr__(self, "risk", risk)

        beta = _optional_float(self.beta)
        object.__setattr__(self, "beta", 1.0 if beta is None else beta)
        object.__setattr__(self, "pe_ratio", _optional_float(self.pe_ratio))
        object.__setattr__(self, "eps_ttm", _optional_float(self.eps_ttm))
        object.__setattr__(self, "profit_margin", _optional_float(self.profit_margin))
        object.__setattr__(self, "sector", str(self.sector or "").strip() or "Unknown")
        object.__setattr__(self, "name", str(self.name or symbol))
        object.__setattr__(self, "is_index_fund", parse_bool(self.is_index_fund))

    @classmethod
    def from_mapping(cls, record: Mapping[str, Any]) -> "Asset":
        """Build an asset from a loosely typed record (snake_case or camelCase keys)."""
        if not isinstance(record, Mapping):
            raise InvalidAssetError(f"Asset record must be a mapping, got {type(record).__name__}")

        def pick(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if key in record and record[key] is not None:
                    return record[key]
            return default

        market_cap = pick("market_cap", "marketCap")
        return cls(
            symbol=pick("symbol", "ticker", default=""),
            name=pick("name", default=""),
            sector=pick("sector", default="Unknown"),
            expected_return=pick("expected_return", "expectedReturn"),
            risk=pick("risk", "volatility"),
            beta=pick("beta", default=1.0),
            market_cap=str(market_cap) if market_cap is not None else None,
            pe_ratio=pick("pe_ratio", "peRatio"),
            is_index_fund=parse_bool(pick("is_index_fund", "isIndexFund")),
            eps_ttm=pick("eps_ttm", "epsTtm"),
            profit_margin=pick("profit_margin", "profitMargin"),
        )

    @property
    def market_cap_unit(self) -> str | None:
        parsed = parse_market_cap(self.market_cap)
        return parsed[1] if parsed else None

    @property
    def market_cap_billions(self) -> float | None:
        parsed = parse_market_cap(self.market_cap)
        if parsed is None:
            return None
        value, unit = parsed
        return value * _UNIT_TO_BILLIONS[unit]

    @property
    def has_positive_pe(self) -> bool:
        return self.pe_ratio is not None and self.pe_ratio > 0

    @property
    def is_profitable(self) -> bool:
        if self.has_positive_pe:
            return True
        return (self.eps_ttm or 0) > 0 and (self.profit_margin or 0) > 0


def coerce_assets(assets: Any) -> list[Asset]:
    """Validate caller input into a list of :class:`Asset` with unique symbols."""
    if assets is None:
        raise InvalidAssetError("At least one asset is required")
    coerced = [a if isinstance(a, Asset) else Asset.from_mapping(a) for a in assets]
    if not coerced:
        raise InvalidAssetError("At least one asset is required")

    seen: set[str] = set()
    duplicates: list[str] = []
    for asset in coerced:
        if asset.symbol in seen and asset.symbol not in duplicates:
            duplicates.append(asset.symbol)
        seen.add(asset.symbol)
    if duplicates:
        raise DuplicateSymbolError(
            f"Duplicate asset symbols: {', '.join(duplicates)}",
            user_message=f"Each asset must appear once; found duplicates of {', '.join(duplicates)}.",
        )
    return coerced


@dataclass
class Portfolio:
    """Allocation produced by one of the solvers. Weights are fractions summing to 1."""

    weights: dict[str, float]
    expected_return: float
    risk: float
    sharpe_ratio: float
    constraints_applied: bool = False
    method: str | None = None
    stabilization_applied: bool = False
    fallback: str | None = None

    @property
    def allocations(self) -> dict[str, float]:
        """Allocations as percentages keyed by symbol."""
        return {symbol: weight * 100 for symbol, weight in self.weights.items()}

    def weight_vector(self, symbols: list[str]) -> list[float]:
        return [self.weights.get(symbol, 0.0) for symbol in symbols]


@dataclass(frozen=True)
class ValidationIssue:
    type: str
    message: str
    severity: Severity = Severity.MEDIUM
    detail: str | None = None
    recoverable: bool = True


@dataclass
class ValidationReport:
    critical_errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    integrity_violations: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.critical_errors and not self.integrity_violations

    @property
    def can_show_frontier(self) -> bool:
        return not self.critical_errors

    def messages(self) -> list[str]:
        issues = self.critical_errors + self.integrity_violations + self.warnings
        return [issue.message for issue in issues]


@dataclass(frozen=True)
class StressScenario:
    """Static shock definition. Sector drops are percentages (negative)."""

    key: str
    name: str
    market_drop: float
    sector_impact: Mapping[str, float]
    duration: int
    recovery_time: int
    description: str = ""
    probability: str = ""
    diversifier_drop: float | None = None

    def sector_drop(self, sector: str) -> float:
        return float(self.sector_impact.get(sector, self.market_drop))


@dataclass(frozen=True)
class VixData:
    """Market regime snapshot supplied by the caller."""

    current_vix: float
    implied_annual_vol: float | None = None
    regime: str | None = None
    regime_description: str | None = None
    data_source: str | None = None

    @classmethod
    def from_mapping(cls, record: Mapping[str, Any] | None) -> "VixData | None":
        if not isinstance(record, Mapping):
            return None
        current = _optional_float(record.get("current_vix", record.get("currentVIX", record.get("current"))))
        if current is None:
            return None
        return cls(
            current_vix=current,
            implied_annual_vol=_optional_float(
                record.get("implied_annual_vol", record.get("impliedAnnualVol"))
            ),
            regime=record.get("regime"),
            regime_description=record.get("regime_description", record.get("regimeDescription")),
            data_source=record.get("data_source", record.get("dataSource")),
        )
