"""Shared pytest fixtures for portfolio_risk tests."""

from __future__ import annotations

import numpy as np
import pytest

from portfolio_risk.models import Asset
from portfolio_risk.settings import DEFAULT_SETTINGS, EngineSettings


def make_asset(symbol: str, expected_return: float, risk: float, **kwargs: object) -> Asset:
    """Profitable mid-cap stock unless overridden."""
    defaults: dict[str, object] = {
        "sector": "Technology",
        "beta": 1.0,
        "market_cap": "20B",
        "pe_ratio": 18.0,
    }
    defaults.update(kwargs)
    return Asset(symbol=symbol, expected_return=expected_return, risk=risk, **defaults)


@pytest.fixture
def asset_trio() -> list[Asset]:
    """Three mid-cap stocks with distinct sectors, betas and risk/return profiles."""
    return [
        make_asset("AAA", 8.0, 10.0, sector="Technology", beta=0.6),
        make_asset("BBB", 15.0, 18.0, sector="Healthcare", beta=1.0),
        make_asset("CCC", 22.0, 30.0, sector="Energy", beta=1.6),
    ]


@pytest.fixture
def uncapped_settings() -> EngineSettings:
    """Settings that leave modeled returns untouched."""
    return DEFAULT_SETTINGS.with_overrides(apply_return_caps=False)


@pytest.fixture
def sim_settings() -> EngineSettings:
    """Seeded, reduced-size simulation settings."""
    return DEFAULT_SETTINGS.with_overrides(
        seed=7,
        goal_trials=2_000,
        recovery_trials=400,
        batch_size=250,
        max_workers=2,
        simulation_timeout_seconds=None,
    )


@pytest.fixture
def monthly_returns() -> list[float]:
    """Three years of seeded monthly returns."""
    rng = np.random.default_rng(seed=2024)
    return [float(r) for r in rng.normal(0.008, 0.045, 36)]


@pytest.fixture
def vix_payload() -> dict[str, object]:
    return {
        "currentVIX": 28.0,
        "impliedAnnualVol": 28.0,
        "regime": "elevated",
        "dataSource": "test",
    }


@pytest.fixture
def asset_factory():
    return make_asset
