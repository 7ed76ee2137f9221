"""Runtime configuration for the optimization and simulation engine."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace

from .environment import (
    parse_env_bool,
    parse_env_float,
    parse_env_int,
    parse_env_optional_int,
    parse_env_str,
)


@dataclass(frozen=True)
class EngineSettings:
    risk_free_rate: float = 4.5
    market_risk_premium: float = 8.0
    market_volatility: float = 18.0
    max_single_asset: float = 0.40
    apply_return_caps: bool = True
    goal_trials: int = 15_000
    recovery_trials: int = 1_000
    recovery_max_months: int = 120
    student_t_df: int = 6
    batch_size: int = 1_000
    max_workers: int = 4
    simulation_timeout_seconds: float | None = 60.0
    seed: int | None = None
    log_level: str = "INFO"
    log_json: bool = False

    def with_overrides(self, **changes) -> "EngineSettings":
        return replace(self, **changes)

    @classmethod
    def from_env(cls, *, environ: Mapping[str, str] | None = None) -> "EngineSettings":
        timeout = parse_env_float(
            "PORTFOLIO_RISK_SIMULATION_TIMEOUT_SECONDS",
            60.0,
            0.0,
            3_600.0,
            environ=environ,
        )
        return cls(
            risk_free_rate=parse_env_float("PORTFOLIO_RISK_RISK_FREE_RATE", 4.5, -5.0, 25.0, environ=environ),
            market_risk_premium=parse_env_float(
                "PORTFOLIO_RISK_MARKET_RISK_PREMIUM", 8.0, 0.0, 25.0, environ=environ
            ),
            market_volatility=parse_env_float(
                "PORTFOLIO_RISK_MARKET_VOLATILITY", 18.0, 1.0, 150.0, environ=environ
            ),
            max_single_asset=parse_env_float(
                "PORTFOLIO_RISK_MAX_SINGLE_ASSET", 0.40, 0.10, 1.0, environ=environ
            ),
            apply_return_caps=parse_env_bool("PORTFOLIO_RISK_APPLY_RETURN_CAPS", True, environ=environ),
            goal_trials=parse_env_int("PORTFOLIO_RISK_GOAL_TRIALS", 15_000, 100, 1_000_000, environ=environ),
            recovery_trials=parse_env_int(
                "PORTFOLIO_RISK_RECOVERY_TRIALS", 1_000, 100, 1_000_000, environ=environ
            ),
            recovery_max_months=parse_env_int(
                "PORTFOLIO_RISK_RECOVERY_MAX_MONTHS", 120, 12, 1_200, environ=environ
            ),
            student_t_df=parse_env_int("PORTFOLIO_RISK_STUDENT_T_DF", 6, 3, 100, environ=environ),
            batch_size=parse_env_int("PORTFOLIO_RISK_BATCH_SIZE", 1_000, 50, 100_000, environ=environ),
            max_workers=parse_env_int("PORTFOLIO_RISK_MAX_WORKERS", 4, 1, 64, environ=environ),
            simulation_timeout_seconds=timeout if timeout > 0 else None,
            seed=parse_env_optional_int("PORTFOLIO_RISK_SEED", environ=environ),
            log_level=parse_env_str("PORTFOLIO_RISK_LOG_LEVEL", "INFO", environ=environ).upper(),
            log_json=parse_env_bool("PORTFOLIO_RISK_LOG_JSON", False, environ=environ),
        )


DEFAULT_SETTINGS = EngineSettings()


def load_engine_settings(*, environ: Mapping[str, str] | None = None) -> EngineSettings:
    return EngineSettings.from_env(environ=environ)
