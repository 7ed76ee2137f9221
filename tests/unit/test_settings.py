from __future__ import annotations

import pytest

from portfolio_risk.settings import (
    DEFAULT_SETTINGS,
    EngineSettings,
    load_engine_settings,
    parse_bool,
    parse_env_bool,
    parse_env_float,
    parse_env_int,
)


class TestEnvParsers:
    def test_bool_truthy_values(self):
        for raw in ("1", "true", "YES", "on"):
            assert parse_env_bool("FLAG", False, environ={"FLAG": raw}) is True
        assert parse_env_bool("FLAG", True, environ={"FLAG": "off"}) is False
        assert parse_env_bool("FLAG", True, environ={}) is True

    def test_parse_bool_accepts_strings_and_values(self):
        assert parse_bool("false") is False
        assert parse_bool(" TRUE ") is True
        assert parse_bool(0) is False
        assert parse_bool(None, True) is True
        assert parse_bool("", True) is True

    def test_int_clamped_and_invalid(self):
        assert parse_env_int("N", 5, 1, 10, environ={"N": "99"}) == 10
        assert parse_env_int("N", 5, 1, 10, environ={"N": "-3"}) == 1
        assert parse_env_int("N", 5, 1, 10, environ={"N": "many"}) == 5

    def test_float_rejects_non_finite(self):
        assert parse_env_float("X", 2.5, 0.0, 10.0, environ={"X": "nan"}) == 2.5
        assert parse_env_float("X", 2.5, 0.0, 10.0, environ={"X": " 7.25 "}) == 7.25


class TestEngineSettings:
    def test_defaults_without_environment(self):
        assert EngineSettings.from_env(environ={}) == DEFAULT_SETTINGS

    def test_reads_prefixed_variables(self):
        settings = load_engine_settings(
            environ={
                "PORTFOLIO_RISK_GOAL_TRIALS": "5000",
                "PORTFOLIO_RISK_MAX_WORKERS": "8",
                "PORTFOLIO_RISK_SEED": "42",
                "PORTFOLIO_RISK_LOG_LEVEL": "debug",
                "PORTFOLIO_RISK_LOG_JSON": "true",
                "PORTFOLIO_RISK_APPLY_RETURN_CAPS": "false",
            }
        )
        assert settings.goal_trials == 5_000
        assert settings.max_workers == 8
        assert settings.seed == 42
        assert settings.log_level == "DEBUG"
        assert settings.log_json is True
        assert settings.apply_return_caps is False

    def test_values_clamped_to_safe_ranges(self):
        settings = EngineSettings.from_env(
            environ={
                "PORTFOLIO_RISK_GOAL_TRIALS": "10",
                "PORTFOLIO_RISK_BATCH_SIZE": "10000000",
                "PORTFOLIO_RISK_MAX_WORKERS": "0",
            }
        )
        assert settings.goal_trials == 100
        assert settings.batch_size == 100_000
        assert settings.max_workers == 1

    def test_zero_timeout_disables_limit(self):
        settings = EngineSettings.from_env(environ={"PORTFOLIO_RISK_SIMULATION_TIMEOUT_SECONDS": "0"})
        assert settings.simulation_timeout_seconds is None

    def test_invalid_seed_ignored(self):
        assert EngineSettings.from_env(environ={"PORTFOLIO_RISK_SEED": "abc"}).seed is None

    def test_with_overrides_is_a_copy(self):
        changed = DEFAULT_SETTINGS.with_overrides(goal_trials=500)
        assert changed.goal_trials == 500
        assert DEFAULT_SETTINGS.goal_trials == 15_000

    def test_frozen(self):
        with pytest.raises(AttributeError):
            DEFAULT_SETTINGS.goal_trials = 1
