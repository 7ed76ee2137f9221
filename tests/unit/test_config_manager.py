from __future__ import annotations

import pytest

from portfolio_risk.common.config_manager import (
    ConfigError,
    load_correlation_table,
    load_stress_scenarios,
)
from portfolio_risk.common.enums import AssetClass


def _write(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestStressScenarioLibrary:
    def test_packaged_scenarios(self):
        scenarios = load_stress_scenarios()
        assert set(scenarios) == {"marketCrash", "sectorCollapse", "blackSwan"}
        crash = scenarios["marketCrash"]
        assert crash.market_drop == -40.0
        assert crash.sector_drop("Healthcare") == -25.0
        assert crash.sector_drop("Nowhere") == -40.0

    def test_default_library_returns_copy(self):
        first = load_stress_scenarios()
        first.pop("marketCrash")
        assert "marketCrash" in load_stress_scenarios()

    def test_default_sector_impacts_read_only(self):
        crash = load_stress_scenarios()["marketCrash"]
        with pytest.raises(TypeError):
            crash.sector_impact["Technology"] = 0.0
        assert load_stress_scenarios()["marketCrash"].sector_drop("Technology") == crash.sector_drop("Technology")

    def test_custom_file(self, tmp_path):
        path = _write(
            tmp_path,
            """
rateShock:
  name: "Rate Shock"
  market_drop: -15
  duration: 3
  recovery_time: 9
  sector_impact:
    Real Estate: -30
""",
        )
        scenarios = load_stress_scenarios(path)
        assert scenarios["rateShock"].sector_drop("Real Estate") == -30.0
        assert scenarios["rateShock"].diversifier_drop is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_stress_scenarios(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_stress_scenarios(_write(tmp_path, "crash: [unclosed"))

    def test_missing_keys(self, tmp_path):
        with pytest.raises(ConfigError, match="missing keys"):
            load_stress_scenarios(_write(tmp_path, "crash:\n  name: Crash\n  market_drop: -20\n"))

    def test_empty_sector_impact(self, tmp_path):
        text = "crash:\n  name: Crash\n  market_drop: -20\n  duration: 1\n  recovery_time: 2\n  sector_impact: {}\n"
        with pytest.raises(ConfigError, match="non-empty"):
            load_stress_scenarios(_write(tmp_path, text))

    def test_config_error_is_value_error(self, tmp_path):
        with pytest.raises(ValueError):
            load_stress_scenarios(_write(tmp_path, "- a\n- b\n"))


class TestCorrelationTable:
    def test_override_merges_with_defaults(self, tmp_path):
        table = load_correlation_table(_write(tmp_path, "bond_etf-large_cap_stock: -0.1\n"))
        assert table[frozenset({AssetClass.BOND_ETF, AssetClass.LARGE_CAP_STOCK})] == -0.1
        assert len(table) > 1

    def test_unknown_pair(self, tmp_path):
        with pytest.raises(ConfigError, match="Unknown asset-class pair"):
            load_correlation_table(_write(tmp_path, "gold-silver: 0.5\n"))

    def test_out_of_range(self, tmp_path):
        with pytest.raises(ConfigError, match=r"\[-1, 1\]"):
            load_correlation_table(_write(tmp_path, "bond_etf-large_cap_stock: 1.5\n"))
