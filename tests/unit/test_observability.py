from __future__ import annotations

import json
import logging

from portfolio_risk.observability import JsonLogFormatter, MetricsCollector, configure_logging
from portfolio_risk.observability.logging import configure_from_settings
from portfolio_risk.settings import DEFAULT_SETTINGS


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


class TestMetricsCollector:
    def test_counters_accumulate_per_label_set(self):
        metrics = MetricsCollector()
        metrics.increment("optimizations_total", labels={"tier": "low"})
        metrics.increment("optimizations_total", labels={"tier": "low"})
        metrics.increment("optimizations_total", labels={"tier": "high"})
        assert metrics.counter_value("optimizations_total", {"tier": "low"}) == 2.0
        assert metrics.counter_value("optimizations_total", {"tier": "high"}) == 1.0
        assert metrics.counter_value("missing") == 0.0

    def test_snapshot_keys(self):
        metrics = MetricsCollector()
        metrics.set_gauge("average_correlation", 0.42)
        metrics.observe("simulation_seconds", 0.5, labels={"kind": "goal"})
        metrics.observe("simulation_seconds", 1.5, labels={"kind": "goal"})
        snapshot = metrics.snapshot()
        assert snapshot["gauges"] == {"average_correlation": 0.42}
        assert snapshot["histograms"] == {"simulation_seconds{kind=goal}": [0.5, 1.5]}

    def test_mirrored_to_prometheus_registry(self):
        metrics = MetricsCollector()
        metrics.increment("stress_tests", 3, labels={"scenario": "blackSwan"})
        value = metrics.registry.get_sample_value("stress_tests_total", {"scenario": "blackSwan"})
        assert value == 3.0

    def test_collectors_do_not_share_registries(self):
        first, second = MetricsCollector(), MetricsCollector()
        first.increment("runs")
        second.increment("runs")
        assert first.counter_value("runs") == second.counter_value("runs") == 1.0


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


class TestJsonLogFormatter:
    def test_context_fields_included(self):
        record = logging.LogRecord("portfolio_risk.test", logging.INFO, __file__, 1, "ran %d trials", (500,), None)
        record.event = "goal_simulation"
        record.trials = 500
        payload = json.loads(JsonLogFormatter().format(record))
        assert payload["level"] == "INFO"
        assert payload["logger"] == "portfolio_risk.test"
        assert payload["message"] == "ran 500 trials"
        assert payload["event"] == "goal_simulation"
        assert payload["trials"] == 500
        assert "symbol" not in payload


class TestConfigureLogging:
    def teardown_method(self):
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        logging.getLogger().setLevel(logging.WARNING)

    def test_json_console_handler(self):
        configure_logging("DEBUG", json_format=True)
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, JsonLogFormatter)

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "engine.log"
        configure_logging("INFO", log_file=str(log_file))
        logging.getLogger("portfolio_risk").info("hello")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert log_file.exists()
        assert "hello" in log_file.read_text(encoding="utf-8")

    def test_from_settings(self):
        configure_from_settings(DEFAULT_SETTINGS.with_overrides(log_level="WARNING", log_json=True))
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, JsonLogFormatter)
