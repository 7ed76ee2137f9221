"""In-memory metrics collection mirrored to a Prometheus registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram


def _labels_key(labels: dict[str, str] | None) -> tuple[tuple[str, str], ...]:
    if not labels:
        return ()
    return tuple(sorted((str(k), str(v)) for k, v in labels.items()))


@dataclass
class MetricsCollector:
    """
    Collect engine metrics.

    Values are kept in plain dictionaries for ``snapshot()`` and mirrored to
    Prometheus metrics on ``registry``. Each collector owns its registry so
    several collectors can coexist in one process.
    """

    registry: CollectorRegistry = field(default_factory=CollectorRegistry)
    counters: dict[tuple[str, tuple[tuple[str, str], ...]], float] = field(default_factory=dict)
    gauges: dict[tuple[str, tuple[tuple[str, str], ...]], float] = field(default_factory=dict)
    histograms: dict[tuple[str, tuple[tuple[str, str], ...]], list[float]] = field(default_factory=dict)
    _prom_counters: dict[tuple[str, tuple[str, ...]], Any] = field(default_factory=dict)
    _prom_gauges: dict[tuple[str, tuple[str, ...]], Any] = field(default_factory=dict)
    _prom_histograms: dict[tuple[str, tuple[str, ...]], Any] = field(default_factory=dict)

    def increment(self, name: str, value: float = 1.0, labels: dict[str, str] | None = None) -> None:
        key = (name, _labels_key(labels))
        self.counters[key] = float(self.counters.get(key, 0.0)) + float(value)
        self._prom_metric(self._prom_counters, Counter, name, labels).inc(value)

    def set_gauge(self, name: str, value: float, labels: dict[str, str] | None = None) -> None:
        key = (name, _labels_key(labels))
        self.gauges[key] = float(value)
        self._prom_metric(self._prom_gauges, Gauge, name, labels).set(value)

    def observe(self, name: str, value: float, labels: dict[str, str] | None = None) -> None:
        key = (name, _labels_key(labels))
        self.histograms.setdefault(key, []).append(float(value))
        self._prom_metric(self._prom_histograms, Histogram, name, labels).observe(value)

    def counter_value(self, name: str, labels: dict[str, str] | None = None) -> float:
        return float(self.counters.get((name, _labels_key(labels)), 0.0))

    def snapshot(self) -> dict[str, Any]:
        return {
            "counters": {
                self._render_metric_key(name, labels): value
                for (name, labels), value in self.counters.items()
            },
            "gauges": {
                self._render_metric_key(name, labels): value
                for (name, labels), value in self.gauges.items()
            },
            "histograms": {
                self._render_metric_key(name, labels): list(values)
                for (name, labels), values in self.histograms.items()
            },
        }

    @staticmethod
    def _render_metric_key(name: str, labels: tuple[tuple[str, str], ...]) -> str:
        if not labels:
            return name
        rendered = ",".join(f"{k}={v}" for k, v in labels)
        return f"{name}{{{rendered}}}"

    def _prom_metric(
        self,
        cache: dict[tuple[str, tuple[str, ...]], Any],
        metric_type: type,
        name: str,
        labels: dict[str, str] | None,
    ) -> Any:
        label_names = tuple(sorted(labels.keys())) if labels else ()
        key = (name, label_names)
        if key not in cache:
            cache[key] = metric_type(
                name,
                f"{name} {metric_type.__name__.lower()}",
                list(label_names),
                registry=self.registry,
            )
        metric = cache[key]
        return metric.labels(**labels) if labels else metric
