"""Thread-safe in-process metrics for trade execution."""

from __future__ import annotations

import math
import re
import threading
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from statistics import mean
from typing import Deque, Dict, Iterator, List, MutableMapping, Tuple

_METRIC_SANITIZE_RE = re.compile(r"[^a-zA-Z0-9_:]")

Labels = Tuple[Tuple[str, str], ...]
SeriesKey = Tuple[str, Labels]

_QUANTILES = (("0.5", "p50"), ("0.9", "p90"), ("0.99", "p99"))


def _sanitize_metric_name(name: str) -> str:
    sanitized = _METRIC_SANITIZE_RE.sub("_", name)
    if not sanitized:
        return "_"
    if sanitized[0].isdigit():
        sanitized = f"_{sanitized}"
    return sanitized


def _series(name: str, labels: Dict[str, object]) -> SeriesKey:
    return name, tuple(sorted((key, str(value)) for key, value in labels.items()))


def _render_labels(labels: Labels, extra: str = "") -> str:
    parts = [f'{_sanitize_metric_name(key)}="{value}"' for key, value in labels]
    if extra:
        parts.append(extra)
    return "{" + ",".join(parts) + "}" if parts else ""


def _display(key: SeriesKey) -> str:
    name, labels = key
    if not labels:
        return name
    return name + "{" + ",".join(f"{label}={value}" for label, value in labels) + "}"


class MetricsRegistry:
    """Counters, gauges and bounded histograms, optionally split by labels.

    Names are dotted, ``<area>.<event>``; per-venue series carry a
    ``venue`` label, e.g. ``METRICS.increment("trade.confirmed", venue="amm_a")``.
    A name read without labels refers to the unlabelled series only.
    """

    def __init__(self, *, max_hist_samples: int = 1024) -> None:
        self._lock = threading.RLock()
        self._counters: MutableMapping[SeriesKey, float] = defaultdict(float)
        self._gauges: MutableMapping[SeriesKey, float] = {}
        self._histograms: MutableMapping[SeriesKey, Deque[float]] = defaultdict(
            lambda: deque(maxlen=max_hist_samples)
        )

    def increment(self, name: str, amount: float = 1.0, **labels: object) -> None:
        with self._lock:
            self._counters[_series(name, labels)] += amount

    def get(self, name: str, **labels: object) -> float:
        with self._lock:
            return self._counters.get(_series(name, labels), 0.0)

    def total(self, name: str) -> float:
        """Sum of a counter across all of its label sets."""

        with self._lock:
            return sum(value for (series, _), value in self._counters.items() if series == name)

    def gauge(self, name: str, value: float, **labels: object) -> None:
        with self._lock:
            self._gauges[_series(name, labels)] = float(value)

    def observe(self, name: str, value: float, **labels: object) -> None:
        with self._lock:
            self._histograms[_series(name, labels)].append(float(value))

    @contextmanager
    def timer(self, name: str, **labels: object) -> Iterator[None]:
        """Observe the wall time of the block in seconds, even when it raises."""

        started = time.perf_counter()
        try:
            yield
        finally:
            self.observe(name, time.perf_counter() - started, **labels)

    def snapshot(self) -> Dict[str, Dict[str, object]]:
        with self._lock:
            counters = {_display(key): value for key, value in self._counters.items()}
            gauges = {_display(key): value for key, value in self._gauges.items()}
            histograms = {_display(key): self._histogram_stats(values) for key, values in self._histograms.items()}
        return {"counters": counters, "gauges": gauges, "histograms": histograms}

    def export_prometheus(self) -> str:
        with self._lock:
            counters = sorted(self._counters.items())
            gauges = sorted(self._gauges.items())
            histograms = sorted((key, self._histogram_stats(values)) for key, values in self._histograms.items())
        lines: List[str] = []
        typed = set()

        def declare(metric: str, kind: str) -> None:
            if metric not in typed:
                typed.add(metric)
                lines.append(f"# TYPE {metric} {kind}")

        for (name, labels), value in counters:
            metric = _sanitize_metric_name(name)
            declare(metric, "counter")
            lines.append(f"{metric}{_render_labels(labels)} {value}")
        for (name, labels), value in gauges:
            metric = _sanitize_metric_name(name)
            declare(metric, "gauge")
            lines.append(f"{metric}{_render_labels(labels)} {value}")
        for (name, labels), stats in histograms:
            if not stats:
                continue
            metric = _sanitize_metric_name(name)
            declare(metric, "summary")
            for quantile, stat in _QUANTILES:
                quantile_label = 'quantile="' + quantile + '"'
                lines.append(f"{metric}{_render_labels(labels, quantile_label)} {stats[stat]}")
            lines.append(f"{metric}_count{_render_labels(labels)} {stats['count']}")
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()

    def _histogram_stats(self, values: Deque[float]) -> Dict[str, float]:
        data = sorted(values)
        if not data:
            return {}
        return {
            "count": float(len(data)),
            "avg": mean(data),
            "p50": self._percentile(data, 0.5),
            "p90": self._percentile(data, 0.9),
            "p99": self._percentile(data, 0.99),
        }

    @staticmethod
    def _percentile(data: List[float], percentile: float) -> float:
        index = max(int(math.ceil(percentile * len(data))) - 1, 0)
        return float(data[min(index, len(data) - 1)])


METRICS = MetricsRegistry()


__all__ = ["METRICS", "MetricsRegistry"]
