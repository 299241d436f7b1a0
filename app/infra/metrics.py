# app/infra/metrics.py
from __future__ import annotations
from collections import defaultdict
from threading import Lock
from app.infra.logging_config import get_logger

logger = get_logger(__name__)


def _summarize(values: list[float]) -> dict:
    """count/min/max/avg/p95 for a list of observations"""
    if not values:
        return {"count": 0, "min": 0, "max": 0, "avg": 0, "p95": 0}

    ordered = sorted(values)
    count = len(ordered)
    return {
        "count": count,
        "min": ordered[0],
        "max": ordered[-1],
        "avg": sum(ordered) / count,
        "p95": ordered[min(int(count * 0.95), count - 1)],
    }


class MetricsCollector:
    """
    In-process counters and histograms for the dispatcher.
    Exposed as JSON on /metrics; reset on restart.
    """

    def __init__(self):
        self._counters: dict[str, int] = defaultdict(int)
        self._histograms: dict[str, list[float]] = defaultdict(list)
        self._lock = Lock()

    def inc_counter(self, name: str, amount: int = 1, labels: dict | None = None) -> None:
        key = self._make_key(name, labels)
        with self._lock:
            self._counters[key] += amount

    def observe_histogram(self, name: str, value: float, labels: dict | None = None) -> None:
        key = self._make_key(name, labels)
        with self._lock:
            self._histograms[key].append(value)

    def get_counter(self, name: str, **labels) -> int:
        with self._lock:
            return self._counters.get(self._make_key(name, labels or None), 0)

    def get_metrics(self) -> dict:
        with self._lock:
            counters = dict(self._counters)
            histograms = {k: _summarize(v) for k, v in self._histograms.items()}

        return {
            "counters": counters,
            "histograms": histograms,
        }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._histograms.clear()
        logger.info("Metrics reset")

    @staticmethod
    def _make_key(name: str, labels: dict | None) -> str:
        """push_skipped + {"reason": "no-token"} -> push_skipped{reason=no-token}"""
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"


_metrics = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector"""
    return _metrics


def inc_counter(name: str, amount: int = 1, **labels) -> None:
    _metrics.inc_counter(name, amount, labels or None)


def observe_histogram(name: str, value: float, **labels) -> None:
    _metrics.observe_histogram(name, value, labels or None)
