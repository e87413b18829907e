"""Lightweight metrics registry for Tareas."""

from dataclasses import dataclass
from threading import Lock
from typing import Any


@dataclass
class Counter:
    value: float = 0.0

    def inc(self, amount: float = 1.0) -> None:
        self.value += amount


@dataclass
class Histogram:
    count: int = 0
    total: float = 0.0
    maximum: float | None = None

    def observe(self, value: float) -> None:
        self.count += 1
        self.total += value
        if self.maximum is None or value > self.maximum:
            self.maximum = value

    def snapshot(self) -> dict[str, Any]:
        average = self.total / self.count if self.count else 0.0
        return {"count": self.count, "max": self.maximum, "avg": average}


class MetricsRegistry:
    """Thread-safe registry for counters and histograms.

    Fed by the query listener in ``tareas.db.base`` and by push delivery.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self.counters: dict[str, Counter] = {}
        self.histograms: dict[str, Histogram] = {}

    def inc_counter(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self.counters.setdefault(name, Counter()).inc(amount)

    def observe(self, name: str, value: float) -> None:
        with self._lock:
            self.histograms.setdefault(name, Histogram()).observe(value)

    def get_counter(self, name: str) -> float:
        with self._lock:
            counter = self.counters.get(name)
            return counter.value if counter else 0.0

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": {name: c.value for name, c in self.counters.items()},
                "histograms": {name: h.snapshot() for name, h in self.histograms.items()},
            }


metrics = MetricsRegistry()
