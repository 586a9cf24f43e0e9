from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from time import monotonic, perf_counter
from typing import Any, Iterator


class Counter:
    """A value that can be incremented and decremented."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._count = 0

    def inc(self, n: int = 1) -> None:
        with self._lock:
            self._count += n

    def dec(self, n: int = 1) -> None:
        with self._lock:
            self._count -= n

    @property
    def count(self) -> int:
        return self._count

    def snapshot(self) -> dict[str, Any]:
        return {"count": self._count}


class Meter:
    """Counts events and reports the mean rate since creation."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._count = 0
        self._started = monotonic()

    def mark(self, n: int = 1) -> None:
        with self._lock:
            self._count += n

    @property
    def count(self) -> int:
        return self._count

    def mean_rate(self) -> float:
        elapsed = monotonic() - self._started
        if self._count == 0 or elapsed <= 0:
            return 0.0
        return self._count / elapsed

    def snapshot(self) -> dict[str, Any]:
        return {"count": self._count, "mean_rate": self.mean_rate(), "units": "events/second"}


@dataclass
class _LatencyAgg:
    count: int = 0
    sum_ms: float = 0.0
    min_ms: float = 0.0
    max_ms: float = 0.0

    def observe(self, elapsed_ms: float) -> None:
        elapsed_ms = float(elapsed_ms)
        if self.count == 0 or elapsed_ms < self.min_ms:
            self.min_ms = elapsed_ms
        if elapsed_ms > self.max_ms:
            self.max_ms = elapsed_ms
        self.count += 1
        self.sum_ms += elapsed_ms


class Timer:
    """Latency aggregate plus a rate meter."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._agg = _LatencyAgg()
        self._meter = Meter()

    def update(self, elapsed_ms: float) -> None:
        with self._lock:
            self._agg.observe(elapsed_ms)
        self._meter.mark()

    @contextmanager
    def time(self) -> Iterator[None]:
        start = perf_counter()
        try:
            yield
        finally:
            self.update((perf_counter() - start) * 1000.0)

    @property
    def count(self) -> int:
        return self._agg.count

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            agg = self._agg
            mean = agg.sum_ms / agg.count if agg.count else 0.0
            return {
                "count": agg.count,
                "min": agg.min_ms,
                "max": agg.max_ms,
                "mean": mean,
                "sum": agg.sum_ms,
                "mean_rate": self._meter.mean_rate(),
                "duration_units": "milliseconds",
                "rate_units": "calls/second",
            }


_KINDS: dict[str, type] = {"counters": Counter, "meters": Meter, "timers": Timer}


class MetricRegistry:
    """Thread-safe, process-local registry of named metrics (resets on restart)."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._metrics: dict[str, Any] = {}

    def _get_or_add(self, name: str, kind: type) -> Any:
        with self._lock:
            existing = self._metrics.get(name)
            if existing is None:
                existing = kind()
                self._metrics[name] = existing
            elif not isinstance(existing, kind):
                raise ValueError(f"{name} is already registered as a {type(existing).__name__}")
            return existing

    def counter(self, name: str) -> Counter:
        return self._get_or_add(name, Counter)

    def meter(self, name: str) -> Meter:
        return self._get_or_add(name, Meter)

    def timer(self, name: str) -> Timer:
        return self._get_or_add(name, Timer)

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._metrics)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            items = sorted(self._metrics.items())
        payload: dict[str, Any] = {section: {} for section in _KINDS}
        for name, metric in items:
            for section, kind in _KINDS.items():
                if isinstance(metric, kind):
                    payload[section][name] = metric.snapshot()
                    break
        return payload

    def reset(self) -> None:
        """Drop every metric (used by tests)."""

        with self._lock:
            self._metrics.clear()


def metric_name(*parts: str) -> str:
    """Join non-empty name parts with dots."""

    return ".".join(p for p in parts if p)
