"""Scan metrics kept in process memory.

Series recorded by the service:

    scan.requests                 endpoint, outcome ("ok" or the error class)
    scan.latency_ms               endpoint
    barcode.provider              source, outcome (hit, miss, error, timeout)
    barcode.provider.latency_ms   source
    parser.fallback               flavor

``registry.snapshot()`` is served at /api/metrics; tests read single series
with ``counter_value``.
"""

from __future__ import annotations

import time
from collections import deque
from threading import Lock
from typing import Deque, Dict, List, Tuple, TypedDict

SCAN_REQUESTS = "scan.requests"
SCAN_LATENCY_MS = "scan.latency_ms"
PROVIDER_LOOKUPS = "barcode.provider"
PROVIDER_LATENCY_MS = "barcode.provider.latency_ms"
PARSER_FALLBACKS = "parser.fallback"

# Latency samples kept per series; older samples fall off
LATENCY_WINDOW = 1000

Series = Tuple[str, Tuple[Tuple[str, str], ...]]


class CounterSnap(TypedDict):
    name: str
    tags: Dict[str, str]
    value: int


class LatencySnap(TypedDict):
    name: str
    tags: Dict[str, str]
    count: int
    avg: float
    p95: float
    max: float


class RegistrySnapshot(TypedDict):
    counters: List[CounterSnap]
    histograms: List[LatencySnap]
    generated_at: float


def _series(name: str, tags: Dict[str, str]) -> Series:
    return name, tuple(sorted(tags.items()))


def _latency_snap(series: Series, samples: List[float]) -> LatencySnap:
    name, tags = series
    ordered = sorted(samples)
    count = len(ordered)
    return {
        "name": name,
        "tags": dict(tags),
        "count": count,
        "avg": sum(ordered) / count if count else 0.0,
        "p95": ordered[int(0.95 * (count - 1))] if count else 0.0,
        "max": ordered[-1] if count else 0.0,
    }


class ScanMetrics:
    """Counters and latency windows for scans, providers and the parser."""

    def __init__(self, latency_window: int = LATENCY_WINDOW) -> None:
        self._lock = Lock()
        self._counts: Dict[Series, int] = {}
        self._latencies: Dict[Series, Deque[float]] = {}
        self._latency_window = latency_window

    def _increment(self, name: str, **tags: str) -> None:
        key = _series(name, tags)
        with self._lock:
            self._counts[key] = self._counts.get(key, 0) + 1

    def _observe(self, name: str, value_ms: float, **tags: str) -> None:
        key = _series(name, tags)
        with self._lock:
            window = self._latencies.get(key)
            if window is None:
                window = self._latencies[key] = deque(maxlen=self._latency_window)
            window.append(value_ms)

    def record_scan(self, endpoint: str, outcome: str, latency_ms: float) -> None:
        """One finished /api/analyze or /api/barcode request."""
        self._increment(SCAN_REQUESTS, endpoint=endpoint, outcome=outcome)
        self._observe(SCAN_LATENCY_MS, latency_ms, endpoint=endpoint)

    def record_provider(self, source: str, outcome: str, latency_ms: float) -> None:
        """One barcode provider answer within the waterfall."""
        self._increment(PROVIDER_LOOKUPS, source=source, outcome=outcome)
        self._observe(PROVIDER_LATENCY_MS, latency_ms, source=source)

    def record_parser_fallback(self, flavor: str) -> None:
        self._increment(PARSER_FALLBACKS, flavor=flavor)

    def counter_value(self, name: str, **tags: str) -> int:
        """Current count, 0 when the series was never recorded."""
        with self._lock:
            return self._counts.get(_series(name, tags), 0)

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()
            self._latencies.clear()

    def snapshot(self) -> RegistrySnapshot:
        with self._lock:
            counts = list(self._counts.items())
            latencies = [(key, list(window)) for key, window in self._latencies.items()]
        return {
            "counters": [
                {"name": name, "tags": dict(tags), "value": value}
                for (name, tags), value in counts
            ],
            "histograms": [_latency_snap(key, samples) for key, samples in latencies],
            "generated_at": time.time(),
        }


registry = ScanMetrics()
