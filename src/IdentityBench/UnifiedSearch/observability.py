"""Metrics and tracing for unified identity search.

Unified search emits a handful of counters that explain why a result page is
shorter than expected (dropped hits, unclassified hits, degraded detail rows)
and per-stage timing histograms. Traces are written through the standard
logging module as ``unified-trace`` records carrying an ``event`` payload, so
any handler configured by :func:`IdentityBench.UnifiedSearch.logging_utils.setup_logging`
renders them as JSON lines.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple

import numpy as np

__all__ = (
    "CounterSample",
    "HistogramSample",
    "MetricsCollector",
    "TraceRecorder",
    "Observability",
)

_LabelKey = Tuple[str, Tuple[Tuple[str, str], ...]]


@dataclass
class CounterSample:
    """Point-in-time value of a labelled counter."""

    name: str
    labels: Mapping[str, str]
    value: float


@dataclass
class HistogramSample:
    """Percentile summary of a labelled histogram.

    Attributes:
        name: Histogram name, e.g. ``trace_unified_search_ms``.
        labels: Label key/value pairs.
        count: Number of observations.
        p50: Median observation.
        p95: 95th percentile observation.
        p99: 99th percentile observation.
    """

    name: str
    labels: Mapping[str, str]
    count: int
    p50: float
    p95: float
    p99: float


class MetricsCollector:
    """Thread-safe in-memory counters and histograms.

    Detail lookups may run on a thread pool, so every mutation takes a lock.

    Examples:
        >>> collector = MetricsCollector()
        >>> collector.increment("unified_detail_degraded", use_case="UC1")
        >>> collector.counter_value("unified_detail_degraded", use_case="UC1")
        1.0
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Dict[_LabelKey, float] = defaultdict(float)
        self._histograms: Dict[_LabelKey, list[float]] = defaultdict(list)

    @staticmethod
    def _key(name: str, labels: Mapping[str, str]) -> _LabelKey:
        return name, tuple(sorted((key, str(value)) for key, value in labels.items()))

    def increment(self, name: str, amount: float = 1.0, **labels: str) -> None:
        with self._lock:
            self._counters[self._key(name, labels)] += amount

    def observe(self, name: str, value: float, **labels: str) -> None:
        with self._lock:
            self._histograms[self._key(name, labels)].append(float(value))

    def counter_value(self, name: str, **labels: str) -> float:
        """Current value of one counter, ``0.0`` when it was never incremented."""
        with self._lock:
            return self._counters.get(self._key(name, labels), 0.0)

    def export_counters(self) -> Iterable[CounterSample]:
        with self._lock:
            items = list(self._counters.items())
        for (name, labels), value in items:
            yield CounterSample(name=name, labels=dict(labels), value=value)

    def export_histograms(self) -> Iterable[HistogramSample]:
        """Summarise each histogram with linear-interpolated percentiles."""
        with self._lock:
            items = [(key, list(samples)) for key, samples in self._histograms.items()]
        for (name, labels), samples in items:
            if not samples:
                continue
            p50, p95, p99 = np.percentile(np.asarray(samples, dtype=float), [50, 95, 99])
            yield HistogramSample(
                name=name,
                labels=dict(labels),
                count=len(samples),
                p50=float(p50),
                p95=float(p95),
                p99=float(p99),
            )


class TraceRecorder:
    """Produce timing spans recorded as histograms and structured log events."""

    def __init__(self, metrics: MetricsCollector, logger: logging.Logger) -> None:
        self._metrics = metrics
        self._logger = logger

    @contextmanager
    def span(self, name: str, **attributes: str) -> Iterator[None]:
        """Time the enclosed block; exceptions propagate after the span is recorded."""
        start = time.perf_counter()
        status = "error"
        try:
            yield
            status = "ok"
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            self._metrics.observe(f"trace_{name}_ms", duration_ms, **attributes)
            event = {"span": name, "duration_ms": round(duration_ms, 3), "status": status}
            event.update(attributes)
            self._logger.info("unified-trace", extra={"event": event})


class Observability:
    """Facade bundling metrics, the subsystem logger, and tracing.

    Examples:
        >>> obs = Observability()
        >>> with obs.trace("parse", use_case="UC1"):
        ...     pass
        >>> sorted(obs.metrics_snapshot())
        ['counters', 'histograms']
    """

    def __init__(self, *, logger: Optional[logging.Logger] = None) -> None:
        self._metrics = MetricsCollector()
        self._logger = logger or logging.getLogger("IdentityBench.UnifiedSearch")
        self._tracer = TraceRecorder(self._metrics, self._logger)

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def trace(self, name: str, **attributes: str):
        """Context manager timing a named stage of the request."""
        return self._tracer.span(name, **attributes)

    def metrics_snapshot(self) -> Dict[str, list[Mapping[str, object]]]:
        counters = [sample.__dict__ for sample in self._metrics.export_counters()]
        histograms = [sample.__dict__ for sample in self._metrics.export_histograms()]
        return {"counters": counters, "histograms": histograms}
