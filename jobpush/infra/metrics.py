from __future__ import annotations
import time
from collections import defaultdict
from threading import Lock
from typing import Dict
from dataclasses import dataclass, field
from jobpush.infra.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class Counter:
    """Simple counter metric"""
    value: int = 0

    def inc(self, amount: int = 1) -> None:
        self.value += amount


@dataclass
class Histogram:
    """Track distribution of values (e.g., handler durations)"""
    values: list[float] = field(default_factory=list)

    def observe(self, value: float) -> None:
        self.values.append(value)

    def get_stats(self) -> dict:
        if not self.values:
            return {"count": 0, "min": 0, "max": 0, "avg": 0, "p95": 0}

        sorted_values = sorted(self.values)
        count = len(sorted_values)
        p95 = sorted_values[min(int(count * 0.95), count - 1)]

        return {
            "count": count,
            "min": sorted_values[0],
            "max": sorted_values[-1],
            "avg": sum(sorted_values) / count,
            "p95": p95,
        }


class MetricsCollector:
    """
    In-process metrics for the notification handlers.
    Exposed as JSON on ``GET /metrics``.
    """

    def __init__(self):
        self._counters: Dict[str, Counter] = defaultdict(Counter)
        self._histograms: Dict[str, Histogram] = defaultdict(Histogram)
        self._lock = Lock()

    def inc_counter(self, name: str, amount: int = 1, labels: dict | None = None) -> None:
        key = self._make_key(name, labels)
        with self._lock:
            self._counters[key].inc(amount)

    def observe_histogram(self, name: str, value: float, labels: dict | None = None) -> None:
        key = self._make_key(name, labels)
        with self._lock:
            self._histograms[key].observe(value)

    def get_counter(self, name: str, **labels) -> int:
        """Current value of one counter (0 if never incremented)"""
        key = self._make_key(name, labels or None)
        with self._lock:
            counter = self._counters.get(key)
            return counter.value if counter else 0

    def get_metrics(self) -> dict:
        with self._lock:
            counters = {k: v.value for k, v in self._counters.items()}
            histograms = {k: v.get_stats() for k, v in self._histograms.items()}

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
        """Create a metric key from name and labels"""
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"


# Global metrics collector
_metrics = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    return _metrics


def inc_counter(name: str, amount: int = 1, **labels) -> None:
    _metrics.inc_counter(name, amount, labels or None)


def observe_histogram(name: str, value: float, **labels) -> None:
    _metrics.observe_histogram(name, value, labels or None)


class Timer:
    """Context manager to time operations"""

    def __init__(self, metric_name: str, **labels):
        self.metric_name = metric_name
        self.labels = labels
        self.start_time: float | None = None

    def __enter__(self):
        self.start_time = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            duration = time.monotonic() - self.start_time
            observe_histogram(self.metric_name, duration, **self.labels)


# Notification-specific metrics
class NotificationMetrics:
    """Named counters for the trigger handlers, store and push sender"""

    @staticmethod
    def trigger_received(kind: str) -> None:
        inc_counter("trigger_events_total", kind=kind)

    @staticmethod
    def handler_failed(kind: str) -> None:
        inc_counter("trigger_handler_errors", kind=kind)

    @staticmethod
    def track_handler(kind: str) -> Timer:
        return Timer("trigger_handler_seconds", kind=kind)

    @staticmethod
    def worker_page_fetched() -> None:
        inc_counter("worker_pages_fetched")

    @staticmethod
    def worker_fanout(sent: int, failed: int) -> None:
        inc_counter("worker_notifications_sent", sent)
        inc_counter("worker_notifications_failed", failed)

    @staticmethod
    def customer_push(delivered: bool) -> None:
        if delivered:
            inc_counter("customer_notifications_sent")
        else:
            inc_counter("customer_notifications_failed")

    @staticmethod
    def store_query(collection: str) -> None:
        inc_counter("store_queries_total", collection=collection)

    @staticmethod
    def store_lookup(collection: str) -> None:
        inc_counter("store_lookups_total", collection=collection)

    @staticmethod
    def fcm_sent() -> None:
        inc_counter("fcm_messages_sent")

    @staticmethod
    def fcm_failed(reason: str) -> None:
        inc_counter("fcm_messages_failed", reason=reason)
