"""
Metrics Collection for the Recurrence Service.

Counts trigger outcomes and poll ticks. One collector is created per
application instance and exposed at /metrics.
"""

import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Dict

from .time import utcnow

TRIGGERED = "recurrences_triggered_total"
COMPLETED = "recurrences_completed_total"
GENERATION_FAILURES = "recurrence_generation_failures_total"
CONFLICTS = "recurrence_conflicts_total"
POLL_TICKS = "recurrence_poll_ticks_total"
POLL_TICKS_SKIPPED = "recurrence_poll_ticks_skipped_total"
ERRORS = "recurrence_errors_total"
POLL_DURATION = "recurrence_poll_duration_seconds"


class MetricsCollector:
    """Collects and manages metrics for the recurrence service."""

    def __init__(self):
        """Initialize metrics collector."""
        self.metrics = defaultdict(int)
        self.timers = defaultdict(float)
        self.lock = threading.Lock()

        for name in (TRIGGERED, COMPLETED, GENERATION_FAILURES, CONFLICTS,
                     POLL_TICKS, POLL_TICKS_SKIPPED, ERRORS):
            self.metrics[name] = 0

    def increment_counter(self, metric_name: str, value: int = 1):
        """Increment a counter metric."""
        with self.lock:
            self.metrics[metric_name] += value

    def record_timer(self, metric_name: str, duration: float):
        """Record a timing metric."""
        with self.lock:
            self.timers[metric_name] += duration

    def get(self, metric_name: str) -> int:
        with self.lock:
            return self.metrics[metric_name]

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics values."""
        with self.lock:
            return {
                "counters": dict(self.metrics),
                "timers": dict(self.timers),
                "timestamp": utcnow().isoformat()
            }

    @contextmanager
    def time_operation(self, metric_name: str):
        """Context manager to time an operation, successful or not."""
        start_time = time.monotonic()
        try:
            yield
        finally:
            self.record_timer(metric_name, time.monotonic() - start_time)
