"""
Recurrence Poller

Background loop that finds due patterns at a fixed interval and hands each
one to the trigger coordinator. A tick that starts while the previous one is
still running is skipped, and a failure on one pattern never aborts the rest
of the batch.
"""

import asyncio
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from recurrence_service.services.recurrence_store import RecurrenceStore
from recurrence_service.services.trigger_coordinator import RecurrenceTriggerCoordinator, TriggerOutcome
from recurrence_service.utils import metrics as metric_names
from recurrence_service.utils.logger import get_logger
from recurrence_service.utils.metrics import MetricsCollector

logger = get_logger(__name__)


@dataclass
class PollSummary:
    found: int = 0
    triggered: int = 0
    completed: int = 0
    conflicts: int = 0
    generation_failures: int = 0
    skipped: int = 0
    errors: int = 0

    def record(self, outcome: TriggerOutcome) -> None:
        if outcome == TriggerOutcome.TRIGGERED:
            self.triggered += 1
        elif outcome == TriggerOutcome.COMPLETED:
            self.completed += 1
        elif outcome == TriggerOutcome.CONFLICT:
            self.conflicts += 1
        elif outcome == TriggerOutcome.GENERATION_FAILED:
            self.generation_failures += 1
        else:
            self.skipped += 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class RecurrencePoller:
    """Periodically triggers every due recurrence pattern."""

    def __init__(
        self,
        store: RecurrenceStore,
        coordinator: RecurrenceTriggerCoordinator,
        metrics: MetricsCollector,
        interval_seconds: float = 60,
        batch_size: int = 100,
    ):
        self.store = store
        self.coordinator = coordinator
        self.metrics = metrics
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def is_started(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the polling loop on the running event loop."""
        if self.is_started:
            logger.warning("Recurrence poller already running")
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Recurrence poller started",
            interval_seconds=self.interval_seconds,
            batch_size=self.batch_size,
        )

    async def stop(self) -> None:
        """Stop the loop, letting an in-flight tick finish first."""
        if self._task is None:
            return

        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("Recurrence poller stopped")

    async def run_once(self) -> Optional[PollSummary]:
        """
        Run one poll tick.

        Returns:
            Summary of the tick, or None when skipped because a previous tick
            is still running
        """
        if self._running:
            self.metrics.increment_counter(metric_names.POLL_TICKS_SKIPPED)
            logger.debug("Previous poll tick still running, skipping")
            return None

        self._running = True
        try:
            with self.metrics.time_operation(metric_names.POLL_DURATION):
                summary = await self._process_due()
            self.metrics.increment_counter(metric_names.POLL_TICKS)
            return summary
        finally:
            self._running = False

    async def _process_due(self) -> PollSummary:
        now = self.coordinator.clock()
        due = self.store.find_due(now, self.batch_size, self.coordinator.lease_cutoff(now))
        summary = PollSummary(found=len(due))

        if not due:
            logger.debug("No due recurrence patterns")
            return summary

        logger.info("Processing due recurrence patterns", count=len(due))

        for pattern in due:
            try:
                report = await self.coordinator.trigger_and_generate(pattern, trigger="scheduler")
                summary.record(report.outcome)
            except Exception as e:
                summary.errors += 1
                self.metrics.increment_counter(metric_names.ERRORS)
                logger.exception(
                    "Error processing recurrence pattern",
                    pattern_id=pattern.id,
                    task_id=pattern.task_id,
                    error=str(e),
                )

        logger.info("Poll tick finished", **summary.to_dict())
        return summary

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                self.metrics.increment_counter(metric_names.ERRORS)
                logger.exception("Recurrence poll tick failed", error=str(e))

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
