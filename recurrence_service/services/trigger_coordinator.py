"""
Recurrence Trigger Coordinator

The periodic poll and the task.completed event both end up here, in
trigger_and_generate(). Neither path is assumed to run before the other, in
this process or any other instance: the store's version check and trigger
lease are what guarantee one generated task per due cycle.

Sequence for a due, active pattern:
    1. compute the trigger on a working copy of the pattern
    2. end date reached -> conditional write status=completed, emit stopped
    3. otherwise claim the cycle (conditional write taking the lease)
    4. ask the task service for the next instance
    5. failure -> release the lease, pattern stays due for the next attempt
    6. success -> advance next_run_at/last_triggered_at, emit triggered
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from recurrence_service.dapr.client import (
    DaprEventPublisher,
    RECURRENCE_STOPPED,
    RECURRENCE_TRIGGERED,
    STOP_REASON_END_DATE,
    STOP_REASON_MANUAL,
)
from recurrence_service.domain.errors import ConcurrencyConflictError, InvalidTransitionError
from recurrence_service.domain.pattern import ACTIVE, RecurrencePattern
from recurrence_service.services.recurrence_store import RecurrenceStore
from recurrence_service.services.task_generator import TaskGenerator
from recurrence_service.utils import metrics as metric_names
from recurrence_service.utils.logger import get_logger
from recurrence_service.utils.metrics import MetricsCollector
from recurrence_service.utils.time import isoformat, utcnow

logger = get_logger(__name__)


class TriggerOutcome(str, Enum):
    TRIGGERED = "triggered"
    COMPLETED = "completed"
    CONFLICT = "conflict"
    GENERATION_FAILED = "generation_failed"
    SKIPPED = "skipped"


@dataclass
class TriggerReport:
    outcome: TriggerOutcome
    new_task_id: Optional[str] = None
    next_run_at: Optional[datetime] = None


class RecurrenceTriggerCoordinator:
    """Advances recurrence patterns and generates their next task instances."""

    def __init__(
        self,
        store: RecurrenceStore,
        generator: TaskGenerator,
        publisher: DaprEventPublisher,
        metrics: MetricsCollector,
        claim_timeout_seconds: int = 300,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.generator = generator
        self.publisher = publisher
        self.metrics = metrics
        self.claim_timeout = timedelta(seconds=claim_timeout_seconds)
        self.clock = clock

    def lease_cutoff(self, now: datetime) -> datetime:
        """Leases taken before this instant are stale and may be taken over."""
        return now - self.claim_timeout

    async def trigger_and_generate(
        self,
        pattern: RecurrencePattern,
        correlation_id: Optional[str] = None,
        trigger: str = "scheduler",
    ) -> TriggerReport:
        """
        Trigger `pattern` once and generate its next task.

        Never raises for the recoverable outcomes (inactive pattern, conflict,
        generation failure); those are reported through TriggerReport.outcome.
        Store failures propagate to the caller.

        Args:
            pattern: Pattern as read from the store (its version is the
                optimistic-concurrency token for every write below)
            correlation_id: Propagated to the task service and emitted events
            trigger: What caused this trigger, recorded in event metadata
        """
        now = self.clock()
        correlation_id = correlation_id or f"recurrence-{pattern.id}"
        fields = {
            "pattern_id": pattern.id,
            "task_id": pattern.task_id,
            "user_id": pattern.user_id,
            "correlation_id": correlation_id,
            "trigger": trigger,
        }

        working = pattern.snapshot()
        try:
            result = working.trigger(now)
        except InvalidTransitionError:
            logger.info("Recurrence pattern not active, skipping trigger", status=pattern.status, **fields)
            return TriggerReport(TriggerOutcome.SKIPPED)

        if result.is_completed:
            return self._complete(pattern, now, correlation_id, trigger, fields)

        try:
            claimed_version = self.store.claim(pattern.id, pattern.version, now, self.lease_cutoff(now))
        except ConcurrencyConflictError:
            return self._conflict("Recurrence already claimed or advanced by another trigger", fields)

        try:
            new_task_id = await self.generator.generate(working, result.next_run_at, correlation_id)
        except Exception as e:
            # Nothing was advanced: releasing the lease leaves the pattern due
            self.store.release(pattern.id, claimed_version)
            self.metrics.increment_counter(metric_names.GENERATION_FAILURES)
            logger.error(
                "Failed to create task instance, recurrence left due",
                error=str(e),
                error_type=type(e).__name__,
                **fields,
            )
            return TriggerReport(TriggerOutcome.GENERATION_FAILED)

        try:
            advanced = self.store.advance(pattern.id, claimed_version, result.next_run_at, now, now)
        except ConcurrencyConflictError:
            # Lease expired and was taken over while the task service was slow
            self.metrics.increment_counter(metric_names.CONFLICTS)
            logger.error("Lost trigger lease after task creation", new_task_id=new_task_id, **fields)
            return TriggerReport(TriggerOutcome.CONFLICT, new_task_id=new_task_id)

        self.metrics.increment_counter(metric_names.TRIGGERED)
        self.publisher.try_publish(
            RECURRENCE_TRIGGERED,
            pattern.task_id,
            pattern.user_id,
            {
                "originalTaskId": pattern.task_id,
                "newTaskId": new_task_id,
                "triggeredAt": isoformat(now),
                "nextRunAt": isoformat(advanced.next_run_at),
            },
            correlation_id=correlation_id,
            trigger=trigger,
        )
        logger.info(
            "Recurrence triggered - new task created",
            new_task_id=new_task_id,
            next_run_at=advanced.next_run_at,
            status=advanced.status,
            **fields,
        )
        return TriggerReport(TriggerOutcome.TRIGGERED, new_task_id=new_task_id, next_run_at=advanced.next_run_at)

    async def handle_task_completed(
        self,
        task_id: str,
        user_id: Optional[str],
        completed_at: Optional[datetime],
        correlation_id: str,
    ) -> Optional[TriggerReport]:
        """
        React to task.completed: trigger the task's pattern if it has an
        active one.

        A completion at or before the pattern's last trigger has already been
        accounted for (redelivered message, or the poll got there first) and
        is ignored.
        """
        pattern = self.store.get_by_task(task_id, user_id)

        if not pattern:
            logger.debug("No recurrence pattern found for completed task", task_id=task_id, correlation_id=correlation_id)
            return None

        if pattern.status != ACTIVE:
            logger.debug(
                "Recurrence pattern not active",
                task_id=task_id,
                status=pattern.status,
                correlation_id=correlation_id,
            )
            return None

        if completed_at and pattern.last_triggered_at and completed_at <= pattern.last_triggered_at:
            logger.info(
                "Completion already covered by a later trigger",
                task_id=task_id,
                completed_at=completed_at,
                last_triggered_at=pattern.last_triggered_at,
                correlation_id=correlation_id,
            )
            return None

        return await self.trigger_and_generate(pattern, correlation_id, trigger="task.completed")

    def handle_task_deleted(self, task_id: str, user_id: Optional[str], correlation_id: str) -> bool:
        """Cancel (never trigger) the pattern of a deleted task."""
        pattern = self.store.get_by_task(task_id, user_id)
        if not pattern:
            return False

        if not self.store.delete_by_task(task_id, pattern.user_id):
            return False

        self.publisher.try_publish(
            RECURRENCE_STOPPED,
            task_id,
            pattern.user_id,
            {"taskId": task_id, "reason": STOP_REASON_MANUAL},
            correlation_id=correlation_id,
            trigger="task.deleted",
        )
        logger.info(
            "Deleted recurrence pattern for deleted task",
            task_id=task_id,
            pattern_id=pattern.id,
            correlation_id=correlation_id,
        )
        return True

    def _complete(self, pattern: RecurrencePattern, now: datetime, correlation_id: str, trigger: str, fields: dict) -> TriggerReport:
        try:
            self.store.complete(pattern.id, pattern.version, now, now)
        except ConcurrencyConflictError:
            return self._conflict("Recurrence changed before it could be completed", fields)

        self.metrics.increment_counter(metric_names.COMPLETED)
        self.publisher.try_publish(
            RECURRENCE_STOPPED,
            pattern.task_id,
            pattern.user_id,
            {"taskId": pattern.task_id, "reason": STOP_REASON_END_DATE},
            correlation_id=correlation_id,
            trigger=trigger,
        )
        logger.info("Recurrence completed - end date reached", **fields)
        return TriggerReport(TriggerOutcome.COMPLETED)

    def _conflict(self, message: str, fields: dict) -> TriggerReport:
        self.metrics.increment_counter(metric_names.CONFLICTS)
        logger.info(message, **fields)
        return TriggerReport(TriggerOutcome.CONFLICT)
