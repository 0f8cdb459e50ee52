"""
Recurrence Service

User-facing operations on recurrence patterns: create, read, edit, pause,
resume, stop, manual trigger and preview. Every change is written with the
store's version check and followed by a recurrence event.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from recurrence_service.dapr.client import (
    DaprEventPublisher,
    RECURRENCE_CREATED,
    RECURRENCE_MODIFIED,
    RECURRENCE_PAUSED,
    RECURRENCE_RESUMED,
    RECURRENCE_STOPPED,
    STOP_REASON_MANUAL,
)
from recurrence_service.domain import calculator
from recurrence_service.domain.calculator import DAILY, Schedule
from recurrence_service.domain.errors import (
    ConcurrencyConflictError,
    DuplicatePatternError,
    InvalidTransitionError,
    PatternNotFoundError,
    TaskGenerationError,
)
from recurrence_service.domain.pattern import ACTIVE, RecurrencePattern
from recurrence_service.services.recurrence_store import RecurrenceStore
from recurrence_service.services.trigger_coordinator import (
    RecurrenceTriggerCoordinator,
    TriggerOutcome,
    TriggerReport,
)
from recurrence_service.utils.time import isoformat, to_naive_utc

logger = logging.getLogger(__name__)

MAX_PREVIEW_COUNT = 50


def _schedule_payload(pattern: RecurrencePattern) -> Dict[str, Any]:
    schedule = pattern.schedule
    return {
        "frequency": schedule.frequency,
        "interval": schedule.interval,
        "daysOfWeek": list(schedule.days_of_week) if schedule.days_of_week is not None else None,
        "dayOfMonth": schedule.day_of_month,
        "startDate": isoformat(schedule.start_date),
        "endDate": isoformat(schedule.end_date),
    }


def build_schedule(
    frequency: str,
    start_date: datetime,
    interval: Optional[int] = 1,
    days_of_week: Optional[Sequence[int]] = None,
    day_of_month: Optional[int] = None,
    end_date: Optional[datetime] = None,
) -> Schedule:
    """Build a Schedule from API input, normalising datetimes to naive UTC."""
    return Schedule(
        frequency=frequency,
        start_date=to_naive_utc(start_date),
        interval=interval if interval is not None else 1,
        days_of_week=tuple(days_of_week) if days_of_week is not None else None,
        day_of_month=day_of_month,
        end_date=to_naive_utc(end_date),
    )


class RecurrenceService:
    """Service for recurrence pattern operations scoped to one user."""

    def __init__(
        self,
        store: RecurrenceStore,
        publisher: DaprEventPublisher,
        coordinator: RecurrenceTriggerCoordinator,
    ):
        self.store = store
        self.publisher = publisher
        self.coordinator = coordinator

    @property
    def clock(self):
        return self.coordinator.clock

    def _save(self, pattern: RecurrencePattern) -> RecurrencePattern:
        # A trigger holding a fresh lease wins; the edit is rejected as a conflict
        return self.store.save(pattern, lease_cutoff=self.coordinator.lease_cutoff(self.clock()))

    def create(
        self,
        user_id: str,
        task_id: str,
        frequency: str,
        interval: Optional[int] = 1,
        days_of_week: Optional[Sequence[int]] = None,
        day_of_month: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        correlation_id: Optional[str] = None,
    ) -> RecurrencePattern:
        """
        Create the recurrence pattern for a task.

        Raises:
            DuplicatePatternError: the task already has a pattern
            RecurrenceValidationError: the schedule is invalid
        """
        if self.store.get_by_task(task_id):
            raise DuplicatePatternError(task_id)

        now = self.clock()
        schedule = build_schedule(frequency, start_date or now, interval, days_of_week, day_of_month, end_date)
        pattern = self.store.create(RecurrencePattern.create(task_id, user_id, schedule, now))

        payload = {"taskId": task_id, "nextRunAt": isoformat(pattern.next_run_at)}
        payload.update(_schedule_payload(pattern))
        self.publisher.try_publish(RECURRENCE_CREATED, task_id, user_id, payload, correlation_id=correlation_id)

        logger.info(f"Created recurrence pattern {pattern.id} for task {task_id}: {pattern.description}")
        return pattern

    def get(self, user_id: str, task_id: str) -> RecurrencePattern:
        pattern = self.store.get_by_task(task_id, user_id)
        if not pattern:
            raise PatternNotFoundError(task_id)
        return pattern

    def list_by_user(self, user_id: str, status: Optional[str] = None) -> List[RecurrencePattern]:
        return self.store.list_by_user(user_id, status)

    def update(
        self,
        user_id: str,
        task_id: str,
        changes: Dict[str, Any],
        correlation_id: Optional[str] = None,
    ) -> Tuple[RecurrencePattern, bool]:
        """
        Edit a task's recurrence, creating it when the task has none.

        Only keys present in `changes` are applied. The next run is recomputed
        from now.

        Returns:
            (pattern, created)

        Raises:
            InvalidTransitionError: pattern is completed
            RecurrenceValidationError: merged schedule is invalid
            ConcurrencyConflictError: pattern changed concurrently
        """
        pattern = self.store.get_by_task(task_id, user_id)

        if not pattern:
            created = self.create(
                user_id,
                task_id,
                frequency=changes.get("frequency") or DAILY,
                interval=changes.get("interval"),
                days_of_week=changes.get("days_of_week"),
                day_of_month=changes.get("day_of_month"),
                start_date=changes.get("start_date"),
                end_date=changes.get("end_date"),
                correlation_id=correlation_id,
            )
            return created, True

        edits = dict(changes)
        if "end_date" in edits:
            edits["end_date"] = to_naive_utc(edits["end_date"])

        previous = pattern.update(edits, self.clock())
        self._save(pattern)

        self.publisher.try_publish(
            RECURRENCE_MODIFIED,
            task_id,
            user_id,
            {
                "taskId": task_id,
                "previousPattern": _schedule_payload(previous),
                "newPattern": _schedule_payload(pattern),
                "nextRunAt": isoformat(pattern.next_run_at),
            },
            correlation_id=correlation_id,
        )

        logger.info(f"Updated recurrence pattern {pattern.id} for task {task_id}: {pattern.description}")
        return pattern, False

    def delete(self, user_id: str, task_id: str, correlation_id: Optional[str] = None) -> None:
        """Stop a recurrence by removing its pattern."""
        if not self.store.delete_by_task(task_id, user_id):
            raise PatternNotFoundError(task_id)

        self.publisher.try_publish(
            RECURRENCE_STOPPED,
            task_id,
            user_id,
            {"taskId": task_id, "reason": STOP_REASON_MANUAL},
            correlation_id=correlation_id,
        )
        logger.info(f"Deleted recurrence pattern for task {task_id}")

    def pause(self, user_id: str, task_id: str, correlation_id: Optional[str] = None) -> RecurrencePattern:
        pattern = self.get(user_id, task_id)
        pattern.pause(self.clock())
        self._save(pattern)

        self.publisher.try_publish(
            RECURRENCE_PAUSED,
            task_id,
            user_id,
            {"taskId": task_id},
            correlation_id=correlation_id,
        )
        logger.info(f"Paused recurrence pattern {pattern.id} for task {task_id}")
        return pattern

    def resume(self, user_id: str, task_id: str, correlation_id: Optional[str] = None) -> RecurrencePattern:
        pattern = self.get(user_id, task_id)
        pattern.resume(self.clock())
        self._save(pattern)

        self.publisher.try_publish(
            RECURRENCE_RESUMED,
            task_id,
            user_id,
            {"taskId": task_id, "nextRunAt": isoformat(pattern.next_run_at)},
            correlation_id=correlation_id,
        )
        logger.info(f"Resumed recurrence pattern {pattern.id} for task {task_id}, next run {pattern.next_run_at}")
        return pattern

    async def trigger(self, user_id: str, task_id: str, correlation_id: Optional[str] = None) -> TriggerReport:
        """
        Trigger a pattern now, regardless of its next run.

        Raises:
            InvalidTransitionError: pattern is not active
            ConcurrencyConflictError: another trigger is processing the pattern
            TaskGenerationError: the task service could not create the task
        """
        pattern = self.get(user_id, task_id)
        if pattern.status != ACTIVE:
            raise InvalidTransitionError("trigger", pattern.status)

        report = await self.coordinator.trigger_and_generate(pattern, correlation_id, trigger="manual")

        if report.outcome == TriggerOutcome.SKIPPED:
            raise InvalidTransitionError("trigger", self.get(user_id, task_id).status)
        if report.outcome == TriggerOutcome.CONFLICT:
            raise ConcurrencyConflictError(pattern.id, pattern.version)
        if report.outcome == TriggerOutcome.GENERATION_FAILED:
            raise TaskGenerationError("Failed to create the next task instance", {"task_id": task_id})
        return report

    def preview(
        self,
        frequency: str,
        interval: Optional[int] = 1,
        days_of_week: Optional[Sequence[int]] = None,
        day_of_month: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        count: int = 5,
    ) -> Dict[str, Any]:
        """
        Describe a schedule and list its upcoming occurrences without storing
        anything.

        Raises:
            RecurrenceValidationError: the schedule is invalid
        """
        schedule = build_schedule(frequency, start_date or self.clock(), interval, days_of_week, day_of_month, end_date)
        calculator.ensure_valid(schedule)

        first_run = calculator.calculate_first_run(schedule)
        count = max(1, min(count, MAX_PREVIEW_COUNT))

        occurrences = [first_run]
        if schedule.end_date is not None and first_run > schedule.end_date:
            occurrences = []
        elif count > 1:
            occurrences.extend(calculator.generate_occurrences(schedule, count - 1, first_run))

        return {
            "description": calculator.describe(schedule),
            "first_run": first_run,
            "occurrences": occurrences,
        }
