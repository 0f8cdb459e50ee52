"""
RecurrencePattern Domain Model

Wraps an immutable Schedule with lifecycle status, next-run and last-triggered
state. Instances are rebuilt from the stored row on every operation; all date
math is delegated to the calculator.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Optional

from . import calculator
from .calculator import Schedule
from .errors import InvalidTransitionError

ACTIVE = "active"
PAUSED = "paused"
COMPLETED = "completed"

STATUSES = (ACTIVE, PAUSED, COMPLETED)

# Fields a user edit may change
UPDATABLE_FIELDS = ("frequency", "interval", "days_of_week", "day_of_month", "end_date")


@dataclass(frozen=True)
class TriggerResult:
    is_completed: bool
    next_run_at: Optional[datetime] = None


@dataclass
class RecurrencePattern:
    """Recurrence attached to one task, owned by one user."""

    task_id: str
    user_id: str
    schedule: Schedule
    next_run_at: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: str = ACTIVE
    last_triggered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 1

    @classmethod
    def create(
        cls,
        task_id: str,
        user_id: str,
        schedule: Schedule,
        now: datetime,
    ) -> "RecurrencePattern":
        """
        Create a new active pattern.

        Raises:
            RecurrenceValidationError: schedule breaks one or more rules
        """
        calculator.ensure_valid(schedule)
        next_run = calculator.calculate_next_run(schedule, schedule.start_date).next_run
        return cls(
            task_id=task_id,
            user_id=user_id,
            schedule=schedule,
            next_run_at=next_run,
            created_at=now,
            updated_at=now,
        )

    @property
    def frequency(self) -> str:
        return self.schedule.frequency

    @property
    def interval(self) -> int:
        return self.schedule.interval

    @property
    def description(self) -> str:
        return calculator.describe(self.schedule)

    def is_due(self, now: datetime) -> bool:
        return self.status == ACTIVE and self.next_run_at <= now

    def pause(self, now: datetime) -> None:
        if self.status != ACTIVE:
            raise InvalidTransitionError("pause", self.status)
        self.status = PAUSED
        self.updated_at = now

    def resume(self, now: datetime) -> None:
        if self.status != PAUSED:
            raise InvalidTransitionError("resume", self.status)
        self.status = ACTIVE
        self.updated_at = now

        # A run missed while paused is not replayed
        if self.next_run_at < now:
            self.next_run_at = calculator.calculate_next_run(self.schedule, now).next_run

    def trigger(self, now: datetime) -> TriggerResult:
        """
        Mark the pattern as triggered at `now` and advance it.

        Reaching the end date is a normal outcome: the pattern becomes completed
        and `is_completed` is returned instead of a next run.

        Raises:
            InvalidTransitionError: pattern is not active
        """
        if self.status != ACTIVE:
            raise InvalidTransitionError("trigger", self.status)

        result = calculator.calculate_next_run(self.schedule, now)
        self.last_triggered_at = now
        self.updated_at = now

        if result.is_completed:
            self.status = COMPLETED
            return TriggerResult(is_completed=True)

        self.next_run_at = result.next_run
        return TriggerResult(is_completed=False, next_run_at=result.next_run)

    def update(self, changes: Dict[str, Any], now: datetime) -> "RecurrencePattern":
        """
        Apply a partial schedule edit and recompute the next run from `now`.

        Only keys present in `changes` are applied; an explicit `end_date: None`
        clears the end date.

        Returns:
            Snapshot of the pattern before the edit

        Raises:
            InvalidTransitionError: pattern is completed
            RecurrenceValidationError: merged schedule is invalid (nothing changes)
        """
        if self.status == COMPLETED:
            raise InvalidTransitionError("update", self.status)

        edits = {key: value for key, value in changes.items() if key in UPDATABLE_FIELDS}
        if edits.get("days_of_week") is not None:
            edits["days_of_week"] = tuple(edits["days_of_week"])

        merged = replace(self.schedule, **edits)
        calculator.ensure_valid(merged)
        next_run = calculator.calculate_next_run(merged, now).next_run

        previous = self.snapshot()
        self.schedule = merged
        self.next_run_at = next_run
        self.updated_at = now
        return previous

    def snapshot(self) -> "RecurrencePattern":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        schedule = self.schedule
        return {
            "id": self.id,
            "task_id": self.task_id,
            "user_id": self.user_id,
            "frequency": schedule.frequency,
            "interval": schedule.interval,
            "days_of_week": list(schedule.days_of_week) if schedule.days_of_week is not None else None,
            "day_of_month": schedule.day_of_month,
            "start_date": schedule.start_date,
            "end_date": schedule.end_date,
            "next_run_at": self.next_run_at,
            "status": self.status,
            "last_triggered_at": self.last_triggered_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "description": self.description,
        }
