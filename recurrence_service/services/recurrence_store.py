"""
Recurrence Store

Durable CRUD for recurrence patterns plus the two query shapes the trigger
paths need (by owning task, and due now).

Every mutation is a single conditional UPDATE on (id, version) that bumps the
version, so a writer working from a stale read is rejected with
ConcurrencyConflictError instead of overwriting a concurrent change. Trigger
processing additionally takes a short lease (claimed_at) before generating a
task, so two trigger paths can never both generate for the same due cycle.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, or_, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from recurrence_service.domain.calculator import Schedule
from recurrence_service.domain.errors import ConcurrencyConflictError, DuplicatePatternError
from recurrence_service.domain.pattern import ACTIVE, COMPLETED, RecurrencePattern
from recurrence_service.models.recurrence_pattern import RecurrencePatternRecord

logger = logging.getLogger(__name__)


def record_to_pattern(record: RecurrencePatternRecord) -> RecurrencePattern:
    schedule = Schedule(
        frequency=record.frequency,
        start_date=record.start_date,
        interval=record.interval,
        days_of_week=tuple(record.days_of_week) if record.days_of_week is not None else None,
        day_of_month=record.day_of_month,
        end_date=record.end_date,
    )
    return RecurrencePattern(
        id=record.id,
        task_id=record.task_id,
        user_id=record.user_id,
        schedule=schedule,
        next_run_at=record.next_run_at,
        status=record.status,
        last_triggered_at=record.last_triggered_at,
        created_at=record.created_at,
        updated_at=record.updated_at,
        version=record.version,
    )


def pattern_to_record(pattern: RecurrencePattern) -> RecurrencePatternRecord:
    schedule = pattern.schedule
    return RecurrencePatternRecord(
        id=pattern.id,
        task_id=pattern.task_id,
        user_id=pattern.user_id,
        frequency=schedule.frequency,
        interval=schedule.interval,
        days_of_week=list(schedule.days_of_week) if schedule.days_of_week is not None else None,
        day_of_month=schedule.day_of_month,
        start_date=schedule.start_date,
        end_date=schedule.end_date,
        next_run_at=pattern.next_run_at,
        status=pattern.status,
        last_triggered_at=pattern.last_triggered_at,
        created_at=pattern.created_at,
        updated_at=pattern.updated_at,
        version=pattern.version,
    )


class RecurrenceStore:
    """Persistence boundary for recurrence patterns."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def create(self, pattern: RecurrencePattern) -> RecurrencePattern:
        """
        Persist a new pattern.

        Raises:
            DuplicatePatternError: a pattern already exists for the task
        """
        with Session(self.engine) as session:
            record = pattern_to_record(pattern)
            session.add(record)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise DuplicatePatternError(pattern.task_id)
            session.refresh(record)
            return record_to_pattern(record)

    def get(self, pattern_id: str) -> Optional[RecurrencePattern]:
        with Session(self.engine) as session:
            record = session.get(RecurrencePatternRecord, pattern_id)
            return record_to_pattern(record) if record else None

    def get_by_task(self, task_id: str, user_id: Optional[str] = None) -> Optional[RecurrencePattern]:
        """Get the pattern owned by `task_id`, optionally scoped to `user_id`."""
        statement = select(RecurrencePatternRecord).where(RecurrencePatternRecord.task_id == task_id)
        if user_id:
            statement = statement.where(RecurrencePatternRecord.user_id == user_id)

        with Session(self.engine) as session:
            record = session.exec(statement).first()
            return record_to_pattern(record) if record else None

    def list_by_user(self, user_id: str, status: Optional[str] = None) -> List[RecurrencePattern]:
        statement = select(RecurrencePatternRecord).where(RecurrencePatternRecord.user_id == user_id)
        if status:
            statement = statement.where(RecurrencePatternRecord.status == status)
        statement = statement.order_by(RecurrencePatternRecord.next_run_at)

        with Session(self.engine) as session:
            return [record_to_pattern(record) for record in session.exec(statement).all()]

    def find_due(self, now: datetime, limit: int, lease_cutoff: datetime) -> List[RecurrencePattern]:
        """
        Active patterns with next_run_at <= now, oldest first.

        Patterns holding a lease newer than `lease_cutoff` are being processed
        by another trigger and are left out.
        """
        statement = (
            select(RecurrencePatternRecord)
            .where(
                RecurrencePatternRecord.status == ACTIVE,
                RecurrencePatternRecord.next_run_at <= now,
                or_(
                    RecurrencePatternRecord.claimed_at.is_(None),
                    RecurrencePatternRecord.claimed_at < lease_cutoff,
                ),
            )
            .order_by(RecurrencePatternRecord.next_run_at)
            .limit(limit)
        )

        with Session(self.engine) as session:
            return [record_to_pattern(record) for record in session.exec(statement).all()]

    def save(self, pattern: RecurrencePattern, lease_cutoff: Optional[datetime] = None) -> RecurrencePattern:
        """
        Write a user edit (schedule, status, next run) back, conditioned on the
        version the pattern was read at. Bumps `pattern.version` on success.

        With `lease_cutoff`, the write is also refused while a trigger lease
        newer than the cutoff is held, and a stale lease is cleared.

        Raises:
            ConcurrencyConflictError: the row changed since it was read, or a
                trigger is in flight
        """
        schedule = pattern.schedule
        values = dict(
            frequency=schedule.frequency,
            interval=schedule.interval,
            days_of_week=list(schedule.days_of_week) if schedule.days_of_week is not None else None,
            day_of_month=schedule.day_of_month,
            end_date=schedule.end_date,
            next_run_at=pattern.next_run_at,
            status=pattern.status,
            last_triggered_at=pattern.last_triggered_at,
            updated_at=pattern.updated_at,
        )
        conditions = []
        if lease_cutoff is not None:
            values["claimed_at"] = None
            conditions.append(
                or_(
                    RecurrencePatternRecord.claimed_at.is_(None),
                    RecurrencePatternRecord.claimed_at < lease_cutoff,
                )
            )
        self._conditional_update(pattern.id, pattern.version, values, *conditions)
        pattern.version += 1
        return pattern

    def claim(self, pattern_id: str, expected_version: int, now: datetime, lease_cutoff: datetime) -> int:
        """
        Take the trigger lease for the current due cycle.

        Returns:
            The claimed version, required by advance()/release()

        Raises:
            ConcurrencyConflictError: the pattern changed, is no longer active,
                or another trigger holds a fresh lease
        """
        self._conditional_update(
            pattern_id,
            expected_version,
            {"claimed_at": now},
            RecurrencePatternRecord.status == ACTIVE,
            or_(
                RecurrencePatternRecord.claimed_at.is_(None),
                RecurrencePatternRecord.claimed_at < lease_cutoff,
            ),
        )
        return expected_version + 1

    def release(self, pattern_id: str, claimed_version: int) -> bool:
        """Drop the lease without advancing, leaving the pattern due."""
        try:
            self._conditional_update(pattern_id, claimed_version, {"claimed_at": None})
        except ConcurrencyConflictError:
            logger.warning(f"Lease on recurrence pattern {pattern_id} was already taken over")
            return False
        return True

    def advance(
        self,
        pattern_id: str,
        claimed_version: int,
        next_run_at: datetime,
        last_triggered_at: datetime,
        now: datetime,
    ) -> RecurrencePattern:
        """
        Persist the advanced next run and last trigger, release the lease and
        read the row back in the same transaction.

        Raises:
            ConcurrencyConflictError: the lease was lost
        """
        values = {
            "next_run_at": next_run_at,
            "last_triggered_at": last_triggered_at,
            "claimed_at": None,
            "updated_at": now,
        }
        with Session(self.engine) as session:
            self._execute_conditional(session, pattern_id, claimed_version, values)
            record = session.get(RecurrencePatternRecord, pattern_id)
            session.commit()
            return record_to_pattern(record)

    def complete(self, pattern_id: str, expected_version: int, last_triggered_at: datetime, now: datetime) -> None:
        """
        Mark an active pattern completed (end date reached).

        Raises:
            ConcurrencyConflictError: the row changed since it was read
        """
        self._conditional_update(
            pattern_id,
            expected_version,
            {
                "status": COMPLETED,
                "last_triggered_at": last_triggered_at,
                "claimed_at": None,
                "updated_at": now,
            },
            RecurrencePatternRecord.status == ACTIVE,
        )

    def delete_by_task(self, task_id: str, user_id: Optional[str] = None) -> bool:
        statement = select(RecurrencePatternRecord).where(RecurrencePatternRecord.task_id == task_id)
        if user_id:
            statement = statement.where(RecurrencePatternRecord.user_id == user_id)

        with Session(self.engine) as session:
            record = session.exec(statement).first()
            if not record:
                return False
            session.delete(record)
            session.commit()
            return True

    def count(self, user_id: Optional[str] = None, status: Optional[str] = None) -> int:
        statement = select(func.count()).select_from(RecurrencePatternRecord)
        if user_id:
            statement = statement.where(RecurrencePatternRecord.user_id == user_id)
        if status:
            statement = statement.where(RecurrencePatternRecord.status == status)

        with Session(self.engine) as session:
            return session.exec(statement).one()

    def _conditional_update(self, pattern_id: str, expected_version: int, values: dict, *conditions) -> None:
        with Session(self.engine) as session:
            self._execute_conditional(session, pattern_id, expected_version, values, *conditions)
            session.commit()

    @staticmethod
    def _execute_conditional(session: Session, pattern_id: str, expected_version: int, values: dict, *conditions) -> None:
        statement = (
            update(RecurrencePatternRecord)
            .where(
                RecurrencePatternRecord.id == pattern_id,
                RecurrencePatternRecord.version == expected_version,
                *conditions,
            )
            .values(version=expected_version + 1, **values)
        )
        result = session.connection().execute(statement)
        if result.rowcount != 1:
            session.rollback()
            raise ConcurrencyConflictError(pattern_id, expected_version)
