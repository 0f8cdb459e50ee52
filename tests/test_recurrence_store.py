"""Tests for recurrence_service.services.recurrence_store module."""

from datetime import timedelta

import pytest
from sqlalchemy import DateTime

from recurrence_service.domain.errors import ConcurrencyConflictError, DuplicatePatternError
from recurrence_service.domain.pattern import ACTIVE, COMPLETED, PAUSED
from recurrence_service.models.recurrence_pattern import RecurrencePatternRecord


class TestCrud:
    """Tests for create, read and delete."""

    def test_create_and_get_by_task(self, store, create_pattern):
        created = create_pattern(frequency="weekly", days_of_week=[1, 5])
        loaded = store.get_by_task("task-1")
        assert loaded.id == created.id
        assert loaded.schedule.days_of_week == (1, 5)
        assert loaded.version == 1
        assert store.get(created.id) == loaded

    def test_one_pattern_per_task(self, create_pattern):
        """Test that a second pattern for the same task is rejected."""
        create_pattern()
        with pytest.raises(DuplicatePatternError):
            create_pattern(user_id="user-2")

    def test_get_by_task_scoped_to_user(self, store, create_pattern):
        create_pattern()
        assert store.get_by_task("task-1", "user-1") is not None
        assert store.get_by_task("task-1", "someone-else") is None

    def test_list_by_user_orders_and_filters(self, store, create_pattern, clock):
        create_pattern("task-late", start_date=clock.now + timedelta(days=5))
        create_pattern("task-soon", start_date=clock.now)
        paused = create_pattern("task-paused")
        paused.pause(clock.now)
        store.save(paused)
        create_pattern("task-other", user_id="user-2")

        patterns = store.list_by_user("user-1")
        assert [p.task_id for p in patterns] == ["task-paused", "task-soon", "task-late"]
        assert [p.task_id for p in store.list_by_user("user-1", PAUSED)] == ["task-paused"]
        assert store.count("user-1") == 3
        assert store.count(status=PAUSED) == 1

    def test_delete_by_task(self, store, create_pattern):
        create_pattern()
        assert store.delete_by_task("task-1", "user-2") is False
        assert store.delete_by_task("task-1", "user-1") is True
        assert store.get_by_task("task-1") is None
        assert store.delete_by_task("task-1") is False


class TestFindDue:
    """Tests for find_due query."""

    def test_only_active_and_due(self, store, create_pattern, clock):
        due = create_pattern("task-due")
        create_pattern("task-future", start_date=clock.now + timedelta(days=1))
        paused = create_pattern("task-paused")
        paused.pause(clock.now)
        store.save(paused)

        result = store.find_due(clock.now, 100, clock.now - timedelta(minutes=5))
        assert [p.id for p in result] == [due.id]

    def test_respects_limit(self, store, create_pattern, clock):
        for i in range(3):
            create_pattern(f"task-{i}")
        assert len(store.find_due(clock.now, 2, clock.now - timedelta(minutes=5))) == 2

    def test_fresh_claim_hides_pattern_until_stale(self, store, create_pattern, clock):
        pattern = create_pattern()
        store.claim(pattern.id, pattern.version, clock.now, clock.now - timedelta(minutes=5))

        assert store.find_due(clock.now, 10, clock.now - timedelta(minutes=5)) == []

        later = clock.now + timedelta(minutes=10)
        assert len(store.find_due(later, 10, later - timedelta(minutes=5))) == 1


class TestConditionalWrites:
    """Tests for version-checked writes."""

    def test_save_bumps_version(self, store, create_pattern, clock):
        pattern = create_pattern()
        pattern.pause(clock.now)
        store.save(pattern)
        assert pattern.version == 2
        assert store.get(pattern.id).status == PAUSED

        pattern.resume(clock.now)
        store.save(pattern)
        assert store.get(pattern.id).version == 3

    def test_save_from_stale_read_conflicts(self, store, create_pattern, clock):
        """Test that a writer holding an old version cannot overwrite a newer change."""
        first = create_pattern()
        second = store.get(first.id)

        first.pause(clock.now)
        store.save(first)

        second.update({"interval": 4}, clock.now)
        with pytest.raises(ConcurrencyConflictError):
            store.save(second)
        assert store.get(first.id).interval == 1

    def test_claim_is_exclusive(self, store, create_pattern, clock):
        pattern = create_pattern()
        cutoff = clock.now - timedelta(minutes=5)
        claimed_version = store.claim(pattern.id, pattern.version, clock.now, cutoff)
        assert claimed_version == 2

        with pytest.raises(ConcurrencyConflictError):
            store.claim(pattern.id, pattern.version, clock.now, cutoff)
        with pytest.raises(ConcurrencyConflictError):
            store.claim(pattern.id, claimed_version, clock.now, cutoff)

    def test_stale_claim_can_be_taken_over(self, store, create_pattern, clock):
        pattern = create_pattern()
        claimed_version = store.claim(pattern.id, pattern.version, clock.now, clock.now - timedelta(minutes=5))

        later = clock.now + timedelta(minutes=10)
        assert store.claim(pattern.id, claimed_version, later, later - timedelta(minutes=5)) == 3

    def test_claim_requires_active(self, store, create_pattern, clock):
        pattern = create_pattern()
        pattern.pause(clock.now)
        store.save(pattern)
        with pytest.raises(ConcurrencyConflictError):
            store.claim(pattern.id, pattern.version, clock.now, clock.now - timedelta(minutes=5))

    def test_release_leaves_pattern_due(self, store, create_pattern, clock):
        pattern = create_pattern()
        cutoff = clock.now - timedelta(minutes=5)
        claimed_version = store.claim(pattern.id, pattern.version, clock.now, cutoff)

        assert store.release(pattern.id, claimed_version) is True
        assert store.release(pattern.id, claimed_version) is False

        reloaded = store.get(pattern.id)
        assert reloaded.next_run_at == pattern.next_run_at
        assert [p.id for p in store.find_due(clock.now, 10, cutoff)] == [pattern.id]

    def test_advance_after_claim(self, store, create_pattern, clock):
        pattern = create_pattern()
        claimed_version = store.claim(pattern.id, pattern.version, clock.now, clock.now - timedelta(minutes=5))

        next_run = clock.now + timedelta(days=1)
        advanced = store.advance(pattern.id, claimed_version, next_run, clock.now, clock.now)
        assert advanced.next_run_at == next_run
        assert advanced.last_triggered_at == clock.now
        assert advanced.status == ACTIVE
        assert advanced.version == claimed_version + 1

    def test_advance_without_lease_conflicts(self, store, create_pattern, clock):
        pattern = create_pattern()
        with pytest.raises(ConcurrencyConflictError):
            store.advance(pattern.id, pattern.version + 1, clock.now, clock.now, clock.now)

    def test_complete(self, store, create_pattern, clock):
        pattern = create_pattern()
        store.complete(pattern.id, pattern.version, clock.now, clock.now)
        reloaded = store.get(pattern.id)
        assert reloaded.status == COMPLETED
        assert reloaded.last_triggered_at == clock.now

        with pytest.raises(ConcurrencyConflictError):
            store.complete(pattern.id, reloaded.version, clock.now, clock.now)

    def test_save_refused_while_trigger_holds_lease(self, store, create_pattern, clock):
        """Test that a user edit cannot overtake a trigger that is generating a task."""
        pattern = create_pattern()
        cutoff = clock.now - timedelta(minutes=5)
        store.claim(pattern.id, pattern.version, clock.now, cutoff)

        edited = store.get(pattern.id)
        edited.pause(clock.now)
        with pytest.raises(ConcurrencyConflictError):
            store.save(edited, lease_cutoff=cutoff)
        assert store.get(pattern.id).status == ACTIVE

    def test_save_clears_stale_lease(self, store, create_pattern, clock):
        pattern = create_pattern()
        store.claim(pattern.id, pattern.version, clock.now - timedelta(minutes=10), clock.now - timedelta(minutes=15))

        edited = store.get(pattern.id)
        edited.update({"interval": 2}, clock.now)
        store.save(edited, lease_cutoff=clock.now - timedelta(minutes=5))

        assert store.get(pattern.id).interval == 2
        assert [due.id for due in store.find_due(clock.now + timedelta(days=3), 10, clock.now)] == [pattern.id]


class TestSchema:
    """Tests for the stored column types."""

    @pytest.mark.parametrize("column", [
        "start_date", "end_date", "next_run_at", "last_triggered_at", "claimed_at", "created_at", "updated_at",
    ])
    def test_timestamps_are_naive_datetime_columns(self, column):
        column_type = RecurrencePatternRecord.__table__.c[column].type
        assert type(column_type) is DateTime
        assert column_type.timezone is False

    def test_naive_timestamps_round_trip(self, store, create_pattern, clock):
        pattern = create_pattern(end_date=clock.now + timedelta(days=30))
        store.claim(pattern.id, pattern.version, clock.now, clock.now - timedelta(minutes=5))

        stored = store.get(pattern.id)
        assert stored.schedule.end_date == clock.now + timedelta(days=30)
        assert stored.next_run_at.tzinfo is None
        assert stored.created_at == clock.now
