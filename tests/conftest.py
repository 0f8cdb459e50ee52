"""
Shared pytest fixtures for recurrence service tests.
Uses an in-memory SQLite database per test for isolation.
"""
import asyncio
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from recurrence_service.config import Settings
from recurrence_service.dapr.client import DaprEventPublisher
from recurrence_service.db.config import create_db_engine
from recurrence_service.db.init import init_db
from recurrence_service.domain.calculator import Schedule
from recurrence_service.domain.errors import TaskGenerationError
from recurrence_service.domain.pattern import RecurrencePattern
from recurrence_service.main import create_app
from recurrence_service.services.recurrence_store import RecurrenceStore
from recurrence_service.services.trigger_coordinator import RecurrenceTriggerCoordinator
from recurrence_service.utils.metrics import MetricsCollector


class FakeClock:
    """Controllable naive-UTC clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeTaskGenerator:
    """Task generator double that records calls and hands out task ids."""

    def __init__(self):
        self.calls = []
        self.fail = False

    async def generate(self, pattern, due_date, correlation_id):
        # Yield to the loop like a real network call would
        await asyncio.sleep(0)
        if self.fail:
            raise TaskGenerationError("Task service unavailable", {"task_id": pattern.task_id})
        self.calls.append({
            "task_id": pattern.task_id,
            "user_id": pattern.user_id,
            "due_date": due_date,
            "correlation_id": correlation_id,
        })
        return f"generated-{len(self.calls)}"


class RecordingPublisher(DaprEventPublisher):
    """Publisher that keeps events in memory instead of sending them."""

    def __init__(self):
        super().__init__(pubsub_name="pubsub", enabled=False)
        self.events = []
        self.fail = False

    def publish_recurrence_event(self, event_type, task_id, user_id, data, correlation_id=None, trigger=None):
        if self.fail:
            raise ConnectionError("Dapr sidecar unreachable")
        envelope = self.build_envelope(event_type, task_id, user_id, data, correlation_id, trigger)
        self.events.append(envelope)
        return {"success": True, "event_id": envelope["event_id"]}

    def of_type(self, event_type):
        return [event for event in self.events if event["type"] == event_type]


@pytest.fixture
def engine():
    """Fresh in-memory database with the schema created."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return RecurrenceStore(engine)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 15, 12, 0))


@pytest.fixture
def generator():
    return FakeTaskGenerator()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def coordinator(store, generator, publisher, metrics, clock):
    return RecurrenceTriggerCoordinator(
        store,
        generator,
        publisher,
        metrics,
        claim_timeout_seconds=300,
        clock=clock,
    )


@pytest.fixture
def create_pattern(store, clock):
    """
    Factory storing a pattern for tests.
    Defaults to a daily pattern started a day before the clock, so it is due.
    """
    def _create(task_id="task-1", user_id="user-1", **schedule_fields):
        schedule_fields.setdefault("frequency", "daily")
        schedule_fields.setdefault("start_date", clock.now - timedelta(days=1))
        if schedule_fields.get("days_of_week") is not None:
            schedule_fields["days_of_week"] = tuple(schedule_fields["days_of_week"])
        pattern = RecurrencePattern.create(task_id, user_id, Schedule(**schedule_fields), clock.now)
        return store.create(pattern)

    return _create


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        dapr_enabled=False,
        enable_scheduler=False,
        log_level="WARNING",
    )


@pytest.fixture
def app(settings, engine, generator, publisher):
    return create_app(settings, engine=engine, task_generator=generator, publisher=publisher)


@pytest.fixture
def client(app):
    """Test client for the FastAPI app, running its lifespan."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def user_headers():
    return {"X-User-Id": "user-1", "X-Correlation-Id": "corr-123"}
