"""Tests for recurrence_service.services.task_generator module."""

import asyncio
import json
from datetime import datetime

import httpx
import pytest

from recurrence_service.domain.calculator import Schedule
from recurrence_service.domain.errors import TaskGenerationError
from recurrence_service.domain.pattern import RecurrencePattern
from recurrence_service.services.task_generator import TaskGenerator

DUE = datetime(2026, 1, 16, 12, 0)
BASE = "http://localhost:3500/v1.0/invoke/task-service/method"


def make_pattern():
    schedule = Schedule(frequency="daily", start_date=datetime(2026, 1, 1, 12, 0))
    return RecurrencePattern.create("42", "user-1", schedule, datetime(2026, 1, 15))


def run_generate(handler):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            generator = TaskGenerator(client, "http://localhost:3500/", "task-service")
            return await generator.generate(make_pattern(), DUE, "corr-1")

    return asyncio.run(scenario())


class TestGenerate:
    """Tests for TaskGenerator.generate."""

    def test_copies_template_and_sets_due_date(self):
        requests = []

        def handler(request):
            requests.append(request)
            if request.method == "GET":
                return httpx.Response(200, json={
                    "id": 42,
                    "title": "Water plants",
                    "description": "Balcony too",
                    "priority": "high",
                    "tags": ["home"],
                    "completed": True,
                    "recurrence": "daily",
                })
            return httpx.Response(201, json={"id": 43})

        assert run_generate(handler) == "43"

        get, post = requests
        assert str(get.url) == f"{BASE}/tasks/42"
        assert str(post.url) == f"{BASE}/tasks"
        assert post.headers["X-User-Id"] == "user-1"
        assert post.headers["X-Correlation-Id"] == "corr-1"
        assert json.loads(post.content) == {
            "title": "Water plants",
            "description": "Balcony too",
            "priority": "high",
            "tags": ["home"],
            "dueDate": "2026-01-16T12:00:00Z",
        }

    def test_missing_template(self):
        def handler(request):
            return httpx.Response(404, json={"detail": "Task not found"})

        with pytest.raises(TaskGenerationError) as err:
            run_generate(handler)
        assert err.value.details["status_code"] == 404

    def test_create_failure(self):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json={"id": 42, "title": "Water plants"})
            return httpx.Response(500)

        with pytest.raises(TaskGenerationError):
            run_generate(handler)

    def test_response_without_id(self):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json={"id": 42, "title": "Water plants"})
            return httpx.Response(201, json={"ok": True})

        with pytest.raises(TaskGenerationError) as err:
            run_generate(handler)
        assert "did not include a task id" in err.value.message

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TaskGenerationError):
            run_generate(handler)
