"""Inbound task event parsing for the Dapr subscription."""
import json
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel

from recurrence_service.utils.time import parse_iso

TASK_COMPLETED = "task.completed"
TASK_DELETED = "task.deleted"


class TaskEvent(BaseModel):
    """The fields of a task event the recurrence service acts on."""
    event_type: str
    task_id: str
    user_id: Optional[str] = None
    correlation_id: str
    completed_at: Optional[datetime] = None


def _first(*values: Any) -> Any:
    for value in values:
        if value not in (None, ""):
            return value
    return None


def _event_type(envelope: Dict[str, Any]) -> Optional[str]:
    return _first(envelope.get("eventType"), envelope.get("event_type"), envelope.get("type"))


def parse_task_event(body: Any) -> TaskEvent:
    """
    Parse a task event delivered by Dapr.

    The event envelope may arrive bare or wrapped in a CloudEvent `data` field
    (itself possibly a JSON string). Field names are accepted in camelCase or
    snake_case.

    Raises:
        ValueError: body is not an event or lacks the event type or task id
    """
    if not isinstance(body, dict):
        raise ValueError("Event body must be a JSON object")

    envelope = body
    if "specversion" in body or not _event_type(body):
        data = body.get("data")
        if isinstance(data, (str, bytes)):
            data = json.loads(data)
        if isinstance(data, dict):
            envelope = data

    payload = _first(envelope.get("payload"), envelope.get("data")) or {}
    if not isinstance(payload, dict):
        raise ValueError("Event payload must be a JSON object")

    event_type = _event_type(envelope)
    task_id = _first(
        payload.get("taskId"),
        payload.get("task_id"),
        envelope.get("taskId"),
        envelope.get("aggregate_id"),
        envelope.get("aggregateId"),
    )
    if not event_type or task_id is None:
        raise ValueError("Event is missing its type or task id")

    user_id = _first(
        envelope.get("userId"),
        envelope.get("user_id"),
        payload.get("userId"),
        payload.get("user_id"),
    )
    correlation_id = _first(envelope.get("correlationId"), envelope.get("correlation_id")) or str(uuid.uuid4())
    completed_at = _first(
        payload.get("completedAt"),
        payload.get("completed_at"),
        envelope.get("completedAt"),
        envelope.get("completed_at"),
    )

    return TaskEvent(
        event_type=event_type,
        task_id=str(task_id),
        user_id=str(user_id) if user_id is not None else None,
        correlation_id=str(correlation_id),
        completed_at=parse_iso(completed_at) if isinstance(completed_at, str) else None,
    )
