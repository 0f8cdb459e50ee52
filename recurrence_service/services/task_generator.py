"""
Task Generator

Creates the next task instance of a recurrence through the task service,
reached via Dapr service invocation on the sidecar's HTTP API.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from recurrence_service.domain.errors import TaskGenerationError
from recurrence_service.domain.pattern import RecurrencePattern

logger = logging.getLogger(__name__)

# Fields copied from the template task onto each new instance
TEMPLATE_FIELDS = ("title", "description", "priority", "tags")


class TaskGenerator:
    """Client for the task service's get/create task operations."""

    def __init__(self, client: httpx.AsyncClient, dapr_base_url: str, task_app_id: str = "task-service"):
        self.client = client
        self.base_url = f"{dapr_base_url.rstrip('/')}/v1.0/invoke/{task_app_id}/method"

    async def generate(
        self,
        pattern: RecurrencePattern,
        due_date: datetime,
        correlation_id: str,
    ) -> str:
        """
        Create the next task instance for `pattern`, due at `due_date`.

        The owning task is the template. The recurrence itself is not copied:
        it stays with the pattern, not with individual instances.

        Returns:
            ID of the created task

        Raises:
            TaskGenerationError: template lookup or creation failed
        """
        template = await self.fetch_template(pattern.task_id, pattern.user_id, correlation_id)

        new_task = {field: template.get(field) for field in TEMPLATE_FIELDS if template.get(field) is not None}
        new_task["dueDate"] = due_date.isoformat() + "Z"

        created = await self._request(
            "POST",
            "tasks",
            pattern.user_id,
            correlation_id,
            json=new_task,
        )

        new_task_id = created.get("id") if isinstance(created, dict) else None
        if new_task_id is None:
            raise TaskGenerationError(
                "Task service response did not include a task id",
                {"task_id": pattern.task_id},
            )

        logger.info(f"Created task {new_task_id} from template task {pattern.task_id} due {due_date.isoformat()}")
        return str(new_task_id)

    async def fetch_template(self, task_id: str, user_id: str, correlation_id: str) -> Dict[str, Any]:
        template = await self._request("GET", f"tasks/{task_id}", user_id, correlation_id)
        if not isinstance(template, dict):
            raise TaskGenerationError("Template task not found", {"task_id": task_id})
        return template

    async def _request(
        self,
        method: str,
        path: str,
        user_id: str,
        correlation_id: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        headers = {
            "X-User-Id": user_id,
            "X-Correlation-Id": correlation_id,
        }
        try:
            response = await self.client.request(method, f"{self.base_url}/{path}", headers=headers, json=json)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise TaskGenerationError(
                f"Task service returned {e.response.status_code} for {method} {path}",
                {"status_code": e.response.status_code, "path": path},
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise TaskGenerationError(
                f"Task service call {method} {path} failed: {e}",
                {"path": path},
            ) from e
