"""Dapr client for publishing recurrence lifecycle events."""
import json
import logging
import uuid
from typing import Any, Dict, Optional

from dapr.clients import DaprClient

from recurrence_service.utils.time import utcnow

logger = logging.getLogger(__name__)

RECURRENCE_EVENTS_TOPIC = "recurrence.events"
TASK_EVENTS_TOPIC = "task.events"

RECURRENCE_CREATED = "recurrence.created"
RECURRENCE_MODIFIED = "recurrence.modified"
RECURRENCE_PAUSED = "recurrence.paused"
RECURRENCE_RESUMED = "recurrence.resumed"
RECURRENCE_STOPPED = "recurrence.stopped"
RECURRENCE_TRIGGERED = "recurrence.triggered"

STOP_REASON_MANUAL = "manual"
STOP_REASON_END_DATE = "end_date_reached"

SERVICE_NAME = "recurrence-service"


class DaprEventPublisher:
    """Publishes recurrence events to the event bus via Dapr pub/sub."""

    def __init__(
        self,
        pubsub_name: str = "pubsub",
        enabled: bool = True,
        dapr_address: Optional[str] = None,
    ):
        """Initialize Dapr event publisher."""
        self.pubsub_name = pubsub_name
        self.enabled = enabled
        self.dapr_address = dapr_address
        if not self.enabled:
            logger.warning("Dapr disabled. Running in development mode without Dapr integration.")

    def build_envelope(
        self,
        event_type: str,
        task_id: str,
        user_id: str,
        data: Dict[str, Any],
        correlation_id: Optional[str] = None,
        trigger: Optional[str] = None,
    ) -> Dict[str, Any]:
        metadata = {"serviceName": SERVICE_NAME}
        if trigger:
            metadata["trigger"] = trigger

        return {
            "event_id": str(uuid.uuid4()),
            "type": event_type,
            "aggregate_type": "recurrence",
            "aggregate_id": task_id,
            "user_id": user_id,
            "correlation_id": correlation_id or str(uuid.uuid4()),
            "timestamp": utcnow().isoformat(),
            "source": SERVICE_NAME,
            "data": data,
            "metadata": metadata,
        }

    def publish_recurrence_event(
        self,
        event_type: str,
        task_id: str,
        user_id: str,
        data: Dict[str, Any],
        correlation_id: Optional[str] = None,
        trigger: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Publish a recurrence lifecycle event to the recurrence topic.

        Raises:
            Exception: whatever the Dapr client raised; callers that have
                already committed their change log it and carry on
        """
        envelope = self.build_envelope(event_type, task_id, user_id, data, correlation_id, trigger)

        if not self.enabled:
            # Development mode: log the event instead of publishing
            logger.info(f"[DEV MODE] Would publish to topic '{RECURRENCE_EVENTS_TOPIC}': {json.dumps(envelope)}")
            return {"success": True, "event_id": envelope["event_id"]}

        try:
            with DaprClient(address=self.dapr_address) as client:
                client.publish_event(
                    pubsub_name=self.pubsub_name,
                    topic_name=RECURRENCE_EVENTS_TOPIC,
                    data=json.dumps(envelope),
                    data_content_type="application/json",
                )

            logger.info(f"Published event {event_type} for task {task_id} to topic {RECURRENCE_EVENTS_TOPIC}")
            return {"success": True, "event_id": envelope["event_id"]}

        except Exception as e:
            logger.error(f"Failed to publish event {event_type} to topic {RECURRENCE_EVENTS_TOPIC}: {str(e)}")
            raise

    def try_publish(self, event_type: str, task_id: str, user_id: str, data: Dict[str, Any], **kwargs) -> bool:
        """Publish after a committed change; a failure is logged, never raised."""
        try:
            self.publish_recurrence_event(event_type, task_id, user_id, data, **kwargs)
            return True
        except Exception:
            logger.exception(f"Event {event_type} for task {task_id} was not published")
            return False
