"""Dapr subscription and cron binding endpoints."""
import json

from fastapi import APIRouter, Request

from recurrence_service.dapr.client import TASK_EVENTS_TOPIC
from recurrence_service.schemas.events import TASK_COMPLETED, TASK_DELETED, parse_task_event
from recurrence_service.utils import metrics as metric_names
from recurrence_service.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Events"])

# Dapr pub/sub subscriber responses
SUCCESS = "SUCCESS"
RETRY = "RETRY"
DROP = "DROP"


@router.get("/dapr/subscribe")
def subscribe(request: Request):
    """Dapr subscription endpoint for the task events topic."""
    return [{
        "pubsubname": request.app.state.settings.pubsub_name,
        "topic": TASK_EVENTS_TOPIC,
        "route": "/events/task",
    }]


@router.post("/events/task")
async def handle_task_event(request: Request):
    """
    Handle task.completed and task.deleted events.

    Generation failures are acknowledged (the pattern stays due and the poll
    retries it); store failures ask Dapr to redeliver; malformed events are
    dropped.
    """
    body_bytes = await request.body()

    # If body is empty, drop immediately
    if not body_bytes:
        logger.warning("Empty task event received")
        return {"status": DROP}

    try:
        event = parse_task_event(json.loads(body_bytes))
    except ValueError as e:
        logger.warning("Malformed task event dropped", error=str(e))
        return {"status": DROP}

    coordinator = request.app.state.coordinator
    fields = {
        "event_type": event.event_type,
        "task_id": event.task_id,
        "correlation_id": event.correlation_id,
    }

    try:
        if event.event_type == TASK_COMPLETED:
            report = await coordinator.handle_task_completed(
                event.task_id,
                event.user_id,
                event.completed_at,
                event.correlation_id,
            )
            logger.info(
                "Processed task.completed event",
                outcome=report.outcome.value if report else None,
                **fields,
            )
        elif event.event_type == TASK_DELETED:
            deleted = coordinator.handle_task_deleted(event.task_id, event.user_id, event.correlation_id)
            logger.info("Processed task.deleted event", pattern_deleted=deleted, **fields)
        else:
            logger.debug("Ignoring task event", **fields)
    except Exception as e:
        request.app.state.metrics.increment_counter(metric_names.ERRORS)
        logger.exception("Failed to process task event", error=str(e), **fields)
        return {"status": RETRY}

    return {"status": SUCCESS}


@router.post("/cron-recurrence")
async def cron_recurrence(request: Request):
    """Dapr cron input binding: run one poll tick."""
    summary = await request.app.state.poller.run_once()
    if summary is None:
        return {"status": "skipped"}
    return {"status": "processed", "summary": summary.to_dict()}
