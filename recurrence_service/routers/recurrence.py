"""Recurrence router: CRUD, lifecycle and preview for a user's recurrence patterns."""
from fastapi import APIRouter, Depends, Query, Request, Response, status
from typing import List, Optional
from datetime import datetime

from recurrence_service.domain.pattern import RecurrencePattern
from recurrence_service.schemas.recurrence import (
    PreviewResponse,
    RecurrenceCreate,
    RecurrenceListResponse,
    RecurrenceResponse,
    RecurrenceUpdate,
    TriggerResponse,
)
from recurrence_service.services.recurrence_service import RecurrenceService
from recurrence_service.middleware.auth import CurrentUser, get_correlation_id, get_current_user

router = APIRouter(prefix="/recurrence", tags=["Recurrence"])


def get_recurrence_service(request: Request) -> RecurrenceService:
    """Dependency for getting the application's RecurrenceService."""
    return request.app.state.recurrence_service


def to_response(pattern: RecurrencePattern) -> RecurrenceResponse:
    return RecurrenceResponse(**pattern.to_dict())


@router.post("", response_model=RecurrenceResponse, status_code=status.HTTP_201_CREATED)
async def create_recurrence(
    data: RecurrenceCreate,
    current_user: CurrentUser = Depends(get_current_user),
    correlation_id: str = Depends(get_correlation_id),
    service: RecurrenceService = Depends(get_recurrence_service),
):
    """Attach a recurrence pattern to a task."""
    pattern = service.create(
        user_id=current_user.user_id,
        task_id=data.task_id,
        frequency=data.frequency,
        interval=data.interval,
        days_of_week=data.days_of_week,
        day_of_month=data.day_of_month,
        start_date=data.start_date,
        end_date=data.end_date,
        correlation_id=correlation_id,
    )
    return to_response(pattern)


@router.get("", response_model=RecurrenceListResponse)
async def list_recurrences(
    current_user: CurrentUser = Depends(get_current_user),
    service: RecurrenceService = Depends(get_recurrence_service),
    status_filter: Optional[str] = Query(
        None,
        alias="status",
        pattern=r"^(active|paused|completed)$",
        description="Filter by status: active, paused, completed",
    ),
):
    """List the user's recurrence patterns, soonest next run first."""
    patterns = service.list_by_user(current_user.user_id, status_filter)
    return RecurrenceListResponse(
        patterns=[to_response(pattern) for pattern in patterns],
        total=len(patterns),
    )


# Registered before /{task_id} so "preview" is not taken for a task id
@router.get("/preview", response_model=PreviewResponse)
async def preview_recurrence(
    current_user: CurrentUser = Depends(get_current_user),
    service: RecurrenceService = Depends(get_recurrence_service),
    frequency: str = Query(..., description="daily, weekly, monthly or yearly"),
    interval: int = Query(1),
    days_of_week: Optional[List[int]] = Query(None, description="0-6, Sunday=0; repeat the parameter"),
    day_of_month: Optional[int] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    count: int = Query(5, ge=1, le=50),
):
    """Describe a schedule and list its upcoming occurrences without saving it."""
    return service.preview(
        frequency=frequency,
        interval=interval,
        days_of_week=days_of_week,
        day_of_month=day_of_month,
        start_date=start_date,
        end_date=end_date,
        count=count,
    )


@router.get("/{task_id}", response_model=RecurrenceResponse)
async def get_recurrence(
    task_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: RecurrenceService = Depends(get_recurrence_service),
):
    """Get the recurrence pattern of a task."""
    return to_response(service.get(current_user.user_id, task_id))


@router.put("/{task_id}", response_model=RecurrenceResponse)
async def update_recurrence(
    task_id: str,
    data: RecurrenceUpdate,
    response: Response,
    current_user: CurrentUser = Depends(get_current_user),
    correlation_id: str = Depends(get_correlation_id),
    service: RecurrenceService = Depends(get_recurrence_service),
):
    """Update a task's recurrence pattern, creating it if the task has none."""
    pattern, created = service.update(
        current_user.user_id,
        task_id,
        data.model_dump(exclude_unset=True),
        correlation_id=correlation_id,
    )
    if created:
        response.status_code = status.HTTP_201_CREATED
    return to_response(pattern)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_recurrence(
    task_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    correlation_id: str = Depends(get_correlation_id),
    service: RecurrenceService = Depends(get_recurrence_service),
):
    """Stop a task's recurrence."""
    service.delete(current_user.user_id, task_id, correlation_id=correlation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{task_id}/pause", response_model=RecurrenceResponse)
async def pause_recurrence(
    task_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    correlation_id: str = Depends(get_correlation_id),
    service: RecurrenceService = Depends(get_recurrence_service),
):
    return to_response(service.pause(current_user.user_id, task_id, correlation_id=correlation_id))


@router.post("/{task_id}/resume", response_model=RecurrenceResponse)
async def resume_recurrence(
    task_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    correlation_id: str = Depends(get_correlation_id),
    service: RecurrenceService = Depends(get_recurrence_service),
):
    return to_response(service.resume(current_user.user_id, task_id, correlation_id=correlation_id))


@router.post("/{task_id}/trigger", response_model=TriggerResponse)
async def trigger_recurrence(
    task_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    correlation_id: str = Depends(get_correlation_id),
    service: RecurrenceService = Depends(get_recurrence_service),
):
    """Generate the next task instance now instead of waiting for the next run."""
    report = await service.trigger(current_user.user_id, task_id, correlation_id=correlation_id)
    return TriggerResponse(
        outcome=report.outcome.value,
        new_task_id=report.new_task_id,
        next_run_at=report.next_run_at,
    )
