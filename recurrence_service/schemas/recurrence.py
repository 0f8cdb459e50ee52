"""Recurrence schemas for the Recurrence Service API."""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List


class RecurrenceCreate(BaseModel):
    """Schema for attaching a recurrence to a task.

    Schedule rules (interval, weekly days, monthly day, end date) are checked by
    the service so that every violation is reported at once.
    """
    task_id: str = Field(..., min_length=1, max_length=100)
    frequency: str = Field(...)  # daily, weekly, monthly, yearly
    interval: Optional[int] = Field(default=1)
    days_of_week: Optional[List[int]] = Field(None)  # 0-6, Sunday=0
    day_of_month: Optional[int] = Field(None)  # 1-31
    start_date: Optional[datetime] = Field(None)  # defaults to now
    end_date: Optional[datetime] = Field(None)


class RecurrenceUpdate(BaseModel):
    """Schema for editing a recurrence. Only fields sent are applied."""
    frequency: Optional[str] = Field(None)
    interval: Optional[int] = Field(None)
    days_of_week: Optional[List[int]] = Field(None)
    day_of_month: Optional[int] = Field(None)
    start_date: Optional[datetime] = Field(None)  # used only when the update creates the pattern
    end_date: Optional[datetime] = Field(None)  # explicit null clears the end date


class RecurrenceResponse(BaseModel):
    """Schema for recurrence API responses."""
    id: str
    task_id: str
    user_id: str
    frequency: str
    interval: int
    days_of_week: Optional[List[int]] = None
    day_of_month: Optional[int] = None
    start_date: datetime
    end_date: Optional[datetime] = None
    next_run_at: datetime
    status: str
    last_triggered_at: Optional[datetime] = None
    description: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RecurrenceListResponse(BaseModel):
    patterns: List[RecurrenceResponse]
    total: int


class TriggerResponse(BaseModel):
    """Result of a manual trigger."""
    outcome: str
    new_task_id: Optional[str] = None
    next_run_at: Optional[datetime] = None


class PreviewResponse(BaseModel):
    description: str
    first_run: datetime
    occurrences: List[datetime]
