"""Recurrence Pattern model for SQLModel."""
from sqlmodel import SQLModel, Field
from datetime import datetime
from typing import List, Optional
from sqlalchemy import Column, DateTime, Index, JSON
import uuid


class RecurrencePatternRecord(SQLModel, table=True):
    """Stored recurrence pattern, one per task."""

    __tablename__ = "recurrence_pattern"
    __table_args__ = (
        Index("idx_recurrence_next", "status", "next_run_at"),
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True, max_length=36)
    task_id: str = Field(max_length=100, unique=True, index=True)
    user_id: str = Field(max_length=100, index=True)
    frequency: str = Field(max_length=20)  # daily, weekly, monthly, yearly
    interval: int = Field(default=1)  # multiplier of the frequency unit
    days_of_week: Optional[List[int]] = Field(default=None, sa_column=Column(JSON, nullable=True))  # 0-6, Sunday=0
    day_of_month: Optional[int] = Field(default=None)  # 1-31
    start_date: datetime = Field(sa_type=DateTime)
    end_date: Optional[datetime] = Field(default=None, sa_type=DateTime)
    next_run_at: datetime = Field(sa_type=DateTime)
    status: str = Field(default="active", max_length=20)  # active, paused, completed
    last_triggered_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    claimed_at: Optional[datetime] = Field(default=None, sa_type=DateTime)  # trigger lease
    version: int = Field(default=1)  # optimistic concurrency token
    created_at: datetime = Field(sa_type=DateTime)
    updated_at: datetime = Field(sa_type=DateTime)
