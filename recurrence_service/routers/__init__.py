"""Routers package for the Recurrence Service."""

from .events import router as events_router
from .recurrence import router as recurrence_router

__all__ = ["events_router", "recurrence_router"]
