"""Recurrence Service: recurring task patterns behind a Dapr sidecar."""

__version__ = "1.0.0"
