"""
Recurrence Error Taxonomy

All errors raised by the recurrence domain and its persistence/generation
boundaries share one base class carrying a machine-readable code, a message
and optional details, so the HTTP layer and the trigger coordinator can handle
them uniformly.
"""

from typing import Any, Dict, List, Optional


class RecurrenceError(Exception):
    """Base exception for recurrence errors"""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class RecurrenceValidationError(RecurrenceError):
    """Schedule definition breaks one or more rules. Never stored."""

    status_code = 400

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(
            code="VALIDATION_ERROR",
            message="Invalid recurrence pattern",
            details={"errors": self.errors},
        )


class UnknownFrequencyError(RecurrenceError):
    status_code = 400

    def __init__(self, frequency: Any):
        super().__init__(
            code="UNKNOWN_FREQUENCY",
            message=f"Unknown frequency: {frequency}",
            details={"frequency": frequency},
        )


class InvalidTransitionError(RecurrenceError):
    """Lifecycle operation called from a status that does not allow it."""

    status_code = 409

    def __init__(self, action: str, status: str):
        self.action = action
        self.status = status
        super().__init__(
            code="INVALID_TRANSITION",
            message=f"Cannot {action} {status} recurrence",
            details={"action": action, "status": status},
        )


class PatternNotFoundError(RecurrenceError):
    status_code = 404

    def __init__(self, task_id: str):
        super().__init__(
            code="NOT_FOUND",
            message="Recurrence pattern not found for this task",
            details={"task_id": task_id},
        )


class DuplicatePatternError(RecurrenceError):
    status_code = 409

    def __init__(self, task_id: str):
        super().__init__(
            code="DUPLICATE_PATTERN",
            message="Recurrence pattern already exists for this task. Use PUT to update.",
            details={"task_id": task_id},
        )


class ConcurrencyConflictError(RecurrenceError):
    """Optimistic version check failed: the row changed since it was read."""

    status_code = 409

    def __init__(self, pattern_id: str, expected_version: int):
        self.pattern_id = pattern_id
        self.expected_version = expected_version
        super().__init__(
            code="CONFLICT",
            message="Recurrence pattern was modified concurrently",
            details={"pattern_id": pattern_id, "expected_version": expected_version},
        )


class TaskGenerationError(RecurrenceError):
    """The task service could not create the next task instance."""

    status_code = 502

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(code="GENERATION_FAILED", message=message, details=details)
