"""
Logging Utility for the Recurrence Service.

Provides structured JSON logging for the trigger paths and one-time root
logging configuration for the process.
"""

import json
import logging
import sys
from typing import Any

from .time import utcnow

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once for the process.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ...)
    """
    root = logging.getLogger()
    root.setLevel(level.upper())

    # Prevent adding handlers multiple times
    if not any(getattr(handler, "_recurrence_service", False) for handler in root.handlers):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        console_handler._recurrence_service = True
        root.addHandler(console_handler)


def _default(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


class StructuredLogger:
    """Structured logger that renders each message as a JSON object."""

    def __init__(self, name: str):
        """
        Initialize structured logger.

        Args:
            name: Logger name
        """
        self.logger = logging.getLogger(name)

    def _log_structured(self, level: int, message: str, exc_info: bool = False, **kwargs):
        """
        Log a structured message.

        Args:
            level: Logging level
            message: Log message
            exc_info: Attach the current exception traceback
            **kwargs: Additional structured data
        """
        if self.logger.isEnabledFor(level):
            log_data = {
                "timestamp": utcnow().isoformat(),
                "level": logging.getLevelName(level),
                "message": message,
                "service": self.logger.name,
            }
            log_data.update(kwargs)

            self.logger.log(level, json.dumps(log_data, default=_default), exc_info=exc_info)

    def debug(self, message: str, **kwargs):
        """Log debug message."""
        self._log_structured(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        """Log info message."""
        self._log_structured(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message."""
        self._log_structured(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        """Log error message."""
        self._log_structured(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs):
        """Log error message with traceback."""
        self._log_structured(logging.ERROR, message, exc_info=True, exception=True, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger.

    Args:
        name: Logger name, usually the module's __name__

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name)
