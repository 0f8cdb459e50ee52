"""Recurrence domain: schedule arithmetic, pattern lifecycle and errors."""
