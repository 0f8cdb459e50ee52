"""
Recurrence Calculator

Pure date arithmetic for recurring schedules: next/first occurrence,
occurrence previews, validation and human-readable descriptions.

Days of week use 0=Sunday..6=Saturday throughout. Datetimes are naive UTC and
their time-of-day is preserved by every rule.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from .errors import RecurrenceValidationError, UnknownFrequencyError

DAILY = "daily"
WEEKLY = "weekly"
MONTHLY = "monthly"
YEARLY = "yearly"

FREQUENCIES = (DAILY, WEEKLY, MONTHLY, YEARLY)

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


@dataclass(frozen=True)
class Schedule:
    """Immutable recurrence definition."""

    frequency: str
    start_date: datetime
    interval: int = 1
    days_of_week: Optional[Tuple[int, ...]] = None
    day_of_month: Optional[int] = None
    end_date: Optional[datetime] = None


@dataclass(frozen=True)
class NextRunResult:
    next_run: datetime
    is_completed: bool


def calculate_next_run(schedule: Schedule, from_date: datetime) -> NextRunResult:
    """
    Calculate the next run strictly after `from_date`.

    Args:
        schedule: Recurrence definition
        from_date: Anchor date (start date, or the last trigger instant)

    Returns:
        NextRunResult; `is_completed` is set when the result passes the end date,
        in which case the caller must stop the recurrence instead of using it.

    Raises:
        UnknownFrequencyError: frequency is not one of FREQUENCIES
        RecurrenceValidationError: weekly schedule without days, or the next
            run falls outside the supported date range
    """
    try:
        if schedule.frequency == DAILY:
            next_run = _next_daily(from_date, schedule.interval)
        elif schedule.frequency == WEEKLY:
            next_run = _next_weekly(from_date, schedule.interval, schedule.days_of_week or ())
        elif schedule.frequency == MONTHLY:
            next_run = _next_monthly(from_date, schedule.interval, schedule.day_of_month or 1)
        elif schedule.frequency == YEARLY:
            next_run = _next_yearly(from_date, schedule.interval)
        else:
            raise UnknownFrequencyError(schedule.frequency)
    except (OverflowError, ValueError) as e:
        raise RecurrenceValidationError([f"Interval {schedule.interval} moves the next run out of range: {e}"])

    if schedule.end_date is not None and next_run > schedule.end_date:
        return NextRunResult(next_run=next_run, is_completed=True)

    return NextRunResult(next_run=next_run, is_completed=False)


def calculate_first_run(schedule: Schedule) -> datetime:
    """Calculate the first occurrence on or after the start date."""
    start = schedule.start_date

    if schedule.frequency == WEEKLY and schedule.days_of_week:
        current_day = weekday_index(start)
        if current_day in schedule.days_of_week:
            return start

        sorted_days = sorted(set(schedule.days_of_week))
        for day in sorted_days:
            if day > current_day:
                return start + timedelta(days=day - current_day)

        # Nothing left this week: first pattern day of the following week
        return start + timedelta(days=7 - current_day + sorted_days[0])

    if schedule.frequency == MONTHLY and schedule.day_of_month:
        target_day = min(schedule.day_of_month, last_day_of_month(start.year, start.month))
        if start.day <= target_day:
            return start.replace(day=target_day)

        year, month = _add_months(start.year, start.month, 1)
        return start.replace(
            year=year,
            month=month,
            day=min(schedule.day_of_month, last_day_of_month(year, month)),
        )

    return start


def generate_occurrences(
    schedule: Schedule,
    count: int,
    from_date: Optional[datetime] = None,
) -> List[datetime]:
    """
    Generate up to `count` future occurrences.

    Stops early at the first occurrence past the end date. Each call recomputes
    from scratch.
    """
    occurrences: List[datetime] = []
    current = from_date if from_date is not None else schedule.start_date

    for _ in range(count):
        result = calculate_next_run(schedule, current)
        if result.is_completed:
            break
        occurrences.append(result.next_run)
        current = result.next_run

    return occurrences


def validate(schedule: Schedule) -> Dict[str, Any]:
    """
    Validate a schedule definition.

    Args:
        schedule: Recurrence definition

    Returns:
        Dict with validation result; `errors` lists every violated rule
    """
    result = {
        "valid": True,
        "errors": [],
    }
    errors = result["errors"]

    if schedule.frequency not in FREQUENCIES:
        errors.append(f"Frequency must be one of: {', '.join(FREQUENCIES)}")

    if schedule.interval is None or schedule.interval < 1:
        errors.append("Interval must be at least 1")

    if schedule.frequency == WEEKLY:
        if not schedule.days_of_week:
            errors.append("Weekly recurrence requires at least one day of week")
        else:
            for day in schedule.days_of_week:
                if day < 0 or day > 6:
                    errors.append(f"Invalid day of week: {day}. Must be 0-6 (Sunday-Saturday)")

    if schedule.frequency == MONTHLY:
        if schedule.day_of_month is None:
            errors.append("Monthly recurrence requires day of month")
        elif schedule.day_of_month < 1 or schedule.day_of_month > 31:
            errors.append("Day of month must be between 1 and 31")

    if schedule.end_date is not None and schedule.end_date <= schedule.start_date:
        errors.append("End date must be after start date")

    result["valid"] = not errors
    return result


def ensure_valid(schedule: Schedule) -> None:
    """Raise RecurrenceValidationError with all errors if `schedule` is invalid."""
    result = validate(schedule)
    if not result["valid"]:
        raise RecurrenceValidationError(result["errors"])


def describe(schedule: Schedule) -> str:
    """Human-readable summary, e.g. 'Every 2 weeks on Friday'."""
    interval = schedule.interval

    if schedule.frequency == DAILY:
        if interval == 1:
            return "Every day"
        return f"Every {interval} days"

    if schedule.frequency == WEEKLY:
        days = ", ".join(DAY_NAMES[d] for d in sorted(set(schedule.days_of_week or ())) if 0 <= d <= 6)
        if interval == 1:
            return f"Every {days}"
        return f"Every {interval} weeks on {days}"

    if schedule.frequency == MONTHLY:
        ordinal = ordinal_suffix(schedule.day_of_month or 1)
        if interval == 1:
            return f"Every month on the {ordinal}"
        return f"Every {interval} months on the {ordinal}"

    if schedule.frequency == YEARLY:
        if interval == 1:
            return "Every year"
        return f"Every {interval} years"

    return "Unknown recurrence"


def ordinal_suffix(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def weekday_index(value: datetime) -> int:
    """Day of week with Sunday=0 (datetime.weekday() uses Monday=0)."""
    return (value.weekday() + 1) % 7


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _add_months(year: int, month: int, months: int) -> Tuple[int, int]:
    total = year * 12 + (month - 1) + months
    return total // 12, total % 12 + 1


def _next_daily(from_date: datetime, interval: int) -> datetime:
    return from_date + timedelta(days=interval)


def _next_weekly(from_date: datetime, interval: int, days_of_week) -> datetime:
    if not days_of_week:
        raise RecurrenceValidationError(["Weekly recurrence requires at least one day of week"])

    sorted_days = sorted(set(days_of_week))
    candidate = from_date + timedelta(days=1)
    start_day = weekday_index(candidate)

    # Look for a pattern day in the rest of the current week first
    for day in sorted_days:
        if day >= start_day:
            candidate += timedelta(days=day - start_day)
            if interval > 1:
                candidate += timedelta(weeks=interval - 1)
            return candidate

    days_to_first = (sorted_days[0] - start_day + 7) % 7 or 7
    return candidate + timedelta(days=days_to_first + (interval - 1) * 7)


def _next_monthly(from_date: datetime, interval: int, day_of_month: int) -> datetime:
    year, month = _add_months(from_date.year, from_date.month, interval)
    day = min(day_of_month, last_day_of_month(year, month))
    return from_date.replace(year=year, month=month, day=day)


def _next_yearly(from_date: datetime, interval: int) -> datetime:
    year = from_date.year + interval
    if from_date.month == 2 and from_date.day == 29 and not calendar.isleap(year):
        return from_date.replace(year=year, day=28)
    return from_date.replace(year=year)
