"""
Pure date and recurrence calculations used by the tracker services.

Nothing in this package performs I/O or reads the clock; every "now" is
passed in by the caller.
"""
from .ranges import DateRange, current_month_range, current_week_range, day_range
from .recurrence import (
    Frequency,
    TaskDueSpec,
    get_next_due,
    is_due_in_range,
    is_due_on_day,
    next_due_after,
    occurrences_in_range,
)
from .tzcalendar import DAY_MS, CivilParts, TimeZoneCalendar, get_calendar, utc_calendar

__all__ = [
    "DAY_MS",
    "CivilParts",
    "DateRange",
    "Frequency",
    "TaskDueSpec",
    "TimeZoneCalendar",
    "current_month_range",
    "current_week_range",
    "day_range",
    "get_calendar",
    "get_next_due",
    "is_due_in_range",
    "is_due_on_day",
    "next_due_after",
    "occurrences_in_range",
    "utc_calendar",
]
