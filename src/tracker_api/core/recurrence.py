from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from .tzcalendar import DAY_MS, TimeZoneCalendar, utc_calendar


# PUBLIC_INTERFACE
class Frequency(str, Enum):
    """Named recurrence intervals for repeating tasks."""

    DAILY = "daily"
    BI_DAILY = "bi-daily"
    WEEKLY = "weekly"
    FORTNIGHTLY = "fortnightly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SIX_MONTHLY = "6-monthly"
    YEARLY = "yearly"


# (unit, count): "d" steps are flat 24h multiples, "m" steps are calendar months.
_INTERVALS: Dict[str, Tuple[str, int]] = {
    Frequency.DAILY.value: ("d", 1),
    Frequency.BI_DAILY.value: ("d", 2),
    Frequency.WEEKLY.value: ("d", 7),
    Frequency.FORTNIGHTLY.value: ("d", 14),
    Frequency.MONTHLY.value: ("m", 1),
    Frequency.QUARTERLY.value: ("m", 3),
    Frequency.SIX_MONTHLY.value: ("m", 6),
    Frequency.YEARLY.value: ("m", 12),
}
_FALLBACK_INTERVAL = ("d", 1)

FrequencyLike = Union[Frequency, str]


def _interval(frequency: Optional[FrequencyLike]) -> Tuple[str, int]:
    key = frequency.value if isinstance(frequency, Frequency) else frequency
    return _INTERVALS.get(key or "", _FALLBACK_INTERVAL)


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class TaskDueSpec:
    """
    The due-date fields of a task that due-ness depends on.

    Fields:
    - due_date: optional DayKey. For one-off tasks this is the deadline; for
      recurring tasks it is the first due day.
    - frequency: optional recurrence interval. Absent means one-off.
    """

    due_date: Optional[int] = None
    frequency: Optional[FrequencyLike] = None

    @property
    def is_recurring(self) -> bool:
        return self.frequency is not None


def _advance(anchor: int, frequency: Optional[FrequencyLike], steps: int, calendar: TimeZoneCalendar) -> int:
    unit, count = _interval(frequency)
    if unit == "m":
        return calendar.add_calendar_months(anchor, count * steps)
    return calendar.add_days(anchor, count * steps)


# PUBLIC_INTERFACE
def next_due_after(
    last_completed: int,
    frequency: Optional[FrequencyLike],
    calendar: Optional[TimeZoneCalendar] = None,
) -> int:
    """
    Return the DayKey a recurring task is next due after a completion.

    The completion instant is normalized to its civil day first, then
    advanced by the frequency interval. Unknown frequencies advance one day.
    """
    cal = calendar or utc_calendar()
    return _advance(cal.start_of_day(last_completed), frequency, 1, cal)


# PUBLIC_INTERFACE
def get_next_due(
    task: TaskDueSpec,
    ref_now: int,
    latest_completion: Optional[int],
    calendar: Optional[TimeZoneCalendar] = None,
) -> int:
    """Next due DayKey of a recurring task (first due day if never completed)."""
    cal = calendar or utc_calendar()
    if latest_completion is None:
        return task.due_date if task.due_date is not None else cal.start_of_day(ref_now)
    return next_due_after(latest_completion, task.frequency, cal)


# PUBLIC_INTERFACE
def is_due_on_day(
    task: TaskDueSpec,
    day: int,
    ref_now: int,
    latest_completion: Optional[int],
    calendar: Optional[TimeZoneCalendar] = None,
) -> bool:
    """
    Decide whether a task is due on the civil day `day` (a DayKey).

    One-off tasks are never due again once completed; with a due date they
    are due only on that exact day; without one they are due every day.

    Recurring tasks become due on their next due day and stay due on every
    later day until completed again.
    """
    cal = calendar or utc_calendar()
    if not task.is_recurring:
        if latest_completion is not None:
            return False
        if task.due_date is not None:
            return day == task.due_date
        return True

    if latest_completion is None:
        return day >= get_next_due(task, ref_now, None, cal)
    return next_due_after(latest_completion, task.frequency, cal) <= cal.end_of_day(day)


# PUBLIC_INTERFACE
def is_due_in_range(
    task: TaskDueSpec,
    range_start: int,
    range_end: int,
    ref_now: int,
    latest_completion: Optional[int],
    calendar: Optional[TimeZoneCalendar] = None,
) -> bool:
    """
    Decide whether a task falls due inside the inclusive range.

    For recurring tasks only the single next occurrence is tested; use
    `occurrences_in_range` to list every occurrence in a wide range.
    """
    if not task.is_recurring:
        if latest_completion is not None:
            return False
        if task.due_date is None:
            return True
        return range_start <= task.due_date <= range_end

    next_due = get_next_due(task, ref_now, latest_completion, calendar)
    return range_start <= next_due <= range_end


# PUBLIC_INTERFACE
def occurrences_in_range(
    task: TaskDueSpec,
    range_start: int,
    range_end: int,
    ref_now: int,
    latest_completion: Optional[int],
    calendar: Optional[TimeZoneCalendar] = None,
    limit: int = 1000,
) -> List[int]:
    """
    List the due DayKeys of a task that fall inside the inclusive range.

    Recurring occurrences start at the next due day and are stepped from
    that anchor (anchor + k * interval), so month clamping in one step does
    not carry into the following ones. One-off tasks yield at most their
    due date; an undated, uncompleted one-off task yields nothing.
    """
    cal = calendar or utc_calendar()
    if not task.is_recurring:
        if latest_completion is None and task.due_date is not None and range_start <= task.due_date <= range_end:
            return [task.due_date]
        return []

    anchor = get_next_due(task, ref_now, latest_completion, cal)
    out: List[int] = []
    k = 0
    unit, count = _interval(task.frequency)
    if unit == "d" and anchor < range_start:
        step = count * DAY_MS
        k = -(-(range_start - anchor) // step)
    while len(out) < limit:
        occurrence = _advance(anchor, task.frequency, k, cal)
        if occurrence > range_end:
            break
        if occurrence >= range_start:
            out.append(occurrence)
        k += 1
    return out
