from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Optional

from dateutil.relativedelta import relativedelta

from .tzcalendar import TimeZoneCalendar, utc_calendar


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class DateRange:
    """Closed interval [start, end] of millisecond instants."""

    start: int
    end: int

    def contains(self, instant: int) -> bool:
        return self.start <= instant <= self.end


def day_range(day: int, calendar: Optional[TimeZoneCalendar] = None) -> DateRange:
    cal = calendar or utc_calendar()
    start = cal.start_of_day(day)
    return DateRange(start, cal.end_of_day(start))


# PUBLIC_INTERFACE
def current_week_range(ref_now: int, calendar: Optional[TimeZoneCalendar] = None) -> DateRange:
    """
    Sunday 00:00:00.000 through Saturday 23:59:59.999 of the week holding `ref_now`.

    With the default UTC calendar this always spans exactly 7 days minus 1ms.
    """
    cal = calendar or utc_calendar()
    today = cal.to_date(ref_now)
    sunday = today - dt.timedelta(days=cal.weekday(ref_now))
    start = cal.from_date(sunday)
    end = cal.from_date(sunday + dt.timedelta(days=7)) - 1
    return DateRange(start, end)


# PUBLIC_INTERFACE
def current_month_range(ref_now: int, calendar: Optional[TimeZoneCalendar] = None) -> DateRange:
    """From the 1st 00:00:00.000 through 23:59:59.999 on the last day of `ref_now`'s month."""
    cal = calendar or utc_calendar()
    first = cal.to_date(ref_now).replace(day=1)
    start = cal.from_date(first)
    end = cal.from_date(first + relativedelta(months=1)) - 1
    return DateRange(start, end)
