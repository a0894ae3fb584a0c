from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil.relativedelta import relativedelta

DAY_MS = 24 * 60 * 60 * 1000

_EPOCH = dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)
_UTC_ALIASES = {"utc", "z", "gmt", "etc/utc"}


@dataclass(frozen=True)
class CivilParts:
    """Calendar and clock fields of an instant as observed in one zone."""

    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int


def _to_datetime(instant: int, tz: dt.tzinfo) -> dt.datetime:
    # Exact integer arithmetic; fromtimestamp() would round through a float.
    return (_EPOCH + dt.timedelta(milliseconds=instant)).astimezone(tz)


def datetime_to_ms(value: dt.datetime) -> int:
    """Exact epoch milliseconds of an aware datetime."""
    delta = value - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def _utc_ms(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> int:
    return datetime_to_ms(dt.datetime(year, month, day, hour, minute, second, tzinfo=dt.timezone.utc))


# Instants accepted at the API edge. Every calendar operation (zone shifts,
# month steps, week and month windows) stays representable inside this span.
MIN_INSTANT_MS = _utc_ms(1000, 1, 1)
MAX_INSTANT_MS = _utc_ms(9000, 1, 1) - 1


def _resolve_zone(zone_id: str) -> dt.tzinfo:
    s = (zone_id or "").strip()
    if not s:
        raise ValueError("Timezone identifier must not be empty")
    if s.lower() in _UTC_ALIASES:
        return dt.timezone.utc
    try:
        return ZoneInfo(s)
    except (ZoneInfoNotFoundError, ValueError) as ex:
        raise ValueError(f"Invalid timezone identifier: {zone_id!r}") from ex


# PUBLIC_INTERFACE
class TimeZoneCalendar:
    """
    Maps millisecond instants to civil days in one named IANA timezone.

    Offsets are always looked up in the timezone database for the instant in
    question, so zones with daylight saving transitions are handled without a
    fixed offset.

    Usage:
        cal = TimeZoneCalendar("Australia/Brisbane")
        day = cal.start_of_day(now_ms)
        next_month = cal.add_calendar_months(day, 1)
    """

    def __init__(self, zone_id: str) -> None:
        self._tz = _resolve_zone(zone_id)
        self.zone_id = "UTC" if self._tz is dt.timezone.utc else zone_id.strip()

    def __repr__(self) -> str:
        return f"TimeZoneCalendar({self.zone_id!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, TimeZoneCalendar) and other.zone_id == self.zone_id

    def __hash__(self) -> int:
        return hash(self.zone_id)

    def civil_parts_of(self, instant: int) -> CivilParts:
        """Project an instant onto civil time in this calendar's zone."""
        local = _to_datetime(instant, self._tz)
        return CivilParts(local.year, local.month, local.day, local.hour, local.minute, local.second)

    def zone_offset_at(self, instant: int) -> int:
        """
        Return the zone's UTC offset in milliseconds at `instant`.

        The offset is the difference between the civil parts read back as if
        they were UTC and the instant itself (truncated to whole seconds, as
        civil parts carry no milliseconds).
        """
        p = self.civil_parts_of(instant)
        whole_seconds = instant - (instant % 1000)
        return _utc_ms(p.year, p.month, p.day, p.hour, p.minute, p.second) - whole_seconds

    def start_of_day_from_parts(self, year: int, month: int, day: int) -> int:
        """
        Instant of 00:00:00.000 civil time on the given date.

        The offset is the one in force at local midnight itself, not at UTC
        midnight, which can already lie past a DST switch in zones east of
        UTC. A midnight skipped by a DST gap resolves to the first instant of
        the day.
        """
        return datetime_to_ms(dt.datetime(year, month, day, tzinfo=self._tz))

    def start_of_day(self, instant: int) -> int:
        """DayKey of the civil day containing `instant`."""
        p = self.civil_parts_of(instant)
        return self.start_of_day_from_parts(p.year, p.month, p.day)

    def end_of_day(self, day: int) -> int:
        return day + DAY_MS - 1

    def add_days(self, instant: int, days: int) -> int:
        """Shift by whole 24h days (no civil-date adjustment)."""
        return instant + days * DAY_MS

    def add_calendar_months(self, instant: int, months: int) -> int:
        """
        Add calendar months to the civil date of `instant`.

        The day-of-month is clamped to the target month, so Jan 31 + 1 month
        is Feb 28 (or 29), never early March. Clamping means the operation
        is not always reversible: Jan 31 + 1 - 1 gives Jan 28.
        """
        p = self.civil_parts_of(instant)
        target = dt.date(p.year, p.month, p.day) + relativedelta(months=months)
        return self.start_of_day_from_parts(target.year, target.month, target.day)

    def from_utc_day_start(self, instant: int) -> int:
        """Re-key a UTC-midnight DayKey to the same civil date in this zone."""
        d = _to_datetime(instant, dt.timezone.utc)
        return self.start_of_day_from_parts(d.year, d.month, d.day)

    def weekday(self, instant: int) -> int:
        """Civil weekday of `instant`, Sunday = 0 through Saturday = 6."""
        return (_to_datetime(instant, self._tz).weekday() + 1) % 7

    def to_date(self, instant: int) -> dt.date:
        return _to_datetime(instant, self._tz).date()

    def from_date(self, value: dt.date) -> int:
        return self.start_of_day_from_parts(value.year, value.month, value.day)


@lru_cache(maxsize=32)
def get_calendar(zone_id: Optional[str]) -> TimeZoneCalendar:
    """Shared calendar per zone identifier. None means UTC."""
    return TimeZoneCalendar(zone_id or "UTC")


def utc_calendar() -> TimeZoneCalendar:
    return get_calendar("UTC")
