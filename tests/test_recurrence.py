import pytest

from conftest import DAY, ms
from tracker_api.core.recurrence import (
    Frequency,
    TaskDueSpec,
    get_next_due,
    is_due_in_range,
    is_due_on_day,
    next_due_after,
    occurrences_in_range,
)
from tracker_api.core.tzcalendar import TimeZoneCalendar

NOW = ms(2024, 3, 15, 9, 30)  # a Friday
TODAY = ms(2024, 3, 15)


class TestNextDueAfter:
    @pytest.mark.parametrize(
        "frequency, expected",
        [
            ("daily", ms(2024, 3, 16)),
            ("bi-daily", ms(2024, 3, 17)),
            ("weekly", ms(2024, 3, 22)),
            ("fortnightly", ms(2024, 3, 29)),
            ("monthly", ms(2024, 4, 15)),
            ("quarterly", ms(2024, 6, 15)),
            ("6-monthly", ms(2024, 9, 15)),
            ("yearly", ms(2025, 3, 15)),
        ],
    )
    def test_interval_table(self, frequency, expected):
        assert next_due_after(ms(2024, 3, 15, 18, 5), frequency) == expected

    def test_accepts_enum_members(self):
        assert next_due_after(NOW, Frequency.WEEKLY) == ms(2024, 3, 22)

    def test_unknown_frequency_falls_back_to_one_day(self):
        assert next_due_after(NOW, "every-blue-moon") == ms(2024, 3, 16)

    def test_daily_is_start_of_completion_day_plus_one(self):
        completed = ms(2024, 3, 15, 23, 59, 59)
        assert next_due_after(completed, "daily") == TODAY + DAY

    def test_monthly_from_jan_31_clamps(self):
        assert next_due_after(ms(2023, 1, 31, 10), "monthly") == ms(2023, 2, 28)
        assert next_due_after(ms(2024, 1, 31, 10), "monthly") == ms(2024, 2, 29)

    def test_uses_calendar_day_of_completion(self):
        brisbane = TimeZoneCalendar("Australia/Brisbane")
        # 2024-03-15 20:00 UTC is already Mar 16 in Brisbane
        result = next_due_after(ms(2024, 3, 15, 20), "daily", brisbane)
        assert result == ms(2024, 3, 17, tz="Australia/Brisbane")


class TestIsDueOnDayOneOff:
    def test_no_due_date_never_completed_is_due_every_day(self):
        task = TaskDueSpec()
        for day in (ms(1999, 1, 1), TODAY, ms(2031, 7, 4)):
            assert is_due_on_day(task, day, NOW, None)

    def test_due_only_on_its_due_date(self):
        task = TaskDueSpec(due_date=TODAY)
        assert is_due_on_day(task, TODAY, NOW, None)
        assert not is_due_on_day(task, TODAY + DAY, NOW, None)
        assert not is_due_on_day(task, TODAY - DAY, NOW, None)

    @pytest.mark.parametrize("due_date", [None, ms(2024, 3, 15), ms(2024, 4, 1)])
    def test_completed_one_off_is_never_due(self, due_date):
        task = TaskDueSpec(due_date=due_date)
        for day in (TODAY - DAY, TODAY, TODAY + DAY, ms(2024, 4, 1)):
            assert not is_due_on_day(task, day, NOW, ms(2024, 3, 1, 8))


class TestIsDueOnDayRecurring:
    def test_daily_completed_is_due_from_next_day(self):
        task = TaskDueSpec(frequency="daily")
        completed = ms(2024, 3, 15, 7, 12)
        assert not is_due_on_day(task, TODAY, NOW, completed)
        assert is_due_on_day(task, TODAY + DAY, NOW, completed)
        # stays due until completed again
        assert is_due_on_day(task, TODAY + 5 * DAY, NOW, completed)

    def test_weekly_never_completed_without_due_date_starts_today(self):
        task = TaskDueSpec(frequency="weekly", due_date=None)
        assert not is_due_on_day(task, ms(2024, 3, 14), NOW, None)
        assert is_due_on_day(task, ms(2024, 3, 15), NOW, None)
        assert is_due_on_day(task, ms(2024, 3, 20), NOW, None)

    def test_never_completed_with_due_date_starts_on_due_date(self):
        task = TaskDueSpec(frequency="monthly", due_date=ms(2024, 4, 1))
        assert not is_due_on_day(task, ms(2024, 3, 31), NOW, None)
        assert is_due_on_day(task, ms(2024, 4, 1), NOW, None)

    def test_monthly_completed_jan_31(self):
        task = TaskDueSpec(frequency="monthly")
        completed = ms(2023, 1, 31, 9)
        assert not is_due_on_day(task, ms(2023, 2, 27), NOW, completed)
        assert is_due_on_day(task, ms(2023, 2, 28), NOW, completed)
        assert is_due_on_day(task, ms(2023, 3, 3), NOW, completed)


class TestGetNextDue:
    def test_never_completed(self):
        assert get_next_due(TaskDueSpec(frequency="daily"), NOW, None) == TODAY
        assert get_next_due(TaskDueSpec(frequency="daily", due_date=ms(2024, 5, 1)), NOW, None) == ms(2024, 5, 1)

    def test_completed(self):
        assert get_next_due(TaskDueSpec(frequency="fortnightly"), NOW, ms(2024, 3, 1, 8)) == ms(2024, 3, 15)


class TestIsDueInRange:
    WEEK_START = ms(2024, 3, 10)
    WEEK_END = ms(2024, 3, 17) - 1

    def check(self, task, latest=None):
        return is_due_in_range(task, self.WEEK_START, self.WEEK_END, NOW, latest)

    def test_one_off(self):
        assert self.check(TaskDueSpec())
        assert self.check(TaskDueSpec(due_date=ms(2024, 3, 10)))
        assert self.check(TaskDueSpec(due_date=ms(2024, 3, 16)))
        assert not self.check(TaskDueSpec(due_date=ms(2024, 3, 17)))
        assert not self.check(TaskDueSpec(due_date=ms(2024, 3, 12)), latest=ms(2024, 3, 1))

    def test_recurring_uses_next_occurrence(self):
        assert self.check(TaskDueSpec(frequency="weekly"))  # first due today
        assert self.check(TaskDueSpec(frequency="daily"), latest=ms(2024, 3, 12, 9))
        assert not self.check(TaskDueSpec(frequency="weekly"), latest=ms(2024, 3, 12, 9))

    def test_only_the_next_occurrence_counts(self):
        # Next due is after the range even though a wider range would hold many occurrences
        task = TaskDueSpec(frequency="daily", due_date=ms(2024, 3, 20))
        assert not self.check(task)

    def test_overdue_recurring_task_is_outside_range(self):
        task = TaskDueSpec(frequency="daily")
        assert not self.check(task, latest=ms(2024, 3, 1, 9))


class TestOccurrencesInRange:
    def test_daily_occurrences(self):
        task = TaskDueSpec(frequency="daily", due_date=ms(2024, 3, 12))
        days = occurrences_in_range(task, ms(2024, 3, 10), ms(2024, 3, 15) - 1, NOW, None)
        assert days == [ms(2024, 3, 12), ms(2024, 3, 13), ms(2024, 3, 14)]

    def test_skips_ahead_to_range_start(self):
        task = TaskDueSpec(frequency="weekly", due_date=ms(2024, 1, 1))
        days = occurrences_in_range(task, ms(2024, 3, 1), ms(2024, 3, 31), NOW, None)
        assert days == [ms(2024, 3, 4), ms(2024, 3, 11), ms(2024, 3, 18), ms(2024, 3, 25)]

    def test_monthly_does_not_drift_after_clamping(self):
        task = TaskDueSpec(frequency="monthly", due_date=ms(2024, 1, 31))
        days = occurrences_in_range(task, ms(2024, 1, 1), ms(2024, 4, 30), NOW, None)
        assert days == [ms(2024, 1, 31), ms(2024, 2, 29), ms(2024, 3, 31), ms(2024, 4, 30)]

    def test_starts_after_latest_completion(self):
        task = TaskDueSpec(frequency="bi-daily")
        days = occurrences_in_range(task, ms(2024, 3, 1), ms(2024, 3, 8), NOW, ms(2024, 3, 3, 18))
        assert days == [ms(2024, 3, 5), ms(2024, 3, 7)]

    def test_one_off(self):
        assert occurrences_in_range(TaskDueSpec(due_date=TODAY), TODAY, TODAY + DAY, NOW, None) == [TODAY]
        assert occurrences_in_range(TaskDueSpec(due_date=TODAY), TODAY, TODAY + DAY, NOW, TODAY) == []
        assert occurrences_in_range(TaskDueSpec(), TODAY, TODAY + DAY, NOW, None) == []

    def test_limit(self):
        task = TaskDueSpec(frequency="daily", due_date=TODAY)
        assert len(occurrences_in_range(task, TODAY, TODAY + 100 * DAY, NOW, None, limit=5)) == 5
