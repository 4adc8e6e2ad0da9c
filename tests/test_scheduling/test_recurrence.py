"""Tests for recurrence rule validation and occurrence generation."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from mentalspace.scheduling.models import (
    RecurrenceException,
    RecurrencePattern,
    RecurrenceRule,
    Weekday,
)
from mentalspace.scheduling.recurrence import generate_occurrences, preview_dates


def _rule(**overrides) -> RecurrenceRule:
    data = {
        "recurrence_pattern": RecurrencePattern.WEEKLY,
        "start_date": date(2025, 1, 6),
        "start_time": time(9, 0),
        "duration_minutes": 50,
        "number_of_occurrences": 4,
    }
    data.update(overrides)
    return RecurrenceRule(**data)


class TestRuleValidation:
    def test_requires_one_bound(self):
        with pytest.raises(ValidationError):
            _rule(number_of_occurrences=None)

    def test_rejects_both_bounds(self):
        with pytest.raises(ValidationError):
            _rule(end_date=date(2025, 3, 1))

    def test_end_date_before_start(self):
        with pytest.raises(ValidationError):
            _rule(number_of_occurrences=None, end_date=date(2025, 1, 1))

    def test_custom_requires_interval(self):
        with pytest.raises(ValidationError):
            _rule(recurrence_pattern=RecurrencePattern.CUSTOM)

    def test_week_of_month_required(self):
        with pytest.raises(ValidationError):
            _rule(recurrence_pattern=RecurrencePattern.MONTHLY, use_week_of_month=True)

    def test_non_positive_duration(self):
        with pytest.raises(ValidationError):
            _rule(duration_minutes=0)

    def test_reschedule_needs_target(self):
        with pytest.raises(ValidationError):
            RecurrenceException(date=date(2025, 1, 13), is_rescheduled=True)

    def test_anchors_default_to_start_date(self):
        rule = _rule(start_date=date(2025, 1, 8))
        assert rule.weekday == Weekday.WEDNESDAY
        assert rule.month_day == 8


class TestWeeklyPatterns:
    def test_weekly_count(self):
        assert preview_dates(_rule()) == [
            date(2025, 1, 6),
            date(2025, 1, 13),
            date(2025, 1, 20),
            date(2025, 1, 27),
        ]

    def test_weekly_end_date_is_inclusive(self):
        rule = _rule(number_of_occurrences=None, end_date=date(2025, 1, 27))
        assert len(preview_dates(rule)) == 4

        rule = _rule(number_of_occurrences=None, end_date=date(2025, 1, 26))
        assert preview_dates(rule)[-1] == date(2025, 1, 20)

    def test_weekly_anchor_day(self):
        rule = _rule(day_of_week=Weekday.WEDNESDAY, number_of_occurrences=3)
        assert preview_dates(rule) == [date(2025, 1, 8), date(2025, 1, 15), date(2025, 1, 22)]

    def test_biweekly(self):
        rule = _rule(recurrence_pattern=RecurrencePattern.BIWEEKLY, number_of_occurrences=3)
        assert preview_dates(rule) == [date(2025, 1, 6), date(2025, 1, 20), date(2025, 2, 3)]

    def test_custom_interval(self):
        rule = _rule(recurrence_pattern=RecurrencePattern.CUSTOM, interval_days=10, number_of_occurrences=3)
        assert preview_dates(rule) == [date(2025, 1, 6), date(2025, 1, 16), date(2025, 1, 26)]

    def test_end_date_only_is_capped(self):
        rule = _rule(number_of_occurrences=None, end_date=date(2030, 1, 1))
        assert len(preview_dates(rule, max_occurrences=52)) == 52
        assert len(preview_dates(rule, max_occurrences=10)) == 10


class TestMonthlyPatterns:
    def test_day_clamped_to_month_end(self):
        rule = _rule(
            recurrence_pattern=RecurrencePattern.MONTHLY,
            start_date=date(2025, 1, 31),
        )
        assert preview_dates(rule) == [
            date(2025, 1, 31),
            date(2025, 2, 28),
            date(2025, 3, 31),
            date(2025, 4, 30),
        ]

    def test_first_occurrence_not_before_start(self):
        rule = _rule(
            recurrence_pattern=RecurrencePattern.MONTHLY,
            start_date=date(2025, 1, 20),
            day_of_month=15,
            number_of_occurrences=2,
        )
        assert preview_dates(rule) == [date(2025, 2, 15), date(2025, 3, 15)]

    def test_nth_weekday(self):
        rule = _rule(
            recurrence_pattern=RecurrencePattern.MONTHLY,
            start_date=date(2025, 1, 1),
            use_week_of_month=True,
            week_of_month=2,
            day_of_week=Weekday.TUESDAY,
            number_of_occurrences=3,
        )
        assert preview_dates(rule) == [date(2025, 1, 14), date(2025, 2, 11), date(2025, 3, 11)]

    def test_fifth_weekday_falls_back_to_last(self):
        rule = _rule(
            recurrence_pattern=RecurrencePattern.MONTHLY,
            start_date=date(2025, 1, 1),
            use_week_of_month=True,
            week_of_month=5,
            day_of_week=Weekday.FRIDAY,
            number_of_occurrences=2,
        )
        assert preview_dates(rule) == [date(2025, 1, 31), date(2025, 2, 28)]


class TestExceptions:
    def test_skip_counts_toward_limit(self):
        rule = _rule(exceptions=[{"date": date(2025, 1, 13), "reason": "Holiday"}])
        assert preview_dates(rule) == [date(2025, 1, 6), date(2025, 1, 20), date(2025, 1, 27)]

    def test_reschedule_moves_occurrence(self):
        target = datetime(2025, 1, 22, 14, 0, tzinfo=timezone.utc)
        rule = _rule(
            exceptions=[
                {"date": date(2025, 1, 20), "is_rescheduled": True, "rescheduled_to": target},
            ]
        )
        occurrences = list(generate_occurrences(rule))

        assert len(occurrences) == 4
        moved = occurrences[2]
        assert moved.start_time == target
        assert moved.duration_minutes == 50
        assert moved.rescheduled_from == date(2025, 1, 20)
        assert occurrences[3].rescheduled_from is None

    def test_first_exception_for_a_date_wins(self):
        rule = _rule(
            exceptions=[
                {"date": date(2025, 1, 13), "reason": "Skip"},
                {
                    "date": date(2025, 1, 13),
                    "is_rescheduled": True,
                    "rescheduled_to": datetime(2025, 1, 14, 9, 0),
                },
            ]
        )
        assert date(2025, 1, 14) not in preview_dates(rule)

    def test_exception_off_pattern_is_ignored(self):
        rule = _rule(exceptions=[{"date": date(2025, 1, 7)}])
        assert len(preview_dates(rule)) == 4


class TestTimezones:
    def test_start_time_is_wall_clock_in_practice_zone(self):
        tz = ZoneInfo("America/New_York")
        first = next(generate_occurrences(_rule(), tz))

        assert first.start_time.utcoffset() == timedelta(hours=-5)
        assert first.start_time.astimezone(timezone.utc).hour == 14
        assert first.end_time - first.start_time == timedelta(minutes=50)

    def test_generation_is_lazy(self):
        rule = _rule(number_of_occurrences=None, end_date=date(2030, 1, 1))
        stream = generate_occurrences(rule, max_occurrences=10_000)
        assert next(stream).original_date == date(2025, 1, 6)


class TestCalendarLimits:
    def test_monthly_stops_in_december_9999(self):
        rule = _rule(
            recurrence_pattern=RecurrencePattern.MONTHLY,
            start_date=date(9999, 10, 15),
            number_of_occurrences=100,
        )
        assert preview_dates(rule) == [date(9999, 10, 15), date(9999, 11, 15), date(9999, 12, 15)]

    def test_last_weekday_in_final_months(self):
        rule = _rule(
            recurrence_pattern=RecurrencePattern.MONTHLY,
            start_date=date(9999, 11, 1),
            use_week_of_month=True,
            week_of_month=5,
            day_of_week=Weekday.FRIDAY,
            number_of_occurrences=10,
        )
        assert preview_dates(rule) == [date(9999, 11, 26), date(9999, 12, 31)]

    def test_weekly_stops_before_date_max(self):
        rule = _rule(start_date=date(9999, 12, 20), number_of_occurrences=10_000_000)
        assert preview_dates(rule) == [date(9999, 12, 20), date(9999, 12, 27)]

    def test_custom_can_land_on_date_max(self):
        rule = _rule(
            recurrence_pattern=RecurrencePattern.CUSTOM,
            start_date=date(9999, 12, 1),
            interval_days=10,
            number_of_occurrences=50,
        )
        assert preview_dates(rule)[-1] == date.max

    def test_first_weekday_past_date_max(self):
        rule = _rule(start_date=date(9999, 12, 31), day_of_week=Weekday.MONDAY)
        assert preview_dates(rule) == []
