"""Occurrence generation for recurring appointment series."""

import calendar
from collections.abc import Iterator
from datetime import date, datetime, timedelta, timezone, tzinfo

from mentalspace.scheduling.models import (
    Occurrence,
    RecurrenceException,
    RecurrencePattern,
    RecurrenceRule,
)

# Series bounded only by an end date stop after this many candidates.
DEFAULT_MAX_OCCURRENCES = 52

_STEP_DAYS = {
    RecurrencePattern.WEEKLY: 7,
    RecurrencePattern.BIWEEKLY: 14,
}


def _next_weekday(day: date, weekday: int) -> date:
    """First date on or after *day* that falls on *weekday* (0=Mon)."""
    return day + timedelta(days=(weekday - day.weekday()) % 7)


def _clamped_month_day(year: int, month: int, day: int) -> date:
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last))


def _nth_weekday_of_month(year: int, month: int, weekday: int, n: int) -> date:
    """The *n*-th *weekday* of the month; an *n* past the month's end means the last one."""
    first_weekday, last = calendar.monthrange(year, month)
    day = 1 + (weekday - first_weekday) % 7 + 7 * (n - 1)
    while day > last:
        day -= 7
    return date(year, month, day)


def _stepped(first: date, step: timedelta) -> Iterator[date]:
    current = first
    while True:
        yield current
        if date.max - current < step:
            return
        current += step


def _candidate_dates(rule: RecurrenceRule) -> Iterator[date]:
    """Dates matching the rule's pattern from the start date on, ending at ``date.max``."""
    if rule.recurrence_pattern in _STEP_DAYS:
        try:
            first = _next_weekday(rule.start_date, rule.weekday.number)
        except OverflowError:
            return
        yield from _stepped(first, timedelta(days=_STEP_DAYS[rule.recurrence_pattern]))

    elif rule.recurrence_pattern == RecurrencePattern.CUSTOM:
        yield from _stepped(rule.start_date, timedelta(days=rule.interval_days))

    else:
        year, month = rule.start_date.year, rule.start_date.month
        while True:
            if rule.use_week_of_month:
                current = _nth_weekday_of_month(
                    year, month, rule.weekday.number, rule.week_of_month
                )
            else:
                current = _clamped_month_day(year, month, rule.month_day)
            if current >= rule.start_date:
                yield current
            if (year, month) == (date.max.year, 12):
                return
            year, month = (year + 1, 1) if month == 12 else (year, month + 1)


def _localize(value: datetime, tz: tzinfo) -> datetime:
    return value.replace(tzinfo=tz) if value.tzinfo is None else value


def generate_occurrences(
    rule: RecurrenceRule,
    tz: tzinfo = timezone.utc,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
) -> Iterator[Occurrence]:
    """Lazily expand *rule* into concrete occurrences.

    The series stops once a candidate date passes ``end_date`` or once
    ``number_of_occurrences`` candidates have been produced. Exceptions do not
    shift later dates: a skipped candidate still counts toward the limit, and a
    rescheduled one is emitted at its target instead of its original slot.
    Targets are not deduplicated against other occurrences.

    Args:
        rule: Validated recurrence rule.
        tz: Timezone that ``rule.start_time`` and naive reschedule targets are in.
        max_occurrences: Cap for series bounded only by an end date.
    """
    limit = rule.number_of_occurrences or max_occurrences
    duration = timedelta(minutes=rule.duration_minutes)

    exceptions: dict[date, RecurrenceException] = {}
    for exc in rule.exceptions:
        exceptions.setdefault(exc.date, exc)

    produced = 0
    for day in _candidate_dates(rule):
        if produced >= limit:
            return
        if rule.end_date is not None and day > rule.end_date:
            return
        produced += 1

        exc = exceptions.get(day)
        if exc is None:
            start = datetime.combine(day, rule.start_time, tzinfo=tz)
            yield Occurrence(start_time=start, end_time=start + duration, original_date=day)
        elif exc.is_rescheduled:
            start = _localize(exc.rescheduled_to, tz)
            yield Occurrence(
                start_time=start,
                end_time=start + duration,
                original_date=day,
                rescheduled_from=day,
            )


def preview_dates(
    rule: RecurrenceRule,
    tz: tzinfo = timezone.utc,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
) -> list[date]:
    """Calendar dates the rule would materialize, in generation order."""
    return [o.start_time.date() for o in generate_occurrences(rule, tz, max_occurrences)]
