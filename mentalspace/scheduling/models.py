"""Pydantic models for the recurring appointment service."""

from datetime import date, datetime, time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class AppointmentStatus(str, Enum):
    """Appointment lifecycle statuses."""

    SCHEDULED = "Scheduled"
    CONFIRMED = "Confirmed"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    NO_SHOW = "No-Show"
    RESCHEDULED = "Rescheduled"


# Statuses an appointment never leaves once reached.
TERMINAL_STATUSES = frozenset(
    {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.RESCHEDULED,
    }
)


class AppointmentType(str, Enum):
    INITIAL_ASSESSMENT = "Initial Assessment"
    INDIVIDUAL_THERAPY = "Individual Therapy"
    GROUP_THERAPY = "Group Therapy"
    COUPLES_THERAPY = "Couples Therapy"
    FAMILY_THERAPY = "Family Therapy"
    MEDICATION_MANAGEMENT = "Medication Management"
    CONSULTATION = "Consultation"
    OTHER = "Other"


class AppointmentLocation(str, Enum):
    OFFICE = "Office"
    VIRTUAL = "Virtual"
    PHONE = "Phone"
    HOME_VISIT = "Home Visit"
    OTHER = "Other"


class RecurrencePattern(str, Enum):
    WEEKLY = "Weekly"
    BIWEEKLY = "Biweekly"
    MONTHLY = "Monthly"
    CUSTOM = "Custom"


class SeriesStatus(str, Enum):
    """Recurring series lifecycle statuses."""

    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class Weekday(str, Enum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @property
    def number(self) -> int:
        """0=Mon..6=Sun, matching ``date.weekday()``."""
        return list(Weekday).index(self)

    @classmethod
    def from_date(cls, day: date) -> "Weekday":
        return list(cls)[day.weekday()]


class RecurrenceException(BaseModel):
    """A skipped or rescheduled date within a series."""

    date: date
    reason: str = "Exception"
    is_rescheduled: bool = False
    rescheduled_to: Optional[datetime] = None

    @model_validator(mode="after")
    def _reschedule_needs_target(self) -> "RecurrenceException":
        if self.is_rescheduled and self.rescheduled_to is None:
            raise ValueError("rescheduled_to is required when is_rescheduled is true")
        return self


class RecurrenceRule(BaseModel):
    """Template describing a repeating appointment.

    Exactly one of ``end_date`` or ``number_of_occurrences`` bounds the series.
    Anchors that are left out default to the start date: ``day_of_week`` to its
    weekday and ``day_of_month`` to its day.
    """

    recurrence_pattern: RecurrencePattern
    start_date: date
    start_time: time
    duration_minutes: int = Field(gt=0, le=24 * 60)
    end_date: Optional[date] = None
    number_of_occurrences: Optional[int] = Field(default=None, ge=1)
    day_of_week: Optional[Weekday] = None
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    use_week_of_month: bool = False
    week_of_month: Optional[int] = Field(default=None, ge=1, le=5)
    interval_days: Optional[int] = Field(default=None, ge=1)
    exceptions: list[RecurrenceException] = []

    @model_validator(mode="after")
    def _check_bounds_and_anchors(self) -> "RecurrenceRule":
        if (self.end_date is None) == (self.number_of_occurrences is None):
            raise ValueError(
                "Exactly one of end_date or number_of_occurrences must be provided"
            )
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if self.recurrence_pattern == RecurrencePattern.MONTHLY and self.use_week_of_month:
            if self.week_of_month is None:
                raise ValueError("week_of_month is required when use_week_of_month is true")
        if self.recurrence_pattern == RecurrencePattern.CUSTOM and self.interval_days is None:
            raise ValueError("interval_days is required for a Custom recurrence")
        return self

    @property
    def weekday(self) -> Weekday:
        return self.day_of_week or Weekday.from_date(self.start_date)

    @property
    def month_day(self) -> int:
        return self.day_of_month or self.start_date.day


class Occurrence(BaseModel):
    """One concrete slot implied by a recurrence rule."""

    start_time: datetime
    end_time: datetime
    original_date: date
    rescheduled_from: Optional[date] = None

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)
