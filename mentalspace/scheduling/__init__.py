"""Recurring appointment scheduling for MentalSpace."""

from mentalspace.scheduling.errors import (
    MaterializationError,
    RecurrenceValidationError,
    ReferenceNotFoundError,
    SchedulingError,
    SeriesNotFoundError,
    SeriesStateError,
)
from mentalspace.scheduling.models import (
    AppointmentLocation,
    AppointmentStatus,
    AppointmentType,
    Occurrence,
    RecurrenceException,
    RecurrencePattern,
    RecurrenceRule,
    SeriesStatus,
    Weekday,
)
from mentalspace.scheduling.recurrence import generate_occurrences, preview_dates
from mentalspace.scheduling.service import RecurringAppointmentService

__all__ = [
    "AppointmentLocation",
    "AppointmentStatus",
    "AppointmentType",
    "MaterializationError",
    "Occurrence",
    "RecurrenceException",
    "RecurrencePattern",
    "RecurrenceRule",
    "RecurrenceValidationError",
    "RecurringAppointmentService",
    "ReferenceNotFoundError",
    "SchedulingError",
    "SeriesNotFoundError",
    "SeriesStateError",
    "SeriesStatus",
    "Weekday",
    "generate_occurrences",
    "preview_dates",
]
