"""Errors raised by the scheduling service layer."""


class SchedulingError(Exception):
    """Base class for recurring appointment errors."""


class RecurrenceValidationError(SchedulingError, ValueError):
    """Client-correctable input that passed schema validation but not business rules."""


class ReferenceNotFoundError(SchedulingError, LookupError):
    """A client or provider referenced by a rule does not exist."""


class SeriesNotFoundError(SchedulingError, LookupError):
    """No recurring series with the given id."""


class SeriesStateError(SchedulingError):
    """The series is in a status that does not allow the operation."""


class MaterializationError(SchedulingError):
    """Persisting a generated occurrence failed; the unit of work must roll back."""
