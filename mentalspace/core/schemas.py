"""Pydantic schemas for scheduling API I/O."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from mentalspace.scheduling.models import (
    AppointmentLocation,
    AppointmentStatus,
    AppointmentType,
    RecurrenceException,
    RecurrenceRule,
)


# --- Appointment ---

class AppointmentCreate(BaseModel):
    client_id: uuid.UUID
    provider_id: uuid.UUID
    start_time: datetime
    end_time: datetime
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    appointment_type: AppointmentType
    location: AppointmentLocation = AppointmentLocation.OFFICE
    virtual_meeting_link: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _check_interval(self) -> AppointmentCreate:
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        minutes = round((self.end_time - self.start_time).total_seconds() / 60)
        if self.duration_minutes is None:
            self.duration_minutes = minutes
        elif self.duration_minutes != minutes:
            raise ValueError(
                f"duration_minutes ({self.duration_minutes}) does not match the "
                f"start/end interval ({minutes})"
            )
        return self


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class AppointmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    client_id: uuid.UUID
    provider_id: uuid.UUID
    recurring_appointment_id: Optional[uuid.UUID] = None
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    appointment_type: str
    location: str
    virtual_meeting_link: Optional[str] = None
    status: str
    cancellation_reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# --- Recurring series ---

class RecurringAppointmentCreate(RecurrenceRule):
    """A recurrence rule plus the booking details each occurrence inherits."""

    client_id: uuid.UUID
    provider_id: uuid.UUID
    appointment_type: AppointmentType
    location: AppointmentLocation = AppointmentLocation.OFFICE
    virtual_meeting_link: Optional[str] = None
    notes: Optional[str] = None


class RecurringAppointmentUpdate(BaseModel):
    notes: Optional[str] = None
    location: Optional[AppointmentLocation] = None
    virtual_meeting_link: Optional[str] = None


class ExceptionCreate(RecurrenceException):
    pass


class ExceptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    exception_date: date
    reason: str
    is_rescheduled: bool
    rescheduled_to: Optional[datetime] = None


class RecurringAppointmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    client_id: uuid.UUID
    provider_id: uuid.UUID
    appointment_type: str
    duration_minutes: int
    location: str
    virtual_meeting_link: Optional[str] = None
    recurrence_pattern: str
    day_of_week: Optional[str] = None
    day_of_month: Optional[int] = None
    use_week_of_month: bool = False
    week_of_month: Optional[int] = None
    interval_days: Optional[int] = None
    start_time: time
    start_date: date
    end_date: Optional[date] = None
    number_of_occurrences: Optional[int] = None
    status: str
    notes: Optional[str] = None
    exceptions: list[ExceptionRead] = []
    generated_appointments: list[uuid.UUID] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("generated_appointments", mode="before")
    @classmethod
    def _appointment_ids(cls, value):
        return [getattr(a, "id", a) for a in value or []]


class RecurringAppointmentDetail(RecurringAppointmentRead):
    """Series with its generated appointments expanded."""

    appointments: list[AppointmentRead] = []

    @model_validator(mode="before")
    @classmethod
    def _expand_appointments(cls, data):
        if not isinstance(data, dict) and hasattr(data, "generated_appointments"):
            return {
                **RecurringAppointmentRead.model_validate(data).model_dump(),
                "appointments": [
                    AppointmentRead.model_validate(a) for a in data.generated_appointments
                ],
            }
        return data


class RecurringAppointmentEnvelope(BaseModel):
    data: RecurringAppointmentRead


class RecurringAppointmentCreated(RecurringAppointmentEnvelope):
    generated_count: int


class RecurringAppointmentCancelled(RecurringAppointmentEnvelope):
    cancelled_appointments: int


class RecurringAppointmentList(BaseModel):
    count: int
    data: list[RecurringAppointmentRead]


# --- Auth ---

class LoginRequest(BaseModel):
    email: str
    password: str


class StaffRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    first_name: str
    last_name: str
    email: Optional[str] = None
    role: str
