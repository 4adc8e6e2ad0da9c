"""Recurring appointment series: generation, materialization, exceptions, cancellation.

Every cross-entity update (series -> generated appointments) happens here as an
explicit call on :class:`RecurringAppointmentService`; nothing is triggered
implicitly by a model save. The service flushes but never commits, so one
request's session is one unit of work.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mentalspace.config import get_settings
from mentalspace.core.models import AppointmentDB, RecurringAppointmentDB
from mentalspace.core.repository import (
    AppointmentRepository,
    ClientRepository,
    RecurringAppointmentRepository,
    StaffRepository,
)
from mentalspace.scheduling.errors import (
    MaterializationError,
    RecurrenceValidationError,
    ReferenceNotFoundError,
    SeriesNotFoundError,
    SeriesStateError,
)
from mentalspace.scheduling.models import (
    TERMINAL_STATUSES,
    AppointmentStatus,
    Occurrence,
    RecurrenceException,
    RecurrenceRule,
    SeriesStatus,
)
from mentalspace.scheduling.recurrence import generate_occurrences

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """Normalize to aware UTC; naive values are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RecurringAppointmentService:
    """Creates, alters and cancels recurring series within one session."""

    def __init__(
        self,
        session: AsyncSession,
        tz: Optional[tzinfo] = None,
        max_occurrences: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self.session = session
        self.tz = tz or ZoneInfo(settings.practice_timezone)
        self.max_occurrences = max_occurrences or settings.max_series_occurrences
        self.series_repo = RecurringAppointmentRepository(session)
        self.appointment_repo = AppointmentRepository(session)

    def _localized(self, value: datetime) -> datetime:
        """UTC instant for *value*; naive values are read in the practice timezone."""
        return as_utc(value if value.tzinfo else value.replace(tzinfo=self.tz))

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get_series(self, series_id: uuid.UUID) -> RecurringAppointmentDB:
        series = await self.series_repo.get_by_id(series_id)
        if series is None:
            raise SeriesNotFoundError(f"Recurring appointment not found with id of {series_id}")
        return series

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_series(
        self,
        rule: RecurrenceRule,
        *,
        client_id: uuid.UUID,
        provider_id: uuid.UUID,
        appointment_type: str,
        location: str = "Office",
        virtual_meeting_link: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[uuid.UUID] = None,
    ) -> tuple[RecurringAppointmentDB, list[AppointmentDB]]:
        """Validate references, persist the series and materialize its occurrences.

        Returns the series and the appointments created for it. Raises
        ``MaterializationError`` if any occurrence cannot be persisted; the
        caller's session must then be rolled back, discarding the series too.
        """
        if rule.number_of_occurrences and rule.number_of_occurrences > self.max_occurrences:
            raise RecurrenceValidationError(
                f"number_of_occurrences may not exceed {self.max_occurrences}"
            )
        if await ClientRepository(self.session).get_by_id(client_id) is None:
            raise ReferenceNotFoundError(f"Client not found with id of {client_id}")
        if await StaffRepository(self.session).get_by_id(provider_id) is None:
            raise ReferenceNotFoundError(f"Provider not found with id of {provider_id}")

        occurrences = list(generate_occurrences(rule, self.tz, self.max_occurrences))

        series = await self.series_repo.create(
            client_id=client_id,
            provider_id=provider_id,
            appointment_type=_value(appointment_type),
            duration_minutes=rule.duration_minutes,
            location=_value(location),
            virtual_meeting_link=virtual_meeting_link,
            notes=notes,
            recurrence_pattern=rule.recurrence_pattern.value,
            day_of_week=rule.day_of_week.value if rule.day_of_week else None,
            day_of_month=rule.day_of_month,
            use_week_of_month=rule.use_week_of_month,
            week_of_month=rule.week_of_month,
            interval_days=rule.interval_days,
            start_time=rule.start_time,
            start_date=rule.start_date,
            end_date=rule.end_date,
            number_of_occurrences=rule.number_of_occurrences,
            status=SeriesStatus.ACTIVE.value,
            created_by=created_by,
            updated_by=created_by,
            exceptions=[
                {
                    "exception_date": e.date,
                    "reason": e.reason,
                    "is_rescheduled": e.is_rescheduled,
                    "rescheduled_to": self._localized(e.rescheduled_to) if e.rescheduled_to else None,
                }
                for e in rule.exceptions
            ],
        )
        created = await self.materialize(series, occurrences, user_id=created_by)
        logger.info(
            "Created %s series %s with %d occurrences",
            series.recurrence_pattern, series.id, len(created),
        )
        return series, created

    async def materialize(
        self,
        series: RecurringAppointmentDB,
        occurrences: Sequence[Occurrence],
        user_id: Optional[uuid.UUID] = None,
    ) -> list[AppointmentDB]:
        """Persist each occurrence as an appointment linked to *series*."""
        created: list[AppointmentDB] = []
        for occ in occurrences:
            notes = None
            if occ.rescheduled_from is not None:
                notes = f"Rescheduled from {occ.rescheduled_from.isoformat()}"
            try:
                appt = await self._book_occurrence(series, occ, notes=notes, user_id=user_id)
            except SQLAlchemyError as exc:
                logger.error(
                    "Materializing series %s failed at %s after %d occurrences",
                    series.id, occ.start_time.isoformat(), len(created),
                )
                raise MaterializationError(
                    f"Could not persist occurrence at {occ.start_time.isoformat()}"
                ) from exc
            created.append(appt)
        return created

    async def _book_occurrence(
        self,
        series: RecurringAppointmentDB,
        occ: Occurrence,
        notes: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> AppointmentDB:
        appt = await self.appointment_repo.create(
            client_id=series.client_id,
            provider_id=series.provider_id,
            recurring_appointment_id=series.id,
            start_time=as_utc(occ.start_time),
            end_time=as_utc(occ.end_time),
            duration_minutes=occ.duration_minutes,
            appointment_type=series.appointment_type,
            location=series.location,
            virtual_meeting_link=series.virtual_meeting_link,
            status=AppointmentStatus.SCHEDULED.value,
            notes=notes,
            created_by=user_id,
            updated_by=user_id,
        )
        series.generated_appointments.append(appt)
        return appt

    # ------------------------------------------------------------------
    # Exceptions
    # ------------------------------------------------------------------

    async def add_exception(
        self,
        series_id: uuid.UUID,
        exception: RecurrenceException,
        user_id: Optional[uuid.UUID] = None,
    ) -> RecurringAppointmentDB:
        """Record a skip or reschedule of one date in the series.

        The live appointment on that date becomes Cancelled (skip) or
        Rescheduled (reschedule). A reschedule books a replacement at the
        target time, linked to the series.
        """
        series = await self.get_series(series_id)
        if series.status == SeriesStatus.CANCELLED.value:
            raise SeriesStateError("Cannot add an exception to a cancelled series")

        rescheduled_to = None
        if exception.is_rescheduled:
            rescheduled_to = self._localized(exception.rescheduled_to)

        await self.series_repo.add_exception(
            series,
            exception_date=exception.date,
            reason=exception.reason,
            is_rescheduled=exception.is_rescheduled,
            rescheduled_to=rescheduled_to,
        )

        original = self._live_appointment_on(series, exception.date)
        if original is not None:
            original.status = (
                AppointmentStatus.RESCHEDULED.value
                if exception.is_rescheduled
                else AppointmentStatus.CANCELLED.value
            )
            original.cancellation_reason = exception.reason
            original.updated_by = user_id
            original.updated_at = datetime.now(timezone.utc)

        if rescheduled_to is not None:
            duration = original.duration_minutes if original else series.duration_minutes
            occ = Occurrence(
                start_time=rescheduled_to,
                end_time=rescheduled_to + timedelta(minutes=duration),
                original_date=exception.date,
                rescheduled_from=exception.date,
            )
            await self.materialize(series, [occ], user_id=user_id)

        series.updated_by = user_id
        series.updated_at = datetime.now(timezone.utc)
        await self.session.flush()
        logger.info(
            "Added %s exception for %s to series %s",
            "reschedule" if exception.is_rescheduled else "skip",
            exception.date.isoformat(), series.id,
        )
        return series

    def _live_appointment_on(
        self, series: RecurringAppointmentDB, day: date
    ) -> Optional[AppointmentDB]:
        for appt in series.generated_appointments:
            if appt.status in {s.value for s in TERMINAL_STATUSES}:
                continue
            if as_utc(appt.start_time).astimezone(self.tz).date() == day:
                return appt
        return None

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel_series(
        self,
        series_id: uuid.UUID,
        reason: str,
        user_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> tuple[RecurringAppointmentDB, int]:
        """Cancel the series and every still-future generated appointment.

        Appointments starting at or before *now*, and those already in a
        terminal status, keep their status. Returns the series and the number
        of appointments cancelled.
        """
        if not reason or not reason.strip():
            raise RecurrenceValidationError("Please provide cancellation reason")

        series = await self.get_series(series_id)
        now = as_utc(now or datetime.now(timezone.utc))
        stamp = datetime.now(timezone.utc)

        series.status = SeriesStatus.CANCELLED.value
        series.notes = reason
        series.updated_by = user_id
        series.updated_at = stamp

        cancelled = 0
        terminal = {s.value for s in TERMINAL_STATUSES}
        for appt in series.generated_appointments:
            if as_utc(appt.start_time) <= now or appt.status in terminal:
                continue
            appt.status = AppointmentStatus.CANCELLED.value
            appt.cancellation_reason = reason
            appt.updated_by = user_id
            appt.updated_at = stamp
            cancelled += 1

        await self.session.flush()
        logger.info("Cancelled series %s; %d future appointments cancelled", series.id, cancelled)
        return series, cancelled

    # ------------------------------------------------------------------
    # Updates and completion
    # ------------------------------------------------------------------

    async def update_series(
        self,
        series_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        **changes,
    ) -> RecurringAppointmentDB:
        """Update descriptive fields; the recurrence itself is fixed at creation."""
        series = await self.get_series(series_id)
        for key, value in changes.items():
            if value is not None:
                setattr(series, key, _value(value))
        series.updated_by = user_id
        series.updated_at = datetime.now(timezone.utc)
        await self.session.flush()
        return series

    async def complete_exhausted_series(self, now: Optional[datetime] = None) -> list[RecurringAppointmentDB]:
        """Mark Active series with no appointment after *now* as Completed."""
        now = as_utc(now or datetime.now(timezone.utc))
        terminal = {s.value for s in TERMINAL_STATUSES}
        completed: list[RecurringAppointmentDB] = []
        for series in await self.series_repo.list_by_status(SeriesStatus.ACTIVE.value):
            if any(
                as_utc(a.start_time) > now and a.status not in terminal
                for a in series.generated_appointments
            ):
                continue
            series.status = SeriesStatus.COMPLETED.value
            series.updated_at = datetime.now(timezone.utc)
            completed.append(series)
        await self.session.flush()
        if completed:
            logger.info("Completed %d exhausted series", len(completed))
        return completed


def _value(value):
    return getattr(value, "value", value)
