"""CRUD repositories for the practice scheduling models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from mentalspace.core.models import (
    AppointmentDB,
    AuditLog,
    Client,
    RecurrenceExceptionDB,
    RecurringAppointmentDB,
    Staff,
)

# Appointments in these statuses no longer hold their time slot.
_RELEASED_STATUSES = ("Cancelled", "No-Show", "Rescheduled")


class ClientRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Client:
        client = Client(**kwargs)
        self.session.add(client)
        await self.session.flush()
        return client

    async def get_by_id(self, client_id: uuid.UUID) -> Optional[Client]:
        return await self.session.get(Client, client_id)


class StaffRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Staff:
        staff = Staff(**kwargs)
        self.session.add(staff)
        await self.session.flush()
        return staff

    async def get_by_id(self, staff_id: uuid.UUID) -> Optional[Staff]:
        return await self.session.get(Staff, staff_id)

    async def get_by_email(self, email: str) -> Optional[Staff]:
        result = await self.session.execute(
            select(Staff).where(Staff.email == email, Staff.active.is_(True))
        )
        return result.scalar_one_or_none()


class AppointmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> AppointmentDB:
        appt = AppointmentDB(**kwargs)
        self.session.add(appt)
        await self.session.flush()
        return appt

    async def get_by_id(self, appointment_id: uuid.UUID) -> Optional[AppointmentDB]:
        return await self.session.get(AppointmentDB, appointment_id)

    async def list_by_client(self, client_id: uuid.UUID, limit: int = 100) -> Sequence[AppointmentDB]:
        stmt = (
            select(AppointmentDB)
            .where(AppointmentDB.client_id == client_id)
            .order_by(AppointmentDB.start_time)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_by_provider_date_range(
        self, provider_id: uuid.UUID, start: datetime, end: datetime
    ) -> Sequence[AppointmentDB]:
        stmt = (
            select(AppointmentDB)
            .where(
                AppointmentDB.provider_id == provider_id,
                AppointmentDB.start_time >= start,
                AppointmentDB.start_time <= end,
            )
            .order_by(AppointmentDB.start_time)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def check_conflict(
        self,
        provider_id: uuid.UUID,
        start: datetime,
        end: datetime,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """True if the provider already holds a slot overlapping [start, end)."""
        stmt = select(func.count()).select_from(AppointmentDB).where(
            AppointmentDB.provider_id == provider_id,
            AppointmentDB.status.not_in(_RELEASED_STATUSES),
            AppointmentDB.start_time < end,
            AppointmentDB.end_time > start,
        )
        if exclude_id is not None:
            stmt = stmt.where(AppointmentDB.id != exclude_id)
        result = await self.session.execute(stmt)
        return result.scalar_one() > 0

    async def update(self, appointment_id: uuid.UUID, **kwargs) -> Optional[AppointmentDB]:
        appt = await self.get_by_id(appointment_id)
        if not appt:
            return None
        for k, v in kwargs.items():
            if v is not None:
                setattr(appt, k, v)
        appt.updated_at = datetime.now(timezone.utc)
        await self.session.flush()
        return appt

    async def cancel(
        self,
        appointment_id: uuid.UUID,
        reason: Optional[str] = None,
        updated_by: Optional[uuid.UUID] = None,
    ) -> Optional[AppointmentDB]:
        return await self.update(
            appointment_id,
            status="Cancelled",
            cancellation_reason=reason,
            updated_by=updated_by,
        )


class RecurringAppointmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, exceptions: Sequence[dict] = (), **kwargs) -> RecurringAppointmentDB:
        series = RecurringAppointmentDB(
            exceptions=[RecurrenceExceptionDB(**e) for e in exceptions],
            generated_appointments=[],
            **kwargs,
        )
        self.session.add(series)
        await self.session.flush()
        return series

    async def get_by_id(self, series_id: uuid.UUID) -> Optional[RecurringAppointmentDB]:
        return await self.session.get(RecurringAppointmentDB, series_id)

    async def list(
        self, offset: int = 0, limit: int = 25, status: Optional[str] = None
    ) -> Sequence[RecurringAppointmentDB]:
        stmt = select(RecurringAppointmentDB)
        if status:
            stmt = stmt.where(RecurringAppointmentDB.status == status)
        stmt = stmt.order_by(RecurringAppointmentDB.start_date).offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count(self, status: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(RecurringAppointmentDB)
        if status:
            stmt = stmt.where(RecurringAppointmentDB.status == status)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def list_by_status(self, status: str) -> Sequence[RecurringAppointmentDB]:
        stmt = select(RecurringAppointmentDB).where(RecurringAppointmentDB.status == status)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_active_by_client(self, client_id: uuid.UUID) -> Sequence[RecurringAppointmentDB]:
        stmt = (
            select(RecurringAppointmentDB)
            .where(
                RecurringAppointmentDB.client_id == client_id,
                RecurringAppointmentDB.status == "Active",
            )
            .order_by(RecurringAppointmentDB.start_date)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_active_by_provider(self, provider_id: uuid.UUID) -> Sequence[RecurringAppointmentDB]:
        stmt = (
            select(RecurringAppointmentDB)
            .where(
                RecurringAppointmentDB.provider_id == provider_id,
                RecurringAppointmentDB.status == "Active",
            )
            .order_by(RecurringAppointmentDB.start_date)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def add_exception(self, series: RecurringAppointmentDB, **kwargs) -> RecurrenceExceptionDB:
        exc = RecurrenceExceptionDB(**kwargs)
        series.exceptions.append(exc)
        await self.session.flush()
        return exc


class AuditRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def log_action(
        self,
        action: str,
        resource_type: str,
        resource_id: str,
        user_id: Optional[str] = None,
        details: Optional[dict] = None,
        ip_address: Optional[str] = None,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id),
            details=details,
            ip_address=ip_address,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def get_by_resource(self, resource_type: str, resource_id: str, limit: int = 50) -> Sequence[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.resource_type == resource_type, AuditLog.resource_id == resource_id)
            .order_by(AuditLog.timestamp.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
