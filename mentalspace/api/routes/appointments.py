"""Single appointment endpoints with provider conflict detection."""

import uuid
from datetime import date, datetime, time, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from mentalspace.api.dependencies import get_current_user, parse_uuid
from mentalspace.core.database import get_db
from mentalspace.core.models import AppointmentDB, Staff
from mentalspace.core.repository import (
    AppointmentRepository,
    AuditRepository,
    ClientRepository,
    StaffRepository,
)
from mentalspace.core.schemas import (
    AppointmentCreate,
    AppointmentRead,
    AppointmentStatusUpdate,
    CancelRequest,
)
from mentalspace.scheduling.models import TERMINAL_STATUSES
from mentalspace.scheduling.service import as_utc

router = APIRouter()


async def _audit(db: AsyncSession, request: Request, user: Staff, action: str, resource_id: str, details: Optional[dict] = None) -> None:
    await AuditRepository(db).log_action(
        action=action,
        resource_type="appointment",
        resource_id=resource_id,
        user_id=str(user.id),
        details=details,
        ip_address=request.client.host if request.client else None,
    )


@router.post("/appointments", response_model=AppointmentRead, status_code=201)
async def book_appointment(
    body: AppointmentCreate,
    request: Request,
    current_user: Staff = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> AppointmentRead:
    """Book a single appointment, rejecting overlaps in the provider's calendar."""
    if await ClientRepository(db).get_by_id(body.client_id) is None:
        raise HTTPException(status_code=404, detail="Client not found")
    if await StaffRepository(db).get_by_id(body.provider_id) is None:
        raise HTTPException(status_code=404, detail="Provider not found")

    start, end = as_utc(body.start_time), as_utc(body.end_time)
    repo = AppointmentRepository(db)
    if await repo.check_conflict(body.provider_id, start, end):
        raise HTTPException(status_code=409, detail="Time slot conflicts with an existing appointment")

    appt = await repo.create(
        client_id=body.client_id,
        provider_id=body.provider_id,
        start_time=start,
        end_time=end,
        duration_minutes=body.duration_minutes,
        appointment_type=body.appointment_type.value,
        location=body.location.value,
        virtual_meeting_link=body.virtual_meeting_link,
        notes=body.notes,
        created_by=current_user.id,
        updated_by=current_user.id,
    )
    await _audit(db, request, current_user, "CREATE", str(appt.id))
    return AppointmentRead.model_validate(appt)


@router.get("/appointments", response_model=list[AppointmentRead])
async def list_appointments(
    request: Request,
    client_id: Optional[str] = Query(None),
    provider_id: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    status: Optional[str] = Query(None),
    current_user: Staff = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[AppointmentRead]:
    """List a client's appointments, or a provider's over a date range."""
    repo = AppointmentRepository(db)

    if client_id:
        appts = await repo.list_by_client(parse_uuid(client_id, "client_id"))
        scope = {"client_id": client_id}
    elif provider_id and date_from and date_to:
        start = datetime.combine(date_from, time.min, tzinfo=timezone.utc)
        end = datetime.combine(date_to, time.max, tzinfo=timezone.utc)
        appts = await repo.list_by_provider_date_range(
            parse_uuid(provider_id, "provider_id"), start, end
        )
        scope = {
            "provider_id": provider_id,
            "date_from": date_from.isoformat(),
            "date_to": date_to.isoformat(),
        }
    else:
        raise HTTPException(
            status_code=400,
            detail="Provide client_id, or provider_id with date_from and date_to",
        )

    results = [AppointmentRead.model_validate(a) for a in appts]
    if status:
        results = [r for r in results if r.status == status]
    await _audit(db, request, current_user, "READ", "*", {**scope, "count": len(results)})
    return results


@router.get("/appointments/{appointment_id}", response_model=AppointmentRead)
async def get_appointment(
    appointment_id: str,
    request: Request,
    current_user: Staff = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> AppointmentRead:
    aid = parse_uuid(appointment_id, "appointment_id")
    appt = await AppointmentRepository(db).get_by_id(aid)
    if not appt:
        raise HTTPException(status_code=404, detail="Appointment not found")
    await _audit(db, request, current_user, "READ", str(aid))
    return AppointmentRead.model_validate(appt)


async def _open_appointment(repo: AppointmentRepository, aid: uuid.UUID) -> AppointmentDB:
    """Load an appointment that may still change status."""
    appt = await repo.get_by_id(aid)
    if not appt:
        raise HTTPException(status_code=404, detail="Appointment not found")
    if appt.status in {s.value for s in TERMINAL_STATUSES}:
        raise HTTPException(status_code=409, detail=f"Appointment is already {appt.status}")
    return appt


@router.patch("/appointments/{appointment_id}/status", response_model=AppointmentRead)
async def update_appointment_status(
    appointment_id: str,
    body: AppointmentStatusUpdate,
    request: Request,
    current_user: Staff = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> AppointmentRead:
    """Move an appointment along its lifecycle; Completed, Cancelled, No-Show and Rescheduled are final."""
    aid = parse_uuid(appointment_id, "appointment_id")
    repo = AppointmentRepository(db)
    await _open_appointment(repo, aid)
    appt = await repo.update(aid, status=body.status.value, updated_by=current_user.id)
    await _audit(db, request, current_user, "UPDATE", str(aid), {"status": body.status.value})
    return AppointmentRead.model_validate(appt)


@router.put("/appointments/{appointment_id}/cancel", response_model=AppointmentRead)
async def cancel_appointment(
    appointment_id: str,
    request: Request,
    body: CancelRequest | None = None,
    current_user: Staff = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> AppointmentRead:
    """Cancel an appointment (soft delete via status)."""
    aid = parse_uuid(appointment_id, "appointment_id")
    repo = AppointmentRepository(db)
    await _open_appointment(repo, aid)
    reason = body.reason if body else None
    appt = await repo.cancel(aid, reason, updated_by=current_user.id)
    await _audit(db, request, current_user, "UPDATE", str(aid), {"action": "cancel", "reason": reason})
    return AppointmentRead.model_validate(appt)
