"""Recurring appointment endpoints: series creation, exceptions and cancellation fan-out."""

from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from mentalspace.api.dependencies import get_current_user, parse_uuid
from mentalspace.core.database import get_db
from mentalspace.core.models import Staff
from mentalspace.core.repository import AuditRepository, RecurringAppointmentRepository
from mentalspace.core.schemas import (
    CancelRequest,
    ExceptionCreate,
    RecurringAppointmentCancelled,
    RecurringAppointmentCreate,
    RecurringAppointmentCreated,
    RecurringAppointmentDetail,
    RecurringAppointmentEnvelope,
    RecurringAppointmentList,
    RecurringAppointmentRead,
    RecurringAppointmentUpdate,
)
from mentalspace.scheduling.errors import (
    RecurrenceValidationError,
    ReferenceNotFoundError,
    SchedulingError,
    SeriesNotFoundError,
    SeriesStateError,
)
from mentalspace.scheduling.models import SeriesStatus
from mentalspace.scheduling.service import RecurringAppointmentService

router = APIRouter()

_RESOURCE = "recurring_appointment"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _raise_http(exc: SchedulingError) -> NoReturn:
    if isinstance(exc, (SeriesNotFoundError, ReferenceNotFoundError)):
        status = 404
    elif isinstance(exc, SeriesStateError):
        status = 409
    elif isinstance(exc, RecurrenceValidationError):
        status = 400
    else:
        status = 500
    raise HTTPException(status_code=status, detail=str(exc)) from exc


async def _audit(
    db: AsyncSession,
    request: Request,
    user: Staff,
    action: str,
    resource_id: str,
    details: Optional[dict] = None,
) -> None:
    await AuditRepository(db).log_action(
        action=action,
        resource_type=_RESOURCE,
        resource_id=resource_id,
        user_id=str(user.id),
        details=details,
        ip_address=request.client.host if request.client else None,
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

@router.get("/recurring-appointments", response_model=RecurringAppointmentList)
async def list_recurring_appointments(
    request: Request,
    status: Optional[SeriesStatus] = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(25, ge=1, le=100),
    current_user: Staff = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> RecurringAppointmentList:
    """List series, optionally filtered by status."""
    repo = RecurringAppointmentRepository(db)
    status_value = status.value if status else None
    series = await repo.list(offset=offset, limit=limit, status=status_value)
    total = await repo.count(status=status_value)
    await _audit(db, request, current_user, "READ", "*", {"status": status_value})
    return RecurringAppointmentList(
        count=total,
        data=[RecurringAppointmentRead.model_validate(s) for s in series],
    )


@router.get("/clients/{client_id}/recurring-appointments", response_model=RecurringAppointmentList)
async def list_client_recurring_appointments(
    client_id: str,
    request: Request,
    current_user: Staff = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> RecurringAppointmentList:
    """Active series for one client, earliest first."""
    cid = parse_uuid(client_id, "client_id")
    series = await RecurringAppointmentRepository(db).list_active_by_client(cid)
    await _audit(db, request, current_user, "READ", "*", {"client_id": client_id})
    return RecurringAppointmentList(
        count=len(series),
        data=[RecurringAppointmentRead.model_validate(s) for s in series],
    )


@router.get("/staff/{provider_id}/recurring-appointments", response_model=RecurringAppointmentList)
async def list_provider_recurring_appointments(
    provider_id: str,
    request: Request,
    current_user: Staff = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> RecurringAppointmentList:
    """Active series for one provider, earliest first."""
    pid = parse_uuid(provider_id, "provider_id")
    series = await RecurringAppointmentRepository(db).list_active_by_provider(pid)
    await _audit(db, request, current_user, "READ", "*", {"provider_id": provider_id})
    return RecurringAppointmentList(
        count=len(series),
        data=[RecurringAppointmentRead.model_validate(s) for s in series],
    )


@router.get("/recurring-appointments/{series_id}", response_model=RecurringAppointmentDetail)
async def get_recurring_appointment(
    series_id: str,
    request: Request,
    current_user: Staff = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> RecurringAppointmentDetail:
    """Get one series with its exceptions and generated appointments."""
    sid = parse_uuid(series_id, "series_id")
    try:
        series = await RecurringAppointmentService(db).get_series(sid)
    except SchedulingError as exc:
        _raise_http(exc)
    await _audit(db, request, current_user, "READ", str(sid))
    return RecurringAppointmentDetail.model_validate(series)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

@router.post("/recurring-appointments", response_model=RecurringAppointmentCreated, status_code=201)
async def create_recurring_appointment(
    body: RecurringAppointmentCreate,
    request: Request,
    current_user: Staff = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> RecurringAppointmentCreated:
    """Create a series and materialize all of its occurrences."""
    service = RecurringAppointmentService(db)
    try:
        series, created = await service.create_series(
            body,
            client_id=body.client_id,
            provider_id=body.provider_id,
            appointment_type=body.appointment_type,
            location=body.location,
            virtual_meeting_link=body.virtual_meeting_link,
            notes=body.notes,
            created_by=current_user.id,
        )
    except SchedulingError as exc:
        _raise_http(exc)

    await _audit(
        db, request, current_user, "CREATE", str(series.id),
        {"pattern": series.recurrence_pattern, "generated_count": len(created)},
    )
    return RecurringAppointmentCreated(
        data=RecurringAppointmentRead.model_validate(series),
        generated_count=len(created),
    )


@router.put("/recurring-appointments/{series_id}", response_model=RecurringAppointmentEnvelope)
async def update_recurring_appointment(
    series_id: str,
    body: RecurringAppointmentUpdate,
    request: Request,
    current_user: Staff = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> RecurringAppointmentEnvelope:
    """Update notes, location or meeting link of a series."""
    sid = parse_uuid(series_id, "series_id")
    try:
        series = await RecurringAppointmentService(db).update_series(
            sid, user_id=current_user.id, **body.model_dump(exclude_none=True)
        )
    except SchedulingError as exc:
        _raise_http(exc)
    await _audit(db, request, current_user, "UPDATE", str(sid), body.model_dump(mode="json", exclude_none=True))
    return RecurringAppointmentEnvelope(data=RecurringAppointmentRead.model_validate(series))


@router.put("/recurring-appointments/{series_id}/cancel", response_model=RecurringAppointmentCancelled)
async def cancel_recurring_appointment(
    series_id: str,
    request: Request,
    body: CancelRequest | None = None,
    current_user: Staff = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> RecurringAppointmentCancelled:
    """Cancel a series and all of its future appointments."""
    sid = parse_uuid(series_id, "series_id")
    reason = body.reason if body else None
    try:
        series, cancelled = await RecurringAppointmentService(db).cancel_series(
            sid, reason or "", user_id=current_user.id
        )
    except SchedulingError as exc:
        _raise_http(exc)
    await _audit(
        db, request, current_user, "UPDATE", str(sid),
        {"action": "cancel", "reason": reason, "cancelled_appointments": cancelled},
    )
    return RecurringAppointmentCancelled(
        data=RecurringAppointmentRead.model_validate(series),
        cancelled_appointments=cancelled,
    )


@router.post("/recurring-appointments/{series_id}/exceptions", response_model=RecurringAppointmentEnvelope)
async def add_recurring_exception(
    series_id: str,
    body: ExceptionCreate,
    request: Request,
    current_user: Staff = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> RecurringAppointmentEnvelope:
    """Skip or reschedule one date of a series."""
    sid = parse_uuid(series_id, "series_id")
    try:
        series = await RecurringAppointmentService(db).add_exception(
            sid, body, user_id=current_user.id
        )
    except SchedulingError as exc:
        _raise_http(exc)
    await _audit(
        db, request, current_user, "UPDATE", str(sid),
        {"exception_date": body.date.isoformat(), "is_rescheduled": body.is_rescheduled},
    )
    return RecurringAppointmentEnvelope(data=RecurringAppointmentRead.model_validate(series))
