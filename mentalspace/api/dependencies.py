"""FastAPI dependencies: the acting staff member and path identifiers."""

from __future__ import annotations

import hmac
import uuid
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from mentalspace.config import get_settings
from mentalspace.core.auth import ACCESS_COOKIE, decode_access_token
from mentalspace.core.database import get_db
from mentalspace.core.models import Staff
from mentalspace.core.repository import StaffRepository


def _presented_api_key(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):]
    return request.headers.get("X-API-Key")


async def _active_staff(db: AsyncSession, staff_id: uuid.UUID) -> Optional[Staff]:
    staff = await StaffRepository(db).get_by_id(staff_id)
    return staff if staff is not None and staff.active else None


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Staff:
    """Resolve the staff member acting on this request.

    A valid access cookie wins. Otherwise a machine client may present the
    configured API key together with an ``X-Staff-Id`` header naming the staff
    member it acts for; audit rows are attributed to that person.
    """
    token = request.cookies.get(ACCESS_COOKIE)
    if token:
        staff_id = decode_access_token(token)
        if staff_id is not None:
            staff = await _active_staff(db, staff_id)
            if staff:
                return staff

    api_key = get_settings().api_key
    presented = _presented_api_key(request)
    if api_key and presented and hmac.compare_digest(presented, api_key):
        acting_for = request.headers.get("X-Staff-Id")
        if not acting_for:
            raise HTTPException(status_code=400, detail="X-Staff-Id header required with API key")
        staff = await _active_staff(db, parse_uuid(acting_for, "X-Staff-Id"))
        if staff:
            return staff

    raise HTTPException(status_code=401, detail="Not authenticated")


def parse_uuid(value: str, name: str = "ID") -> uuid.UUID:
    """Parse a path/query identifier, answering 400 when malformed."""
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}: {value}")
