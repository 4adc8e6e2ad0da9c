"""Auth routes: login and logout via the access cookie."""

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from mentalspace.core.auth import (
    authenticate_staff,
    clear_auth_cookie,
    issue_access_token,
    set_auth_cookie,
)
from mentalspace.core.database import get_db
from mentalspace.core.schemas import LoginRequest, StaffRead

router = APIRouter(prefix="/auth")


@router.post("/login", response_model=StaffRead)
async def login(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> StaffRead:
    staff = await authenticate_staff(db, body.email, body.password)
    if staff is None:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    set_auth_cookie(response, issue_access_token(staff))
    return StaffRead.model_validate(staff)


@router.post("/logout")
async def logout(response: Response) -> dict:
    clear_auth_cookie(response)
    return {"ok": True}
