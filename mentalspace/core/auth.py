"""Staff authentication: bcrypt passwords, signed access tokens, the auth cookie."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Response
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from mentalspace.config import get_settings
from mentalspace.core.models import Staff

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_COOKIE = "mentalspace_access"
_TOKEN_TYPE = "access"


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


async def authenticate_staff(session: AsyncSession, email: str, password: str) -> Optional[Staff]:
    """Active staff member matching the credentials, or None."""
    from mentalspace.core.repository import StaffRepository

    staff = await StaffRepository(session).get_by_email(email)
    if staff is None or not staff.password_hash:
        return None
    return staff if verify_password(password, staff.password_hash) else None


def issue_access_token(staff: Staff) -> str:
    settings = get_settings()
    issued = datetime.now(timezone.utc)
    claims = {
        "sub": str(staff.id),
        "role": staff.role,
        "type": _TOKEN_TYPE,
        "iat": issued,
        "exp": issued + timedelta(minutes=settings.access_token_expire_minutes),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[uuid.UUID]:
    """Staff id carried by a valid, unexpired access token; None otherwise."""
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        if claims.get("type") != _TOKEN_TYPE:
            return None
        return uuid.UUID(claims["sub"])
    except (JWTError, KeyError, ValueError):
        return None


def set_auth_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        ACCESS_COOKIE,
        token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        domain=settings.cookie_domain or None,
        max_age=settings.access_token_expire_minutes * 60,
    )


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(ACCESS_COOKIE, domain=get_settings().cookie_domain or None)
