"""Caller identification for the expense ledger.

Provides:
- JWT creation / validation
- ``get_current_user()`` dependency
- ``get_current_company_id()`` dependency that scopes every ledger query
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_ledger.config import settings
from expense_ledger.database import get_db

# ---------------------------------------------------------------------------
# JWT helpers
# ---------------------------------------------------------------------------


def create_access_token(data: dict[str, Any]) -> str:
    """Create a signed JWT containing *sub* (username) and *exp*."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_EXPIRY_MINUTES)
    to_encode.update({"exp": expire})

    # UUIDs are not JSON-serialisable; keep the payload plain strings.
    for key in ("user_id", "company_id"):
        if key in to_encode and not isinstance(to_encode[key], str):
            to_encode[key] = str(to_encode[key])

    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


# ---------------------------------------------------------------------------
# OAuth2 scheme (tells Swagger UI to send a bearer token)
# ---------------------------------------------------------------------------

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")

# ---------------------------------------------------------------------------
# Current-user dependency
# ---------------------------------------------------------------------------


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Decode the JWT, look up the user in the ``users`` table, and return a
    dict describing the authenticated user.

    Raises ``HTTPException(401)`` when the token is invalid or the user cannot
    be found.
    """
    from expense_ledger.models.user import User

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
        username: str | None = payload.get("sub")
        if username is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    result = await db.execute(select(User).where(User.username == username))
    user: User | None = result.scalar_one_or_none()

    if user is None:
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    return {
        "user_id": user.id,
        "username": user.username,
        "role": user.role,
        "display_name": user.display_name,
        "company_id": str(user.company_id) if user.company_id else None,
    }


# ---------------------------------------------------------------------------
# Data scoping: company-level isolation
# ---------------------------------------------------------------------------


def get_company_scope(user: dict[str, Any]) -> uuid.UUID:
    """Return the company UUID every query must be filtered by.

    Users without a company cannot touch ledger data.
    """
    company_id = user.get("company_id")
    if company_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not assigned to a company",
        )
    return uuid.UUID(company_id) if isinstance(company_id, str) else company_id


async def get_current_company_id(
    user: dict[str, Any] = Depends(get_current_user),
) -> uuid.UUID:
    return get_company_scope(user)
