"""Common API dependencies."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from datetime import datetime
from typing import Annotated

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from dosetrack.core.clock import resolve_timezone, utcnow
from dosetrack.core.config import get_settings
from dosetrack.core.security import decode_access_token
from dosetrack.db.session import get_session

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session."""
    async for session in get_session():
        yield session


async def get_current_owner_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> uuid.UUID:
    """Resolve the calling owner from the bearer token's ``sub`` claim."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError as exc:
        raise credentials_exception from exc

    subject = payload.get("sub")
    if subject is None:
        raise credentials_exception

    try:
        return uuid.UUID(subject)
    except (ValueError, TypeError) as exc:
        raise credentials_exception from exc


def get_now() -> datetime:
    """Current instant; overridden in tests to pin the clock."""
    return utcnow()


def get_request_timezone(
    tz: str | None = Query(default=None, description="IANA timezone for calendar dates"),
) -> str:
    """Validated timezone name, falling back to the configured default."""
    name = tz or get_settings().default_timezone
    try:
        resolve_timezone(name)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return name

