"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
the acting user, the ledger and payment gateway clients, and configuration.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from wastex.config import Settings, get_settings
from wastex.domain.exceptions import AuthorizationError
from wastex.domain.ports import LedgerClient, PaymentGateway
from wastex.infrastructure.database.engine import get_async_session
from wastex.infrastructure.database.orm_models import User
from wastex.infrastructure.database.repositories import UserRepository


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


async def get_current_user(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    session: AsyncSession = Depends(get_db_session),
) -> User:
    """Resolve the acting user from the X-User-Id header.

    Authentication happens upstream; this only maps the asserted id onto a
    known party.
    """
    if not x_user_id:
        raise AuthorizationError("Missing X-User-Id header", code="NOT_AUTHENTICATED")
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError as exc:
        raise AuthorizationError("Malformed X-User-Id header", code="NOT_AUTHENTICATED") from exc
    user = await UserRepository(session).get_by_id(user_id)
    if user is None:
        raise AuthorizationError("Unknown user", code="NOT_AUTHENTICATED")
    return user


def get_ledger(request: Request) -> LedgerClient:
    """Provide the ledger client built during startup."""
    return request.app.state.ledger


def get_gateway(request: Request) -> PaymentGateway:
    """Provide the payment gateway built during startup."""
    return request.app.state.gateway


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()
