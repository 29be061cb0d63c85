"""
StockPulse API Dependencies

Dependency injection for DB sessions, auth, merchant context and the alerting engine.
"""

from collections.abc import AsyncGenerator, Callable
from datetime import datetime

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.content import ContentGenerator, build_content_generator
from alerts.engine import AlertingEngine
from alerts.repository import AlertRepository
from core.config import get_settings
from db.session import AsyncSessionLocal

settings = get_settings()
security = HTTPBearer(auto_error=not settings.debug)

# Dev merchant_id used when debug mode bypasses auth
DEV_MERCHANT_ID = 1


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """Decode JWT and return user payload. Bypassed in debug mode."""
    if settings.debug:
        return {
            "sub": "dev-user",
            "email": "dev@stockpulse.local",
            "merchant_id": DEV_MERCHANT_ID,
            "role": "admin",
        }

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    from core.security import decode_access_token

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return payload


async def get_current_merchant_id(user: dict = Depends(get_current_user)) -> int:
    """Merchant context from the token. Every alert/settings query is scoped by it."""
    merchant_id = user.get("merchant_id")
    try:
        return int(merchant_id)
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Merchant profile not found. Please complete your merchant setup.",
        )


async def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


def get_content_generator() -> ContentGenerator:
    return build_content_generator()


def get_clock() -> Callable[[], datetime]:
    """Local wall clock; merchants and the process share one timezone."""
    return datetime.now


def get_alert_repository(
    db: AsyncSession = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AlertRepository:
    return AlertRepository(db, clock=clock)


async def get_alerting_engine(
    db: AsyncSession = Depends(get_db),
    content: ContentGenerator = Depends(get_content_generator),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AlertingEngine:
    return AlertingEngine(db, content, clock=clock)
