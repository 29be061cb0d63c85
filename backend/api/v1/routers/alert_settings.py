"""
Alert Settings Router — per-merchant low-stock alerting configuration.
"""

from datetime import datetime, time

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.settings_store import SettingsStore
from api.deps import get_current_merchant_id, get_db
from core.exceptions import NotFoundError, ValidationError

router = APIRouter(prefix="/api/v1/alerts/settings", tags=["alert-settings"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class AlertSettingsResponse(BaseModel):
    merchant_id: int
    enabled: bool
    low_stock_threshold: int
    critical_stock_threshold: int
    ai_enhanced: bool
    daily_time: time
    email_enabled: bool
    email: str | None
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class AlertSettingsUpdate(BaseModel):
    """All fields optional; only the ones sent are applied. Ranges are checked by the store."""

    enabled: bool | None = None
    low_stock_threshold: int | None = None
    critical_stock_threshold: int | None = None
    ai_enhanced: bool | None = None
    daily_time: time | None = None
    email_enabled: bool | None = None
    email: str | None = None


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("", response_model=AlertSettingsResponse)
async def get_alert_settings(
    merchant_id: int = Depends(get_current_merchant_id),
    db: AsyncSession = Depends(get_db),
):
    """Get settings, creating defaults on first access."""
    try:
        return await SettingsStore(db).get(merchant_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.put("", response_model=AlertSettingsResponse)
async def update_alert_settings(
    body: AlertSettingsUpdate,
    merchant_id: int = Depends(get_current_merchant_id),
    db: AsyncSession = Depends(get_db),
):
    """Partial update. Rejected as a whole when thresholds are out of range or misordered."""
    try:
        return await SettingsStore(db).update(merchant_id, body.model_dump(exclude_unset=True))
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
