"""
Alerts Router — low-stock alert inbox, due-check polling and manual triggers.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from alerts.engine import AlertingEngine
from alerts.repository import AlertRepository
from api.deps import get_alert_repository, get_alerting_engine, get_current_merchant_id, require_admin
from core.exceptions import NotFoundError, ValidationError

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class AlertResponse(BaseModel):
    alert_id: int
    merchant_id: int
    alert_type: str
    title: str
    body: str
    product_id: int | None
    is_ai_enhanced: bool
    original_body: str | None
    alert_metadata: dict | None
    is_read: bool
    read_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class AlertPage(BaseModel):
    alerts: list[AlertResponse]
    page: int
    limit: int
    has_more: bool
    unread_count: int


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkReadResponse(BaseModel):
    success: bool


class MarkAllReadResponse(BaseModel):
    count: int


class CheckDueResponse(BaseModel):
    due: bool
    created: int
    reason: str
    next_due_at: datetime | None = None


class TriggerResponse(BaseModel):
    created: int


# ─── Inbox ──────────────────────────────────────────────────────────────────


@router.get("/", response_model=AlertPage)
async def list_alerts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = False,
    merchant_id: int = Depends(get_current_merchant_id),
    repo: AlertRepository = Depends(get_alert_repository),
):
    """List the merchant's alerts, newest first."""
    # One extra row tells us whether another page exists
    rows = await repo.list_for_merchant(
        merchant_id,
        limit=limit + 1,
        offset=(page - 1) * limit,
        unread_only=unread_only,
    )
    return AlertPage(
        alerts=rows[:limit],
        page=page,
        limit=limit,
        has_more=len(rows) > limit,
        unread_count=await repo.unread_count(merchant_id),
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    merchant_id: int = Depends(get_current_merchant_id),
    repo: AlertRepository = Depends(get_alert_repository),
):
    return UnreadCountResponse(unread_count=await repo.unread_count(merchant_id))


@router.patch("/mark-all-read", response_model=MarkAllReadResponse)
async def mark_all_alerts_read(
    merchant_id: int = Depends(get_current_merchant_id),
    repo: AlertRepository = Depends(get_alert_repository),
):
    return MarkAllReadResponse(count=await repo.mark_all_read(merchant_id))


# ─── Alert cycle triggers ───────────────────────────────────────────────────


@router.post("/check-due", response_model=CheckDueResponse)
async def check_due(
    merchant_id: int = Depends(get_current_merchant_id),
    engine: AlertingEngine = Depends(get_alerting_engine),
):
    """
    Tenant poll endpoint. Clients call this every few tens of seconds; it runs
    the day's alert cycle only inside the merchant's time window.
    """
    try:
        result = await engine.check_due(merchant_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return CheckDueResponse(
        due=result.due,
        created=result.created,
        reason=result.reason,
        next_due_at=result.next_due_at,
    )


@router.post("/trigger-now", response_model=TriggerResponse)
async def trigger_now(
    merchant_id: int = Depends(get_current_merchant_id),
    engine: AlertingEngine = Depends(get_alerting_engine),
):
    """Run today's cycle immediately, ignoring the time window but not the daily dedup."""
    try:
        created = await engine.trigger_now(merchant_id)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return TriggerResponse(created=created)


@router.post("/admin/trigger-all", response_model=TriggerResponse)
async def trigger_all(
    request: Request,
    _admin: dict = Depends(require_admin),
    engine: AlertingEngine = Depends(get_alerting_engine),
):
    """Batch run across every enabled merchant, through the heartbeat when one is running."""
    heartbeat = getattr(request.app.state, "heartbeat", None)
    if heartbeat is not None and heartbeat.batch_runner is not None:
        return TriggerResponse(created=await heartbeat.trigger_now())
    return TriggerResponse(created=await engine.process_all_enabled())


@router.get("/admin/heartbeat")
async def heartbeat_status(
    request: Request,
    _admin: dict = Depends(require_admin),
):
    heartbeat = getattr(request.app.state, "heartbeat", None)
    if heartbeat is None:
        return {"is_running": False, "interval_seconds": None, "tick_count": 0, "last_tick_at": None}
    return heartbeat.status()


# ─── Single alert ───────────────────────────────────────────────────────────


@router.get("/{alert_id}", response_model=AlertResponse)
async def get_alert(
    alert_id: int,
    merchant_id: int = Depends(get_current_merchant_id),
    repo: AlertRepository = Depends(get_alert_repository),
):
    alert = await repo.find_by_id(alert_id, merchant_id)
    if alert is None:
        raise HTTPException(status_code=404, detail="Alert not found")
    return alert


@router.patch("/{alert_id}/read", response_model=MarkReadResponse)
async def mark_alert_read(
    alert_id: int,
    merchant_id: int = Depends(get_current_merchant_id),
    repo: AlertRepository = Depends(get_alert_repository),
):
    if not await repo.mark_read(alert_id, merchant_id):
        raise HTTPException(status_code=404, detail="Alert not found")
    return MarkReadResponse(success=True)
