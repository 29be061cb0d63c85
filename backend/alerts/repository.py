"""
Alert Repository — persistence for generated low-stock alerts.

Every query is scoped by merchant_id so a merchant can only see or mutate
its own alerts. created_at and read_at come from the injected clock, the same
local clock that dates the Delivery Log.
"""

from datetime import datetime
from typing import Any, Callable

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import PersistenceError
from db.models import Alert


class AlertRepository:
    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] | None = None):
        self.db = db
        self.clock = clock or datetime.now

    async def create(
        self,
        merchant_id: int,
        title: str,
        body: str,
        *,
        product_id: int | None = None,
        is_ai_enhanced: bool = False,
        original_body: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Alert:
        alert = Alert(
            merchant_id=merchant_id,
            alert_type="low_stock",
            title=title,
            body=body,
            product_id=product_id,
            is_ai_enhanced=is_ai_enhanced,
            original_body=original_body,
            alert_metadata=metadata or {},
            is_read=False,
            created_at=self.clock(),
        )
        try:
            self.db.add(alert)
            await self.db.commit()
            await self.db.refresh(alert)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError(f"Error creating alert: {exc}") from exc
        return alert

    async def list_for_merchant(
        self,
        merchant_id: int,
        limit: int = 20,
        offset: int = 0,
        unread_only: bool = False,
    ) -> list[Alert]:
        """Newest first."""
        query = select(Alert).where(Alert.merchant_id == merchant_id)
        if unread_only:
            query = query.where(Alert.is_read.is_(False))
        query = query.order_by(Alert.created_at.desc(), Alert.alert_id.desc()).offset(offset).limit(limit)
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Error fetching alerts: {exc}") from exc
        return list(result.scalars().all())

    async def find_by_id(self, alert_id: int, merchant_id: int) -> Alert | None:
        try:
            result = await self.db.execute(
                select(Alert).where(Alert.alert_id == alert_id, Alert.merchant_id == merchant_id)
            )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Error finding alert: {exc}") from exc
        return result.scalar_one_or_none()

    async def mark_read(self, alert_id: int, merchant_id: int) -> bool:
        """False when the alert does not exist or belongs to another merchant."""
        alert = await self.find_by_id(alert_id, merchant_id)
        if alert is None:
            return False
        if not alert.is_read:
            alert.is_read = True
            alert.read_at = self.clock()
            try:
                await self.db.commit()
            except SQLAlchemyError as exc:
                await self.db.rollback()
                raise PersistenceError(f"Error marking alert as read: {exc}") from exc
        return True

    async def mark_all_read(self, merchant_id: int) -> int:
        try:
            result = await self.db.execute(
                update(Alert)
                .where(Alert.merchant_id == merchant_id, Alert.is_read.is_(False))
                .values(is_read=True, read_at=self.clock())
                .execution_options(synchronize_session="fetch")
            )
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError(f"Error marking all alerts as read: {exc}") from exc
        return result.rowcount or 0

    async def unread_count(self, merchant_id: int) -> int:
        try:
            result = await self.db.execute(
                select(func.count()).select_from(Alert).where(Alert.merchant_id == merchant_id, Alert.is_read.is_(False))
            )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Error counting unread alerts: {exc}") from exc
        return result.scalar() or 0
