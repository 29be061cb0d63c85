"""
Delivery Log — one row per (merchant, calendar day).

"Already processed today" is derived purely from the existence of a row keyed
by today's date, so no reset job is needed at midnight.
"""

from datetime import date, datetime
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import PersistenceError
from db.models import AlertDeliveryLog


class DeliveryLog:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, merchant_id: int, day: date) -> AlertDeliveryLog | None:
        try:
            return await self.db.get(AlertDeliveryLog, (merchant_id, day))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Error checking delivery log: {exc}") from exc

    async def was_processed(self, merchant_id: int, day: date) -> bool:
        return await self.get(merchant_id, day) is not None

    async def mark(
        self,
        merchant_id: int,
        day: date,
        product_ids: Iterable[int],
        alerts_sent: int,
    ) -> AlertDeliveryLog:
        """
        Record that an alert cycle ran. A second write on the same day adds to
        the count and replaces the product ids instead of inserting a new row.
        """
        ids = sorted(set(product_ids))
        try:
            entry = await self.get(merchant_id, day)
            if entry is None:
                entry = AlertDeliveryLog(
                    merchant_id=merchant_id,
                    delivery_date=day,
                    alerts_sent_count=alerts_sent,
                    product_ids=ids,
                )
                self.db.add(entry)
            else:
                entry.alerts_sent_count = (entry.alerts_sent_count or 0) + alerts_sent
                entry.product_ids = ids
                entry.updated_at = datetime.utcnow()
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError(f"Error logging alert delivery: {exc}") from exc
        return entry

    async def history(self, merchant_id: int, limit: int = 30) -> list[AlertDeliveryLog]:
        try:
            result = await self.db.execute(
                select(AlertDeliveryLog)
                .where(AlertDeliveryLog.merchant_id == merchant_id)
                .order_by(AlertDeliveryLog.delivery_date.desc())
                .limit(limit)
            )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Error fetching delivery history: {exc}") from exc
        return list(result.scalars().all())
