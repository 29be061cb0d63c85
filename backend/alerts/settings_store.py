"""
Settings Store — per-merchant low-stock alerting configuration.

Rows are created lazily with defaults on first read. Updates are partial and
all-or-nothing: the merged result is validated before anything is written.
"""

from datetime import datetime, time
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.inventory import MerchantDirectory
from core.config import get_settings
from core.exceptions import PersistenceError, ValidationError
from db.models import AlertSettings, Merchant

logger = structlog.get_logger()

LOW_STOCK_RANGE = (1, 100)
CRITICAL_STOCK_RANGE = (1, 50)

UPDATABLE_FIELDS = (
    "enabled",
    "low_stock_threshold",
    "critical_stock_threshold",
    "ai_enhanced",
    "daily_time",
    "email_enabled",
    "email",
)


def parse_daily_time(value: Any) -> time:
    """Accept a time object or an 'HH:MM' / 'HH:MM:SS' string."""
    if isinstance(value, time):
        return value.replace(microsecond=0)
    if isinstance(value, str):
        for fmt in ("%H:%M:%S", "%H:%M"):
            try:
                return datetime.strptime(value.strip(), fmt).time()
            except ValueError:
                continue
    raise ValidationError("daily_time must be a time of day formatted HH:MM or HH:MM:SS")


def validate_thresholds(low_stock_threshold: Any, critical_stock_threshold: Any) -> tuple[int, int]:
    """Check ranges and ordering of the effective thresholds."""
    try:
        low = int(low_stock_threshold)
        critical = int(critical_stock_threshold)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Stock thresholds must be integers") from exc

    if not LOW_STOCK_RANGE[0] <= low <= LOW_STOCK_RANGE[1]:
        raise ValidationError(f"Low stock threshold must be between {LOW_STOCK_RANGE[0]} and {LOW_STOCK_RANGE[1]}")
    if not CRITICAL_STOCK_RANGE[0] <= critical <= CRITICAL_STOCK_RANGE[1]:
        raise ValidationError(
            f"Critical stock threshold must be between {CRITICAL_STOCK_RANGE[0]} and {CRITICAL_STOCK_RANGE[1]}"
        )
    if critical >= low:
        raise ValidationError("Critical stock threshold must be less than low stock threshold")
    return low, critical


class SettingsStore:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.merchants = MerchantDirectory(db)

    async def _find(self, merchant_id: int) -> AlertSettings | None:
        result = await self.db.execute(select(AlertSettings).where(AlertSettings.merchant_id == merchant_id))
        return result.scalar_one_or_none()

    async def get(self, merchant_id: int) -> AlertSettings:
        """Return the merchant's settings, creating defaults on first access."""
        try:
            existing = await self._find(merchant_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Error fetching alert settings: {exc}") from exc
        if existing is not None:
            return existing

        # Raises NotFoundError for unknown merchants
        await self.merchants.shop_name(merchant_id)

        defaults = get_settings()
        row = AlertSettings(
            merchant_id=merchant_id,
            enabled=True,
            low_stock_threshold=defaults.default_low_stock_threshold,
            critical_stock_threshold=defaults.default_critical_stock_threshold,
            ai_enhanced=True,
            daily_time=parse_daily_time(defaults.default_daily_time),
            email_enabled=False,
            email=None,
        )
        try:
            self.db.add(row)
            await self.db.commit()
            await self.db.refresh(row)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError(f"Error creating default alert settings: {exc}") from exc

        logger.info("alert_settings.defaults_created", merchant_id=merchant_id)
        return row

    async def update(self, merchant_id: int, fields: dict[str, Any]) -> AlertSettings:
        """Apply only the provided fields. Raises ValidationError without writing anything."""
        changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS and v is not None}
        if "email" in fields and fields["email"] is None:
            changes["email"] = None
        if not changes:
            raise ValidationError("No valid fields provided for update")

        current = await self.get(merchant_id)

        low, critical = validate_thresholds(
            changes.get("low_stock_threshold", current.low_stock_threshold),
            changes.get("critical_stock_threshold", current.critical_stock_threshold),
        )
        if "low_stock_threshold" in changes:
            changes["low_stock_threshold"] = low
        if "critical_stock_threshold" in changes:
            changes["critical_stock_threshold"] = critical
        if "daily_time" in changes:
            changes["daily_time"] = parse_daily_time(changes["daily_time"])
        for flag in ("enabled", "ai_enhanced", "email_enabled"):
            if flag in changes and not isinstance(changes[flag], bool):
                raise ValidationError(f"{flag} must be a boolean")

        for key, value in changes.items():
            setattr(current, key, value)
        current.updated_at = datetime.utcnow()

        try:
            await self.db.commit()
            await self.db.refresh(current)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError(f"Error updating alert settings: {exc}") from exc

        logger.info("alert_settings.updated", merchant_id=merchant_id, fields=sorted(changes))
        return current

    async def list_enabled(self) -> list[tuple[AlertSettings, str]]:
        """Snapshot of (settings, shop name) for every merchant with alerting enabled."""
        try:
            result = await self.db.execute(
                select(AlertSettings, Merchant.shop_name)
                .join(Merchant, Merchant.merchant_id == AlertSettings.merchant_id)
                .where(AlertSettings.enabled.is_(True))
            )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Error fetching merchants with alerts enabled: {exc}") from exc
        return [(row[0], row[1]) for row in result.all()]
