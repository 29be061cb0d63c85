"""
Alerting Engine — daily low-stock alert cycles per merchant.

Per merchant per calendar day:

  NOT_DUE ──(within ±tolerance of daily_time, no log row today)──▶ DUE_UNPROCESSED
  DUE_UNPROCESSED ──(process_for_merchant + delivery log write)──▶ PROCESSED

PROCESSED lasts until the date changes; the absence of a log row for the new
date is what puts the merchant back to NOT_DUE. The log row is written last,
so a crash mid-cycle leaves the day unprocessed and a retry is safe. Two
near-simultaneous cycles for one merchant can both pass the log check and
both generate alerts; that window is accepted.

Entry points:
  - is_due / check_due: tenant-facing poll
  - trigger_now: manual bypass of the time window (still deduplicated per day)
  - process_all_enabled: batch/admin run across every enabled merchant
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.content import ContentGenerator, GeneratedContent, Urgency, summary_text
from alerts.delivery_log import DeliveryLog
from alerts.inventory import InventoryReader, LowStockProduct, MerchantDirectory
from alerts.repository import AlertRepository
from alerts.settings_store import SettingsStore
from core.config import get_settings
from core.exceptions import ValidationError
from db.models import AlertSettings

logger = structlog.get_logger()

MINUTES_PER_DAY = 24 * 60

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class DueCheck:
    due: bool
    reason: str  # due | disabled | outside_window | already_processed
    current_time: str
    scheduled_time: str
    minutes_off: int
    next_due_at: datetime | None = None


@dataclass(frozen=True)
class CheckResult:
    due: bool
    created: int
    reason: str
    next_due_at: datetime | None = None


def minutes_of_day(value: time | datetime) -> int:
    return value.hour * 60 + value.minute


def minutes_apart(current: int, target: int) -> int:
    """Distance between two minutes-of-day, wrapping at midnight."""
    diff = abs(current - target) % MINUTES_PER_DAY
    return min(diff, MINUTES_PER_DAY - diff)


def within_window(now: datetime, daily_time: time, tolerance_minutes: int) -> bool:
    return minutes_apart(minutes_of_day(now), minutes_of_day(daily_time)) <= tolerance_minutes


def next_occurrence(now: datetime, daily_time: time, skip_today: bool = False) -> datetime:
    """Next wall-clock time matching daily_time (HH:MM) strictly after now."""
    candidate = datetime.combine(now.date(), time(daily_time.hour, daily_time.minute))
    if skip_today or candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def partition_by_criticality(
    products: list[LowStockProduct], critical_threshold: int
) -> tuple[list[LowStockProduct], list[LowStockProduct]]:
    critical = [p for p in products if p.quantity <= critical_threshold]
    regular = [p for p in products if p.quantity > critical_threshold]
    return critical, regular


class AlertingEngine:
    """Orchestrates one merchant's daily alert cycle against a single DB session."""

    def __init__(
        self,
        db: AsyncSession,
        content: ContentGenerator,
        clock: Clock | None = None,
        tolerance_minutes: int | None = None,
    ):
        self.db = db
        self.content = content
        self.clock = clock or datetime.now
        self.tolerance_minutes = (
            tolerance_minutes if tolerance_minutes is not None else get_settings().alert_due_tolerance_minutes
        )
        self.settings_store = SettingsStore(db)
        self.delivery_log = DeliveryLog(db)
        self.alerts = AlertRepository(db, clock=self.clock)
        self.inventory = InventoryReader(db)
        self.merchants = MerchantDirectory(db)

    def today(self) -> date:
        return self.clock().date()

    async def is_processed_today(self, merchant_id: int) -> bool:
        return await self.delivery_log.was_processed(merchant_id, self.today())

    # ── Due check ───────────────────────────────────────────────────────

    async def is_due(self, merchant_id: int) -> DueCheck:
        """Pure read: is this merchant inside its window and not yet processed today?"""
        settings = await self.settings_store.get(merchant_id)
        now = self.clock()
        daily_time = settings.daily_time
        minutes_off = minutes_apart(minutes_of_day(now), minutes_of_day(daily_time))
        detail = {
            "current_time": now.strftime("%H:%M:%S"),
            "scheduled_time": f"{daily_time.hour:02d}:{daily_time.minute:02d}",
            "minutes_off": minutes_off,
        }

        if not settings.enabled:
            return DueCheck(due=False, reason="disabled", **detail)

        if minutes_off > self.tolerance_minutes:
            return DueCheck(
                due=False,
                reason="outside_window",
                next_due_at=next_occurrence(now, daily_time),
                **detail,
            )

        if await self.delivery_log.was_processed(merchant_id, now.date()):
            return DueCheck(
                due=False,
                reason="already_processed",
                next_due_at=next_occurrence(now, daily_time, skip_today=True),
                **detail,
            )

        return DueCheck(due=True, reason="due", **detail)

    async def check_due(self, merchant_id: int) -> CheckResult:
        """Tenant poll: run the cycle if the merchant is due right now."""
        check = await self.is_due(merchant_id)
        if not check.due:
            return CheckResult(due=False, created=0, reason=check.reason, next_due_at=check.next_due_at)

        settings = await self.settings_store.get(merchant_id)
        shop_name = await self.merchants.shop_name(merchant_id)
        created = await self.process_for_merchant(settings, shop_name)
        next_due_at = next_occurrence(self.clock(), settings.daily_time, skip_today=True)
        return CheckResult(due=True, created=created, reason=check.reason, next_due_at=next_due_at)

    async def trigger_now(self, merchant_id: int) -> int:
        """Run the cycle regardless of the time window. Returns 0 if already processed today."""
        settings = await self.settings_store.get(merchant_id)
        if not settings.enabled:
            raise ValidationError("Low stock alerts are disabled for this merchant")
        if await self.is_processed_today(merchant_id):
            logger.info("alerting.trigger_skipped", merchant_id=merchant_id, reason="already_processed")
            return 0
        shop_name = await self.merchants.shop_name(merchant_id)
        return await self.process_for_merchant(settings, shop_name)

    # ── Processing ──────────────────────────────────────────────────────

    async def process_for_merchant(self, settings: AlertSettings, shop_name: str) -> int:
        """
        Build and persist today's alerts for one merchant.

        Critical products each get their own alert; the remaining low-stock
        products share one grouped alert. The delivery log row is written
        even when nothing qualified.
        """
        if not settings.enabled:
            return 0

        merchant_id = settings.merchant_id
        low_threshold = settings.low_stock_threshold
        critical_threshold = settings.critical_stock_threshold
        ai_enhanced = bool(settings.ai_enhanced)

        products = await self.inventory.low_stock_products(merchant_id, low_threshold)
        if not products:
            logger.info("alerting.no_low_stock", merchant_id=merchant_id, shop_name=shop_name)
            await self.delivery_log.mark(merchant_id, self.today(), [], alerts_sent=0)
            return 0

        digest_title, _ = summary_text(products)
        logger.info(
            "alerting.low_stock_found",
            merchant_id=merchant_id,
            shop_name=shop_name,
            product_count=len(products),
            summary=digest_title,
        )

        critical, regular = partition_by_criticality(products, critical_threshold)
        created = 0

        for product in critical:
            content = await self.content.generate(
                [product], shop_name, critical_threshold, Urgency.CRITICAL, ai_enhanced=ai_enhanced
            )
            await self._persist(merchant_id, [product], content, critical_threshold, is_critical=True)
            created += 1

        if regular:
            content = await self.content.generate(
                regular, shop_name, low_threshold, Urgency.LOW, ai_enhanced=ai_enhanced
            )
            await self._persist(merchant_id, regular, content, low_threshold, is_critical=False)
            created += 1

        await self.delivery_log.mark(
            merchant_id,
            self.today(),
            [p.id for p in products],
            alerts_sent=created,
        )

        logger.info(
            "alerting.cycle_complete",
            merchant_id=merchant_id,
            critical=len(critical),
            regular=len(regular),
            alerts_created=created,
        )
        return created

    async def _persist(
        self,
        merchant_id: int,
        products: list[LowStockProduct],
        content: GeneratedContent,
        threshold: int,
        is_critical: bool,
    ) -> None:
        await self.alerts.create(
            merchant_id,
            content.title,
            content.body,
            product_id=products[0].id if len(products) == 1 else None,
            is_ai_enhanced=content.is_ai_enhanced,
            original_body=content.original_body,
            metadata={
                "product_count": len(products),
                "is_critical": is_critical,
                "threshold": threshold,
                "products": [p.snapshot() for p in products],
            },
        )

    async def process_all_enabled(self) -> int:
        """Batch run over every enabled merchant. One merchant's failure never stops the rest."""
        # Plain ids only: a rollback below expires every ORM instance in the session
        enabled = [(settings.merchant_id, shop_name) for settings, shop_name in await self.settings_store.list_enabled()]
        logger.info("alerting.batch_started", merchant_count=len(enabled))

        total = 0
        failed = 0
        for merchant_id, shop_name in enabled:
            try:
                if await self.is_processed_today(merchant_id):
                    logger.info("alerting.batch_skip", merchant_id=merchant_id, reason="already_processed")
                    continue
                settings = await self.settings_store.get(merchant_id)
                total += await self.process_for_merchant(settings, shop_name)
            except Exception as exc:  # noqa: BLE001
                failed += 1
                await self.db.rollback()
                logger.error(
                    "alerting.merchant_failed",
                    merchant_id=merchant_id,
                    shop_name=shop_name,
                    error=str(exc),
                    exc_info=True,
                )

        logger.info("alerting.batch_complete", alerts_created=total, merchants_failed=failed)
        return total
