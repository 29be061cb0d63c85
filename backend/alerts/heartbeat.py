"""
Scheduler Heartbeat — process-wide liveness timer.

The heartbeat does not fan out to merchants. Each merchant's client polls
check-due on its own, which keeps alert cycles spread across the day instead
of bursting at one instant. The only in-process state is the running flag and
last-tick bookkeeping used to thin out log lines.
"""

import asyncio
from datetime import date, datetime
from typing import Awaitable, Callable

import structlog

logger = structlog.get_logger()

BatchRunner = Callable[[], Awaitable[int]]


class AlertHeartbeat:
    def __init__(
        self,
        clock: Callable[[], datetime] | None = None,
        interval_seconds: float = 60.0,
        log_every_minutes: int = 30,
        batch_runner: BatchRunner | None = None,
    ):
        self.clock = clock or datetime.now
        self.interval_seconds = interval_seconds
        self.log_every_minutes = max(1, log_every_minutes)
        self.batch_runner = batch_runner
        self.is_running = False
        self.tick_count = 0
        self.last_tick_at: datetime | None = None
        self.current_date: date | None = None
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        """Tick once immediately, then every interval. Must be called inside a running loop."""
        if self.is_running:
            logger.info("heartbeat.already_running")
            return
        self.is_running = True
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("heartbeat.started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if not self.is_running:
            logger.info("heartbeat.not_running")
            return
        self.is_running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("heartbeat.stopped", ticks=self.tick_count)

    async def _run(self) -> None:
        while self.is_running:
            try:
                self.tick()
            except Exception as exc:  # noqa: BLE001
                logger.error("heartbeat.tick_failed", error=str(exc), exc_info=True)
            await asyncio.sleep(self.interval_seconds)

    def tick(self) -> bool:
        """Record one beat. Returns True when this beat emitted a liveness log line."""
        now = self.clock()
        today = now.date()
        if self.current_date != today:
            if self.current_date is not None:
                logger.info("heartbeat.new_day", date=today.isoformat())
            self.current_date = today

        self.tick_count += 1
        self.last_tick_at = now

        should_log = now.minute % self.log_every_minutes == 0
        if should_log:
            logger.info(
                "heartbeat.tick",
                at=now.strftime("%H:%M:%S"),
                note="merchants check their own alert time via check-due",
            )
        return should_log

    async def trigger_now(self) -> int:
        """Operator-triggered global run through the injected batch runner."""
        if self.batch_runner is None:
            raise RuntimeError("No batch runner configured for this heartbeat")
        logger.info("heartbeat.manual_trigger")
        created = await self.batch_runner()
        logger.info("heartbeat.manual_trigger_complete", alerts_created=created)
        return created

    def status(self) -> dict:
        return {
            "is_running": self.is_running,
            "interval_seconds": self.interval_seconds,
            "tick_count": self.tick_count,
            "last_tick_at": self.last_tick_at.isoformat() if self.last_tick_at else None,
        }
