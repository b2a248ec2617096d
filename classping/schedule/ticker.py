"""Tick scheduler - evaluates the timetable once per whole minute."""

from __future__ import annotations

import asyncio
from datetime import timezone
from typing import TYPE_CHECKING

from loguru import logger

from classping.errors import CatalogError

# Sleep slightly past the boundary so now() lands inside the new minute.
TICK_GRACE_S = 0.05

# Minutes missed while a tick ran long are evaluated late, up to this many.
MAX_CATCHUP_MINUTES = 10

if TYPE_CHECKING:
    from classping.schedule.catalog import EventCatalog
    from classping.schedule.clock import ClockSource, Moment
    from classping.schedule.dispatcher import Dispatcher
    from classping.schedule.ledger import DedupLedger, DeliveryRecord
    from classping.schedule.matcher import MatchEngine


class TickScheduler:
    """
    Drives match + dispatch on a minute cadence.

    Ticks run inline in the loop task, so a tick that outlasts its minute
    delays the next one instead of overlapping it. Minutes that passed while
    a tick was running are evaluated afterwards, oldest first. Every tick is
    wrapped: a failure is logged and the loop keeps going.
    """

    def __init__(
        self,
        engine: MatchEngine,
        catalog: EventCatalog,
        ledger: DedupLedger,
        dispatcher: Dispatcher,
        clock: ClockSource,
        enabled: bool = True,
        status_interval_minutes: int = 0,
    ):
        self.engine = engine
        self.catalog = catalog
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.clock = clock
        self.enabled = enabled
        self.status_interval_minutes = status_interval_minutes
        self.tick_count = 0
        self._last_minute: Moment | None = None
        self._running = False
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        """Start the tick loop."""
        if not self.enabled:
            logger.info("[Ticker] Disabled")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            f"[Ticker] Started (tz={self.clock.timezone_name}, "
            f"lead={self.engine.lead_minutes}m, recipients={len(self.dispatcher.recipients)})"
        )

    def stop(self) -> None:
        """Stop the tick loop. An in-flight tick is cancelled."""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None

    async def _run_loop(self) -> None:
        """Main tick loop, aligned to whole minutes."""
        while self._running:
            try:
                await asyncio.sleep(self.clock.seconds_until_next_minute() + TICK_GRACE_S)
                if self._running:
                    await self._tick_through(self.clock.now())
                    self._log_status()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("[Ticker] Tick failed")

    async def _tick_through(self, now: Moment) -> None:
        """Evaluate every minute after the last evaluated one, up to ``now``."""
        for minute in self._missed_minutes(now):
            logger.warning(f"[Ticker] Catching up missed minute {minute.stamp}")
            self._last_minute = minute
            await self.tick(now=minute)
        self._last_minute = now
        await self.tick(now=now)

    def _missed_minutes(self, now: Moment) -> list[Moment]:
        """Whole minutes strictly between the last evaluated minute and ``now``.

        Compared in UTC so a DST change does not create or hide a gap.
        Only the newest MAX_CATCHUP_MINUTES are returned; older ones are
        logged and dropped.
        """
        last = self._last_minute
        if last is None:
            return []
        elapsed = now.instant.astimezone(timezone.utc) - last.instant.astimezone(timezone.utc)
        gap = int(elapsed.total_seconds() // 60) - 1
        if gap <= 0:
            return []
        if gap > MAX_CATCHUP_MINUTES:
            first_dropped = self.clock.add_minutes(last, 1)
            last_dropped = self.clock.add_minutes(now, -(MAX_CATCHUP_MINUTES + 1))
            logger.warning(
                f"[Ticker] Skipping {gap - MAX_CATCHUP_MINUTES} minute(s) "
                f"{first_dropped.stamp} .. {last_dropped.stamp}: beyond catch-up window"
            )
            gap = MAX_CATCHUP_MINUTES
        return [self.clock.add_minutes(now, -i) for i in range(gap, 0, -1)]

    async def tick(self, now: Moment | None = None) -> list[DeliveryRecord]:
        """Run a single evaluation cycle.

        Catalog errors are soft-skipped (no events this tick). An empty
        catalog or nothing due means the ledger is never written.
        """
        now = now or self.clock.now()
        self.tick_count += 1

        try:
            events = await asyncio.to_thread(self.catalog.load)
        except CatalogError as e:
            logger.error(f"[Ticker] Catalog unavailable, skipping tick: {e}")
            return []

        if not events:
            logger.debug("[Ticker] Catalog empty")
            return []

        await asyncio.to_thread(self.ledger.load)
        due = self.engine.find_due(now, events, self.ledger)
        if not due:
            logger.debug(f"[Ticker] {now.stamp}: nothing due")
            return []

        logger.info(f"[Ticker] {now.stamp}: {len(due)} reminder(s) due")
        return await self.dispatcher.dispatch_all(due, now, self.ledger)

    def _log_status(self) -> None:
        if self.status_interval_minutes <= 0:
            return
        if self.tick_count % self.status_interval_minutes == 0:
            notifier = self.dispatcher.notifier
            logger.info(
                f"[Ticker] Alive: {self.tick_count} tick(s), "
                f"{len(self.ledger)} sent, notifier={notifier.state.value}"
            )
