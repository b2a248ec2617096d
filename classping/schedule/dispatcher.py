"""Dispatcher: render each due reminder and fan it out to every group.

DESIGN: Fire-once, not deliver-once. A DeliveryRecord is committed after
every recipient has been attempted, even when all of them failed, so a
reminder is never retried on a later tick. See DESIGN.md "Fire-once".
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Sequence

from loguru import logger

from classping.config.schema import DEFAULT_MESSAGE_TEMPLATE
from classping.errors import DeliveryError, LedgerWriteError
from classping.schedule.ledger import DeliveryRecord

if TYPE_CHECKING:
    from classping.channels.base import BaseNotifier
    from classping.schedule.catalog import Event
    from classping.schedule.clock import Moment
    from classping.schedule.ledger import DedupLedger
    from classping.schedule.matcher import DueEvent

DEFAULT_SEND_DELAY_S = 1.2


def greeting_by_hour(hour: int) -> str:
    """Greeting for the current local hour (three bands: <12, <18, rest)."""
    if hour < 12:
        return "BUENOS DÍAS"
    if hour < 18:
        return "BUENAS TARDES"
    return "BUENAS NOCHES"


def build_message(
    event: Event,
    now: Moment,
    template: str = DEFAULT_MESSAGE_TEMPLATE,
    link: str = "",
) -> str:
    return template.format(
        greeting=greeting_by_hour(now.hour),
        subject=event.subject,
        teacher=event.teacher,
        date=event.date,
        start=event.start,
        link=link,
    )


class Dispatcher:
    """Sends due reminders sequentially and commits them to the ledger."""

    def __init__(
        self,
        notifier: BaseNotifier,
        recipients: Sequence[str],
        send_delay_s: float = DEFAULT_SEND_DELAY_S,
        template: str = DEFAULT_MESSAGE_TEMPLATE,
        link: str = "",
    ):
        self.notifier = notifier
        self.recipients = list(dict.fromkeys(r.strip() for r in recipients if r.strip()))
        self.send_delay_s = send_delay_s
        self.template = template
        self.link = link
        self._warned_empty = False

    async def dispatch_all(
        self,
        due: Sequence[DueEvent],
        now: Moment,
        ledger: DedupLedger,
    ) -> list[DeliveryRecord]:
        """Deliver every due event and return the records that were committed.

        Empty recipient list degrades to a no-op (nothing sent, nothing
        committed) with a single warning.
        """
        if not due:
            return []

        if not self.recipients:
            if not self._warned_empty:
                logger.warning("[Dispatcher] No recipient targets configured; reminders are not sent")
                self._warned_empty = True
            return []

        committed: list[DeliveryRecord] = []
        for item in due:
            record = await self._dispatch_one(item, now)
            try:
                await asyncio.to_thread(ledger.commit, record)
            except LedgerWriteError as e:
                # Not in the ledger, so any later tick that still matches re-attempts it.
                logger.error(f"[Dispatcher] Ledger commit failed for {item.key}: {e}")
                continue
            committed.append(record)
            logger.info(
                f"[Dispatcher] Recorded {item.key} "
                f"({len(record.delivered)}/{len(self.recipients)} delivered)"
            )
        return committed

    async def _dispatch_one(self, item: DueEvent, now: Moment) -> DeliveryRecord:
        event = item.event
        text = build_message(event, now, self.template, self.link)
        logger.info(f"[Dispatcher] Sending reminder: {item.target.stamp} | {event.subject} | {event.teacher}")

        delivered: list[str] = []
        failed: list[str] = []
        for i, target_id in enumerate(self.recipients):
            if i > 0 and self.send_delay_s > 0:
                await asyncio.sleep(self.send_delay_s)
            try:
                await self._send(target_id, text)
                delivered.append(target_id)
            except Exception as e:
                failed.append(target_id)
                logger.error(f"[Dispatcher] Send to {target_id} failed: {e}")

        return DeliveryRecord(
            key=item.key,
            sent_at=now.stamp,
            target_at=item.target.stamp,
            subject=event.subject,
            teacher=event.teacher,
            delivered=delivered,
            failed=failed,
        )

    async def _send(self, target_id: str, text: str) -> None:
        try:
            target = await self.notifier.resolve_target(target_id)
            await self.notifier.send_message(target.id, text)
        except DeliveryError:
            raise
        except Exception as e:
            raise DeliveryError(target_id, str(e) or type(e).__name__) from e
        logger.debug(f"[Dispatcher] Delivered to {target.name!r} ({target_id})")
