"""Match engine: which events start exactly ``lead`` minutes from now."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Container, Sequence

from classping.errors import ConfigError
from classping.schedule.catalog import Event
from classping.schedule.clock import ClockSource, Moment

MIN_LEAD_MINUTES = 1
MAX_LEAD_MINUTES = 60


@dataclass(frozen=True)
class DueEvent:
    """An event that should be announced on this tick."""

    event: Event
    key: str
    target: Moment


def dedup_key(target: Moment, event: Event) -> str:
    """``"{date} {HH:MM}|{subject}|{teacher}"`` for the target timestamp.

    NOTE: Not a true event id. Two catalog entries sharing date, start,
    subject and teacher produce the same key and only the first one fires.
    """
    return f"{target.stamp}|{event.subject}|{event.teacher}"


def find_due(
    now: Moment,
    lead_minutes: int,
    catalog: Sequence[Event],
    ledger: Container[str],
    clock: ClockSource,
) -> list[DueEvent]:
    """Events whose start equals ``now + lead_minutes``, minus those already sent.

    Matching is exact at minute granularity. An event whose start falls
    between two ticks (clock drift, missed tick) is not caught up.
    Result keeps catalog order.
    """
    target = clock.add_minutes(now, lead_minutes)

    due: list[DueEvent] = []
    seen: set[str] = set()
    for event in catalog:
        if event.date != target.date or event.start != target.time:
            continue
        key = dedup_key(target, event)
        if key in ledger or key in seen:
            continue
        seen.add(key)
        due.append(DueEvent(event=event, key=key, target=target))
    return due


class MatchEngine:
    """Binds the clock and lead time so the ticker only passes state."""

    def __init__(self, clock: ClockSource, lead_minutes: int):
        if not MIN_LEAD_MINUTES <= lead_minutes <= MAX_LEAD_MINUTES:
            raise ConfigError(
                f"lead_minutes must be between {MIN_LEAD_MINUTES} and {MAX_LEAD_MINUTES}, "
                f"got {lead_minutes}"
            )
        self.clock = clock
        self.lead_minutes = lead_minutes

    def find_due(
        self,
        now: Moment,
        catalog: Sequence[Event],
        ledger: Container[str],
    ) -> list[DueEvent]:
        return find_due(now, self.lead_minutes, catalog, ledger, self.clock)
