"""Timezone-aware wall clock at minute resolution."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from classping.errors import ConfigError

DEFAULT_TIMEZONE = "America/Bogota"


@dataclass(frozen=True)
class Moment:
    """A civil date and minute-precision time in the clock's zone.

    ``instant`` is the aware datetime the other fields were rendered from,
    already truncated to the minute.
    """

    instant: datetime
    date: str  # YYYY-MM-DD
    time: str  # HH:MM
    hour: int
    minute: int

    @property
    def stamp(self) -> str:
        """Rendered as ``YYYY-MM-DD HH:MM``, the format stored in the ledger."""
        return f"{self.date} {self.time}"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ClockSource:
    """Reads the real clock and renders it in a configured IANA zone.

    All arithmetic goes through UTC and is converted back with zoneinfo,
    so DST transitions produce the correct civil time.
    """

    def __init__(
        self,
        timezone_name: str = DEFAULT_TIMEZONE,
        now_fn: Callable[[], datetime] | None = None,
    ):
        try:
            self.tz = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(f"Invalid timezone {timezone_name!r}") from e
        self.timezone_name = timezone_name
        self._now_fn = now_fn or _utc_now

    def now(self) -> Moment:
        """Current time in the configured zone, seconds truncated."""
        current = self._now_fn()
        if current.tzinfo is None:
            raise ValueError("now_fn must return a timezone-aware datetime")
        return self.render(current)

    def render(self, value: datetime) -> Moment:
        """Render an aware datetime as a Moment in the configured zone."""
        local = value.astimezone(self.tz).replace(second=0, microsecond=0)
        return Moment(
            instant=local,
            date=local.strftime("%Y-%m-%d"),
            time=local.strftime("%H:%M"),
            hour=local.hour,
            minute=local.minute,
        )

    def add_minutes(self, base: Moment | datetime, delta: int) -> Moment:
        """``base + delta`` minutes in absolute time, re-rendered in the zone."""
        instant = base.instant if isinstance(base, Moment) else base
        if instant.tzinfo is None:
            raise ValueError("add_minutes needs a timezone-aware base")
        shifted = instant.astimezone(timezone.utc) + timedelta(minutes=delta)
        return self.render(shifted)

    def at(self, date_str: str, time_str: str) -> Moment:
        """Interpret a civil ``YYYY-MM-DD`` / ``HH:MM`` pair in the zone.

        Used by the CLI ``check --at`` option. Ambiguous times (DST fall-back)
        resolve to the first occurrence.
        """
        naive = datetime.strptime(f"{date_str} {time_str}", "%Y-%m-%d %H:%M")
        return self.render(naive.replace(tzinfo=self.tz, fold=0))

    def seconds_until_next_minute(self) -> float:
        """Seconds until the next whole minute boundary of the real clock."""
        current = self._now_fn()
        elapsed = current.second + current.microsecond / 1_000_000
        return 60.0 - elapsed
