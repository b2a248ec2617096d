"""Shared fixtures for classping tests."""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from classping.channels.base import BaseNotifier, ConnectionState, TargetInfo
from classping.schedule.clock import ClockSource


def utc(year, month, day, hour, minute, second=0, microsecond=0) -> datetime:
    return datetime(year, month, day, hour, minute, second, microsecond, tzinfo=timezone.utc)


def clock_at(instant: datetime, tz: str = "America/Bogota") -> ClockSource:
    """ClockSource pinned to a fixed aware instant."""
    return ClockSource(tz, now_fn=lambda: instant)


def write_schedule(path: Path, events) -> Path:
    path.write_text(json.dumps(events, ensure_ascii=False), encoding="utf-8")
    return path


class FakeNotifier(BaseNotifier):
    """In-memory notifier: records sends, fails for ids in ``failing``."""

    name = "fake"

    def __init__(self, failing: set[str] | None = None, ready: bool = True):
        super().__init__()
        self.failing = failing or set()
        self.sent: list[tuple[str, str]] = []
        if ready:
            self.connection.transition(ConnectionState.AUTHENTICATED)
            self.connection.transition(ConnectionState.READY)

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        self.connection.reset()

    async def list_targets(self) -> list[TargetInfo]:
        return []

    async def resolve_target(self, target_id: str) -> TargetInfo:
        return TargetInfo(id=target_id, name=f"Group {target_id}", is_group=True)

    async def send_message(self, target_id: str, text: str) -> None:
        self._require_ready(target_id)
        if target_id in self.failing:
            raise RuntimeError("chat not found")
        self.sent.append((target_id, text))


# 2024-05-01 09:00 in Bogota (UTC-5, no DST)
BOGOTA_0900 = utc(2024, 5, 1, 14, 0)

MATH_EVENT = {"date": "2024-05-01", "start": "09:05", "subject": "Math", "teacher": "Ana"}


@pytest.fixture
def bogota_clock():
    return clock_at(BOGOTA_0900)


@pytest.fixture
def schedule_file(tmp_path):
    return write_schedule(tmp_path / "schedule.json", [MATH_EVENT])


@pytest.fixture
def ledger_file(tmp_path):
    return tmp_path / "sent_log.json"


@pytest.fixture
def notifier():
    return FakeNotifier()
