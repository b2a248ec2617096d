"""Unit tests for the match engine."""

from datetime import timedelta

import pytest

from classping.errors import ConfigError
from classping.schedule.catalog import Event
from classping.schedule.matcher import MatchEngine, dedup_key, find_due

from tests.conftest import MATH_EVENT, clock_at, utc


def event(**overrides) -> Event:
    return Event.model_validate({**MATH_EVENT, **overrides})


class TestFindDue:
    def test_exact_lead_matches(self, bogota_clock):
        now = bogota_clock.now()

        due = find_due(now, 5, [event()], set(), bogota_clock)

        assert len(due) == 1
        assert due[0].key == "2024-05-01 09:05|Math|Ana"
        assert due[0].target.stamp == "2024-05-01 09:05"

    @pytest.mark.parametrize("start", ["09:04", "09:06"])
    def test_off_by_one_minute_never_matches(self, bogota_clock, start):
        now = bogota_clock.now()

        assert find_due(now, 5, [event(start=start)], set(), bogota_clock) == []

    def test_other_date_same_time_ignored(self, bogota_clock):
        now = bogota_clock.now()

        assert find_due(now, 5, [event(date="2024-05-02")], set(), bogota_clock) == []

    def test_already_in_ledger_skipped(self, bogota_clock):
        now = bogota_clock.now()

        due = find_due(now, 5, [event()], {"2024-05-01 09:05|Math|Ana"}, bogota_clock)

        assert due == []

    def test_keeps_catalog_order(self, bogota_clock):
        now = bogota_clock.now()
        catalog = [event(subject="Zoology"), event(subject="Art"), event(subject="Biology")]

        due = find_due(now, 5, catalog, set(), bogota_clock)

        assert [d.event.subject for d in due] == ["Zoology", "Art", "Biology"]

    def test_identical_entries_collapse_to_one(self, bogota_clock):
        """Two entries with the same date, start, subject and teacher share a key."""
        now = bogota_clock.now()

        due = find_due(now, 5, [event(), event()], set(), bogota_clock)

        assert len(due) == 1

    def test_same_slot_different_teacher_both_due(self, bogota_clock):
        now = bogota_clock.now()

        due = find_due(now, 5, [event(), event(teacher="Luis")], set(), bogota_clock)

        assert [d.key for d in due] == [
            "2024-05-01 09:05|Math|Ana",
            "2024-05-01 09:05|Math|Luis",
        ]

    def test_lead_across_midnight(self):
        clock = clock_at(utc(2024, 5, 2, 4, 58))  # 23:58 Bogota
        now = clock.now()

        due = find_due(now, 5, [event(date="2024-05-02", start="00:03")], set(), clock)

        assert [d.key for d in due] == ["2024-05-02 00:03|Math|Ana"]

    def test_dst_gap_event_never_fires(self):
        """02:30 does not exist in New York on 2024-03-10."""
        catalog = [event(date="2024-03-10", start="02:30")]
        start = utc(2024, 3, 10, 5, 0)  # 00:00 EST
        for minute in range(0, 120):
            clock = clock_at(start + timedelta(minutes=minute), tz="America/New_York")
            assert find_due(clock.now(), 5, catalog, set(), clock) == []

    def test_dedup_key_format(self, bogota_clock):
        target = bogota_clock.add_minutes(bogota_clock.now(), 5)

        assert dedup_key(target, event(subject="Cálculo", teacher="Peña")) == (
            "2024-05-01 09:05|Cálculo|Peña"
        )


class TestMatchEngine:
    @pytest.mark.parametrize("lead", [0, -1, 61])
    def test_lead_out_of_range(self, bogota_clock, lead):
        with pytest.raises(ConfigError):
            MatchEngine(bogota_clock, lead)

    @pytest.mark.parametrize("lead", [1, 60])
    def test_lead_bounds_accepted(self, bogota_clock, lead):
        assert MatchEngine(bogota_clock, lead).lead_minutes == lead

    def test_find_due_uses_bound_lead(self, bogota_clock):
        engine = MatchEngine(bogota_clock, 10)

        due = engine.find_due(bogota_clock.now(), [event(start="09:10")], set())

        assert [d.key for d in due] == ["2024-05-01 09:10|Math|Ana"]
