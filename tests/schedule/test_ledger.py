"""Unit tests for DedupLedger persistence."""

import json
import os
import stat
from unittest.mock import patch

import pytest

from classping.errors import LedgerWriteError
from classping.schedule.ledger import LEDGER_FILE_MODE, DedupLedger, DeliveryRecord

KEY = "2024-05-01 09:05|Math|Ana"


def make_record(key=KEY, delivered=("g1@g.us",), failed=()):
    return DeliveryRecord(
        key=key,
        sent_at="2024-05-01 09:00",
        target_at="2024-05-01 09:05",
        subject="Math",
        teacher="Ana",
        delivered=list(delivered),
        failed=list(failed),
    )


# ============================================================================
# Load
# ============================================================================


class TestLoad:
    def test_missing_file_is_empty(self, ledger_file):
        ledger = DedupLedger(ledger_file)

        assert ledger.load() == {}
        assert len(ledger) == 0
        assert not ledger_file.exists()

    def test_reads_camel_case_entries(self, ledger_file):
        ledger_file.write_text(
            json.dumps({KEY: {"sentAt": "2024-05-01 09:00", "targetAt": "2024-05-01 09:05",
                              "subject": "Math", "teacher": "Ana"}}),
            encoding="utf-8",
        )
        ledger = DedupLedger(ledger_file)

        records = ledger.load()

        assert KEY in ledger
        assert records[KEY].key == KEY
        assert records[KEY].target_at == "2024-05-01 09:05"
        assert records[KEY].delivered == []

    def test_corrupt_file_degrades_to_empty(self, ledger_file):
        ledger_file.write_text("][", encoding="utf-8")

        ledger = DedupLedger(ledger_file)

        assert ledger.load() == {}

    def test_non_object_root_degrades_to_empty(self, ledger_file):
        ledger_file.write_text("[1, 2]", encoding="utf-8")

        assert DedupLedger(ledger_file).load() == {}

    def test_invalid_entries_skipped(self, ledger_file):
        ledger_file.write_text(
            json.dumps({
                KEY: {"sentAt": "a", "targetAt": "b", "subject": "Math", "teacher": "Ana"},
                "bad|entry": "not an object",
                "partial|entry": {"sentAt": "a"},
            }),
            encoding="utf-8",
        )

        ledger = DedupLedger(ledger_file)
        ledger.load()

        assert ledger.keys() == [KEY]


# ============================================================================
# Commit
# ============================================================================


class TestCommit:
    def test_commit_persists_and_reloads(self, ledger_file):
        ledger = DedupLedger(ledger_file)
        ledger.load()

        ledger.commit(make_record(failed=["g2@g.us"]))

        on_disk = json.loads(ledger_file.read_text(encoding="utf-8"))
        assert on_disk == {
            KEY: {
                "sentAt": "2024-05-01 09:00",
                "targetAt": "2024-05-01 09:05",
                "subject": "Math",
                "teacher": "Ana",
                "delivered": ["g1@g.us"],
                "failed": ["g2@g.us"],
            }
        }

        fresh = DedupLedger(ledger_file)
        fresh.load()
        assert fresh.contains(KEY)

    def test_commit_keeps_existing_entries(self, ledger_file):
        ledger = DedupLedger(ledger_file)
        ledger.load()
        ledger.commit(make_record())

        ledger.commit(make_record(key="2024-05-01 10:00|Art|Bo"))

        fresh = DedupLedger(ledger_file)
        fresh.load()
        assert set(fresh) == {KEY, "2024-05-01 10:00|Art|Bo"}

    def test_no_temp_files_left_behind(self, ledger_file):
        ledger = DedupLedger(ledger_file)
        ledger.commit(make_record())

        assert [p.name for p in ledger_file.parent.iterdir()] == [ledger_file.name]

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "sent_log.json"

        DedupLedger(path).commit(make_record())

        assert path.exists()

    def test_empty_key_rejected(self, ledger_file):
        with pytest.raises(LedgerWriteError):
            DedupLedger(ledger_file).commit(make_record(key=""))

    def test_failed_write_rolls_back_memory(self, ledger_file):
        ledger = DedupLedger(ledger_file)
        ledger.load()

        with patch("classping.schedule.ledger.os.fsync", side_effect=OSError("disk full")):
            with pytest.raises(LedgerWriteError):
                ledger.commit(make_record())

        assert KEY not in ledger
        assert not ledger_file.exists()
        assert list(ledger_file.parent.iterdir()) == []

    def test_failed_write_preserves_previous_file(self, ledger_file):
        ledger = DedupLedger(ledger_file)
        ledger.commit(make_record())
        before = ledger_file.read_text(encoding="utf-8")

        with patch("classping.schedule.ledger.os.fsync", side_effect=OSError("disk full")):
            with pytest.raises(LedgerWriteError):
                ledger.commit(make_record(key="2024-05-01 10:00|Art|Bo"))

        assert ledger_file.read_text(encoding="utf-8") == before
        assert ledger.keys() == [KEY]


@pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
class TestFileMode:
    def test_existing_mode_survives_commit(self, ledger_file):
        ledger = DedupLedger(ledger_file)
        ledger.commit(make_record())
        ledger_file.chmod(0o640)

        ledger.commit(make_record(key="2024-05-01 10:00|Art|Bo"))

        assert stat.S_IMODE(ledger_file.stat().st_mode) == 0o640

    def test_new_ledger_is_not_private_temp_mode(self, ledger_file):
        DedupLedger(ledger_file).commit(make_record())

        assert stat.S_IMODE(ledger_file.stat().st_mode) == LEDGER_FILE_MODE
