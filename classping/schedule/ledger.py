"""Dedup ledger: which reminders have already fired.

The ledger is a single JSON object ``{dedup_key: record}`` owned exclusively
by this process. It is read whole at the start of every tick and rewritten
whole after every dispatched event.

DESIGN: Deleting the file is safe. The only consequence is that reminders
still inside their match window may fire again.
"""

from __future__ import annotations

import json
import os
import stat
import tempfile
from pathlib import Path
from typing import Iterator

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from classping.errors import LedgerReadError, LedgerWriteError

# Mode for a newly created ledger; an existing file keeps its own.
LEDGER_FILE_MODE = 0o644


class DeliveryRecord(BaseModel):
    """One fired reminder.

    Serialised with camelCase ``sentAt`` / ``targetAt`` so ledgers written by
    earlier versions of the bot load unchanged.
    """

    model_config = ConfigDict(populate_by_name=True)

    key: str = ""
    sent_at: str = Field(alias="sentAt")  # YYYY-MM-DD HH:MM, local zone
    target_at: str = Field(alias="targetAt")  # YYYY-MM-DD HH:MM, local zone
    subject: str
    teacher: str
    delivered: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, exclude={"key"})


class DedupLedger:
    """File-backed idempotency store keyed by dedup key."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._records: dict[str, DeliveryRecord] = {}

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def load(self) -> dict[str, DeliveryRecord]:
        """Load the whole ledger from disk.

        Missing file → empty. Unparseable file → warning and empty.
        Malformed entries are skipped individually.
        """
        self._records = {}
        if not self.path.exists():
            return dict(self._records)

        try:
            raw = self._read_raw()
        except LedgerReadError as e:
            logger.warning(f"[Ledger] {e}; continuing with an empty ledger")
            return dict(self._records)

        for key, value in raw.items():
            if not isinstance(value, dict):
                logger.warning(f"[Ledger] Skip {key!r}: entry is not an object")
                continue
            try:
                self._records[key] = DeliveryRecord.model_validate({**value, "key": key})
            except ValidationError as e:
                logger.warning(f"[Ledger] Skip {key!r}: {e.error_count()} invalid field(s)")

        return dict(self._records)

    def _read_raw(self) -> dict:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise LedgerReadError(f"Cannot parse {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise LedgerReadError(f"{self.path} is not a JSON object")
        return data

    def contains(self, key: str) -> bool:
        return key in self._records

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def keys(self) -> list[str]:
        return list(self._records)

    def get(self, key: str) -> DeliveryRecord | None:
        return self._records.get(key)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def commit(self, record: DeliveryRecord) -> None:
        """Insert or overwrite ``record`` and rewrite the file atomically.

        On failure the in-memory state is rolled back, so ``contains`` keeps
        reporting what is actually on disk.

        Raises:
            LedgerWriteError: The file could not be written or replaced.
        """
        if not record.key:
            raise LedgerWriteError("DeliveryRecord.key must not be empty")

        previous = self._records.get(record.key)
        self._records[record.key] = record
        try:
            self._write_atomic()
        except LedgerWriteError:
            if previous is None:
                self._records.pop(record.key, None)
            else:
                self._records[record.key] = previous
            raise

    def _write_atomic(self) -> None:
        """Write to a temp file in the same directory, then replace."""
        payload = {key: rec.to_json() for key, rec in self._records.items()}
        tmp_path: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            if self.path.exists():
                os.chmod(tmp_path, stat.S_IMODE(self.path.stat().st_mode))
            else:
                os.chmod(tmp_path, LEDGER_FILE_MODE)
            Path(tmp_path).replace(self.path)
            tmp_path = None
        except OSError as e:
            raise LedgerWriteError(f"Cannot write {self.path}: {e}") from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
