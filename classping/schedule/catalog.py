"""Event catalog: the class timetable read from schedule.json."""

from __future__ import annotations

import json
import re
from datetime import date as _date_type
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from classping.errors import CatalogMalformed, CatalogMissing

_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class Event(BaseModel):
    """One scheduled class.

    Frozen: the engine never mutates catalog entries. Extra keys in the
    source record are ignored so the timetable can carry notes.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    date: str  # YYYY-MM-DD
    start: str  # HH:MM (24h)
    subject: str
    teacher: str

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        if not _DATE_RE.match(v):
            raise ValueError(f"Invalid date format {v!r}: expected YYYY-MM-DD")
        try:
            _date_type.fromisoformat(v)
        except ValueError:
            raise ValueError(f"Invalid calendar date {v!r}")
        return v

    @field_validator("start")
    @classmethod
    def validate_start(cls, v: str) -> str:
        if not _HHMM_RE.match(v):
            raise ValueError(f"start must be HH:MM (24-hour), got {v!r}")
        return v

    @property
    def identity(self) -> tuple[str, str, str, str]:
        return (self.date, self.start, self.subject, self.teacher)


class EventCatalog:
    """Loads the ordered list of events from a JSON array file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> list[Event]:
        """Load and validate every event, preserving file order.

        Raises:
            CatalogMissing: The file does not exist.
            CatalogMalformed: Not JSON, not a list, or any record invalid.
        """
        if not self.path.exists():
            raise CatalogMissing(f"Catalog not found: {self.path}")

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CatalogMalformed(f"Cannot parse {self.path}: {e}") from e

        if not isinstance(raw, list):
            raise CatalogMalformed(
                f"{self.path} must be a JSON array of events, got {type(raw).__name__}"
            )

        events: list[Event] = []
        for i, item in enumerate(raw):
            if not isinstance(item, dict):
                raise CatalogMalformed(f"Event #{i} is not an object: {item!r}")
            try:
                events.append(Event.model_validate(item))
            except ValidationError as e:
                raise CatalogMalformed(f"Event #{i} is invalid: {e}") from e

        logger.debug(f"[Catalog] Loaded {len(events)} event(s) from {self.path}")
        return events
