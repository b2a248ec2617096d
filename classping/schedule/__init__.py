"""Lead-time matching, dedup and dispatch engine."""

from classping.schedule.catalog import Event, EventCatalog
from classping.schedule.clock import ClockSource, Moment
from classping.schedule.dispatcher import Dispatcher, build_message, greeting_by_hour
from classping.schedule.ledger import DedupLedger, DeliveryRecord
from classping.schedule.matcher import DueEvent, MatchEngine, dedup_key, find_due
from classping.schedule.ticker import TickScheduler

__all__ = [
    "ClockSource",
    "Moment",
    "Event",
    "EventCatalog",
    "DedupLedger",
    "DeliveryRecord",
    "DueEvent",
    "MatchEngine",
    "dedup_key",
    "find_due",
    "Dispatcher",
    "build_message",
    "greeting_by_hour",
    "TickScheduler",
]
