"""Reminder transports."""

from classping.channels.base import BaseNotifier, ConnectionState, TargetInfo
from classping.channels.manager import build_notifier

__all__ = ["BaseNotifier", "ConnectionState", "TargetInfo", "build_notifier"]
