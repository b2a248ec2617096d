"""Notifier contract and connection lifecycle.

A notifier is the transport that actually delivers reminders. The scheduling
core only needs ``send_message`` to work once the connection is READY; the
other lifecycle states exist so the CLI can report pairing progress.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from loguru import logger

from classping.errors import NotifierUnavailable


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    PAIRING = "pairing"
    AUTHENTICATED = "authenticated"
    READY = "ready"


# Allowed transitions. DISCONNECTED → AUTHENTICATED covers a stored session
# that needs no QR scan.
_TRANSITIONS: dict[ConnectionState, set[ConnectionState]] = {
    ConnectionState.DISCONNECTED: {ConnectionState.PAIRING, ConnectionState.AUTHENTICATED},
    ConnectionState.PAIRING: {ConnectionState.AUTHENTICATED, ConnectionState.DISCONNECTED},
    ConnectionState.AUTHENTICATED: {ConnectionState.READY, ConnectionState.DISCONNECTED},
    ConnectionState.READY: {ConnectionState.DISCONNECTED},
}

StateCallback = Callable[[ConnectionState, ConnectionState], None]


@dataclass(frozen=True)
class TargetInfo:
    """A chat or group the notifier can deliver to."""

    id: str
    name: str
    is_group: bool = False


class ConnectionStateMachine:
    """Tracks the notifier's connection state and fans out change hooks."""

    def __init__(self, owner: str):
        self.owner = owner
        self.state = ConnectionState.DISCONNECTED
        self._callbacks: list[StateCallback] = []
        self._ready = asyncio.Event()

    def on_change(self, callback: StateCallback) -> None:
        self._callbacks.append(callback)

    def transition(self, new_state: ConnectionState) -> bool:
        """Move to ``new_state``. Returns False (and logs) if not allowed."""
        old = self.state
        if new_state == old:
            return True
        if new_state not in _TRANSITIONS[old]:
            logger.warning(f"[{self.owner}] Ignoring illegal transition {old.value} -> {new_state.value}")
            return False

        self.state = new_state
        if new_state == ConnectionState.READY:
            self._ready.set()
        else:
            self._ready.clear()
        logger.debug(f"[{self.owner}] {old.value} -> {new_state.value}")

        for callback in self._callbacks:
            try:
                callback(old, new_state)
            except Exception:
                logger.exception(f"[{self.owner}] State callback error")
        return True

    def reset(self) -> None:
        """Force DISCONNECTED from any state (connection dropped)."""
        if self.state != ConnectionState.DISCONNECTED:
            self.transition(ConnectionState.DISCONNECTED)

    async def wait_ready(self, timeout: float | None = None) -> bool:
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False


class BaseNotifier(ABC):
    """
    Abstract base class for reminder transports.

    Implementations connect in ``start`` and drive ``self.connection``
    through DISCONNECTED → (PAIRING) → AUTHENTICATED → READY.
    """

    name: str = "base"

    def __init__(self) -> None:
        self.connection = ConnectionStateMachine(self.name)

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    @property
    def is_ready(self) -> bool:
        return self.connection.state == ConnectionState.READY

    def on_state_change(self, callback: StateCallback) -> None:
        """Register a hook called with ``(old, new)`` on every transition."""
        self.connection.on_change(callback)

    async def wait_ready(self, timeout: float | None = None) -> bool:
        return await self.connection.wait_ready(timeout)

    @abstractmethod
    async def start(self) -> None:
        """Open the connection. Should return once the connection task runs."""

    @abstractmethod
    async def stop(self) -> None:
        """Close the connection (best effort)."""

    @abstractmethod
    async def list_targets(self) -> list[TargetInfo]:
        """Chats and groups the account can deliver to."""

    @abstractmethod
    async def resolve_target(self, target_id: str) -> TargetInfo:
        """Look up one target. Raises DeliveryError if it does not exist."""

    @abstractmethod
    async def send_message(self, target_id: str, text: str) -> None:
        """Deliver ``text`` to ``target_id``. Raises on failure."""

    def _require_ready(self, target_id: str) -> None:
        if not self.is_ready:
            raise NotifierUnavailable(target_id, f"{self.name} is {self.state.value}")
