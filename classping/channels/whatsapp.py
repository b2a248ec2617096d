"""WhatsApp notifier talking to a local WhatsApp Web bridge over websocket.

The bridge process owns the WhatsApp session (QR pairing, stored auth) and
relays JSON frames:

    bridge → us   {"type": "qr", "qr": "..."}
                  {"type": "status", "status": "authenticated" | "connected" | "disconnected", ...}
                  {"type": "chats", "requestId": "...", "chats": [{"id", "name", "isGroup"}]}
                  {"type": "chat", "requestId": "...", "chat": {...}}
                  {"type": "sent", "requestId": "..."}
                  {"type": "error", "requestId": "...", "error": "..."}

    us → bridge   {"type": "send", "requestId": "...", "to": "<chat id>", "text": "..."}
                  {"type": "list_chats", "requestId": "..."}
                  {"type": "get_chat", "requestId": "...", "chatId": "..."}

Group ids end in ``@g.us``; individual chats end in ``@c.us``.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any
from uuid import uuid4

import websockets
from loguru import logger

from classping.channels.base import BaseNotifier, ConnectionState, TargetInfo
from classping.config.schema import WhatsAppConfig
from classping.errors import DeliveryError, NotifierUnavailable

DEFAULT_REQUEST_TIMEOUT_S = 30.0
GROUP_SUFFIX = "@g.us"


def _target_from_payload(payload: dict) -> TargetInfo:
    chat_id = str(payload.get("id", ""))
    return TargetInfo(
        id=chat_id,
        name=str(payload.get("name") or chat_id),
        is_group=bool(payload.get("isGroup", chat_id.endswith(GROUP_SUFFIX))),
    )


class WhatsAppNotifier(BaseNotifier):
    """
    WhatsApp delivery through the websocket bridge.

    Handles:
    - connection + automatic reconnect
    - QR / auth status frames → connection state machine
    - request/response correlation for send, list_chats and get_chat
    """

    name = "whatsapp"

    def __init__(
        self,
        config: WhatsAppConfig,
        request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S,
    ):
        super().__init__()
        self.config = config
        self.request_timeout_s = request_timeout_s
        self._ws: Any | None = None
        self._running = False
        self._task: asyncio.Task | None = None
        self._pending: dict[str, asyncio.Future] = {}
        self._chats: dict[str, TargetInfo] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the bridge connection loop in the background."""
        if self._task:
            return
        self._running = True
        self._task = asyncio.create_task(self._connect_loop())

    async def stop(self) -> None:
        """Stop the bridge connection."""
        self._running = False
        if self._ws is not None:
            try:
                await self._ws.close()
            except Exception as e:
                logger.debug(f"[WhatsApp] Close error: {e}")
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.connection.reset()

    async def _connect_loop(self) -> None:
        while self._running:
            try:
                logger.info(f"[WhatsApp] Connecting to bridge at {self.config.bridge_url}...")
                async with websockets.connect(self.config.bridge_url) as ws:
                    self._ws = ws
                    async for raw in ws:
                        self._handle_frame(raw)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"[WhatsApp] Bridge error: {e}")
            finally:
                self._ws = None
                self._fail_pending("bridge connection closed")
                self.connection.reset()

            if self._running:
                logger.info(f"[WhatsApp] Reconnecting in {self.config.reconnect_delay_s:.0f}s...")
                await asyncio.sleep(self.config.reconnect_delay_s)

    # ------------------------------------------------------------------
    # Inbound frames
    # ------------------------------------------------------------------

    def _handle_frame(self, raw: str | bytes) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"[WhatsApp] Invalid JSON from bridge: {str(raw)[:100]}")
            return
        if not isinstance(data, dict):
            return

        msg_type = data.get("type")
        request_id = data.get("requestId")

        if request_id and request_id in self._pending:
            future = self._pending[request_id]
            if not future.done():
                future.set_result(data)
            return

        if msg_type == "qr":
            if self.state in (ConnectionState.AUTHENTICATED, ConnectionState.READY):
                self.connection.reset()
            self.connection.transition(ConnectionState.PAIRING)
            logger.info("[WhatsApp] Scan the QR code shown by the bridge (WhatsApp > Linked devices)")
        elif msg_type == "status":
            self._handle_status(data)
        elif msg_type == "error":
            logger.error(f"[WhatsApp] Bridge error: {data.get('error')}")
        else:
            logger.debug(f"[WhatsApp] Ignoring frame type {msg_type!r}")

    def _handle_status(self, data: dict) -> None:
        status = data.get("status")
        if status == "authenticated":
            self.connection.transition(ConnectionState.AUTHENTICATED)
            logger.info("[WhatsApp] Authenticated")
        elif status in ("connected", "ready"):
            if self.is_ready:
                return
            if self.state != ConnectionState.AUTHENTICATED:
                self.connection.transition(ConnectionState.AUTHENTICATED)
            self.connection.transition(ConnectionState.READY)
            logger.info("[WhatsApp] Ready")
        elif status in ("disconnected", "auth_failure"):
            self.connection.reset()
            self._chats.clear()
            logger.warning(f"[WhatsApp] {status}: {data.get('reason', '')}")

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ConnectionError(reason))
        self._pending.clear()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def _request(self, target_id: str, payload: dict) -> dict:
        """Send a frame and wait for the bridge reply with the same requestId."""
        self._require_ready(target_id)
        ws = self._ws
        if ws is None:
            raise NotifierUnavailable(target_id, "bridge not connected")

        request_id = uuid4().hex[:12]
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await ws.send(json.dumps({**payload, "requestId": request_id}))
            reply = await asyncio.wait_for(future, self.request_timeout_s)
        except asyncio.TimeoutError:
            raise DeliveryError(target_id, f"no reply from bridge in {self.request_timeout_s:.0f}s")
        except ConnectionError as e:
            raise NotifierUnavailable(target_id, str(e))
        finally:
            self._pending.pop(request_id, None)

        if reply.get("type") == "error":
            raise DeliveryError(target_id, str(reply.get("error") or "bridge error"))
        return reply

    async def list_targets(self) -> list[TargetInfo]:
        reply = await self._request("*", {"type": "list_chats"})
        targets = [_target_from_payload(c) for c in reply.get("chats", []) if isinstance(c, dict)]
        for target in targets:
            self._chats[target.id] = target
        return targets

    async def resolve_target(self, target_id: str) -> TargetInfo:
        cached = self._chats.get(target_id)
        if cached is not None:
            return cached
        reply = await self._request(target_id, {"type": "get_chat", "chatId": target_id})
        chat = reply.get("chat")
        if not isinstance(chat, dict):
            raise DeliveryError(target_id, "chat not found")
        target = _target_from_payload(chat)
        self._chats[target_id] = target
        return target

    async def send_message(self, target_id: str, text: str) -> None:
        await self._request(target_id, {"type": "send", "to": target_id, "text": text})
