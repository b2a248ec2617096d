"""Telegram notifier using python-telegram-bot."""

from __future__ import annotations

from loguru import logger
from telegram import Bot
from telegram.constants import ChatType, ParseMode
from telegram.error import BadRequest
from telegram.request import HTTPXRequest

from classping.channels.base import BaseNotifier, ConnectionState, TargetInfo
from classping.config.schema import TelegramConfig
from classping.errors import DeliveryError


def _chat_id(target_id: str) -> int | str:
    """Numeric ids go to the API as ints; ``@channelname`` stays a string."""
    stripped = target_id.strip()
    if stripped.lstrip("-").isdigit():
        return int(stripped)
    return stripped


class TelegramNotifier(BaseNotifier):
    """
    Telegram delivery through the Bot API.

    There is no QR pairing: a valid token goes straight to AUTHENTICATED and
    then READY once ``get_me`` succeeds. The Bot API cannot enumerate chats,
    so ``list_targets`` resolves the configured recipient ids.
    """

    name = "telegram"

    def __init__(self, config: TelegramConfig, targets: list[str] | None = None):
        super().__init__()
        self.config = config
        self.targets = list(targets or [])
        self._bot: Bot | None = None
        self._chats: dict[str, TargetInfo] = {}

    async def start(self) -> None:
        """Initialise the bot. Failures are logged; the notifier stays disconnected."""
        if not self.config.token:
            logger.error("[Telegram] Bot token not configured")
            return

        request = HTTPXRequest(proxy=self.config.proxy) if self.config.proxy else None
        self._bot = Bot(token=self.config.token, request=request)
        try:
            await self._bot.initialize()
            self.connection.transition(ConnectionState.AUTHENTICATED)
            me = await self._bot.get_me()
        except Exception as e:
            logger.error(f"[Telegram] Could not connect: {e}")
            self.connection.reset()
            return

        logger.info(f"[Telegram] Bot @{me.username} connected")
        self.connection.transition(ConnectionState.READY)

    async def stop(self) -> None:
        """Shut the bot's HTTP client down."""
        if self._bot:
            logger.info("[Telegram] Stopping bot...")
            try:
                await self._bot.shutdown()
            except Exception as e:
                logger.debug(f"[Telegram] Shutdown error: {e}")
            self._bot = None
        self.connection.reset()

    async def list_targets(self) -> list[TargetInfo]:
        found: list[TargetInfo] = []
        for target_id in self.targets:
            try:
                found.append(await self.resolve_target(target_id))
            except DeliveryError as e:
                logger.warning(f"[Telegram] Cannot resolve {target_id}: {e.reason}")
        return found

    async def resolve_target(self, target_id: str) -> TargetInfo:
        cached = self._chats.get(target_id)
        if cached is not None:
            return cached
        self._require_ready(target_id)

        try:
            chat = await self._bot.get_chat(chat_id=_chat_id(target_id))
        except Exception as e:
            raise DeliveryError(target_id, f"chat lookup failed: {e}") from e

        name = chat.title or chat.full_name or chat.username or target_id
        target = TargetInfo(
            id=target_id,
            name=name,
            is_group=chat.type in (ChatType.GROUP, ChatType.SUPERGROUP),
        )
        self._chats[target_id] = target
        return target

    async def send_message(self, target_id: str, text: str) -> None:
        """Send with Markdown (``*bold*``), falling back to plain text."""
        self._require_ready(target_id)

        chat_id = _chat_id(target_id)
        try:
            await self._bot.send_message(chat_id=chat_id, text=text, parse_mode=ParseMode.MARKDOWN)
        except BadRequest as e:
            logger.warning(f"[Telegram] Markdown rejected for {target_id}, sending plain text: {e}")
            await self._bot.send_message(chat_id=chat_id, text=text)
