"""Dry-run notifier: logs reminders instead of sending them."""

from loguru import logger

from classping.channels.base import BaseNotifier, ConnectionState, TargetInfo


class ConsoleNotifier(BaseNotifier):
    """Always-ready notifier used for ``channel.kind = "console"`` and checks."""

    name = "console"

    def __init__(self, targets: list[str] | None = None):
        super().__init__()
        self.targets = list(targets or [])
        self.sent: list[tuple[str, str]] = []

    async def start(self) -> None:
        self.connection.transition(ConnectionState.AUTHENTICATED)
        self.connection.transition(ConnectionState.READY)

    async def stop(self) -> None:
        self.connection.reset()

    async def list_targets(self) -> list[TargetInfo]:
        return [await self.resolve_target(t) for t in self.targets]

    async def resolve_target(self, target_id: str) -> TargetInfo:
        return TargetInfo(id=target_id, name=target_id, is_group=target_id.endswith("@g.us"))

    async def send_message(self, target_id: str, text: str) -> None:
        self._require_ready(target_id)
        self.sent.append((target_id, text))
        logger.info(f"[Console] -> {target_id}\n{text}")
