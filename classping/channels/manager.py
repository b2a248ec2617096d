"""Builds the configured notifier."""

from __future__ import annotations

from typing import TYPE_CHECKING

from classping.channels.base import BaseNotifier

if TYPE_CHECKING:
    from classping.config.schema import Config


def build_notifier(config: Config) -> BaseNotifier:
    """Create the notifier named by ``channel.kind``.

    Transport libraries are imported only for the selected kind.
    """
    kind = config.channel.kind
    if kind == "whatsapp":
        from classping.channels.whatsapp import WhatsAppNotifier

        return WhatsAppNotifier(config.channel.whatsapp)
    if kind == "telegram":
        from classping.channels.telegram import TelegramNotifier

        return TelegramNotifier(config.channel.telegram, targets=config.recipients.targets)

    from classping.channels.console import ConsoleNotifier

    return ConsoleNotifier(targets=config.recipients.targets)
