"""Telegram notifications for operators (sync failures, degraded basket)."""

import asyncio
import logging
from typing import Optional

from telegram import Bot
from telegram.error import TelegramError

from etf_backend.config import settings

logger = logging.getLogger(__name__)

_notifier_instance: Optional["TelegramNotifier"] = None


class TelegramNotifier:
    """Push-only bot: sends messages to a fixed set of chat IDs."""

    def __init__(self, token: str, chat_ids: list[int], bot: Bot | None = None):
        self.chat_ids = set(chat_ids)
        self._bot = bot or Bot(token=token)

    async def send_notification(self, message: str):
        """Send a message to all whitelisted chat IDs."""
        for chat_id in self.chat_ids:
            try:
                await self._bot.send_message(chat_id=chat_id, text=message)
            except TelegramError as e:
                logger.warning(f"Failed to send Telegram notification to {chat_id}: {e}")


def get_notifier() -> Optional[TelegramNotifier]:
    """Notifier singleton, or None when Telegram is not configured."""
    global _notifier_instance
    if _notifier_instance is None and settings.telegram_bot_token and settings.telegram_chat_ids:
        _notifier_instance = TelegramNotifier(
            token=settings.telegram_bot_token,
            chat_ids=settings.telegram_chat_ids,
        )
    return _notifier_instance


_pending: set[asyncio.Task] = set()


def notify(message: str):
    """Fire-and-forget operator notification; no-op when unconfigured."""
    notifier = get_notifier()
    if notifier is None:
        return
    task = asyncio.get_running_loop().create_task(notifier.send_notification(message))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
