"""Telegram delivery for RangeTrack notifications (implements NotificationPort)."""

from __future__ import annotations

import logging

from telegram import Bot
from telegram.error import TelegramError

logger = logging.getLogger(__name__)

# Telegram rejects messages longer than this
MAX_MESSAGE_LENGTH = 4096


class TelegramNotifier:
    """Sends digests and alerts through a telegram.Bot."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(self, user_id: int, text: str) -> None:
        for start in range(0, max(len(text), 1), MAX_MESSAGE_LENGTH):
            try:
                await self._bot.send_message(
                    chat_id=user_id, text=text[start:start + MAX_MESSAGE_LENGTH],
                )
            except TelegramError as exc:
                logger.error("Telegram send to %d failed: %s", user_id, exc)
                raise
