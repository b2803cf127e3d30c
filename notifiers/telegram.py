# notifiers/telegram.py
import logging
from typing import Optional

from telegram import Bot
from telegram.error import TelegramError

from notifiers.base import BaseNotifier

logger = logging.getLogger(__name__)


class TelegramNotifier(BaseNotifier):
    def __init__(self, token: str, chat_id: str, bot: Optional[Bot] = None):
        self.chat_id = chat_id
        self.bot = bot or Bot(token=token)
        self._ready = False

    async def _ensure_ready(self) -> bool:
        if self._ready:
            return True
        try:
            await self.bot.initialize()
        except TelegramError as exc:
            logger.warning("Telegram init failed, skipping message: %s", exc)
            return False
        self._ready = True
        return True

    async def send(self, text: str) -> None:
        if not await self._ensure_ready():
            return
        try:
            await self.bot.send_message(chat_id=self.chat_id, text=text)
        except TelegramError as exc:
            logger.warning("Telegram send failed: %s", exc)

    async def close(self) -> None:
        if self._ready:
            await self.bot.shutdown()
            self._ready = False
