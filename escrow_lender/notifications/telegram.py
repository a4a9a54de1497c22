"""Telegram notification service."""
import html
import logging
import ssl

import aiohttp
import certifi

from ..config import TelegramConfig

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Send reconciliation alerts via a Telegram bot."""

    def __init__(self, config: TelegramConfig) -> None:
        self.bot_token = config.alert_bot_token
        self.chat_id = config.chat_id

    async def send_alert(self, message: str, subject: str = "") -> bool:
        """Send alert; ``subject`` is prepended as a bold heading."""
        if not self.bot_token or not self.chat_id:
            logger.warning("Telegram credentials not configured")
            return False

        body = html.escape(message)
        text = f"<b>{html.escape(subject)}</b>\n\n{body}" if subject else body
        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "HTML",
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.post(url, json=payload) as response:
                if response.status == 200:
                    logger.info("Telegram alert sent")
                    return True
                logger.error("Failed to send Telegram message: %s", response.status)
                return False
