"""Telegram notification service for ledger events and reports."""
import html
import logging
import ssl

import aiohttp
import certifi

from ..config import TelegramConfig
from ..events import LedgerEvent
from ..models import ProtocolId

logger = logging.getLogger(__name__)


def format_amount(amount: int, symbol: str) -> str:
    return f"{amount:,} {symbol}"


def format_event(event: LedgerEvent, symbol: str) -> str:
    """One HTML line per ledger event: bold height/kind header, then details."""
    parts = [f"<b>#{event.block_height} {html.escape(event.kind)}</b>"]
    if event.principal:
        parts.append(html.escape(event.principal))
    if event.amount:
        parts.append(format_amount(event.amount, symbol))
    if event.protocol_id is not None:
        parts.append(f"→ {ProtocolId(event.protocol_id).label}")
    if "paused" in event.data:
        parts.append("ON" if event.data["paused"] else "OFF")
    if event.kind == "rate":
        parts.append(
            f"{event.data['old_rate'] / 100:.2f}% → {event.data['new_rate'] / 100:.2f}%"
        )
    if event.data.get("pooled") is False:
        parts.append("direct")
    return " · ".join(parts)


class TelegramNotifier:
    """Send ledger events and reports via Telegram bots.

    Messages are sent with HTML parse mode; callers pass text already
    escaped (see :func:`format_event`).
    """

    def __init__(self, config: TelegramConfig) -> None:
        self.alert_bot_token = config.alert_bot_token
        self.log_bot_token = config.log_bot_token
        self.chat_id = config.chat_id

    async def _send_message(
        self, message: str, bot_token: str, silent: bool = False
    ) -> bool:
        """Send Telegram message using specified bot."""
        if not bot_token or not self.chat_id:
            logger.warning("Telegram credentials not configured")
            return False

        url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": message,
            "parse_mode": "HTML",
            "disable_notification": silent,
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.post(url, json=payload) as response:
                if response.status == 200:
                    return True
                logger.error("Failed to send Telegram message: %s", response.status)
                return False

    async def send_alert(self, message: str, subject: str = "") -> bool:
        """Send an owner-facing alert (pause, rebalance, report) on the unmuted bot."""
        text = f"<b>{html.escape(subject)}</b>\n\n{message}" if subject else message
        if await self._send_message(text, self.alert_bot_token, silent=False):
            logger.info("Telegram alert sent")
            return True
        return False

    async def send_log(self, message: str, silent: bool = True) -> bool:
        """Send a ledger event line on the logs bot."""
        if await self._send_message(message, self.log_bot_token, silent=silent):
            logger.debug("Telegram log sent")
            return True
        return False
