"""
Telegram notifications for fleetswap.
Best effort: failures are logged and reported as False, never raised.
"""

import asyncio
import html
from typing import Optional
import aiohttp
import structlog

from .config import Config
from .models import DetectedTrade, TransactionRecord

logger = structlog.get_logger()


def _short(value: str, n: int = 8) -> str:
    return f"{value[:n]}..."


class TelegramNotifier:
    """Telegram bot for sending alerts."""

    def __init__(self, bot_token: Optional[str], chat_id: Optional[str]):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.api_url = f"https://api.telegram.org/bot{bot_token}"
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10))
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def send_message(
        self,
        text: str,
        parse_mode: str = "HTML",
        disable_notification: bool = False
    ) -> bool:
        """Send a message to the configured chat."""
        if not self.enabled:
            return False

        session = await self._get_session()

        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": parse_mode,
            "disable_notification": disable_notification
        }

        try:
            async with session.post(
                f"{self.api_url}/sendMessage",
                json=payload
            ) as response:
                if response.status == 200:
                    return True
                error = await response.text()
                logger.warning("telegram_send_failed", status=response.status, error=error[:100])
                return False

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("telegram_error", error=str(e))
            return False

    async def notify_trade_detected(self, trade: DetectedTrade) -> bool:
        return await self.send_message(
            f"🔍 <b>TRADE DETECTED</b>\n"
            f"{trade.direction.value.upper()} on {trade.dex}\n"
            f"Token: <code>{_short(trade.token_mint)}</code>\n"
            f"Amount: {trade.amount_sol:.4f} SOL\n"
            f"Target: <code>{_short(trade.target_wallet)}</code>"
        )

    async def notify_tx_confirmed(self, record: TransactionRecord) -> bool:
        return await self.send_message(
            f"✅ <b>TX CONFIRMED</b>\n"
            f"{record.direction.value.upper()} {record.amount_sol:.4f} SOL\n"
            f"Token: <code>{_short(record.token_mint)}</code>\n"
            f"DEX: {record.dex} | Mode: {record.bot_mode.value}\n"
            f"Sig: <code>{_short(record.signature, 12)}</code>"
        )

    async def notify_tx_failed(self, record: TransactionRecord) -> bool:
        return await self.send_message(
            f"❌ <b>TX FAILED</b>\n"
            f"{record.direction.value.upper()} {record.amount_sol:.4f} SOL\n"
            f"Token: <code>{_short(record.token_mint)}</code>\n"
            f"DEX: {record.dex} | Mode: {record.bot_mode.value}\n"
            f"Error: {html.escape(record.error or 'Unknown')}"
        )

    async def notify_bot_started(self, mode: str) -> bool:
        return await self.send_message(f"🚀 <b>BOT STARTED</b>\nMode: {mode}")

    async def notify_bot_stopped(self, mode: str) -> bool:
        return await self.send_message(f"🛑 <b>BOT STOPPED</b>\nMode: {mode}")

    async def notify_bot_error(self, mode: str, error: str) -> bool:
        return await self.send_message(
            f"⚠️ <b>BOT ERROR</b>\nMode: {mode}\nError: {html.escape(error)}",
        )


def create_notifier(config: Config) -> TelegramNotifier:
    """Factory function; a notifier without credentials is a silent no-op."""
    notifier = TelegramNotifier(config.telegram_bot_token, config.telegram_chat_id)
    if not notifier.enabled:
        logger.info("telegram_disabled")
    return notifier
