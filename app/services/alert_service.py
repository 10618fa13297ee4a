"""Alert service for sending ops notifications to Telegram."""

from typing import Optional

import httpx

from app.logging_config import get_logger

logger = get_logger("alert_service")

LEVEL_EMOJI = {"INFO": "ℹ️", "WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🔥"}


def format_alert(level: str, message: str, context: Optional[dict] = None) -> str:
    text = f"{LEVEL_EMOJI.get(level, '📢')} *{level}*\n\n{message}"
    if context:
        context_str = "\n".join(f"  {k}: {v}" for k, v in context.items())
        text += f"\n\n```\n{context_str}\n```"
    return text


class Alerter:
    """Posts alerts to the ops Telegram chat. Log-only when not configured."""

    def __init__(
        self,
        bot_token: Optional[str],
        chat_id: Optional[str],
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0,
    ):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.client = client or httpx.AsyncClient(timeout=timeout_seconds)

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    async def send_alert(self, level: str, message: str, context: Optional[dict] = None) -> bool:
        """Send alert to Telegram.

        Args:
            level: INFO, WARNING, ERROR, CRITICAL
            message: Alert message
            context: Optional context dict

        Returns:
            True if sent successfully
        """
        if not self.configured:
            logger.warning(f"Alert not configured: {level} - {message}", extra={"context": context or {}})
            return False

        try:
            response = await self.client.post(
                f"https://api.telegram.org/bot{self.bot_token}/sendMessage",
                json={"chat_id": self.chat_id, "text": format_alert(level, message, context), "parse_mode": "Markdown"},
            )
            return response.status_code == 200
        except Exception as e:
            logger.error(f"Failed to send alert: {e}")
            return False

    async def warning(self, message: str, context: Optional[dict] = None) -> bool:
        return await self.send_alert("WARNING", message, context)

    async def error(self, message: str, context: Optional[dict] = None) -> bool:
        return await self.send_alert("ERROR", message, context)

    async def critical(self, message: str, context: Optional[dict] = None) -> bool:
        return await self.send_alert("CRITICAL", message, context)

    async def aclose(self) -> None:
        await self.client.aclose()
