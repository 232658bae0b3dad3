"""Telegram notifications for sniper lifecycle events."""

import httpx
import structlog

from ..core.interfaces import AlertSink

logger = structlog.get_logger(__name__)

# Telegram rejects messages longer than 4096 characters
MAX_MESSAGE_LENGTH = 4000
TRUNCATION_SUFFIX = "\n... (truncated)"


class TelegramApiError(Exception):
    """The Bot API answered with ok=false."""


def truncate_message(message: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    """Cut ``message`` to ``limit`` characters, marking the cut."""
    if len(message) <= limit:
        return message
    return message[:limit] + TRUNCATION_SUFFIX


class TelegramAlertSink(AlertSink):
    """Sends HTML-formatted alerts to every operator chat.

    Delivery failures are logged per chat and never raised, so an
    unreachable Telegram cannot stall trading.
    """

    def __init__(
        self,
        bot_token: str,
        admin_user_ids: list[int],
        session: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the sink.

        Args:
            bot_token: Telegram bot token
            admin_user_ids: Chat ids of the operators
            session: Optional HTTP session
        """
        self.admin_user_ids = admin_user_ids
        self.session = session or httpx.AsyncClient(timeout=10.0)
        self.base_url = f"https://api.telegram.org/bot{bot_token}"

        logger.info("Telegram alerts enabled", admin_count=len(admin_user_ids))

    async def push(self, message: str) -> None:
        if not self.admin_user_ids:
            logger.warning("No Telegram chats configured, alert dropped")
            return

        text = truncate_message(message)
        failed = []
        for chat_id in self.admin_user_ids:
            try:
                await self._deliver(chat_id, text)
            except (httpx.HTTPError, TelegramApiError) as e:
                failed.append(chat_id)
                logger.error(
                    "Alert delivery failed",
                    chat_id=chat_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        logger.debug(
            "Alert pushed",
            delivered=len(self.admin_user_ids) - len(failed),
            failed=len(failed),
        )

    async def _deliver(self, chat_id: int, text: str) -> None:
        """Post one sendMessage call.

        Raises:
            httpx.HTTPError: On transport or HTTP status failures
            TelegramApiError: When the API reports ok=false
        """
        response = await self.session.post(
            f"{self.base_url}/sendMessage",
            json={
                "chat_id": chat_id,
                "text": text,
                "parse_mode": "HTML",
                "disable_web_page_preview": True,
            },
        )
        response.raise_for_status()

        body = response.json()
        if not body.get("ok"):
            raise TelegramApiError(body.get("description", "Unknown error"))

    async def close(self) -> None:
        await self.session.aclose()
        logger.info("Telegram alerts closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
