"""Notification service for sending deploy announcements to Telegram.

Configuration is passed explicitly (see deploy_cli.config.Settings).
Callers treat every failure as advisory: errors surface as NotificationError
so that the caller can downgrade them to a warning.
"""

from http import HTTPStatus

import aiohttp
import structlog

logger = structlog.get_logger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"

# Emoji mapping for severity levels
EMOJI_MAP = {
    "info": "ℹ️",
    "warning": "⚠️",
    "error": "❌",
    "success": "✅",
}


class NotificationError(Exception):
    """Raised when a notification could not be delivered."""

    pass


async def send_telegram_message(
    token: str,
    chat_id: str,
    text: str,
    parse_mode: str | None = None,
    api_url: str = TELEGRAM_API_URL,
) -> None:
    """Send a message to a Telegram chat via Bot API.

    Args:
        token: Telegram Bot API token
        chat_id: Target chat or user ID
        text: Message text
        parse_mode: Optional parse mode (Markdown or HTML)
        api_url: Bot API base URL

    Raises:
        NotificationError: If the token/chat is missing or delivery fails
    """
    if not token:
        raise NotificationError("TELEGRAM_BOT_TOKEN not configured")
    if not chat_id:
        raise NotificationError("DEPLOY_NOTIFY_CHAT_ID not configured")

    url = f"{api_url}/bot{token}/sendMessage"
    payload: dict[str, str] = {"chat_id": chat_id, "text": text}
    if parse_mode:
        payload["parse_mode"] = parse_mode

    try:
        async with aiohttp.ClientSession() as session:
            async with session.post(
                url, json=payload, timeout=aiohttp.ClientTimeout(total=10)
            ) as resp:
                if resp.status != HTTPStatus.OK:
                    error_text = await resp.text()
                    raise NotificationError(f"Telegram API returned {resp.status}: {error_text}")
    except TimeoutError as e:
        raise NotificationError("Telegram API request timed out") from e
    except aiohttp.ClientError as e:
        raise NotificationError(f"Telegram API request failed: {e}") from e

    logger.info("notification_sent", chat_id=chat_id)


def format_deploy_message(
    service_name: str,
    commit: str,
    previous_commit: str,
    version: str,
    changes: str,
) -> tuple[str, str]:
    """Build the (subject, body) pair announcing a deployment."""
    subject = f"Deploy: {service_name} {commit}"
    body = (
        f"Deployed {service_name} {commit} (was {previous_commit})\n\n"
        f"Version: {version}\n\n"
        f"Changes:\n{changes}"
    )
    return subject, body


class TelegramNotifier:
    """Sends deploy announcements to a single Telegram chat."""

    def __init__(self, token: str, chat_id: str, api_url: str = TELEGRAM_API_URL):
        self.token = token
        self.chat_id = chat_id
        self.api_url = api_url

    async def send_deploy_notification(
        self,
        service_name: str,
        commit: str,
        previous_commit: str,
        version: str,
        changes: str,
    ) -> None:
        subject, body = format_deploy_message(
            service_name, commit, previous_commit, version, changes
        )
        text = f"{EMOJI_MAP['success']} {subject}\n\n{body}"
        await send_telegram_message(self.token, self.chat_id, text, api_url=self.api_url)
