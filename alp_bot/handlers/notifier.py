"""Sends user-facing notifications into the Telegram chat."""
import logging

from alp_bot.services.notifier import Notifier, Severity

logger = logging.getLogger(__name__)

SEVERITY_ICONS = {
    Severity.INFO: "ℹ️",
    Severity.SUCCESS: "✅",
    Severity.WARNING: "⚠️",
    Severity.ERROR: "❌",
}


def format_notification(message: str, severity: Severity = Severity.INFO) -> str:
    return f"{SEVERITY_ICONS[Severity(severity)]} {message}"


class TelegramNotifier(Notifier):
    """Notifier bound to one chat (anything with an async send_message)."""

    def __init__(self, chat):
        self.chat = chat

    async def notify(self, message: str, severity: Severity = Severity.INFO):
        try:
            await self.chat.send_message(format_notification(message, severity))
        except Exception as e:
            # The chat is gone or Telegram is down; the message still reaches the log
            logger.error(f"Failed to notify chat {getattr(self.chat, 'id', '?')}: {e}", exc_info=True)
