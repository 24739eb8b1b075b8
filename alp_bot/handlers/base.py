"""Base class for the bot's pages and shared Telegram helpers.

A page is one screen of the app (new expense, invoices, tools and so on).
The Router owns the pages and calls into them; a page never looks up
another page directly. To move elsewhere it returns the route name.
"""

from __future__ import annotations

import logging
import os
import tempfile
from typing import Callable

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.error import BadRequest
from telegram.ext import ContextTypes

from config import Settings
from alp_bot.handlers.notifier import TelegramNotifier
from alp_bot.services.api import ExpenseBackend
from alp_bot.services.notifier import Notifier
from alp_bot.services.users import UserContext

logger = logging.getLogger(__name__)

# Telegram rejects callback_data longer than this
MAX_CALLBACK_BYTES = 64

NotifierFactory = Callable[[object], Notifier]


def callback_data(route: str, action: str, *args) -> str:
    """Encode "route:action:arg1:arg2" for an inline button."""
    data = ":".join([route, action, *(str(a) for a in args)])
    if len(data.encode("utf-8")) > MAX_CALLBACK_BYTES:
        raise ValueError(f"callback data too long: {data!r}")
    return data


def parse_callback_data(data: str) -> tuple[str, str, list[str]]:
    parts = (data or "").split(":")
    route = parts[0]
    action = parts[1] if len(parts) > 1 else ""
    return route, action, parts[2:]


def button(text: str, route: str, action: str, *args) -> InlineKeyboardButton:
    return InlineKeyboardButton(text, callback_data=callback_data(route, action, *args))


def back_to_menu_row() -> list[InlineKeyboardButton]:
    return [button("« Menu", "menu", "show")]


async def show(update: Update, text: str, keyboard: InlineKeyboardMarkup | None = None):
    """Edit the message behind a button press, or send a new one."""
    query = update.callback_query
    if query is not None and query.message is not None:
        try:
            await query.edit_message_text(text, reply_markup=keyboard)
            return
        except BadRequest as e:
            # "Message is not modified" and edits of old messages land here
            logger.debug(f"Edit failed, sending a new message: {e}")
    await update.effective_chat.send_message(text, reply_markup=keyboard)


async def download_document(context: ContextTypes.DEFAULT_TYPE, document, suffix: str = ".pdf") -> bytes:
    """Fetch an uploaded file through a temporary file and return its bytes."""
    file = await context.bot.get_file(document.file_id)
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
            tmp_path = tmp.name
        await file.download_to_drive(tmp_path)
        with open(tmp_path, "rb") as f:
            return f.read()
    finally:
        if tmp_path and os.path.exists(tmp_path):
            try:
                os.unlink(tmp_path)
            except OSError as e:
                logger.debug(f"Could not remove {tmp_path}: {e}")


class PageController:
    """One page of the bot. Subclasses set name/title and override the hooks."""

    name = ""
    title = ""
    commands: tuple[str, ...] = ()
    director_only = False

    def __init__(self, backend: ExpenseBackend, settings: Settings,
                 notifier_factory: NotifierFactory = TelegramNotifier):
        self.backend = backend
        self.settings = settings
        self.notifier_factory = notifier_factory

    @property
    def currency(self):
        return self.settings.currency

    def notifier_for(self, update: Update) -> Notifier:
        return self.notifier_factory(update.effective_chat)

    def session(self, context: ContextTypes.DEFAULT_TYPE) -> dict:
        """Per-user state of this page, kept in context.user_data."""
        return context.user_data.setdefault(f"page:{self.name}", {})

    def clear_session(self, context: ContextTypes.DEFAULT_TYPE):
        context.user_data.pop(f"page:{self.name}", None)

    async def load(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                   user: UserContext, args: list[str]) -> str | None:
        """Open the page. Returns a route name to move to, or None to stay."""
        raise NotImplementedError

    async def handle_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                             user: UserContext, command: str, args: list[str]) -> str | None:
        return await self.load(update, context, user, args)

    async def handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                              user: UserContext, action: str, args: list[str]) -> str | None:
        return None

    async def handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                          user: UserContext, text: str) -> bool:
        """Handle a plain text reply. Returns True when the text was consumed."""
        return False

    async def handle_document(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                              user: UserContext, document) -> bool:
        """Handle an uploaded file. Returns True when the file was consumed."""
        return False
