"""Explicit routing between the bot's pages.

Pages are registered once at startup. Commands, button presses and text
replies all go through the Router, which checks who is asking before any
page code runs.
"""

from __future__ import annotations

import logging

from telegram import InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from config import Settings
from alp_bot.expenses.errors import ExpenseError
from alp_bot.handlers.base import PageController, button, parse_callback_data, show
from alp_bot.services.api import APIError
from alp_bot.services.users import UserContext, UserDirectory

logger = logging.getLogger(__name__)

MENU_ROUTE = "menu"
ACTIVE_PAGE_KEY = "active_page"

NOT_AUTHORIZED_MESSAGE = "Sorry, you're not authorized to use this bot."
DIRECTOR_ONLY_MESSAGE = "This page is available to directors only."
UNKNOWN_PAGE_MESSAGE = "Unknown page."
UNEXPECTED_ERROR_MESSAGE = "Something went wrong. Please try again."
TEXT_HINT_MESSAGE = "Use /start to open the menu."
DOCUMENT_HINT_MESSAGE = "Open the bank import page (/bank) before sending a statement."


class RouteNotFoundError(LookupError):
    pass


class AccessDeniedError(PermissionError):
    pass


class Router:
    def __init__(self, users: UserDirectory, settings: Settings):
        self.users = users
        self.settings = settings
        self.pages: dict[str, PageController] = {}

    def register(self, page: PageController) -> PageController:
        if not page.name or page.name == MENU_ROUTE:
            raise ValueError(f"Invalid page name: {page.name!r}")
        if page.name in self.pages:
            raise ValueError(f"Page already registered: {page.name}")
        self.pages[page.name] = page
        return page

    def resolve(self, name: str, user: UserContext) -> PageController:
        page = self.pages.get(name)
        if page is None:
            raise RouteNotFoundError(name)
        if page.director_only and not user.is_director:
            raise AccessDeniedError(name)
        return page

    def pages_for(self, user: UserContext) -> list[PageController]:
        return [p for p in self.pages.values() if user.is_director or not p.director_only]

    # --- Menu ---

    def menu_text(self, user: UserContext) -> str:
        lines = [f"{self.settings.app_name}", f"{user.name} ({user.role_display})", ""]
        for page in self.pages_for(user):
            commands = " ".join(f"/{c}" for c in page.commands)
            lines.append(f"{page.title}: {commands}")
        return "\n".join(lines)

    def menu_keyboard(self, user: UserContext) -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup([[button(p.title, p.name, "open")] for p in self.pages_for(user)])

    async def show_menu(self, update: Update, context: ContextTypes.DEFAULT_TYPE, user: UserContext):
        context.user_data.pop(ACTIVE_PAGE_KEY, None)
        await show(update, self.menu_text(user), self.menu_keyboard(user))

    # --- Navigation ---

    async def navigate(self, update: Update, context: ContextTypes.DEFAULT_TYPE, user: UserContext,
                       route: str, args: list[str] | None = None):
        # Pages may redirect (e.g. to the balance page after saving); follow a few hops at most
        for _ in range(5):
            if route == MENU_ROUTE:
                await self.show_menu(update, context, user)
                return
            page = self.resolve(route, user)
            context.user_data[ACTIVE_PAGE_KEY] = page.name
            next_route = await page.load(update, context, user, args or [])
            if not next_route:
                return
            route, args = next_route, []
        logger.warning(f"Too many redirects, stopping at {route}")

    def current_user(self, update: Update) -> UserContext | None:
        tg_user = update.effective_user
        if tg_user is None:
            return None
        return self.users.get(tg_user.id)

    async def _guarded(self, update: Update, action):
        """Run a page action and turn failures into chat replies."""
        try:
            await action()
        except AccessDeniedError:
            await update.effective_chat.send_message(DIRECTOR_ONLY_MESSAGE)
        except RouteNotFoundError as e:
            logger.warning(f"Unknown route requested: {e}")
            await update.effective_chat.send_message(UNKNOWN_PAGE_MESSAGE)
        except APIError as e:
            logger.error(f"Backend error ({e.status}): {e.message}", exc_info=True)
            await update.effective_chat.send_message(f"❌ {e.message}")
        except ExpenseError as e:
            await update.effective_chat.send_message(f"❌ {e}")
        except Exception as e:
            logger.error(f"Error handling update: {e}", exc_info=True)
            await update.effective_chat.send_message(UNEXPECTED_ERROR_MESSAGE)

    # --- Telegram handlers ---

    async def cmd_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /start, /help and /menu."""
        user = self.current_user(update)
        if user is None:
            await update.message.reply_text(NOT_AUTHORIZED_MESSAGE)
            return
        await self.show_menu(update, context, user)

    def command_handler(self, page: PageController, command: str):
        async def handle(update: Update, context: ContextTypes.DEFAULT_TYPE):
            user = self.current_user(update)
            if user is None:
                await update.message.reply_text(NOT_AUTHORIZED_MESSAGE)
                return
            args = list(context.args or [])

            async def run():
                target = self.resolve(page.name, user)
                context.user_data[ACTIVE_PAGE_KEY] = target.name
                next_route = await target.handle_command(update, context, user, command, args)
                if next_route:
                    await self.navigate(update, context, user, next_route)

            await self._guarded(update, run)

        return handle

    async def on_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()

        user = self.current_user(update)
        if user is None:
            logger.warning(f"Unauthorized button press from {query.from_user.id}")
            return

        route, action, args = parse_callback_data(query.data)

        async def run():
            if route == MENU_ROUTE:
                await self.show_menu(update, context, user)
                return
            if action == "open":
                await self.navigate(update, context, user, route, args)
                return
            page = self.resolve(route, user)
            context.user_data[ACTIVE_PAGE_KEY] = page.name
            next_route = await page.handle_callback(update, context, user, action, args)
            if next_route:
                await self.navigate(update, context, user, next_route)

        await self._guarded(update, run)

    async def on_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = self.current_user(update)
        if user is None:
            await update.message.reply_text(NOT_AUTHORIZED_MESSAGE)
            return

        text = (update.message.text or "").strip()
        active = context.user_data.get(ACTIVE_PAGE_KEY)
        if not active:
            await update.message.reply_text(TEXT_HINT_MESSAGE)
            return

        async def run():
            page = self.resolve(active, user)
            if not await page.handle_text(update, context, user, text):
                await update.message.reply_text(TEXT_HINT_MESSAGE)

        await self._guarded(update, run)

    async def on_document(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = self.current_user(update)
        if user is None:
            await update.message.reply_text(NOT_AUTHORIZED_MESSAGE)
            return

        document = update.message.document
        active = context.user_data.get(ACTIVE_PAGE_KEY)
        if not active:
            await update.message.reply_text(DOCUMENT_HINT_MESSAGE)
            return

        async def run():
            page = self.resolve(active, user)
            if not await page.handle_document(update, context, user, document):
                await update.message.reply_text(DOCUMENT_HINT_MESSAGE)

        await self._guarded(update, run)

    def install(self, application: Application):
        for name in ("start", "help", MENU_ROUTE):
            application.add_handler(CommandHandler(name, self.cmd_start))
        for page in self.pages.values():
            for command in page.commands:
                application.add_handler(CommandHandler(command, self.command_handler(page, command)))
        application.add_handler(CallbackQueryHandler(self.on_callback))
        application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, self.on_text))
        application.add_handler(MessageHandler(filters.Document.ALL, self.on_document))
        logger.info(f"Router installed with pages: {', '.join(self.pages)}")
