"""Main entry point for the site expense bot."""
import logging

from telegram.ext import Application

from config import Settings, load_settings
from alp_bot.logging_setup import configure_logging
from alp_bot.handlers.bank import BankImportPage
from alp_bot.handlers.dashboard import DashboardPage
from alp_bot.handlers.expense import NewExpensePage
from alp_bot.handlers.inventory import InventoryPage
from alp_bot.handlers.invoices import InvoicesPage
from alp_bot.handlers.objects import ObjectsPage
from alp_bot.handlers.router import Router
from alp_bot.handlers.technicians import TechniciansPage
from alp_bot.services.api import ExpenseBackend, HttpBackend
from alp_bot.services.demo_backend import InMemoryBackend
from alp_bot.services.users import UserDirectory

logger = logging.getLogger(__name__)


def build_backend(settings: Settings) -> ExpenseBackend:
    if settings.demo_mode:
        logger.warning("API_BASE_URL not set - running against in-memory demo data")
        return InMemoryBackend()
    logger.info(f"Using webhook backend at {settings.api_base_url}")
    return HttpBackend.from_settings(settings)


def build_router(settings: Settings, backend: ExpenseBackend) -> Router:
    router = Router(UserDirectory(settings), settings)
    for page_cls in (NewExpensePage, InvoicesPage, ObjectsPage, DashboardPage, TechniciansPage,
                     InventoryPage, BankImportPage):
        router.register(page_cls(backend, settings))
    return router


def main():
    """Start the bot."""
    configure_logging()
    settings = load_settings()

    if not settings.telegram_bot_token:
        logger.error("TELEGRAM_BOT_TOKEN not set. Please check your .env file.")
        return

    logger.info(f"Starting {settings.app_name} expense bot...")

    # Security warning if no user restrictions
    if not settings.allowed_user_ids and not settings.directors and not settings.technicians:
        logger.warning("=" * 60)
        logger.warning("SECURITY WARNING: no ALLOWED_USER_IDS, DIRECTORS or TECHNICIANS set!")
        logger.warning("Anyone can use this bot and submit expenses.")
        logger.warning("=" * 60)

    backend = build_backend(settings)
    router = build_router(settings, backend)

    async def shutdown(application: Application):
        await backend.aclose()

    application = (
        Application.builder()
        .token(settings.telegram_bot_token)
        .post_shutdown(shutdown)
        .build()
    )
    router.install(application)

    logger.info("Bot is ready! Starting polling...")
    application.run_polling(allowed_updates=["message", "callback_query"])


if __name__ == "__main__":
    main()
