"""Runtime entrypoint: Telegram polling and the WebApp API in one event loop."""
import asyncio
import logging
from contextlib import contextmanager, suppress
from typing import Iterator

import uvicorn
from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import ExceptionTypeFilter
from aiogram.types import ErrorEvent
from sqlalchemy.exc import SQLAlchemyError

from studio_bot.api.app import app as api_app
from studio_bot.app.core import constants
from studio_bot.app.core.db import dispose_engine, init_db
from studio_bot.app.core.logger import setup_logging
from studio_bot.app.core.notifications import notify_admin
from studio_bot.app.services.schedule_services import get_schedule_store
from studio_bot.app.telegram.common.commands import setup_bot_commands
from studio_bot.app.telegram.common.errors import (
    handle_db_error,
    handle_telegram_error,
    handle_unexpected_error,
)
from studio_bot.app.telegram.common.user_middleware import UserTrackingMiddleware
from studio_bot.app.telegram.main_router import build_main_router
from studio_bot.app.translations import t
from studio_bot.config import require_runtime_config

logger = logging.getLogger("studio_bot")


class _EmbeddedServer(uvicorn.Server):
    """Uvicorn server that leaves signal handling to the aiogram dispatcher."""

    def install_signal_handlers(self) -> None:
        pass

    @contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


# ==============================================================
# ERROR HANDLERS
# ==============================================================

async def _on_db_error(event: ErrorEvent, bot: Bot) -> None:
    await handle_db_error(event.exception, bot, context="update handler")


async def _on_telegram_error(event: ErrorEvent, bot: Bot) -> None:
    await handle_telegram_error(event.exception, bot, context="update handler")


async def _on_unhandled(event: ErrorEvent, bot: Bot) -> None:
    await handle_unexpected_error(event.exception, bot, context="update handler")


def build_dispatcher() -> Dispatcher:
    dp = Dispatcher()
    # Outer: runs for every update, matched by a handler or not
    tracking = UserTrackingMiddleware()
    dp.message.outer_middleware(tracking)
    dp.callback_query.outer_middleware(tracking)
    dp.include_router(build_main_router())
    dp.errors.register(_on_db_error, ExceptionTypeFilter(SQLAlchemyError))
    dp.errors.register(_on_telegram_error, ExceptionTypeFilter(TelegramAPIError))
    dp.errors.register(_on_unhandled)
    logger.info("Global error handlers registered")
    return dp


# ==============================================================
# MAIN
# ==============================================================

async def main() -> None:
    setup_logging(constants.LOG_LEVEL_NAME, constants.LOG_FILE)
    require_runtime_config()

    try:
        await init_db()
    except (SQLAlchemyError, OSError) as e:
        # The bot still serves bookings; only user tracking is affected
        logger.error("Database init failed: %s", e)

    await get_schedule_store().load()

    bot = Bot(token=constants.BOT_TOKEN, default=DefaultBotProperties(parse_mode="HTML"))
    dp = build_dispatcher()

    # Ensure polling mode
    try:
        await bot.delete_webhook(drop_pending_updates=False)
        logger.info("Webhook removed → polling enabled")
    except TelegramAPIError:
        logger.exception("main: failed to delete webhook (continuing)")

    await setup_bot_commands(bot)
    await notify_admin(t("bot_started_notice"), bot)

    api_app.state.bot = bot
    server = _EmbeddedServer(uvicorn.Config(
        api_app,
        host=constants.API_HOST,
        port=constants.API_PORT,
        log_config=None,
    ))
    api_task = asyncio.create_task(server.serve(), name="webapp-api")
    logger.info("WebApp API listening on %s:%s", constants.API_HOST, constants.API_PORT)

    logger.info("Starting polling…")
    try:
        await dp.start_polling(bot)
    finally:
        server.should_exit = True
        with suppress(asyncio.CancelledError):
            await api_task
        await dispose_engine()
        await bot.session.close()
        logger.info("Stopped")


if __name__ == "__main__":
    with suppress(KeyboardInterrupt, SystemExit):
        asyncio.run(main())
