from __future__ import annotations
import html
import logging

from aiogram import Bot

from studio_bot.app.core.notifications import notify_admin
from studio_bot.app.translations import t

logger = logging.getLogger(__name__)

__all__ = ["handle_db_error", "handle_telegram_error", "handle_unexpected_error"]


async def handle_db_error(error: Exception, bot: Bot, context: str = "database operation") -> None:
    """Обрабатывает ошибки базы данных: логирует и уведомляет админов.

    Args:
        error: Исключение, связанное с базой данных.
        bot: Работающий экземпляр бота.
        context: Контекст ошибки (например, название операции).
    """
    logger.error("Ошибка базы данных в %s: %s", context, error)
    await notify_admin(t("db_error_notice", context=context, error=html.escape(str(error)[:300])), bot)


async def handle_telegram_error(error: Exception, bot: Bot, context: str = "Telegram API operation") -> None:
    """Обрабатывает ошибки Telegram API: логирует и уведомляет админов.

    Args:
        error: Исключение, связанное с Telegram API.
        bot: Работающий экземпляр бота.
        context: Контекст ошибки (например, название операции).
    """
    logger.error("Ошибка Telegram API в %s: %s", context, error)
    await notify_admin(t("telegram_error_notice", context=context, error=html.escape(str(error)[:300])), bot)


async def handle_unexpected_error(error: Exception, bot: Bot, context: str = "update handler") -> None:
    """Любое другое исключение: полный traceback в лог, краткое уведомление админам."""
    logger.error("Необработанная ошибка в %s: %s", context, error, exc_info=error)
    await notify_admin(
        t("unexpected_error_notice", context=context, kind=type(error).__name__, error=html.escape(str(error)[:300])),
        bot,
    )
