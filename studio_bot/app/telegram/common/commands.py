from __future__ import annotations
import logging

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import BotCommand, BotCommandScopeChat, BotCommandScopeDefault, MenuButtonCommands

from studio_bot.app.core import constants
from studio_bot.app.translations import t

logger = logging.getLogger(__name__)

__all__ = ["public_commands", "admin_commands", "setup_bot_commands"]


def public_commands() -> list[BotCommand]:
    return [
        BotCommand(command="start", description=t("cmd_start")),
        BotCommand(command="contacts", description=t("cmd_contacts")),
    ]


def admin_commands() -> list[BotCommand]:
    return public_commands() + [
        BotCommand(command="update_schedule", description=t("cmd_update_schedule")),
        BotCommand(command="cancel_schedule", description=t("cmd_cancel_schedule")),
        BotCommand(command="users_count", description=t("cmd_users_count")),
        BotCommand(command="broadcast", description=t("cmd_broadcast")),
    ]


async def setup_bot_commands(bot: Bot) -> None:
    """Register the menu: public commands for everyone, admin ones in the admin chat."""
    try:
        await bot.set_my_commands(public_commands(), scope=BotCommandScopeDefault())
        if constants.ADMIN_CHAT_ID is not None:
            await bot.set_my_commands(admin_commands(), scope=BotCommandScopeChat(chat_id=constants.ADMIN_CHAT_ID))
        await bot.set_chat_menu_button(menu_button=MenuButtonCommands())
        logger.info("Bot menu commands registered")
    except TelegramAPIError as e:
        logger.error("Не удалось установить команды меню: %s", e)
