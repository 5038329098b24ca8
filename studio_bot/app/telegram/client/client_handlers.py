from __future__ import annotations
import logging

from aiogram import Bot, F, Router
from aiogram.filters import Command, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.types import Message

from studio_bot.app.core import constants
from studio_bot.app.services.booking_services import confirm_contact
from studio_bot.app.services.shared_services import format_user_display_name
from studio_bot.app.telegram.client.client_keyboards import (
    contact_request_kb,
    main_menu_kb,
    remove_kb,
    webapp_kb,
)
from studio_bot.app.translations import t
from studio_bot.config import contacts_text

logger = logging.getLogger(__name__)

client_router = Router(name="client")


@client_router.message(CommandStart())
async def cmd_start(message: Message, state: FSMContext) -> None:
    """Главное меню; сбрасывает любое незавершённое действие."""
    await state.clear()
    await message.answer(t("main_menu_prompt"), reply_markup=main_menu_kb())


@client_router.message(Command("contacts"))
@client_router.message(F.text == t("btn_contacts"))
async def show_contacts(message: Message) -> None:
    await message.answer(contacts_text())


@client_router.message(F.text == t("btn_callback"))
async def request_callback(message: Message) -> None:
    await message.answer(t("callback_prompt"), reply_markup=contact_request_kb())


@client_router.message(F.text == t("btn_online"))
async def open_online_form(message: Message) -> None:
    url = constants.WEBAPP_URL
    if not url:
        logger.warning("open_online_form: WEBAPP_URL is not configured")
        await message.answer(t("webapp_not_configured"))
        return
    await message.answer(t("webapp_prompt"), reply_markup=webapp_kb(url))


@client_router.message(F.contact)
async def on_contact(message: Message, bot: Bot) -> None:
    """Contact share: confirms a pending web booking or asks for a callback."""
    contact = message.contact
    sender = message.from_user
    if contact is None or sender is None:
        return
    if contact.user_id is not None and contact.user_id != sender.id:
        await message.answer(t("contact_foreign"), reply_markup=contact_request_kb())
        return

    name = format_user_display_name(None, contact.first_name, contact.last_name)
    outcome = await confirm_contact(bot, sender.id, name, contact.phone_number)
    if outcome == "undelivered":
        await message.answer(t("contact_relay_failed"), reply_markup=contact_request_kb())
        return
    await message.answer(t("contact_thanks"), reply_markup=remove_kb())


__all__ = ["client_router"]
