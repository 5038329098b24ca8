from __future__ import annotations

from aiogram.types import (
    InlineKeyboardMarkup,
    KeyboardButton,
    ReplyKeyboardMarkup,
    ReplyKeyboardRemove,
    WebAppInfo,
)
from aiogram.utils.keyboard import InlineKeyboardBuilder, ReplyKeyboardBuilder

# Keyboards are presentation-only: no DB or service access here.

from studio_bot.app.translations import t


def main_menu_kb(lang: str | None = None) -> ReplyKeyboardMarkup:
    """Root reply keyboard shown on /start."""
    b = ReplyKeyboardBuilder()
    b.button(text=t("btn_online", lang))
    b.button(text=t("btn_callback", lang))
    b.button(text=t("btn_contacts", lang))
    b.adjust(2, 1)
    return b.as_markup(resize_keyboard=True)


def contact_request_kb(button_key: str = "btn_send_contact", lang: str | None = None) -> ReplyKeyboardMarkup:
    """One-button keyboard asking Telegram to share the user's phone."""
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text=t(button_key, lang), request_contact=True)]],
        resize_keyboard=True,
        one_time_keyboard=True,
    )


def confirm_booking_kb(lang: str | None = None) -> ReplyKeyboardMarkup:
    return contact_request_kb("btn_confirm_booking", lang)


def webapp_kb(url: str, lang: str | None = None) -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text=t("btn_open_form", lang), web_app=WebAppInfo(url=url))
    return b.as_markup()


def remove_kb() -> ReplyKeyboardRemove:
    return ReplyKeyboardRemove()


__all__ = [
    "main_menu_kb",
    "contact_request_kb",
    "confirm_booking_kb",
    "webapp_kb",
    "remove_kb",
]
