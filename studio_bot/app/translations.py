"""UI texts.

The studios work in Russian only; the lookup keeps a language argument so
callers read the same way as elsewhere and a second locale can be added by
extending ``TEXTS``.
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_LANG = "ru"

TEXTS: dict[str, dict[str, str]] = {
    "ru": {
        # Main menu
        "main_menu_prompt": "Выберите действие:",
        "btn_online": "🖥️ Запись онлайн",
        "btn_callback": "📞 Запись по звонку администратора",
        "btn_contacts": "Контакты",
        "webapp_prompt": "Заполните онлайн-форму:",
        "btn_open_form": "Перейти к форме",
        "webapp_not_configured": "Онлайн-запись временно недоступна. Попробуйте запись по звонку администратора.",
        "callback_prompt": "Пожалуйста, нажмите кнопку, чтобы поделиться контактом, и мы вам перезвоним.",
        "btn_send_contact": "📲 Отправить контакт",
        "btn_confirm_booking": "📲 Подтвердить запись",
        "submit_confirm_request": "Спасибо! Для подтверждения, пожалуйста, поделитесь контактом.",
        "contact_thanks": "Спасибо! Мы перезвоним вам в ближайшее время.",
        "contact_relay_failed": "Не удалось передать заявку администратору. Пожалуйста, отправьте контакт ещё раз чуть позже.",
        "contact_foreign": "Пожалуйста, отправьте свой контакт кнопкой под полем ввода.",
        # Admin relay
        "admin_booking_confirmed": (
            "Новая подтвержденная заявка:\n"
            "Цель: {goal}\n"
            "Направление: {direction}\n"
            "Студия: {address}\n"
            "Слот: {slot}\n"
            "Имя: {name}\n"
            "Телефон: {phone}\n"
            "ID: {telegram_id}"
        ),
        "admin_callback_request": (
            "Новая заявка на обратный звонок:\n"
            "Имя: {name}\n"
            "Телефон: {phone}\n"
            "ID: {telegram_id}"
        ),
        "not_specified": "не указан",
        "bot_started_notice": "Бот запущен. Команды администратора доступны в меню.",
        # Schedule upload
        "schedule_send_file": "Отправьте Excel файл с расписанием (.xlsx или .csv, колонки: date, time, direction, address).",
        "schedule_processing": "⏳ Загружаю расписание…",
        "schedule_updated": "✅ Расписание успешно обновлено!\nСтудий: {addresses}\nЗанятий: {slots}\nПропущено строк: {skipped}",
        "schedule_updated_memory_only": "⚠️ Расписание обновлено, но сохранено только в памяти: хранилище недоступно.",
        "schedule_update_failed": "❌ Ошибка при обновлении расписания: {error}",
        "schedule_cancelled": "Обновление расписания отменено.",
        "schedule_nothing_to_cancel": "Нет активного обновления расписания.",
        "schedule_expect_document": "Жду файл с расписанием. Для отмены: /cancel_schedule",
        # Users / broadcast
        "users_count": "Пользователей в базе: {count}",
        "users_count_failed": "❌ Не удалось получить количество пользователей.",
        "broadcast_prompt": "Отправьте текст рассылки одним сообщением. Для отмены: /cancel_schedule",
        "broadcast_empty": "Текст рассылки пустой.",
        "broadcast_started": "📣 Рассылка запущена…",
        "broadcast_done": "Рассылка завершена.\nОтправлено: {sent}\nОшибок: {failed}\nУдалено заблокировавших: {removed}",
        "broadcast_failed": "❌ Рассылка не выполнена: {error}",
        # Errors relayed to admin
        "db_error_notice": "❌ Ошибка базы данных ({context}): {error}",
        "telegram_error_notice": "⚠️ Ошибка Telegram API ({context}): {error}",
        "unexpected_error_notice": "🐞 Непредвиденная ошибка ({context}): {kind}: {error}",
        # Menu command descriptions
        "cmd_start": "Начать заново",
        "cmd_contacts": "Контакты студии",
        "cmd_update_schedule": "Обновить расписание (админ)",
        "cmd_cancel_schedule": "Отменить обновление расписания",
        "cmd_users_count": "Количество пользователей",
        "cmd_broadcast": "Рассылка всем пользователям",
    },
}


def t(key: str, lang: str | None = None, **fmt: Any) -> str:
    """Return the text for ``key``; unknown keys come back unchanged."""
    table = TEXTS.get(lang or DEFAULT_LANG) or TEXTS[DEFAULT_LANG]
    text = table.get(key)
    if text is None:
        text = TEXTS[DEFAULT_LANG].get(key, key)
    if fmt:
        try:
            return text.format(**fmt)
        except (KeyError, IndexError, ValueError):
            logger.warning("translation %s: bad format args %s", key, sorted(fmt))
    return text


__all__ = ["t", "TEXTS", "DEFAULT_LANG"]
