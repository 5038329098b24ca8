from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import Any

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError

from studio_bot.config import get_local_tz

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


def local_now() -> datetime:
    """Naive wall-clock time in the studio timezone.

    Spreadsheet dates and times carry no zone, so comparisons against them
    use naive local datetimes.
    """
    return datetime.now(get_local_tz()).replace(tzinfo=None)


def collapse_spaces(value: Any) -> str:
    """Strip and collapse runs of whitespace (including NBSP) to single spaces."""
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value).replace("\xa0", " ")).strip()


def format_user_display_name(username: str | None, first_name: str | None, last_name: str | None) -> str | None:
    """Return the best available display name for a Telegram user."""
    parts = [str(v).strip() for v in (first_name, last_name) if v and str(v).strip()]
    if parts:
        return " ".join(parts)
    uname = (username or "").strip()
    return uname or None


def parse_telegram_id(value: Any) -> int | None:
    """Coerce an incoming chat id (int or numeric string) or return None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return parsed if parsed != 0 else None


async def _safe_send(bot: Bot, chat_id: int | str, text: str, reply_markup: Any = None, **kwargs: Any) -> bool:
    """Best-effort send wrapper for bot.send_message.

    - Telegram API errors are logged and reported as False.
    - Anything else is a bug and is re-raised.
    """
    try:
        await bot.send_message(chat_id=chat_id, text=text, reply_markup=reply_markup, **kwargs)
        return True
    except TelegramAPIError as e:
        logger.warning("_safe_send TelegramAPIError for %s: %s", chat_id, e)
        return False


__all__ = [
    "utc_now",
    "local_now",
    "collapse_spaces",
    "format_user_display_name",
    "parse_telegram_id",
    "_safe_send",
]
