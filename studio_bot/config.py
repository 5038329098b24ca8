from __future__ import annotations

import logging
import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from studio_bot.app.core import constants

logger = logging.getLogger(__name__)

# Reception phones per studio; CONTACTS_TEXT overrides the whole block
STUDIO_CONTACTS: dict[str, str] = {
    "Свободы 6": "8-928-00-00-000",
    "Видова 210Д": "8-928-00-00-000",
    "Дзержинского 211/2": "8-928-00-00-000",
}


def contacts_text() -> str:
    """Текст с контактами ресепшн всех студий."""
    override = os.getenv("CONTACTS_TEXT")
    if override and override.strip():
        return override.strip().replace("\\n", "\n")
    lines = ["Связь с ресепшн студии:"]
    lines.extend(f"{address} — {phone}" for address, phone in STUDIO_CONTACTS.items())
    return "\n".join(lines)


def get_local_tz() -> ZoneInfo:
    """Studio timezone with a UTC fallback for unknown names."""
    try:
        return ZoneInfo(constants.DEFAULT_LOCAL_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown LOCAL_TIMEZONE=%r, using UTC", constants.DEFAULT_LOCAL_TIMEZONE)
        return ZoneInfo("UTC")


def is_admin_chat(chat_id: int | str | None) -> bool:
    """Проверяет, что чат является админским.

    Args:
        chat_id: Telegram ID чата.

    Returns:
        True, если это админский чат, иначе False.
    """
    if chat_id is None or constants.ADMIN_CHAT_ID is None:
        return False
    try:
        return int(chat_id) == int(constants.ADMIN_CHAT_ID)
    except (TypeError, ValueError):
        return False


def require_runtime_config() -> None:
    """Fail fast when the bot cannot run without a variable."""
    missing = [
        name
        for name, value in (
            ("BOT_TOKEN", constants.BOT_TOKEN),
            ("ADMIN_CHAT_ID", constants.ADMIN_CHAT_ID),
            ("WEBAPP_URL", constants.WEBAPP_URL),
        )
        if not value
    ]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")


__all__ = [
    "STUDIO_CONTACTS",
    "contacts_text",
    "get_local_tz",
    "is_admin_chat",
    "require_runtime_config",
]
