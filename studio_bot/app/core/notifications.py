from __future__ import annotations

import logging

from aiogram import Bot

from studio_bot.app.core import constants
from studio_bot.app.services.shared_services import _safe_send

logger = logging.getLogger(__name__)

__all__ = ["notify_admin"]


async def notify_admin(message: str, bot: Bot) -> bool:
    """Send a notification message to the admin chat using the provided Bot.

    The running bot must be passed explicitly (for example, the instance
    created in `run_bot.py`).

    Args:
        message: Text to send to the admin chat.
        bot: An initialized aiogram.Bot instance.

    Returns:
        True if Telegram accepted the message.
    """
    admin_chat_id = constants.ADMIN_CHAT_ID
    if admin_chat_id is None:
        logger.warning("notify_admin: ADMIN_CHAT_ID is not configured; message dropped")
        return False
    ok = await _safe_send(bot, admin_chat_id, message)
    if not ok:
        logger.error("notify_admin: failed to deliver message to %s", admin_chat_id)
    return ok
