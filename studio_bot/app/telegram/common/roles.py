"""Admin chat access helpers.

Privileged commands are only honoured in the single admin chat; everyone
else gets no reaction at all.
"""
from __future__ import annotations

import logging

from aiogram.filters import BaseFilter
from aiogram.types import CallbackQuery, Message

from studio_bot.config import is_admin_chat

logger = logging.getLogger(__name__)


def _event_chat_id(obj: Message | CallbackQuery) -> int | None:
    if isinstance(obj, CallbackQuery):
        msg = obj.message
        chat = getattr(msg, "chat", None)
    else:
        chat = getattr(obj, "chat", None)
    return getattr(chat, "id", None)


def is_admin_event(obj: Message | CallbackQuery) -> bool:
    """Return True if the event comes from the admin chat."""
    return is_admin_chat(_event_chat_id(obj))


class AdminChatFilter(BaseFilter):
    """Aiogram filter that passes only events from the admin chat."""

    async def __call__(self, obj: Message | CallbackQuery) -> bool:  # type: ignore[override]
        allowed = is_admin_event(obj)
        if not allowed:
            logger.debug("Admin-only update ignored from chat %s", _event_chat_id(obj))
        return allowed


__all__ = ["is_admin_event", "AdminChatFilter"]
