from __future__ import annotations
import logging
from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject
from sqlalchemy.exc import SQLAlchemyError

from studio_bot.app.services.shared_services import format_user_display_name
from studio_bot.app.services.user_services import UserRepo

logger = logging.getLogger(__name__)

__all__ = ["UserTrackingMiddleware"]


class UserTrackingMiddleware(BaseMiddleware):
    """Upserts the sender into ``users`` before the handler runs.

    A database outage must not stop the bot from answering, so failures are
    logged and the handler still runs.
    """

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        user = getattr(event, "from_user", None)
        if user is not None and not getattr(user, "is_bot", False):
            try:
                await UserRepo.get_or_create(
                    telegram_id=int(user.id),
                    name=format_user_display_name(user.username, user.first_name, user.last_name),
                    username=user.username,
                )
            except (SQLAlchemyError, OSError) as e:
                logger.warning("UserTrackingMiddleware: failed to upsert user %s: %s", user.id, e)
        return await handler(event, data)
