"""Telegram interfaces composition: include all feature routers here."""

import logging

from aiogram import Router
from aiogram.types import Message

logger = logging.getLogger(__name__)


def build_main_router() -> Router:
    router = Router()
    # Admin first: its FSM-state handlers (waiting for a schedule file or
    # broadcast text) must win over the client's generic text handlers.
    # Messages from other chats fail the admin router filter and fall through.
    from .admin.admin_handlers import admin_router
    router.include_router(admin_router)
    logger.info("Admin router included")

    from .client.client_handlers import client_router
    router.include_router(client_router)
    logger.info("Client router included")

    logger.info("Main router assembled")

    # Registered last so it only runs when no other handler matched.
    @router.message()
    async def _debug_unhandled_message(message: Message) -> None:
        logging.getLogger("studio_bot.debug").info(
            "Unhandled message: %s %s",
            getattr(message.from_user, "id", None),
            message.text if message.text is not None else message.content_type,
        )

    return router


__all__ = ["build_main_router"]
