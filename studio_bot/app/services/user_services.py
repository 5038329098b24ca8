from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError, TelegramForbiddenError, TelegramRetryAfter
from sqlalchemy import delete, func, select

from studio_bot.app.core import constants
from studio_bot.app.core.db import get_session
from studio_bot.app.domain.models import User

logger = logging.getLogger(__name__)


class UserRepo:
    """Repository for User records (upserted on interactions)."""

    @staticmethod
    async def get_by_telegram_id(telegram_id: int) -> User | None:
        async with get_session() as session:
            result = await session.execute(select(User).where(User.telegram_id == telegram_id))
            return result.scalar_one_or_none()

    @staticmethod
    async def get_or_create(telegram_id: int, name: str | None = None, username: str | None = None) -> User:
        async with get_session() as session:
            user = await session.scalar(select(User).where(User.telegram_id == telegram_id))
            if user:
                changed = False
                if username and user.username != username:
                    user.username = username
                    changed = True
                if name and user.name != name:
                    user.name = name
                    changed = True
                if changed:
                    await session.commit()
                return user

            new_user = User(telegram_id=telegram_id, name=name or username or str(telegram_id), username=username)
            session.add(new_user)
            await session.commit()
            await session.refresh(new_user)
            logger.info("New user %s (%s)", telegram_id, new_user.name)
            return new_user

    @staticmethod
    async def count() -> int:
        async with get_session() as session:
            return int(await session.scalar(select(func.count()).select_from(User)) or 0)

    @staticmethod
    async def list_telegram_ids() -> list[int]:
        async with get_session() as session:
            result = await session.execute(select(User.telegram_id).order_by(User.id))
            return [int(tid) for tid in result.scalars().all()]

    @staticmethod
    async def delete_by_telegram_id(telegram_id: int) -> bool:
        async with get_session() as session:
            result = await session.execute(delete(User).where(User.telegram_id == telegram_id))
            await session.commit()
            return bool(result.rowcount)


@dataclass
class BroadcastReport:
    sent: int = 0
    failed: int = 0
    removed: int = 0


async def _send_once(bot: Bot, chat_id: int, text: str) -> None:
    try:
        await bot.send_message(chat_id=chat_id, text=text)
    except TelegramRetryAfter as e:
        await asyncio.sleep(e.retry_after)
        await bot.send_message(chat_id=chat_id, text=text)


async def broadcast(bot: Bot, text: str, *, delay_seconds: float | None = None) -> BroadcastReport:
    """Send ``text`` to every known user; users who blocked the bot are deleted."""
    delay = constants.BROADCAST_DELAY_SECONDS if delay_seconds is None else delay_seconds
    report = BroadcastReport()
    for chat_id in await UserRepo.list_telegram_ids():
        try:
            await _send_once(bot, chat_id, text)
            report.sent += 1
        except TelegramForbiddenError:
            logger.info("broadcast: user %s blocked the bot, removing", chat_id)
            if await UserRepo.delete_by_telegram_id(chat_id):
                report.removed += 1
            else:
                report.failed += 1
        except TelegramAPIError as e:
            logger.warning("broadcast: failed to send to %s: %s", chat_id, e)
            report.failed += 1
        if delay:
            await asyncio.sleep(delay)
    logger.info("broadcast finished: %s", report)
    return report


__all__ = ["UserRepo", "BroadcastReport", "broadcast"]
