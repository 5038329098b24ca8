from __future__ import annotations
import asyncio
import html
import logging

from aiogram import Bot, F, Router
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.types import Message
from sqlalchemy.exc import SQLAlchemyError

from studio_bot.app.services.import_services import (
    ScheduleImportError,
    is_supported_filename,
    parse_schedule_file,
)
from studio_bot.app.services.schedule_services import ScheduleStoreError, get_schedule_store
from studio_bot.app.services.user_services import UserRepo, broadcast
from studio_bot.app.telegram.admin.states import AdminStates
from studio_bot.app.telegram.common.roles import AdminChatFilter
from studio_bot.app.translations import t

logger = logging.getLogger(__name__)

admin_router = Router(name="admin")
# Non-admin chats fall through to the client router untouched
admin_router.message.filter(AdminChatFilter())


# ---------------------------------------------------------------------------
# Schedule upload
# ---------------------------------------------------------------------------

@admin_router.message(Command("update_schedule"))
async def cmd_update_schedule(message: Message, state: FSMContext) -> None:
    await state.set_state(AdminStates.waiting_schedule_file)
    await message.answer(t("schedule_send_file"))


@admin_router.message(Command("cancel_schedule"))
async def cmd_cancel_schedule(message: Message, state: FSMContext) -> None:
    """Leaves any pending admin input (schedule upload or broadcast text)."""
    current = await state.get_state()
    if current is None:
        await message.answer(t("schedule_nothing_to_cancel"))
        return
    await state.clear()
    await message.answer(t("schedule_cancelled"))


@admin_router.message(F.document)
async def on_schedule_document(message: Message, state: FSMContext, bot: Bot) -> None:
    """Import an uploaded schedule and replace the stored one wholesale."""
    document = message.document
    if document is None:
        return
    if not is_supported_filename(document.file_name):
        await message.answer(t("schedule_update_failed", error=html.escape(f"неподдерживаемый файл {document.file_name or ''}".strip())))
        return

    await message.answer(t("schedule_processing"))
    try:
        payload = await bot.download(document)
        if payload is None:
            raise ScheduleImportError("empty download")
        # pandas parsing blocks
        result = await asyncio.to_thread(parse_schedule_file, payload, document.file_name)
    except ScheduleImportError as e:
        logger.warning("Schedule import rejected (%s): %s", document.file_name, e)
        await message.answer(t("schedule_update_failed", error=html.escape(str(e))))
        return
    except TelegramAPIError as e:
        logger.error("Schedule download failed (%s): %s", document.file_name, e)
        await message.answer(t("schedule_update_failed", error=html.escape(str(e))))
        return

    try:
        persisted = await get_schedule_store().replace(result.schedule)
    except ScheduleStoreError as e:
        logger.error("Schedule store rejected the import: %s", e)
        await message.answer(t("schedule_update_failed", error=html.escape(str(e))))
        return

    await state.clear()
    await message.answer(
        t("schedule_updated", addresses=result.addresses, slots=result.imported, skipped=result.skipped)
    )
    if not persisted:
        await message.answer(t("schedule_updated_memory_only"))


@admin_router.message(AdminStates.waiting_schedule_file, ~F.text.startswith("/"))
async def on_schedule_waiting_other(message: Message) -> None:
    await message.answer(t("schedule_expect_document"))


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@admin_router.message(Command("users_count"))
async def cmd_users_count(message: Message) -> None:
    try:
        count = await UserRepo.count()
    except (SQLAlchemyError, OSError) as e:
        logger.error("users_count failed: %s", e)
        await message.answer(t("users_count_failed"))
        return
    await message.answer(t("users_count", count=count))


async def _run_broadcast(message: Message, bot: Bot, text: str) -> None:
    await message.answer(t("broadcast_started"))
    try:
        report = await broadcast(bot, text)
    except (SQLAlchemyError, OSError) as e:
        logger.error("broadcast failed: %s", e)
        await message.answer(t("broadcast_failed", error=html.escape(str(e)[:300])))
        return
    await message.answer(t("broadcast_done", sent=report.sent, failed=report.failed, removed=report.removed))


def _inline_broadcast_text(message: Message, command: CommandObject) -> str:
    """HTML of the text after ``/broadcast``, formatted the same way as a bare reply."""
    parts = (message.html_text or "").split(maxsplit=1)
    if len(parts) == 2:
        return parts[1].strip()
    return html.escape((command.args or "").strip(), quote=False)


@admin_router.message(Command("broadcast"))
async def cmd_broadcast(message: Message, command: CommandObject, state: FSMContext, bot: Bot) -> None:
    """``/broadcast <text>`` sends at once; bare ``/broadcast`` waits for the text."""
    if not (command.args or "").strip():
        await state.set_state(AdminStates.waiting_broadcast_text)
        await message.answer(t("broadcast_prompt"))
        return
    await _run_broadcast(message, bot, _inline_broadcast_text(message, command))


@admin_router.message(AdminStates.waiting_broadcast_text, F.text, ~F.text.startswith("/"))
async def on_broadcast_text(message: Message, state: FSMContext, bot: Bot) -> None:
    text = (message.html_text or "").strip()
    if not text:
        await message.answer(t("broadcast_empty"))
        return
    await state.clear()
    await _run_broadcast(message, bot, text)


__all__ = ["admin_router"]
