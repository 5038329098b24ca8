import asyncio
from io import BytesIO
from types import SimpleNamespace

import pandas as pd
import pytest
from aiogram.exceptions import TelegramForbiddenError
from aiogram.filters import CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.fsm.storage.base import StorageKey
from aiogram.fsm.storage.memory import MemoryStorage
from aiogram.methods import SendMessage
from aiogram.utils.text_decorations import html_decoration

from studio_bot.app.core import constants
from studio_bot.app.services.booking_services import pending_bookings
from studio_bot.app.domain.models import BookingDraft
from studio_bot.app.telegram.admin import admin_handlers
from studio_bot.app.telegram.admin.states import AdminStates
from studio_bot.app.telegram.client import client_handlers
from studio_bot.app.telegram.common.roles import AdminChatFilter
from studio_bot.app.translations import t

ADMIN = -1001
USER = 555


class FakeMessage:
    def __init__(self, chat_id: int, text: str | None = None, document=None, contact=None, user_id: int | None = None):
        self.chat = SimpleNamespace(id=chat_id)
        self.from_user = SimpleNamespace(id=user_id or chat_id, is_bot=False, username=None, first_name="Аня", last_name=None)
        self.text = text
        self.html_text = html_decoration.unparse(text) if text is not None else None
        self.document = document
        self.contact = contact
        self.answers: list[tuple[str, object]] = []

    async def answer(self, text, reply_markup=None, **kwargs):
        self.answers.append((text, reply_markup))


@pytest.fixture(autouse=True)
def _admin_chat(monkeypatch):
    monkeypatch.setattr(constants, "ADMIN_CHAT_ID", ADMIN)


def _state(chat_id: int = ADMIN) -> FSMContext:
    return FSMContext(storage=MemoryStorage(), key=StorageKey(bot_id=1, chat_id=chat_id, user_id=chat_id))


def _xlsx(rows) -> bytes:
    buf = BytesIO()
    pd.DataFrame(rows).to_excel(buf, index=False)
    return buf.getvalue()


def test_admin_filter_only_passes_admin_chat():
    flt = AdminChatFilter()
    assert asyncio.run(flt(FakeMessage(ADMIN))) is True
    assert asyncio.run(flt(FakeMessage(USER))) is False


def test_schedule_upload_replaces_store(fake_bot, memory_store):
    fake_bot.files["file-1"] = _xlsx([
        {"date": "2024-05-02", "time": "10:00", "direction": "Балет", "address": "Свободы 6"},
        {"date": "2024-05-02", "time": "11:00", "direction": "Балет", "address": "Видова 210Д"},
    ])
    document = SimpleNamespace(file_id="file-1", file_name="schedule.xlsx")
    state = _state()

    async def scenario():
        await admin_handlers.cmd_update_schedule(FakeMessage(ADMIN, "/update_schedule"), state)
        assert await state.get_state() == AdminStates.waiting_schedule_file.state
        message = FakeMessage(ADMIN, document=document)
        await admin_handlers.on_schedule_document(message, state, fake_bot)
        return message, await state.get_state()

    message, current = asyncio.run(scenario())

    assert current is None
    assert sorted(memory_store.addresses()) == ["Видова 210Д", "Свободы 6"]
    assert message.answers[-1][0] == t("schedule_updated", addresses=2, slots=2, skipped=0)


def test_bad_schedule_keeps_previous_one(fake_bot, memory_store):
    asyncio.run(memory_store.replace({"Свободы 6": []}))
    fake_bot.files["bad"] = _xlsx([{"date": "2024-05-02", "time": "10:00"}])
    message = FakeMessage(ADMIN, document=SimpleNamespace(file_id="bad", file_name="schedule.xlsx"))

    asyncio.run(admin_handlers.on_schedule_document(message, _state(), fake_bot))

    assert memory_store.addresses() == ["Свободы 6"]
    assert message.answers[-1][0].startswith("❌")


def test_unsupported_document_is_refused(fake_bot, memory_store):
    message = FakeMessage(ADMIN, document=SimpleNamespace(file_id="x", file_name="photo.jpg"))
    asyncio.run(admin_handlers.on_schedule_document(message, _state(), fake_bot))
    assert len(message.answers) == 1
    assert "photo.jpg" in message.answers[0][0]


def test_cancel_schedule_clears_state():
    state = _state()

    async def scenario():
        idle = FakeMessage(ADMIN, "/cancel_schedule")
        await admin_handlers.cmd_cancel_schedule(idle, state)
        await state.set_state(AdminStates.waiting_schedule_file)
        waiting = FakeMessage(ADMIN, "/cancel_schedule")
        await admin_handlers.cmd_cancel_schedule(waiting, state)
        return idle, waiting, await state.get_state()

    idle, waiting, current = asyncio.run(scenario())
    assert idle.answers[0][0] == t("schedule_nothing_to_cancel")
    assert waiting.answers[0][0] == t("schedule_cancelled")
    assert current is None


def test_bare_broadcast_waits_for_text(fake_bot, monkeypatch):
    sent = []

    async def fake_broadcast(bot, text):
        sent.append(text)
        return SimpleNamespace(sent=3, failed=1, removed=1)

    monkeypatch.setattr(admin_handlers, "broadcast", fake_broadcast)
    state = _state()

    async def scenario():
        prompt = FakeMessage(ADMIN, "/broadcast")
        await admin_handlers.cmd_broadcast(prompt, CommandObject(prefix="/", command="broadcast"), state, fake_bot)
        assert await state.get_state() == AdminStates.waiting_broadcast_text.state
        body = FakeMessage(ADMIN, "Завтра студия закрыта")
        await admin_handlers.on_broadcast_text(body, state, fake_bot)
        return prompt, body, await state.get_state()

    prompt, body, current = asyncio.run(scenario())
    assert prompt.answers[0][0] == t("broadcast_prompt")
    assert sent == ["Завтра студия закрыта"]
    assert body.answers[-1][0] == t("broadcast_done", sent=3, failed=1, removed=1)
    assert current is None


def test_inline_broadcast_sends_immediately(fake_bot, monkeypatch):
    sent = []

    async def fake_broadcast(bot, text):
        sent.append(text)
        return SimpleNamespace(sent=1, failed=0, removed=0)

    monkeypatch.setattr(admin_handlers, "broadcast", fake_broadcast)
    message = FakeMessage(ADMIN, "/broadcast Привет")
    command = CommandObject(prefix="/", command="broadcast", args="Привет")

    asyncio.run(admin_handlers.cmd_broadcast(message, command, _state(), fake_bot))
    assert sent == ["Привет"]


def test_inline_broadcast_escapes_markup_characters(fake_bot, monkeypatch):
    sent = []

    async def fake_broadcast(bot, text):
        sent.append(text)
        return SimpleNamespace(sent=1, failed=0, removed=0)

    monkeypatch.setattr(admin_handlers, "broadcast", fake_broadcast)
    message = FakeMessage(ADMIN, "/broadcast скидка 5 < 10% & подарок")
    command = CommandObject(prefix="/", command="broadcast", args="скидка 5 < 10% & подарок")

    asyncio.run(admin_handlers.cmd_broadcast(message, command, _state(), fake_bot))
    assert sent == ["скидка 5 &lt; 10% &amp; подарок"]


def test_contact_confirms_pending_booking(fake_bot):
    pending_bookings.put(BookingDraft(telegram_id=USER, goal="Пробное", direction="Балет", address="Свободы 6", slot="2024-05-02 10:00"))
    contact = SimpleNamespace(user_id=USER, first_name="Анна", last_name="Петрова", phone_number="+79280000000")
    message = FakeMessage(USER, contact=contact)

    asyncio.run(client_handlers.on_contact(message, fake_bot))

    (admin_text,) = fake_bot.messages_to(ADMIN)
    assert "Имя: Анна Петрова" in admin_text
    assert "Студия: Свободы 6" in admin_text
    assert message.answers[0][0] == t("contact_thanks")
    assert USER not in pending_bookings


def test_contact_asks_to_retry_when_admin_unreachable(fake_bot):
    fake_bot.failures[ADMIN] = TelegramForbiddenError(
        method=SendMessage(chat_id=ADMIN, text="x"), message="Forbidden: bot was kicked"
    )
    pending_bookings.put(BookingDraft(telegram_id=USER, direction="Балет", address="Свободы 6"))
    contact = SimpleNamespace(user_id=USER, first_name="Анна", last_name=None, phone_number="+79280000000")
    message = FakeMessage(USER, contact=contact)

    asyncio.run(client_handlers.on_contact(message, fake_bot))

    assert message.answers[0][0] == t("contact_relay_failed")
    assert USER in pending_bookings


def test_foreign_contact_is_refused(fake_bot):
    contact = SimpleNamespace(user_id=999, first_name="Кто-то", last_name=None, phone_number="+7000")
    message = FakeMessage(USER, contact=contact)

    asyncio.run(client_handlers.on_contact(message, fake_bot))

    assert fake_bot.sent == []
    assert message.answers[0][0] == t("contact_foreign")


def test_online_form_without_url(monkeypatch):
    monkeypatch.setattr(constants, "WEBAPP_URL", "")
    message = FakeMessage(USER, t("btn_online"))
    asyncio.run(client_handlers.open_online_form(message))
    assert message.answers[0][0] == t("webapp_not_configured")


def test_online_form_with_url(monkeypatch):
    monkeypatch.setattr(constants, "WEBAPP_URL", "https://example.org/form")
    message = FakeMessage(USER, t("btn_online"))
    asyncio.run(client_handlers.open_online_form(message))
    markup = message.answers[0][1]
    assert markup.inline_keyboard[0][0].web_app.url == "https://example.org/form"
