"""Test configuration: import path, throwaway database, fake bot.

Adds the repository root to sys.path so `import studio_bot` works in CI where
the checkout directory may not be on PYTHONPATH by default.
"""

from __future__ import annotations

import asyncio
import sys
from io import BytesIO
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[3]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from studio_bot.app.core import db  # noqa: E402
from studio_bot.app.services import schedule_services  # noqa: E402
from studio_bot.app.services.booking_services import pending_bookings  # noqa: E402


class FakeBot:
    """Records ``send_message`` calls; chats listed in ``failures`` raise instead."""

    def __init__(self, failures: dict[int, Exception] | None = None, files: dict[str, bytes] | None = None) -> None:
        self.sent: list[dict[str, Any]] = []
        self.failures = dict(failures or {})
        self.files = dict(files or {})

    async def send_message(self, chat_id, text, reply_markup=None, **kwargs):
        exc = self.failures.get(int(chat_id))
        if exc is not None:
            raise exc
        self.sent.append({"chat_id": int(chat_id), "text": text, "reply_markup": reply_markup})
        return True

    async def download(self, file, destination=None, **kwargs):
        return BytesIO(self.files[file.file_id])

    def messages_to(self, chat_id: int) -> list[str]:
        return [m["text"] for m in self.sent if m["chat_id"] == chat_id]


@pytest.fixture
def fake_bot() -> FakeBot:
    return FakeBot()


@pytest.fixture
def sqlite_db(tmp_path, monkeypatch):
    """Point the engine at a fresh SQLite file for the duration of the test."""
    db._reset_engine_for_tests()
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    yield
    db._reset_engine_for_tests()


@pytest.fixture
def run_db(sqlite_db):
    """Run a coroutine on a new loop and dispose the engine before the loop closes."""

    def _run(coro):
        async def _wrapped():
            try:
                return await coro
            finally:
                await db.dispose_engine()

        return asyncio.run(_wrapped())

    return _run


@pytest.fixture
def memory_store():
    """Install an empty in-memory schedule store as the process store."""
    store = schedule_services.ScheduleStore(schedule_services.MemoryScheduleBackend())
    schedule_services.set_schedule_store(store)
    yield store
    schedule_services.set_schedule_store(None)


@pytest.fixture(autouse=True)
def _clear_pending_bookings():
    pending_bookings.clear()
    yield
    pending_bookings.clear()
