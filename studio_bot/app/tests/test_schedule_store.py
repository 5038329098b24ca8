import asyncio
import json

import pytest

from studio_bot.app.domain.models import Slot
from studio_bot.app.services import schedule_services as ss


def _schedule(*slots: Slot) -> ss.Schedule:
    return ss.group_by_address(slots)


SVOBODY = Slot("2024-05-02", "10:00", "Балет", "Свободы 6")
VIDOVA = Slot("2024-05-02", "18:00–18:55", "Стретчинг", "Видова 210Д")


class _BrokenBackend:
    name = "broken"

    async def load(self):
        raise ss.ScheduleStoreError("backend down")

    async def save(self, schedule):
        raise OSError("disk full")


def test_json_backend_round_trip_and_atomic_write(tmp_path):
    path = tmp_path / "nested" / "schedules.json"
    backend = ss.JsonScheduleBackend(str(path))

    async def scenario():
        assert await backend.load() == {}
        await backend.save(_schedule(SVOBODY, VIDOVA))
        return await backend.load()

    loaded = asyncio.run(scenario())
    assert loaded == {"Свободы 6": [SVOBODY], "Видова 210Д": [VIDOVA]}
    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk["Свободы 6"][0]["direction"] == "Балет"
    assert [p.name for p in path.parent.iterdir()] == ["schedules.json"]


def test_json_backend_accepts_flat_list(tmp_path):
    path = tmp_path / "schedules.json"
    path.write_text(json.dumps([SVOBODY.to_dict(), VIDOVA.to_dict()], ensure_ascii=False), encoding="utf-8")

    loaded = asyncio.run(ss.JsonScheduleBackend(str(path)).load())
    assert list(loaded) == ["Свободы 6", "Видова 210Д"]


def test_corrupted_json_falls_back_to_memory(tmp_path):
    path = tmp_path / "schedules.json"
    path.write_text("{not json", encoding="utf-8")
    store = ss.ScheduleStore(ss.JsonScheduleBackend(str(path)), memory_fallback=True)

    asyncio.run(store.load())
    assert store.degraded is True
    assert store.dump() == {}


def test_load_failure_without_fallback_raises():
    store = ss.ScheduleStore(_BrokenBackend(), memory_fallback=False)
    with pytest.raises(ss.ScheduleStoreError):
        asyncio.run(store.load())


def test_save_failure_keeps_schedule_in_memory():
    store = ss.ScheduleStore(_BrokenBackend(), memory_fallback=True)

    persisted = asyncio.run(store.replace(_schedule(SVOBODY)))
    assert persisted is False
    assert store.degraded is True
    assert store.get_slots("Свободы 6") == [SVOBODY]


def test_save_failure_without_fallback_keeps_previous_schedule():
    store = ss.ScheduleStore(_BrokenBackend(), memory_fallback=False)
    with pytest.raises(ss.ScheduleStoreError):
        asyncio.run(store.replace(_schedule(SVOBODY)))
    assert store.dump() == {}


def test_replace_drops_addresses_missing_from_new_schedule():
    store = ss.ScheduleStore(ss.MemoryScheduleBackend())

    async def scenario():
        await store.replace(_schedule(SVOBODY, VIDOVA))
        newer = Slot("2024-05-03", "11:00", "Балет", "Свободы 6")
        await store.replace(_schedule(newer))
        return newer

    newer = asyncio.run(scenario())
    assert store.addresses() == ["Свободы 6"]
    assert store.get_slots("Свободы 6") == [newer]
    assert store.get_slots("Видова 210Д") == []


def test_address_lookup_is_lenient():
    store = ss.ScheduleStore(ss.MemoryScheduleBackend(_schedule(SVOBODY)))
    asyncio.run(store.load())

    assert store.resolve_address("свободы  6") == "Свободы 6"
    assert store.resolve_address("Ленина 1") is None
    assert store.resolve_address(None) is None


def test_find_slots_filters_through_the_store():
    store = ss.ScheduleStore(ss.MemoryScheduleBackend(_schedule(SVOBODY, VIDOVA)))
    asyncio.run(store.load())
    from datetime import datetime

    now = datetime(2024, 5, 1, 12, 0)
    assert store.find_slots("Свободы 6", "балет", days=3, now=now) == [{"date": "2024-05-02", "time": "10:00"}]
    assert store.find_slots("Свободы 6", "Стретчинг", days=3, now=now) == []
    assert store.find_slots("Нет такой", "Балет", days=3, now=now) == []


def test_sql_backend_replaces_rows_in_order(run_db):
    backend = ss.SqlScheduleBackend()
    extra = Slot("2024-05-02", "09:00", "Балет", "Свободы 6")

    async def scenario():
        await backend.save(_schedule(SVOBODY, extra, VIDOVA))
        first = await backend.load()
        await backend.save(_schedule(VIDOVA))
        second = await backend.load()
        return first, second

    first, second = run_db(scenario())
    assert first["Свободы 6"] == [SVOBODY, extra]
    assert first["Видова 210Д"] == [VIDOVA]
    assert second == {"Видова 210Д": [VIDOVA]}


def test_build_schedule_store_picks_backend(tmp_path):
    assert ss.build_schedule_store("memory").backend_name == "memory"
    assert ss.build_schedule_store("sql").backend_name == "sql"
    store = ss.build_schedule_store("json", path=str(tmp_path / "s.json"), memory_fallback=False)
    assert store.backend_name == "json"
