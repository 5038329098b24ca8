import asyncio
from datetime import datetime, time
from io import BytesIO

import pandas as pd
import pytest

from studio_bot.app.domain.models import Slot
from studio_bot.app.services.import_services import (
    ScheduleImportError,
    is_supported_filename,
    parse_schedule_file,
)
from studio_bot.app.services.schedule_services import MemoryScheduleBackend, ScheduleStore


def _xlsx(rows: list[dict]) -> bytes:
    buf = BytesIO()
    pd.DataFrame(rows).to_excel(buf, index=False)
    return buf.getvalue()


def test_xlsx_import_normalises_cells_and_groups_by_address():
    payload = _xlsx([
        {"Date": datetime(2024, 5, 2), "Time": time(10, 0), "Direction": " Балет ", "Address": "Свободы 6"},
        {"Date": "03.05.2024", "Time": "18:00-18:55", "Direction": "Стретчинг", "Address": "Видова 210Д"},
        {"Date": "2024-05-04", "Time": "9.30", "Direction": "Балет", "Address": "Свободы  6"},
    ])

    result = parse_schedule_file(BytesIO(payload), "schedule.xlsx")

    assert result.imported == 3
    assert result.skipped == 0
    assert result.addresses == 2
    assert result.schedule["Свободы 6"] == [
        Slot("2024-05-02", "10:00", "Балет", "Свободы 6"),
        Slot("2024-05-04", "09:30", "Балет", "Свободы 6"),
    ]
    assert result.schedule["Видова 210Д"] == [Slot("2024-05-03", "18:00–18:55", "Стретчинг", "Видова 210Д")]


def test_russian_headers_and_bad_rows_are_counted():
    payload = _xlsx([
        {"Дата": "02.05.2024", "Время": "10:00", "Направление": "Балет", "Адрес": "Свободы 6"},
        {"Дата": "когда-то", "Время": "10:00", "Направление": "Балет", "Адрес": "Свободы 6"},
        {"Дата": "02.05.2024", "Время": "", "Направление": "Балет", "Адрес": "Свободы 6"},
    ])

    result = parse_schedule_file(payload, "расписание.xlsx")
    assert result.imported == 1
    assert result.skipped == 2


def test_whole_hour_typed_as_number_is_imported():
    payload = _xlsx([
        {"date": "2024-05-02", "time": 10, "direction": "Балет", "address": "Свободы 6"},
        {"date": "2024-05-02", "time": "18:00", "direction": "Балет", "address": "Свободы 6"},
    ])

    result = parse_schedule_file(payload, "schedule.xlsx")
    assert result.imported == 2
    assert result.skipped == 0
    assert [slot.time for slot in result.schedule["Свободы 6"]] == ["10:00", "18:00"]


def test_csv_import():
    payload = "date,time,direction,address\n2024-05-02,10:00,Балет,Свободы 6\n,,,\n".encode("utf-8")

    result = parse_schedule_file(payload, "schedule.csv")
    assert result.imported == 1
    assert result.skipped == 0
    assert result.schedule == {"Свободы 6": [Slot("2024-05-02", "10:00", "Балет", "Свободы 6")]}


def test_missing_column_is_rejected():
    payload = _xlsx([{"date": "2024-05-02", "time": "10:00", "direction": "Балет"}])
    with pytest.raises(ScheduleImportError, match="address"):
        parse_schedule_file(payload, "schedule.xlsx")


def test_file_without_valid_rows_is_rejected():
    payload = _xlsx([{"date": "скоро", "time": "10:00", "direction": "Балет", "address": "Свободы 6"}])
    with pytest.raises(ScheduleImportError):
        parse_schedule_file(payload, "schedule.xlsx")


def test_unreadable_file_is_rejected():
    with pytest.raises(ScheduleImportError):
        parse_schedule_file(b"definitely not a workbook", "schedule.xlsx")


def test_reimport_replaces_previous_schedule():
    store = ScheduleStore(MemoryScheduleBackend())
    first = _xlsx([
        {"date": "2024-05-02", "time": "10:00", "direction": "Балет", "address": "Свободы 6"},
        {"date": "2024-05-02", "time": "11:00", "direction": "Балет", "address": "Видова 210Д"},
    ])
    second = _xlsx([
        {"date": "2024-05-09", "time": "12:00", "direction": "Балет", "address": "Свободы 6"},
    ])

    async def scenario():
        await store.replace(parse_schedule_file(first, "a.xlsx").schedule)
        await store.replace(parse_schedule_file(second, "b.xlsx").schedule)

    asyncio.run(scenario())
    assert store.dump() == {
        "Свободы 6": [{"date": "2024-05-09", "time": "12:00", "direction": "Балет", "address": "Свободы 6"}],
    }


@pytest.mark.parametrize(
    "name, expected",
    [("s.xlsx", True), ("S.CSV", True), ("s.xls", False), ("s.xlsm", True), ("s.pdf", False), (None, False), ("", False)],
)
def test_is_supported_filename(name, expected):
    assert is_supported_filename(name) is expected
