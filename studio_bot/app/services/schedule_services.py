"""Schedule store and slot lookup.

The schedule is a dictionary ``address -> [Slot, ...]`` kept in memory for the
lifetime of the process. It is loaded once at startup from a backend (JSON
file, SQL table or nothing at all) and replaced wholesale whenever an admin
uploads a new spreadsheet. HTTP handlers only ever read it.

Dates and times in the spreadsheets are typed by hand, so parsing is lenient:
see ``parse_slot_date`` and ``parse_slot_time``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import tempfile
from datetime import date, datetime, time as dtime, timedelta
from typing import Any, Iterable, Mapping, Protocol, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from studio_bot.app.core import constants
from studio_bot.app.core.db import get_session
from studio_bot.app.domain.models import ScheduleSlotRow, Slot
from studio_bot.app.services.shared_services import collapse_spaces, local_now

logger = logging.getLogger(__name__)

Schedule = dict[str, list[Slot]]

EXCEL_EPOCH = date(1899, 12, 30)
# Serial day numbers outside this range are not dates (1954..2173)
_EXCEL_SERIAL_MIN = 20000
_EXCEL_SERIAL_MAX = 100000

_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})")
_DMY_DATE_RE = re.compile(r"^(\d{1,2})[./-](\d{1,2})[./-](\d{2,4})$")
_SERIAL_RE = re.compile(r"^\d+(?:[.,]\d+)?$")
_TIME_TOKEN_RE = re.compile(r"(\d{1,2})[:.](\d{2})")
_HOUR_ONLY_RE = re.compile(r"^(\d{1,2})$")

RANGE_DASH = "–"


class ScheduleStoreError(RuntimeError):
    """The schedule backend could not be read or written."""


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

def _from_excel_serial(value: float) -> date | None:
    if not (_EXCEL_SERIAL_MIN <= value < _EXCEL_SERIAL_MAX):
        return None
    return EXCEL_EPOCH + timedelta(days=int(value))


def parse_slot_date(value: Any) -> date | None:
    """Parse a spreadsheet/JSON date cell.

    Accepts ``date``/``datetime`` objects, ``YYYY-MM-DD`` (with or without a
    time part), ``DD.MM.YYYY``, ``DD.MM.YY``, ``DD/MM/YYYY`` and Excel serial
    day numbers. Returns None for anything else.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        if value != value:  # NaN
            return None
        return _from_excel_serial(float(value))

    raw = collapse_spaces(value)
    if not raw:
        return None

    try:
        m = _ISO_DATE_RE.match(raw)
        if m:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        m = _DMY_DATE_RE.match(raw)
        if m:
            day, month, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
            if year < 100:
                year += 2000
            return date(year, month, day)
    except ValueError:
        return None

    if _SERIAL_RE.match(raw):
        return _from_excel_serial(float(raw.replace(",", ".")))
    return None


def _valid_hm(hour: int, minute: int) -> bool:
    return 0 <= hour < 24 and 0 <= minute < 60


def parse_slot_time(value: Any) -> tuple[dtime, dtime | None] | None:
    """Parse a time cell into ``(start, end)``; ``end`` is None for a single time.

    Understands ``10:00``, ``9.30``, ``10`` (whole hour, as text or a number),
    ranges joined by any dash (``10:00–10:55``, ``10:00 - 10:55``),
    ``datetime.time`` objects and Excel day fractions (``0.4166`` == 10:00).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.time().replace(second=0, microsecond=0), None
    if isinstance(value, dtime):
        return value.replace(second=0, microsecond=0), None
    if isinstance(value, (int, float)):
        number = float(value)
        if number != number:  # NaN
            return None
        if 0 <= number < 1:
            minutes = int(round(number * 24 * 60)) % (24 * 60)
            return dtime(minutes // 60, minutes % 60), None
        if number.is_integer() and _valid_hm(int(number), 0):
            return dtime(int(number), 0), None
        return None

    raw = collapse_spaces(value)
    if not raw:
        return None

    tokens = [(int(h), int(m)) for h, m in _TIME_TOKEN_RE.findall(raw)]
    if not tokens:
        m = _HOUR_ONLY_RE.match(raw)
        if not m:
            return None
        tokens = [(int(m.group(1)), 0)]

    tokens = [tok for tok in tokens if _valid_hm(*tok)]
    if not tokens:
        return None
    start = dtime(*tokens[0])
    end = dtime(*tokens[1]) if len(tokens) > 1 else None
    return start, end


def normalize_date_label(value: Any) -> str | None:
    parsed = parse_slot_date(value)
    return parsed.isoformat() if parsed else None


def normalize_time_label(value: Any) -> str | None:
    """Canonical ``HH:MM`` / ``HH:MM–HH:MM`` label or None if unparsable."""
    parsed = parse_slot_time(value)
    if parsed is None:
        return None
    start, end = parsed
    label = f"{start:%H:%M}"
    if end is not None:
        label = f"{label}{RANGE_DASH}{end:%H:%M}"
    return label


def normalize_direction(value: Any) -> str:
    """Key used to compare class directions: whitespace and case insensitive."""
    return collapse_spaces(value).casefold()


def slot_start(slot: Slot) -> datetime | None:
    """Start of the slot as a naive local datetime, or None if unparsable."""
    day = parse_slot_date(slot.date)
    parsed = parse_slot_time(slot.time)
    if day is None or parsed is None:
        return None
    return datetime.combine(day, parsed[0])


def filter_slots(
    slots: Iterable[Slot],
    direction: str,
    *,
    days: int | None = None,
    now: datetime | None = None,
) -> list[dict[str, str]]:
    """Bookable ``{date, time}`` pairs for ``direction`` within ``[now, now + days)``.

    Slots with missing fields or unparsable dates/times are skipped. The
    result is sorted by start and deduplicated on (date, time).
    """
    wanted = normalize_direction(direction)
    if not wanted:
        return []
    window_days = constants.DEFAULT_SLOT_WINDOW_DAYS if days is None else int(days)
    start_bound = now or local_now()
    end_bound = start_bound + timedelta(days=window_days)

    found: dict[tuple[str, str], datetime] = {}
    for slot in slots:
        if not slot.date or not slot.time or not slot.direction:
            logger.debug("Skipping incomplete slot: %s", slot)
            continue
        if normalize_direction(slot.direction) != wanted:
            continue
        starts = slot_start(slot)
        if starts is None:
            logger.debug("Skipping slot with unparsable date/time: %s", slot)
            continue
        if not (start_bound <= starts < end_bound):
            continue
        key = (starts.date().isoformat(), normalize_time_label(slot.time) or slot.time)
        found.setdefault(key, starts)

    ordered = sorted(found.items(), key=lambda item: (item[1], item[0][1]))
    return [{"date": d, "time": t} for (d, t), _ in ordered]


def group_by_address(slots: Iterable[Slot]) -> Schedule:
    """Group slots by address keeping first-seen order."""
    schedule: Schedule = {}
    for slot in slots:
        schedule.setdefault(slot.address, []).append(slot)
    return schedule


def schedule_from_json(raw: Any) -> Schedule:
    """Build a schedule from the on-disk JSON shape.

    The canonical shape is ``{address: [slot, ...]}``; a flat list of slots
    (older exports) is grouped by its ``address`` field.
    """
    if isinstance(raw, Mapping):
        schedule: Schedule = {}
        for address, items in raw.items():
            if not isinstance(items, list):
                continue
            schedule[str(address)] = [
                Slot.from_mapping(item, address=str(address)) for item in items if isinstance(item, Mapping)
            ]
        return schedule
    if isinstance(raw, list):
        return group_by_address(Slot.from_mapping(item) for item in raw if isinstance(item, Mapping))
    raise ScheduleStoreError(f"Unsupported schedule JSON root: {type(raw).__name__}")


def schedule_to_json(schedule: Mapping[str, Sequence[Slot]]) -> dict[str, list[dict[str, str]]]:
    return {address: [slot.to_dict() for slot in slots] for address, slots in schedule.items()}


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------

class ScheduleBackend(Protocol):
    name: str

    async def load(self) -> Schedule: ...

    async def save(self, schedule: Schedule) -> None: ...


class MemoryScheduleBackend:
    """Keeps nothing beyond the process; the schedule is lost on restart."""

    name = "memory"

    def __init__(self, initial: Schedule | None = None) -> None:
        self._data: Schedule = dict(initial or {})

    async def load(self) -> Schedule:
        return {address: list(slots) for address, slots in self._data.items()}

    async def save(self, schedule: Schedule) -> None:
        self._data = {address: list(slots) for address, slots in schedule.items()}


class JsonScheduleBackend:
    """``{address: [slot, ...]}`` in a JSON file, written atomically."""

    name = "json"

    def __init__(self, path: str) -> None:
        self.path = path

    def _read(self) -> Schedule:
        if not os.path.exists(self.path):
            logger.info("Schedule file %s not found, starting empty", self.path)
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ScheduleStoreError(f"Corrupted schedule file {self.path}: {e}") from e
        return schedule_from_json(raw)

    def _write(self, schedule: Schedule) -> None:
        folder = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(folder, exist_ok=True)
        with tempfile.NamedTemporaryFile("w", delete=False, encoding="utf-8", dir=folder, suffix=".tmp") as tf:
            json.dump(schedule_to_json(schedule), tf, ensure_ascii=False, indent=2)
            tmp_name = tf.name
        os.replace(tmp_name, self.path)

    async def load(self) -> Schedule:
        return await asyncio.to_thread(self._read)

    async def save(self, schedule: Schedule) -> None:
        await asyncio.to_thread(self._write, schedule)


class SqlScheduleBackend:
    """``schedule_slots`` table; a save deletes and re-inserts in one transaction."""

    name = "sql"

    async def load(self) -> Schedule:
        async with get_session() as session:
            result = await session.execute(
                select(ScheduleSlotRow).order_by(
                    ScheduleSlotRow.address, ScheduleSlotRow.position, ScheduleSlotRow.id
                )
            )
            rows = result.scalars().all()
        return group_by_address(row.to_slot() for row in rows)

    async def save(self, schedule: Schedule) -> None:
        async with get_session() as session:
            async with session.begin():
                await session.execute(delete(ScheduleSlotRow))
                session.add_all(
                    ScheduleSlotRow(
                        address=address,
                        slot_date=slot.date,
                        slot_time=slot.time,
                        direction=slot.direction,
                        position=position,
                    )
                    for address, slots in schedule.items()
                    for position, slot in enumerate(slots)
                )


STORE_ERRORS: tuple[type[BaseException], ...] = (ScheduleStoreError, SQLAlchemyError, OSError, ValueError)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class ScheduleStore:
    """In-memory schedule served to handlers, persisted through a backend."""

    def __init__(self, backend: ScheduleBackend, *, memory_fallback: bool = True) -> None:
        self._backend = backend
        self._memory_fallback = memory_fallback
        self._schedule: Schedule = {}
        self.degraded = False

    @property
    def backend_name(self) -> str:
        return self._backend.name

    async def load(self) -> None:
        """Load the schedule from the backend; start empty on failure if allowed."""
        try:
            schedule = await self._backend.load()
        except STORE_ERRORS as e:
            if not self._memory_fallback:
                raise ScheduleStoreError(f"Failed to load schedule from {self.backend_name}: {e}") from e
            logger.warning("Schedule backend %s unavailable (%s); using empty in-memory schedule", self.backend_name, e)
            self.degraded = True
            self._schedule = {}
            return
        self._schedule = schedule
        self.degraded = False
        logger.info(
            "Loaded schedule from %s: %d addresses, %d slots",
            self.backend_name, len(self._schedule), self.slot_count(),
        )

    async def replace(self, schedule: Schedule) -> bool:
        """Replace the whole schedule. Returns False if it was kept in memory only."""
        new_schedule = {address: list(slots) for address, slots in schedule.items()}
        persisted = True
        try:
            await self._backend.save(new_schedule)
        except STORE_ERRORS as e:
            if not self._memory_fallback:
                raise ScheduleStoreError(f"Failed to save schedule to {self.backend_name}: {e}") from e
            logger.warning("Schedule backend %s save failed (%s); keeping schedule in memory", self.backend_name, e)
            persisted = False
        self._schedule = new_schedule
        self.degraded = not persisted
        logger.info("Schedule replaced: %d addresses, %d slots", len(new_schedule), self.slot_count())
        return persisted

    def resolve_address(self, address: str | None) -> str | None:
        """Stored key for ``address``: exact match first, then whitespace/case-insensitive."""
        if not address:
            return None
        if address in self._schedule:
            return address
        wanted = normalize_direction(address)
        for key in self._schedule:
            if normalize_direction(key) == wanted:
                return key
        return None

    def get_slots(self, address: str | None) -> list[Slot]:
        key = self.resolve_address(address)
        return list(self._schedule.get(key, [])) if key is not None else []

    def find_slots(
        self,
        address: str,
        direction: str,
        *,
        days: int | None = None,
        now: datetime | None = None,
    ) -> list[dict[str, str]]:
        slots = self.get_slots(address)
        if not slots:
            logger.debug("No slots stored for address %r", address)
            return []
        return filter_slots(slots, direction, days=days, now=now)

    def addresses(self) -> list[str]:
        return list(self._schedule)

    def slot_count(self) -> int:
        return sum(len(slots) for slots in self._schedule.values())

    def dump(self) -> dict[str, list[dict[str, str]]]:
        return schedule_to_json(self._schedule)


def make_backend(name: str | None = None, *, path: str | None = None) -> ScheduleBackend:
    backend = (name or constants.SCHEDULE_BACKEND).lower()
    if backend == "sql":
        return SqlScheduleBackend()
    if backend == "memory":
        return MemoryScheduleBackend()
    return JsonScheduleBackend(path or constants.SCHEDULE_FILE)


def build_schedule_store(
    backend: str | None = None,
    *,
    path: str | None = None,
    memory_fallback: bool | None = None,
) -> ScheduleStore:
    fallback = constants.SCHEDULE_MEMORY_FALLBACK if memory_fallback is None else memory_fallback
    return ScheduleStore(make_backend(backend, path=path), memory_fallback=fallback)


_store: ScheduleStore | None = None


def get_schedule_store() -> ScheduleStore:
    """Process-wide store (created from env on first use, loaded by the entrypoint)."""
    global _store
    if _store is None:
        _store = build_schedule_store()
    return _store


def set_schedule_store(store: ScheduleStore | None) -> None:
    global _store
    _store = store


__all__ = [
    "Schedule",
    "ScheduleStoreError",
    "parse_slot_date",
    "parse_slot_time",
    "normalize_date_label",
    "normalize_time_label",
    "normalize_direction",
    "slot_start",
    "filter_slots",
    "group_by_address",
    "schedule_from_json",
    "schedule_to_json",
    "MemoryScheduleBackend",
    "JsonScheduleBackend",
    "SqlScheduleBackend",
    "ScheduleStore",
    "make_backend",
    "build_schedule_store",
    "get_schedule_store",
    "set_schedule_store",
]
