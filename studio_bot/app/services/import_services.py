"""Spreadsheet → schedule import.

The admin uploads the monthly schedule as an Excel workbook (or CSV) with
the columns ``date, time, direction, address``. Only the first sheet is read.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Any, BinaryIO

import pandas as pd

from studio_bot.app.domain.models import Slot
from studio_bot.app.services.schedule_services import (
    Schedule,
    group_by_address,
    normalize_date_label,
    normalize_time_label,
)
from studio_bot.app.services.shared_services import collapse_spaces

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("date", "time", "direction", "address")

COLUMN_ALIASES: dict[str, str] = {
    "date": "date",
    "дата": "date",
    "time": "time",
    "время": "time",
    "direction": "direction",
    "направление": "direction",
    "address": "address",
    "адрес": "address",
    "студия": "address",
}

EXCEL_SUFFIXES = (".xlsx", ".xlsm")
CSV_SUFFIXES = (".csv",)


class ScheduleImportError(ValueError):
    """The uploaded file cannot be turned into a schedule."""


@dataclass
class ImportResult:
    schedule: Schedule = field(default_factory=dict)
    imported: int = 0
    skipped: int = 0

    @property
    def addresses(self) -> int:
        return len(self.schedule)


def _cell_value(value: Any) -> Any:
    """Unwrap pandas/numpy scalars into plain Python values (NaN → None)."""
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if type(value).__module__ == "numpy" and hasattr(value, "item"):
        return value.item()
    return value


def _map_columns(columns: Any) -> dict[str, str]:
    """Map canonical column names to the frame's actual column labels."""
    mapping: dict[str, str] = {}
    for col in columns:
        key = COLUMN_ALIASES.get(collapse_spaces(col).casefold())
        if key and key not in mapping:
            mapping[key] = col
    missing = [name for name in REQUIRED_COLUMNS if name not in mapping]
    if missing:
        raise ScheduleImportError(f"Missing required columns: {', '.join(missing)}")
    return mapping


def read_frame(source: BinaryIO | bytes | str, filename: str | None = None) -> pd.DataFrame:
    """Read the first sheet (Excel) or the CSV into a DataFrame of raw cells."""
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    name = (filename or (source if isinstance(source, str) else "") or "").lower()
    try:
        if name.endswith(CSV_SUFFIXES):
            return pd.read_csv(source, dtype=str, keep_default_na=False)
        return pd.read_excel(source, sheet_name=0, dtype=object)
    except Exception as e:
        raise ScheduleImportError(f"Cannot read spreadsheet: {e}") from e


def frame_to_schedule(df: pd.DataFrame) -> ImportResult:
    """Turn raw rows into normalised slots grouped by address."""
    columns = _map_columns(df.columns)
    slots: list[Slot] = []
    skipped = 0
    for row in df.itertuples(index=False, name=None):
        cells = dict(zip(df.columns, row))
        raw = {key: _cell_value(cells[col]) for key, col in columns.items()}
        address = collapse_spaces(raw["address"])
        direction = collapse_spaces(raw["direction"])
        date_label = normalize_date_label(raw["date"])
        time_label = normalize_time_label(raw["time"])
        if not (address and direction and date_label and time_label):
            if any(v not in (None, "") for v in raw.values()):
                logger.debug("Skipping schedule row: %s", raw)
                skipped += 1
            continue
        slots.append(Slot(date=date_label, time=time_label, direction=direction, address=address))

    return ImportResult(schedule=group_by_address(slots), imported=len(slots), skipped=skipped)


def parse_schedule_file(source: BinaryIO | bytes | str, filename: str | None = None) -> ImportResult:
    """Parse an uploaded schedule; refuses files that yield no slots."""
    result = frame_to_schedule(read_frame(source, filename))
    if not result.imported:
        raise ScheduleImportError("No valid rows found in the file")
    logger.info(
        "Parsed schedule file %s: %d slots in %d addresses, %d rows skipped",
        filename or "<upload>", result.imported, result.addresses, result.skipped,
    )
    return result


def is_supported_filename(filename: str | None) -> bool:
    return bool(filename) and filename.lower().endswith(EXCEL_SUFFIXES + CSV_SUFFIXES)


__all__ = [
    "REQUIRED_COLUMNS",
    "ScheduleImportError",
    "ImportResult",
    "read_frame",
    "frame_to_schedule",
    "parse_schedule_file",
    "is_supported_filename",
]
