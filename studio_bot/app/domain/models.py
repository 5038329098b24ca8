from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Mapping

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class (explicit for mypy)."""

    pass


@dataclass(frozen=True)
class Slot:
    """One bookable class occurrence at a studio.

    ``date`` is an ISO calendar day once imported; ``time`` is either a start
    (``10:00``) or a range (``10:00–10:55``). There is no surrogate id: the
    whole tuple is the identity.
    """

    date: str
    time: str
    direction: str
    address: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], address: str | None = None) -> "Slot":
        return cls(
            date=str(data.get("date") or "").strip(),
            time=str(data.get("time") or "").strip(),
            direction=str(data.get("direction") or "").strip(),
            address=str(data.get("address") or address or "").strip(),
        )


@dataclass
class BookingDraft:
    """Web form submission waiting for the user's contact share."""

    telegram_id: int
    goal: str | None = None
    direction: str | None = None
    address: str | None = None
    name: str | None = None
    phone: str | None = None
    slot: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    telegram_id: Mapped[int] = mapped_column(BigInteger, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(120))
    # Telegram username without @
    username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )


class ScheduleSlotRow(Base):
    __tablename__ = "schedule_slots"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    address: Mapped[str] = mapped_column(String(200), index=True)
    # Stored as imported labels (ISO date, HH:MM or HH:MM–HH:MM)
    slot_date: Mapped[str] = mapped_column(String(32))
    slot_time: Mapped[str] = mapped_column(String(32))
    direction: Mapped[str] = mapped_column(String(200))
    # Order of the slot inside its address list
    position: Mapped[int] = mapped_column(Integer, default=0)

    def to_slot(self) -> Slot:
        return Slot(date=self.slot_date, time=self.slot_time, direction=self.direction, address=self.address)


__all__ = [
    "Base",
    "Slot",
    "BookingDraft",
    "User",
    "ScheduleSlotRow",
]
