"""WebApp booking drafts and the admin relay.

A web form submission is parked as a ``BookingDraft`` keyed by the user's
Telegram id. The bot then asks the user to share their contact; when the
contact arrives the draft is consumed and one consolidated message goes to
the admin chat. A contact without a draft is a plain callback request.
"""

from __future__ import annotations

import html
import logging
from datetime import datetime, timedelta
from typing import Any, Literal

from aiogram import Bot

from studio_bot.app.core import constants
from studio_bot.app.core.notifications import notify_admin
from studio_bot.app.domain.models import BookingDraft
from studio_bot.app.services.shared_services import utc_now
from studio_bot.app.translations import t

logger = logging.getLogger(__name__)

ContactOutcome = Literal["booking", "callback", "undelivered"]


class PendingBookings:
    """Drafts waiting for a contact share, one per Telegram user."""

    def __init__(self, ttl_minutes: int | None = None) -> None:
        self._ttl_minutes = ttl_minutes
        self._drafts: dict[int, BookingDraft] = {}

    @property
    def ttl(self) -> timedelta:
        minutes = self._ttl_minutes if self._ttl_minutes is not None else constants.PENDING_BOOKING_TTL_MINUTES
        return timedelta(minutes=minutes)

    def _expired(self, draft: BookingDraft, now: datetime) -> bool:
        return now - draft.created_at >= self.ttl

    def put(self, draft: BookingDraft) -> None:
        if draft.telegram_id in self._drafts:
            logger.info("Replacing pending booking for %s", draft.telegram_id)
        self._drafts[draft.telegram_id] = draft

    def get(self, telegram_id: int, *, now: datetime | None = None) -> BookingDraft | None:
        draft = self._drafts.get(telegram_id)
        if draft is None:
            return None
        if self._expired(draft, now or utc_now()):
            logger.info("Pending booking for %s expired", telegram_id)
            self._drafts.pop(telegram_id, None)
            return None
        return draft

    def pop(self, telegram_id: int, *, now: datetime | None = None) -> BookingDraft | None:
        draft = self.get(telegram_id, now=now)
        if draft is not None:
            self._drafts.pop(telegram_id, None)
        return draft

    def purge_expired(self, *, now: datetime | None = None) -> int:
        moment = now or utc_now()
        stale = [tid for tid, draft in self._drafts.items() if self._expired(draft, moment)]
        for tid in stale:
            self._drafts.pop(tid, None)
        return len(stale)

    def clear(self) -> None:
        self._drafts.clear()

    def __len__(self) -> int:
        return len(self._drafts)

    def __contains__(self, telegram_id: object) -> bool:
        return telegram_id in self._drafts


pending_bookings = PendingBookings()


def _or_default(value: str | None) -> str:
    cleaned = (value or "").strip()
    return html.escape(cleaned) if cleaned else t("not_specified")


def format_confirmed_booking(draft: BookingDraft, name: str | None, phone: str | None) -> str:
    return t(
        "admin_booking_confirmed",
        goal=_or_default(draft.goal),
        direction=_or_default(draft.direction),
        address=_or_default(draft.address),
        slot=_or_default(draft.slot),
        name=_or_default(name or draft.name),
        phone=_or_default(phone or draft.phone),
        telegram_id=draft.telegram_id,
    )


def format_callback_request(telegram_id: int, name: str | None, phone: str | None) -> str:
    return t(
        "admin_callback_request",
        name=_or_default(name),
        phone=_or_default(phone),
        telegram_id=telegram_id,
    )


async def submit_booking(
    bot: Bot,
    draft: BookingDraft,
    *,
    reply_markup: Any = None,
    store: PendingBookings | None = None,
) -> None:
    """Park the draft and ask the user to confirm by sharing their contact.

    Telegram errors propagate so the API can answer with an error; the draft
    is dropped in that case.
    """
    drafts = store if store is not None else pending_bookings
    drafts.purge_expired()
    drafts.put(draft)
    try:
        await bot.send_message(
            chat_id=draft.telegram_id,
            text=t("submit_confirm_request"),
            reply_markup=reply_markup,
        )
    except Exception:
        drafts.pop(draft.telegram_id)
        raise
    logger.info(
        "Booking draft stored for %s: %s / %s / %s",
        draft.telegram_id, draft.direction, draft.address, draft.slot,
    )


async def confirm_contact(
    bot: Bot,
    telegram_id: int,
    name: str | None,
    phone: str | None,
    *,
    store: PendingBookings | None = None,
) -> ContactOutcome:
    """Relay a shared contact to the admin chat as one message.

    Consumes the pending draft if there is one. If the admin chat cannot be
    reached the draft is put back so the user can retry, and the outcome is
    ``"undelivered"``.
    """
    drafts = store if store is not None else pending_bookings
    draft = drafts.pop(telegram_id)
    if draft is not None:
        text = format_confirmed_booking(draft, name, phone)
        outcome: ContactOutcome = "booking"
    else:
        text = format_callback_request(telegram_id, name, phone)
        outcome = "callback"

    delivered = await notify_admin(text, bot)
    logger.info("Contact from %s relayed as %s (delivered=%s)", telegram_id, outcome, delivered)
    if not delivered:
        if draft is not None:
            drafts.put(draft)
        return "undelivered"
    return outcome


__all__ = [
    "PendingBookings",
    "pending_bookings",
    "format_confirmed_booking",
    "format_callback_request",
    "submit_booking",
    "confirm_contact",
]
