"""FastAPI facade for the booking WebApp.

Three endpoints back the web form: ``/slots`` filters the stored schedule,
``/json`` dumps it, and ``/submit`` parks a booking draft and asks the user
(through the running bot) to confirm by sharing their contact.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import os
import urllib.parse
from datetime import UTC, datetime
from functools import wraps
from typing import Any, Dict, Optional, Union

from aiogram import Bot
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field, ValidationError

from studio_bot.app.core import constants
from studio_bot.app.domain.models import BookingDraft
from studio_bot.app.services.booking_services import submit_booking
from studio_bot.app.services.schedule_services import get_schedule_store
from studio_bot.app.services.shared_services import parse_telegram_id
from studio_bot.app.telegram.client.client_keyboards import confirm_booking_kb

logger = logging.getLogger(__name__)

# Allowed origins for Telegram clients when not opened to everyone
_raw_origins = [
    "https://web.telegram.org",
    "https://telegram.org",
    "https://t.me",
    os.getenv("TWA_ORIGIN"),
]
ALLOWED_ORIGINS = [o for o in _raw_origins if o]


class SlotsRequest(BaseModel):
    direction: Optional[str] = None
    address: Optional[str] = None
    days: Optional[int] = None


class SlotOut(BaseModel):
    date: str
    time: str


class SlotsResponse(BaseModel):
    ok: bool
    slots: list[SlotOut] = Field(default_factory=list)


class SubmitRequest(BaseModel):
    telegram_id: Union[int, str, None] = None
    goal: Optional[str] = None
    direction: Optional[str] = None
    address: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    slot: Optional[str] = None
    init_data: Optional[str] = Field(default=None, alias="initData")

    model_config = {"populate_by_name": True}


class TelegramUser(BaseModel):
    id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None


# ---------------------------------------------------------------------------
# Error handling helpers
# ---------------------------------------------------------------------------

def _error(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": error})


def api_error_handler(default_error: str = "Internal server error"):
    """Decorator to de-duplicate try/except in the WebApp endpoints.

    - ``HTTPException`` becomes ``{ok: false, error: detail}`` with its status.
    - Business ``ValueError`` becomes a 400 with the message.
    - Unexpected exceptions are logged and answered with a generic 500.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except HTTPException as exc:
                return _error(exc.status_code, str(exc.detail))
            except ValueError as exc:
                return _error(status.HTTP_400_BAD_REQUEST, str(exc) or "bad_request")
            except Exception as exc:  # noqa: BLE001 - API boundary
                logger.exception("%s failed: %s", func.__name__, exc)
                return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, default_error)

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Security helpers
# ---------------------------------------------------------------------------

# Signed WebApp launch data is accepted for a day
INIT_DATA_MAX_AGE_SECONDS = 86400


def _init_data_error(code: int, detail: str) -> HTTPException:
    return HTTPException(status_code=code, detail=detail)


def _signature(fields: Dict[str, str], token: str) -> str:
    """HMAC of the sorted ``key=value`` lines, keyed by HMAC("WebAppData", token)."""
    check_string = "\n".join(f"{key}={fields[key]}" for key in sorted(fields))
    secret = hmac.new(b"WebAppData", token.encode(), hashlib.sha256).digest()
    return hmac.new(secret, check_string.encode(), hashlib.sha256).hexdigest()


def validate_init_data(
    init_data: str,
    token: str | None = None,
    *,
    max_age: int = INIT_DATA_MAX_AGE_SECONDS,
) -> TelegramUser:
    """Check a WebApp ``initData`` string and return the Telegram user it names."""
    try:
        fields = dict(urllib.parse.parse_qsl(init_data, keep_blank_values=True, strict_parsing=True))
    except ValueError as exc:
        raise _init_data_error(status.HTTP_400_BAD_REQUEST, "invalid_init_data_format") from exc

    received = fields.pop("hash", None)
    if not received:
        raise _init_data_error(status.HTTP_400_BAD_REQUEST, "missing_hash")
    expected = _signature(fields, token if token is not None else constants.BOT_TOKEN)
    if not hmac.compare_digest(expected, received):
        raise _init_data_error(status.HTTP_401_UNAUTHORIZED, "invalid_init_data_signature")

    auth_date = fields.get("auth_date", "")
    if auth_date.isdigit() and int(auth_date) < datetime.now(UTC).timestamp() - max_age:
        raise _init_data_error(status.HTTP_401_UNAUTHORIZED, "stale_init_data")

    try:
        user = TelegramUser.model_validate(json.loads(fields.get("user") or "null"))
    except (ValueError, ValidationError) as exc:
        raise _init_data_error(status.HTTP_400_BAD_REQUEST, "missing_user") from exc
    return user


def _resolve_telegram_id(payload: SubmitRequest) -> int:
    if payload.init_data:
        return validate_init_data(payload.init_data).id
    if constants.WEBAPP_REQUIRE_INIT_DATA:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="init_data_required")
    telegram_id = parse_telegram_id(payload.telegram_id)
    if telegram_id is None:
        raise ValueError("telegram_id is required")
    return telegram_id


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(title="Studio booking WebApp API", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if constants.ALLOW_ALL_ORIGINS else ALLOWED_ORIGINS,
    allow_credentials=not constants.ALLOW_ALL_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.errors())
    return _error(status.HTTP_400_BAD_REQUEST, "invalid_request")


@app.post("/slots", response_model=SlotsResponse)
@api_error_handler()
async def find_slots(payload: SlotsRequest) -> Any:
    """Bookable ``{date, time}`` pairs for a direction at a studio."""
    direction = (payload.direction or "").strip()
    address = (payload.address or "").strip()
    if not direction or not address:
        return _error(status.HTTP_400_BAD_REQUEST, "direction and address are required")
    days = payload.days if payload.days is not None else constants.DEFAULT_SLOT_WINDOW_DAYS
    if not 1 <= days <= constants.MAX_SLOT_WINDOW_DAYS:
        return _error(status.HTTP_400_BAD_REQUEST, f"days must be between 1 and {constants.MAX_SLOT_WINDOW_DAYS}")

    slots = get_schedule_store().find_slots(address, direction, days=days)
    logger.debug("/slots %s / %s / %s -> %d", address, direction, days, len(slots))
    return SlotsResponse(ok=True, slots=[SlotOut(**s) for s in slots])


@app.get("/json")
async def dump_schedule() -> dict[str, list[dict[str, str]]]:
    return get_schedule_store().dump()


@app.post("/submit")
@api_error_handler()
async def submit(payload: SubmitRequest, request: Request) -> Any:
    bot: Bot | None = getattr(request.app.state, "bot", None)
    if bot is None:
        logger.error("/submit called but no bot is attached to the API")
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Bot is not running")

    telegram_id = _resolve_telegram_id(payload)
    draft = BookingDraft(
        telegram_id=telegram_id,
        goal=payload.goal,
        direction=payload.direction,
        address=payload.address,
        name=payload.name,
        phone=payload.phone,
        slot=payload.slot,
    )
    await submit_booking(bot, draft, reply_markup=confirm_booking_kb())
    return {"ok": True}


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


def get_app() -> FastAPI:
    """Exported factory for uvicorn or tests."""
    return app

# ---------------------------------------------------------------------------
# Serve WebApp
# ---------------------------------------------------------------------------

WEB_DIR = constants.TWA_WEB_DIR

if os.path.isdir(WEB_DIR):
    app.mount("/", StaticFiles(directory=WEB_DIR, html=True), name="web")
else:
    logger.warning("Web directory not found: %s", WEB_DIR)
