from __future__ import annotations

import os

from dotenv import load_dotenv

# .env in the working directory; real environment wins.
load_dotenv(override=False)


def _env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return default


def _env_int_or_none(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except Exception:
        return None


def _env_str(name: str, default: str = "") -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def _normalize_backend(name: str | None) -> str:
    cleaned = (name or "").strip().lower()
    if cleaned in {"postgres", "postgresql", "mysql", "db", "database"}:
        return "sql"
    if cleaned in {"json", "memory", "sql"}:
        return cleaned
    return "json"


# Tokens / chats
BOT_TOKEN: str = _env_str("BOT_TOKEN")
ADMIN_CHAT_ID: int | None = _env_int_or_none("ADMIN_CHAT_ID")
WEBAPP_URL: str = _env_str("WEBAPP_URL")

# HTTP API (PORT kept for hosting platforms that inject it)
API_HOST: str = _env_str("API_HOST", "0.0.0.0")
API_PORT: int = _env_int("API_PORT", _env_int("PORT", 3000))
TWA_WEB_DIR: str = _env_str("TWA_WEB_DIR", os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "web"))
WEBAPP_REQUIRE_INIT_DATA: bool = _env_bool("WEBAPP_REQUIRE_INIT_DATA", False)
ALLOW_ALL_ORIGINS: bool = _env_bool("TWA_ALLOW_ALL_ORIGINS", True)

# Schedule storage
SCHEDULE_BACKEND: str = _normalize_backend(os.getenv("SCHEDULE_BACKEND"))
SCHEDULE_FILE: str = _env_str("SCHEDULE_FILE", os.path.join("data", "schedules.json"))
SCHEDULE_MEMORY_FALLBACK: bool = _env_bool("SCHEDULE_MEMORY_FALLBACK", True)

# Slot lookup window
DEFAULT_SLOT_WINDOW_DAYS: int = max(1, _env_int("DEFAULT_SLOT_WINDOW_DAYS", 3))
MAX_SLOT_WINDOW_DAYS: int = 60

# Timezone of the studios; spreadsheet times are wall-clock local times
DEFAULT_LOCAL_TIMEZONE: str = _env_str("LOCAL_TIMEZONE", "Europe/Moscow")

# Booking drafts from the WebApp wait this long for a contact share
PENDING_BOOKING_TTL_MINUTES: int = max(1, _env_int("PENDING_BOOKING_TTL_MINUTES", 1440))

# Pause between broadcast messages (Telegram allows ~30 msg/s)
BROADCAST_DELAY_SECONDS: float = _env_int("BROADCAST_DELAY_MS", 50) / 1000

# Logging
LOG_LEVEL_NAME: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()
LOG_FILE: str = _env_str("LOG_FILE", "bot.log")

__all__ = [
    "BOT_TOKEN",
    "ADMIN_CHAT_ID",
    "WEBAPP_URL",
    "API_HOST",
    "API_PORT",
    "TWA_WEB_DIR",
    "WEBAPP_REQUIRE_INIT_DATA",
    "ALLOW_ALL_ORIGINS",
    "SCHEDULE_BACKEND",
    "SCHEDULE_FILE",
    "SCHEDULE_MEMORY_FALLBACK",
    "DEFAULT_SLOT_WINDOW_DAYS",
    "MAX_SLOT_WINDOW_DAYS",
    "DEFAULT_LOCAL_TIMEZONE",
    "PENDING_BOOKING_TTL_MINUTES",
    "BROADCAST_DELAY_SECONDS",
    "LOG_LEVEL_NAME",
    "LOG_FILE",
]
