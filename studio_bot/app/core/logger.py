"""Logger facade and process-wide logging setup."""

import logging

from rich.logging import RichHandler

__all__ = ["get_logger", "setup_logging"]

_CONFIGURED = False


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(name or __name__)


def setup_logging(level_name: str = "INFO", log_file: str | None = "bot.log") -> None:
    """Configure root logging once: Rich console plus a WARNING+ file log."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    console_handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=True,
        show_level=True,
        show_path=False,
        log_time_format="%H:%M:%S",
    )
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.WARNING)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))
        handlers.append(file_handler)

    level = getattr(logging, (level_name or "INFO").strip().upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(message)s", handlers=handlers)

    # Reduce noisy logs, keep warnings
    logging.getLogger("aiogram.event").setLevel(logging.INFO)
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    _CONFIGURED = True
