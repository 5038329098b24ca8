"""Studio booking bot: Telegram front-end, WebApp API and schedule store."""

__version__ = "0.1.0"
