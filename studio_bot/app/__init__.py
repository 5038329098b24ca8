"""Application package.

Small, explicit package initializer for `studio_bot.app`.
"""

from .core import db
from .domain import models

__all__ = ["db", "models"]
