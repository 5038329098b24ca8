"""Shared telegram interface components: role filter, error relay, middleware."""

from .roles import AdminChatFilter, is_admin_event  # noqa: F401

__all__ = ["AdminChatFilter", "is_admin_event"]
