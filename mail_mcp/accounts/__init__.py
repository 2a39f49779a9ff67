"""Account management."""

from .manager import AccountManager

__all__ = ["AccountManager"]
