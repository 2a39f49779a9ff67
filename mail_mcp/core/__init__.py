"""Core configuration and logging."""

from .config import DEFAULT_GMAIL_SCOPES, Settings, settings
from .logging import setup_logging

__all__ = ["DEFAULT_GMAIL_SCOPES", "Settings", "settings", "setup_logging"]
