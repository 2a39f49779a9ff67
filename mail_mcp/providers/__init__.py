"""Mail provider backends."""

from .base import MailProvider
from .gmail import GmailClient, GmailProvider
from .imap import ImapProvider, ImapSession, ImapSessionPool

__all__ = [
    "GmailClient",
    "GmailProvider",
    "ImapProvider",
    "ImapSession",
    "ImapSessionPool",
    "MailProvider",
]
