"""MCP server exposing Gmail and IMAP/SMTP mailboxes as tools."""

__version__ = "0.1.0"
