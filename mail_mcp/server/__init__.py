"""MCP server for the mail tools."""

from .server import MailMCPServer, MCPServerBase, create_mail_server

__all__ = ["MCPServerBase", "MailMCPServer", "create_mail_server"]
