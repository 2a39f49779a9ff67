"""MCP server exposing the mail tools.

This module wires the account registry, the provider backends and the tool
handlers together and serves them over stdio.
"""

import json
import logging
from collections.abc import Callable, Sequence
from functools import partial
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import EmbeddedResource, ImageContent, TextContent, Tool

from ..accounts.manager import AccountManager
from ..core.config import Settings
from ..facade import MailboxFacade
from ..oauth.google import GoogleOAuthClient
from ..providers.imap import ImapSessionPool
from ..storage.credential_store import CredentialStore
from ..tools import ALL_TOOL_SCHEMAS

logger = logging.getLogger(__name__)


def _error_content(payload: dict[str, Any]) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload))]


class MCPServerBase:
    """
    Base class for MCP servers with tool registration.

    This provides a clean interface for building MCP servers with automatic
    tool registration and error handling.
    """

    def __init__(self, name: str):
        """
        Initialize MCP server.

        Args:
            name: Server name
        """
        self.app = Server(name)
        self.tools: dict[str, dict[str, Any]] = {}
        self._tool_handlers: dict[str, Callable] = {}

    def register_tool(
        self,
        name: str,
        description: str,
        input_schema: dict[str, Any],
        handler: Callable,
    ):
        """
        Register a tool with the server.

        Args:
            name: Tool name
            description: Tool description
            input_schema: JSON schema for tool inputs
            handler: Async function to handle tool calls
        """
        self.tools[name] = {
            "name": name,
            "description": description,
            "input_schema": input_schema,
        }
        self._tool_handlers[name] = handler
        logger.debug(f"Registered tool: {name}")

    async def call_tool(self, name: str, arguments: dict[str, Any] | None) -> dict[str, Any]:
        """Invoke a registered tool handler directly."""
        if name not in self._tool_handlers:
            raise ValueError(f"Unknown tool: {name}")
        handler = self._tool_handlers[name]
        return await handler(**(arguments or {}))

    def setup_handlers(self) -> None:
        """Set up MCP handlers for tool listing and calling."""

        @self.app.list_tools()
        async def list_tools() -> list[Tool]:
            """List available MCP tools."""
            logger.info("Listing available tools")
            return [
                Tool(
                    name=tool_info["name"],
                    description=tool_info["description"],
                    inputSchema=tool_info["input_schema"],
                )
                for tool_info in self.tools.values()
            ]

        @self.app.call_tool()
        async def call_tool(
            name: str, arguments: Any
        ) -> Sequence[TextContent | ImageContent | EmbeddedResource]:
            """Execute a tool with the given arguments."""
            logger.info(f"Calling tool: {name}")

            try:
                result = await self.call_tool(name, arguments)
                return [
                    TextContent(
                        type="text",
                        text=json.dumps(result, indent=2, default=str),
                    )
                ]

            except ValueError as e:
                logger.error(f"Validation error in {name}: {e}")
                return _error_content(
                    {"error": "validation_error", "message": str(e), "tool": name}
                )

            except PermissionError as e:
                logger.error(f"Auth error in {name}: {e}")
                return _error_content(
                    {"error": "authentication_required", "message": str(e), "tool": name}
                )

            except Exception as e:
                logger.exception(f"Error executing tool {name}: {e}")
                return _error_content(
                    {"error": "execution_error", "message": str(e), "tool": name}
                )

    async def run(self) -> None:
        """Run the MCP server."""
        logger.info(f"Starting MCP Server: {self.app.name}")

        # Run the server using stdio transport
        async with stdio_server() as (read_stream, write_stream):
            logger.info("MCP server running on stdio")
            await self.app.run(
                read_stream,
                write_stream,
                self.app.create_initialization_options(),
            )


class MailMCPServer(MCPServerBase):
    """MCP server bound to one mailbox facade."""

    def __init__(self, name: str, facade: MailboxFacade):
        super().__init__(name)
        self.facade = facade

    async def run(self) -> None:
        try:
            await super().run()
        finally:
            await self.facade.imap_pool.close_all()
            logger.info("Closed cached IMAP sessions")


def create_mail_server(settings: Settings) -> MailMCPServer:
    """
    Build the mail server with every tool registered.

    Args:
        settings: Application settings

    Returns:
        Server ready for ``setup_handlers()`` and ``run()``
    """
    store = CredentialStore(settings.mail_config_dir)
    account_manager = AccountManager(store)
    imap_pool = ImapSessionPool(settings)

    def oauth_client_factory() -> GoogleOAuthClient:
        return GoogleOAuthClient.from_keys_file(settings.oauth_keys_path, settings)

    facade = MailboxFacade(account_manager, imap_pool, oauth_client_factory, settings)
    server = MailMCPServer(settings.server_name, facade)

    for schema in ALL_TOOL_SCHEMAS:
        server.register_tool(
            name=schema["name"],
            description=schema["description"],
            input_schema=schema["input_schema"],
            handler=partial(schema["handler"], facade),
        )

    logger.info(f"Registered {len(server.tools)} tools")
    return server
