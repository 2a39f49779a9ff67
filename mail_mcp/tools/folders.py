"""Folder tools. Gmail accounts expose their labels as folders."""

from typing import Any

from ..facade import MailboxFacade
from ..utils.tool_decorators import handle_tool_errors
from .common import ACCOUNT_PROPERTY


@handle_tool_errors
async def list_folders(facade: MailboxFacade, account: str | None = None) -> dict[str, Any]:
    """List all folders with their special-use role (trash, sent, drafts...)."""
    return await facade.list_folders(account)


@handle_tool_errors
async def create_folder(
    facade: MailboxFacade, name: str, account: str | None = None
) -> dict[str, Any]:
    if not name or not name.strip():
        raise ValueError("Folder name cannot be empty")
    return await facade.create_folder(account, name.strip())


TOOL_SCHEMAS = [
    {
        "name": "list_folders",
        "description": "List all mail folders for an account, including special-use roles.",
        "input_schema": {
            "type": "object",
            "properties": {**ACCOUNT_PROPERTY},
            "required": [],
        },
        "handler": list_folders,
    },
    {
        "name": "create_folder",
        "description": "Create a new mail folder. Use '/' or the server delimiter for nesting.",
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                "name": {"type": "string", "description": "Name of the folder to create"},
            },
            "required": ["name"],
        },
        "handler": create_folder,
    },
]
