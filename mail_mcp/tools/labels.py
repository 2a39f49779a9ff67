"""Gmail label tools."""

from typing import Any

from ..facade import MailboxFacade
from ..utils.tool_decorators import handle_tool_errors
from .common import ACCOUNT_PROPERTY, LABEL_VISIBILITY_PROPERTIES


@handle_tool_errors
async def list_email_labels(
    facade: MailboxFacade, account: str | None = None
) -> dict[str, Any]:
    """
    List labels split into system and user labels.

    Returns:
        Dictionary with system_labels, user_labels and per-group counts
    """
    return await facade.list_labels(account)


@handle_tool_errors
async def create_label(
    facade: MailboxFacade,
    name: str,
    account: str | None = None,
    message_list_visibility: str | None = None,
    label_list_visibility: str | None = None,
) -> dict[str, Any]:
    return await facade.create_label(account, name, message_list_visibility, label_list_visibility)


@handle_tool_errors
async def update_label(
    facade: MailboxFacade,
    label_id: str,
    account: str | None = None,
    name: str | None = None,
    message_list_visibility: str | None = None,
    label_list_visibility: str | None = None,
) -> dict[str, Any]:
    """Update only the label fields that were provided."""
    return await facade.update_label(
        account, label_id, name, message_list_visibility, label_list_visibility
    )


@handle_tool_errors
async def delete_label(
    facade: MailboxFacade, label_id: str, account: str | None = None
) -> dict[str, Any]:
    return await facade.delete_label(account, label_id)


@handle_tool_errors
async def get_or_create_label(
    facade: MailboxFacade,
    name: str,
    account: str | None = None,
    message_list_visibility: str | None = None,
    label_list_visibility: str | None = None,
) -> dict[str, Any]:
    """Return the label with exactly this name, creating it if missing."""
    return await facade.get_or_create_label(
        account, name, message_list_visibility, label_list_visibility
    )


TOOL_SCHEMAS = [
    {
        "name": "list_email_labels",
        "description": "List all Gmail labels, grouped into system and user labels.",
        "input_schema": {
            "type": "object",
            "properties": {**ACCOUNT_PROPERTY},
            "required": [],
        },
        "handler": list_email_labels,
    },
    {
        "name": "create_label",
        "description": "Create a new Gmail label.",
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                **LABEL_VISIBILITY_PROPERTIES,
                "name": {"type": "string", "description": "Name for the new label"},
            },
            "required": ["name"],
        },
        "handler": create_label,
    },
    {
        "name": "update_label",
        "description": "Update an existing Gmail label's name or visibility.",
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                **LABEL_VISIBILITY_PROPERTIES,
                "label_id": {"type": "string", "description": "ID of the label to update"},
                "name": {"type": "string", "description": "New name for the label"},
            },
            "required": ["label_id"],
        },
        "handler": update_label,
    },
    {
        "name": "delete_label",
        "description": "Delete a user-created Gmail label. System labels cannot be deleted.",
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                "label_id": {"type": "string", "description": "ID of the label to delete"},
            },
            "required": ["label_id"],
        },
        "handler": delete_label,
    },
    {
        "name": "get_or_create_label",
        "description": "Get an existing Gmail label by name or create it if it doesn't exist.",
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                **LABEL_VISIBILITY_PROPERTIES,
                "name": {"type": "string", "description": "Name of the label"},
            },
            "required": ["name"],
        },
        "handler": get_or_create_label,
    },
]
