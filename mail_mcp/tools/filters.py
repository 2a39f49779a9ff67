"""Gmail filter tools."""

from typing import Any

from ..facade import MailboxFacade
from ..providers.filter_templates import FILTER_TEMPLATES
from ..utils.tool_decorators import handle_tool_errors
from .common import ACCOUNT_PROPERTY, STRING_LIST


@handle_tool_errors
async def create_filter(
    facade: MailboxFacade,
    criteria: dict[str, Any],
    action: dict[str, Any],
    account: str | None = None,
) -> dict[str, Any]:
    """
    Create a Gmail filter.

    Args:
        facade: Mailbox facade
        criteria: Gmail filter criteria (from, to, subject, query, hasAttachment, size...)
        action: Gmail filter action (addLabelIds, removeLabelIds, forward)
        account: Email or alias (defaults to the active account)

    Returns:
        Dictionary with the created filter
    """
    if not criteria:
        raise ValueError("Filter criteria cannot be empty")
    if not action:
        raise ValueError("Filter action cannot be empty")
    return await facade.create_filter(account, criteria, action)


@handle_tool_errors
async def create_filter_from_template(
    facade: MailboxFacade,
    template: str,
    parameters: dict[str, Any] | None = None,
    account: str | None = None,
) -> dict[str, Any]:
    return await facade.create_filter_from_template(account, template, parameters or {})


@handle_tool_errors
async def list_filters(facade: MailboxFacade, account: str | None = None) -> dict[str, Any]:
    return await facade.list_filters(account)


@handle_tool_errors
async def get_filter(
    facade: MailboxFacade, filter_id: str, account: str | None = None
) -> dict[str, Any]:
    return await facade.get_filter(account, filter_id)


@handle_tool_errors
async def delete_filter(
    facade: MailboxFacade, filter_id: str, account: str | None = None
) -> dict[str, Any]:
    return await facade.delete_filter(account, filter_id)


TOOL_SCHEMAS = [
    {
        "name": "create_filter",
        "description": "Create a new Gmail filter with custom criteria and actions.",
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                "criteria": {
                    "type": "object",
                    "description": "Criteria for matching emails",
                    "properties": {
                        "from": {"type": "string", "description": "Sender email address"},
                        "to": {"type": "string", "description": "Recipient email address"},
                        "subject": {"type": "string", "description": "Subject text"},
                        "query": {"type": "string", "description": "Gmail search query"},
                        "negatedQuery": {
                            "type": "string",
                            "description": "Text that must NOT be present",
                        },
                        "hasAttachment": {
                            "type": "boolean",
                            "description": "Whether the email has attachments",
                        },
                        "excludeChats": {"type": "boolean", "description": "Exclude chats"},
                        "size": {"type": "integer", "description": "Email size in bytes"},
                        "sizeComparison": {
                            "type": "string",
                            "enum": ["unspecified", "smaller", "larger"],
                            "description": "Size comparison operator",
                        },
                    },
                },
                "action": {
                    "type": "object",
                    "description": "Actions to perform on matching emails",
                    "properties": {
                        "addLabelIds": {**STRING_LIST, "description": "Label IDs to add"},
                        "removeLabelIds": {**STRING_LIST, "description": "Label IDs to remove"},
                        "forward": {
                            "type": "string",
                            "description": "Email address to forward to",
                        },
                    },
                },
            },
            "required": ["criteria", "action"],
        },
        "handler": create_filter,
    },
    {
        "name": "create_filter_from_template",
        "description": (
            "Create a Gmail filter from a template. Templates and their parameters: "
            "fromSender (senderEmail, labelIds, archive), "
            "withSubject (subjectText, labelIds, markAsRead), "
            "withAttachments (labelIds), "
            "largeEmails (sizeInBytes, labelIds), "
            "containingText (searchText, labelIds, markImportant), "
            "mailingList (listIdentifier, labelIds, archive)."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                "template": {
                    "type": "string",
                    "enum": list(FILTER_TEMPLATES),
                    "description": "Pre-defined filter template to use",
                },
                "parameters": {
                    "type": "object",
                    "description": "Template-specific parameters",
                    "properties": {
                        "senderEmail": {"type": "string"},
                        "subjectText": {"type": "string"},
                        "searchText": {"type": "string"},
                        "listIdentifier": {"type": "string"},
                        "sizeInBytes": {"type": "integer"},
                        "labelIds": STRING_LIST,
                        "archive": {"type": "boolean"},
                        "markAsRead": {"type": "boolean"},
                        "markImportant": {"type": "boolean"},
                    },
                },
            },
            "required": ["template"],
        },
        "handler": create_filter_from_template,
    },
    {
        "name": "list_filters",
        "description": "List all Gmail filters.",
        "input_schema": {
            "type": "object",
            "properties": {**ACCOUNT_PROPERTY},
            "required": [],
        },
        "handler": list_filters,
    },
    {
        "name": "get_filter",
        "description": "Get the details of one Gmail filter.",
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                "filter_id": {"type": "string", "description": "ID of the filter to retrieve"},
            },
            "required": ["filter_id"],
        },
        "handler": get_filter,
    },
    {
        "name": "delete_filter",
        "description": "Delete a Gmail filter.",
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                "filter_id": {"type": "string", "description": "ID of the filter to delete"},
            },
            "required": ["filter_id"],
        },
        "handler": delete_filter,
    },
]
