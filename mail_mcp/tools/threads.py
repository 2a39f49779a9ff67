"""Gmail thread label tools."""

from typing import Any

from ..facade import MailboxFacade
from ..utils.tool_decorators import handle_tool_errors
from .common import ACCOUNT_PROPERTY, BATCH_SIZE_PROPERTY, STRING_LIST, label_mutation


@handle_tool_errors
async def modify_thread(
    facade: MailboxFacade,
    thread_id: str,
    account: str | None = None,
    add_label_ids: list[str] | None = None,
    remove_label_ids: list[str] | None = None,
) -> dict[str, Any]:
    """Apply a label change to every message in a thread."""
    return await facade.modify_thread(
        account, thread_id, label_mutation(add_label_ids, remove_label_ids)
    )


@handle_tool_errors
async def batch_modify_threads(
    facade: MailboxFacade,
    thread_ids: list[str],
    account: str | None = None,
    add_label_ids: list[str] | None = None,
    remove_label_ids: list[str] | None = None,
    batch_size: int | None = None,
) -> dict[str, Any]:
    return await facade.batch_modify_threads(
        account, thread_ids, label_mutation(add_label_ids, remove_label_ids), batch_size
    )


TOOL_SCHEMAS = [
    {
        "name": "modify_thread",
        "description": "Add or remove labels on all messages in a Gmail thread.",
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                "thread_id": {"type": "string", "description": "ID of the thread to modify"},
                "add_label_ids": {**STRING_LIST, "description": "Label IDs to add"},
                "remove_label_ids": {**STRING_LIST, "description": "Label IDs to remove"},
            },
            "required": ["thread_id"],
        },
        "handler": modify_thread,
    },
    {
        "name": "batch_modify_threads",
        "description": (
            "Add or remove labels on many Gmail threads in batches. Failures are "
            "reported per thread."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                **BATCH_SIZE_PROPERTY,
                "thread_ids": {**STRING_LIST, "description": "IDs of the threads to modify"},
                "add_label_ids": {**STRING_LIST, "description": "Label IDs to add to all"},
                "remove_label_ids": {
                    **STRING_LIST,
                    "description": "Label IDs to remove from all",
                },
            },
            "required": ["thread_ids"],
        },
        "handler": batch_modify_threads,
    },
]
