"""Email tools: send, draft, read, search, move, delete, flag and download.

Message IDs are IMAP UIDs for IMAP accounts and Gmail message IDs for Gmail
accounts. ``folder`` names the IMAP mailbox holding the message; for Gmail it
is a label ID and is only used by moves.
"""

import logging
from typing import Any

from ..facade import MailboxFacade
from ..models import MessageRef, OutgoingMessage, SearchCriteria
from ..utils.tool_decorators import handle_tool_errors
from .common import ACCOUNT_PROPERTY, BATCH_SIZE_PROPERTY, STRING_LIST, label_mutation

logger = logging.getLogger(__name__)


def _outgoing(
    to: list[str],
    subject: str,
    body: str,
    html_body: str | None,
    cc: list[str] | None,
    bcc: list[str] | None,
    from_address: str | None,
    thread_id: str | None,
    in_reply_to: str | None,
    attachments: list[str] | None,
) -> OutgoingMessage:
    return OutgoingMessage(
        to=to,
        subject=subject,
        body=body,
        html_body=html_body,
        cc=cc or [],
        bcc=bcc or [],
        from_address=from_address,
        thread_id=thread_id,
        in_reply_to=in_reply_to,
        attachments=attachments or [],
    )


@handle_tool_errors
async def send_email(
    facade: MailboxFacade,
    to: list[str],
    subject: str,
    body: str,
    account: str | None = None,
    html_body: str | None = None,
    cc: list[str] | None = None,
    bcc: list[str] | None = None,
    from_address: str | None = None,
    thread_id: str | None = None,
    in_reply_to: str | None = None,
    attachments: list[str] | None = None,
) -> dict[str, Any]:
    """
    Send an email.

    Args:
        facade: Mailbox facade
        to: Recipient addresses
        subject: Subject line
        body: Plain text body
        account: Email or alias (defaults to the active account)
        html_body: Optional HTML alternative
        cc: CC recipients
        bcc: BCC recipients (never written to visible headers)
        from_address: Verified send-as address
        thread_id: Gmail thread to reply in
        in_reply_to: Message-ID being replied to
        attachments: Local file paths to attach

    Returns:
        Dictionary with the sent message ID and recipients
    """
    logger.info(f"Sending email to {len(to)} recipients")
    message = _outgoing(
        to, subject, body, html_body, cc, bcc, from_address, thread_id, in_reply_to, attachments
    )
    return await facade.send_email(account, message)


@handle_tool_errors
async def draft_email(
    facade: MailboxFacade,
    to: list[str],
    subject: str,
    body: str,
    account: str | None = None,
    html_body: str | None = None,
    cc: list[str] | None = None,
    bcc: list[str] | None = None,
    from_address: str | None = None,
    thread_id: str | None = None,
    in_reply_to: str | None = None,
    attachments: list[str] | None = None,
) -> dict[str, Any]:
    """Save an email as a draft. Takes the same arguments as send_email."""
    message = _outgoing(
        to, subject, body, html_body, cc, bcc, from_address, thread_id, in_reply_to, attachments
    )
    return await facade.draft_email(account, message)


@handle_tool_errors
async def read_email(
    facade: MailboxFacade,
    message_id: str,
    account: str | None = None,
    folder: str = "INBOX",
    summary: bool = False,
    max_body_chars: int = 1000,
) -> dict[str, Any]:
    """
    Read one email.

    With summary=True only headers, flags and a body snippet of at most
    max_body_chars characters are returned.
    """
    return await facade.read_email(
        account,
        MessageRef(id=message_id, folder=folder),
        summary=summary,
        max_body_chars=max_body_chars,
    )


@handle_tool_errors
async def search_emails(
    facade: MailboxFacade,
    account: str | None = None,
    folder: str | None = None,
    sender: str | None = None,
    recipient: str | None = None,
    subject: str | None = None,
    since: str | None = None,
    before: str | None = None,
    seen: bool | None = None,
    flagged: bool | None = None,
    text: str | None = None,
    query: str | None = None,
    max_results: int | None = None,
) -> dict[str, Any]:
    """
    Search emails, newest first.

    Dates are ISO format (YYYY-MM-DD). With no criteria every message in the
    folder matches.
    """
    criteria = SearchCriteria(
        folder=folder,
        sender=sender,
        recipient=recipient,
        subject=subject,
        since=since,
        before=before,
        seen=seen,
        flagged=flagged,
        text=text,
        query=query,
        max_results=max_results,
    )
    return await facade.search_emails(account, criteria)


@handle_tool_errors
async def move_email(
    facade: MailboxFacade,
    message_id: str,
    destination: str,
    account: str | None = None,
    folder: str = "INBOX",
) -> dict[str, Any]:
    """Move one email from folder to destination."""
    return await facade.move_email(account, MessageRef(id=message_id, folder=folder), destination)


@handle_tool_errors
async def move_emails(
    facade: MailboxFacade,
    message_ids: list[str],
    destination: str,
    account: str | None = None,
    folder: str = "INBOX",
) -> dict[str, Any]:
    """Move several emails from folder to destination."""
    return await facade.move_emails(account, message_ids, folder, destination)


@handle_tool_errors
async def delete_email(
    facade: MailboxFacade,
    message_id: str,
    account: str | None = None,
    folder: str = "INBOX",
    permanent: bool = False,
) -> dict[str, Any]:
    """Move an email to the trash, or delete it permanently."""
    return await facade.delete_email(
        account, MessageRef(id=message_id, folder=folder), permanent=permanent
    )


@handle_tool_errors
async def mark_emails_read(
    facade: MailboxFacade,
    message_ids: list[str],
    account: str | None = None,
    folder: str = "INBOX",
) -> dict[str, Any]:
    return await facade.mark_emails_read(account, message_ids, folder)


@handle_tool_errors
async def download_attachment(
    facade: MailboxFacade,
    message_id: str,
    attachment_id: str,
    account: str | None = None,
    folder: str = "INBOX",
    filename: str | None = None,
    save_path: str | None = None,
) -> dict[str, Any]:
    """
    Save an attachment to disk.

    Args:
        facade: Mailbox facade
        message_id: Message holding the attachment
        attachment_id: Attachment ID from read_email (content-id, filename or
            position for IMAP; attachment ID for Gmail)
        account: Email or alias (defaults to the active account)
        folder: IMAP folder holding the message
        filename: Name to save as (defaults to the attachment's own name)
        save_path: Target directory (defaults to the current directory)

    Returns:
        Dictionary with the saved path, filename, size and MIME type
    """
    return await facade.download_attachment(
        account,
        MessageRef(id=message_id, folder=folder),
        attachment_id,
        filename=filename,
        save_path=save_path,
    )


@handle_tool_errors
async def modify_email(
    facade: MailboxFacade,
    message_id: str,
    account: str | None = None,
    add_label_ids: list[str] | None = None,
    remove_label_ids: list[str] | None = None,
    label_ids: list[str] | None = None,
) -> dict[str, Any]:
    return await facade.modify_email(
        account, message_id, label_mutation(add_label_ids, remove_label_ids, label_ids)
    )


@handle_tool_errors
async def batch_modify_emails(
    facade: MailboxFacade,
    message_ids: list[str],
    account: str | None = None,
    add_label_ids: list[str] | None = None,
    remove_label_ids: list[str] | None = None,
    batch_size: int | None = None,
) -> dict[str, Any]:
    return await facade.batch_modify_emails(
        account, message_ids, label_mutation(add_label_ids, remove_label_ids), batch_size
    )


@handle_tool_errors
async def batch_delete_emails(
    facade: MailboxFacade,
    message_ids: list[str],
    account: str | None = None,
    batch_size: int | None = None,
) -> dict[str, Any]:
    """Permanently delete several emails."""
    return await facade.batch_delete_emails(account, message_ids, batch_size)


_MESSAGE_PROPERTIES: dict[str, Any] = {
    **ACCOUNT_PROPERTY,
    "to": {**STRING_LIST, "description": "List of recipient email addresses"},
    "subject": {"type": "string", "description": "Email subject"},
    "body": {"type": "string", "description": "Plain text email body"},
    "html_body": {"type": "string", "description": "HTML version of the email body"},
    "cc": {**STRING_LIST, "description": "List of CC recipients"},
    "bcc": {**STRING_LIST, "description": "List of BCC recipients"},
    "from_address": {
        "type": "string",
        "description": "Address to send from (must be a verified alias). "
        "Defaults to the account's primary address",
    },
    "thread_id": {"type": "string", "description": "Gmail thread ID to reply in"},
    "in_reply_to": {"type": "string", "description": "Message-ID being replied to"},
    "attachments": {**STRING_LIST, "description": "List of file paths to attach"},
}

_FOLDER_PROPERTY: dict[str, Any] = {
    "folder": {
        "type": "string",
        "description": "Folder holding the message (IMAP mailbox or Gmail label ID). "
        "Default: INBOX",
    }
}

TOOL_SCHEMAS = [
    {
        "name": "send_email",
        "description": (
            "Send a new email. Supports CC/BCC, HTML bodies, threading and file attachments."
        ),
        "input_schema": {
            "type": "object",
            "properties": _MESSAGE_PROPERTIES,
            "required": ["to", "subject", "body"],
        },
        "handler": send_email,
    },
    {
        "name": "draft_email",
        "description": "Save a new email as a draft in the account's Drafts folder.",
        "input_schema": {
            "type": "object",
            "properties": _MESSAGE_PROPERTIES,
            "required": ["to", "subject", "body"],
        },
        "handler": draft_email,
    },
    {
        "name": "read_email",
        "description": (
            "Read an email by ID. Returns headers, text and HTML bodies and an attachment "
            "index. Set summary=true for headers plus a short snippet only."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                **_FOLDER_PROPERTY,
                "message_id": {"type": "string", "description": "ID of the email to read"},
                "summary": {
                    "type": "boolean",
                    "description": "Return a lightweight summary instead of the full message",
                },
                "max_body_chars": {
                    "type": "integer",
                    "description": "Maximum snippet length in summary mode (default: 1000)",
                },
            },
            "required": ["message_id"],
        },
        "handler": read_email,
    },
    {
        "name": "search_emails",
        "description": (
            "Search emails by sender, recipient, subject, date range, read/flagged state or "
            "body text. Results are newest first. Gmail accounts also accept a raw Gmail "
            "query (e.g. 'has:attachment')."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                "folder": {
                    "type": "string",
                    "description": "Folder to search (IMAP default: INBOX; Gmail: all mail)",
                },
                "sender": {"type": "string", "description": "Sender address or name"},
                "recipient": {"type": "string", "description": "Recipient address"},
                "subject": {"type": "string", "description": "Text contained in the subject"},
                "since": {
                    "type": "string",
                    "format": "date",
                    "description": "Only emails on or after this date (YYYY-MM-DD)",
                },
                "before": {
                    "type": "string",
                    "format": "date",
                    "description": "Only emails before this date (YYYY-MM-DD)",
                },
                "seen": {"type": "boolean", "description": "true for read, false for unread"},
                "flagged": {"type": "boolean", "description": "true for flagged/starred"},
                "text": {"type": "string", "description": "Text contained in the body"},
                "query": {
                    "type": "string",
                    "description": "Gmail search query (e.g. 'from:example@gmail.com')",
                },
                "max_results": {
                    "type": "integer",
                    "minimum": 1,
                    "description": "Maximum results (IMAP default: 50, Gmail default: 10)",
                },
            },
            "required": [],
        },
        "handler": search_emails,
    },
    {
        "name": "move_email",
        "description": "Move an email to another folder (IMAP) or label (Gmail).",
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                **_FOLDER_PROPERTY,
                "message_id": {"type": "string", "description": "ID of the email to move"},
                "destination": {"type": "string", "description": "Destination folder"},
            },
            "required": ["message_id", "destination"],
        },
        "handler": move_email,
    },
    {
        "name": "move_emails",
        "description": "Move several emails from one folder to another.",
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                **_FOLDER_PROPERTY,
                "message_ids": {**STRING_LIST, "description": "IDs of the emails to move"},
                "destination": {"type": "string", "description": "Destination folder"},
            },
            "required": ["message_ids", "destination"],
        },
        "handler": move_emails,
    },
    {
        "name": "delete_email",
        "description": (
            "Delete an email. By default it is moved to the trash; if the account has no "
            "trash folder, or permanent=true, it is deleted permanently."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                **_FOLDER_PROPERTY,
                "message_id": {"type": "string", "description": "ID of the email to delete"},
                "permanent": {
                    "type": "boolean",
                    "description": "Delete permanently instead of moving to trash",
                },
            },
            "required": ["message_id"],
        },
        "handler": delete_email,
    },
    {
        "name": "mark_emails_read",
        "description": "Mark one or more emails as read.",
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                **_FOLDER_PROPERTY,
                "message_ids": {**STRING_LIST, "description": "IDs of the emails to mark"},
            },
            "required": ["message_ids"],
        },
        "handler": mark_emails_read,
    },
    {
        "name": "download_attachment",
        "description": "Download an email attachment to a local directory.",
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                **_FOLDER_PROPERTY,
                "message_id": {
                    "type": "string",
                    "description": "ID of the email containing the attachment",
                },
                "attachment_id": {
                    "type": "string",
                    "description": "ID of the attachment, as listed by read_email",
                },
                "filename": {
                    "type": "string",
                    "description": "Filename to save as (defaults to the attachment name)",
                },
                "save_path": {
                    "type": "string",
                    "description": "Directory to save into (defaults to the current directory)",
                },
            },
            "required": ["message_id", "attachment_id"],
        },
        "handler": download_attachment,
    },
    {
        "name": "modify_email",
        "description": "Add or remove labels on a Gmail message.",
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                "message_id": {"type": "string", "description": "ID of the email to modify"},
                "label_ids": {**STRING_LIST, "description": "Label IDs to apply"},
                "add_label_ids": {**STRING_LIST, "description": "Label IDs to add"},
                "remove_label_ids": {**STRING_LIST, "description": "Label IDs to remove"},
            },
            "required": ["message_id"],
        },
        "handler": modify_email,
    },
    {
        "name": "batch_modify_emails",
        "description": (
            "Add or remove labels on many Gmail messages in batches. Failed batches are "
            "retried one message at a time and failures are reported individually."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                **BATCH_SIZE_PROPERTY,
                "message_ids": {**STRING_LIST, "description": "IDs of the emails to modify"},
                "add_label_ids": {**STRING_LIST, "description": "Label IDs to add to all"},
                "remove_label_ids": {
                    **STRING_LIST,
                    "description": "Label IDs to remove from all",
                },
            },
            "required": ["message_ids"],
        },
        "handler": batch_modify_emails,
    },
    {
        "name": "batch_delete_emails",
        "description": "Permanently delete many Gmail messages in batches.",
        "input_schema": {
            "type": "object",
            "properties": {
                **ACCOUNT_PROPERTY,
                **BATCH_SIZE_PROPERTY,
                "message_ids": {**STRING_LIST, "description": "IDs of the emails to delete"},
            },
            "required": ["message_ids"],
        },
        "handler": batch_delete_emails,
    },
]
