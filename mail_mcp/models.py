"""Provider-neutral data models shared by both mail backends."""

from datetime import date
from typing import Any

from pydantic import BaseModel, Field


class MessageRef(BaseModel):
    """A message addressed by folder and provider message ID (IMAP UID or Gmail ID)."""

    id: str = Field(..., description="IMAP UID or Gmail message ID")
    folder: str = Field(default="INBOX", description="Folder holding the message (IMAP)")


class SearchCriteria(BaseModel):
    """Uniform search predicates, translated by each provider."""

    folder: str | None = Field(None, description="Folder or label to search in")
    sender: str | None = Field(None, description="Sender address or name substring")
    recipient: str | None = Field(None, description="Recipient address substring")
    subject: str | None = Field(None, description="Subject substring")
    since: date | None = Field(None, description="Only messages on or after this date")
    before: date | None = Field(None, description="Only messages before this date")
    seen: bool | None = Field(None, description="Read (True) or unread (False)")
    flagged: bool | None = Field(None, description="Flagged/starred (True) or not (False)")
    text: str | None = Field(None, description="Body text to search for")
    query: str | None = Field(None, description="Gmail search syntax; a full-text search on IMAP")
    max_results: int | None = Field(None, description="Maximum number of results")


class AttachmentInfo(BaseModel):
    """Attachment index entry."""

    id: str = Field(..., description="Stable identifier used to download the attachment")
    filename: str
    mime_type: str = "application/octet-stream"
    size: int = 0
    content_id: str | None = None


class AttachmentContent(BaseModel):
    """Downloaded attachment bytes."""

    filename: str
    mime_type: str = "application/octet-stream"
    data: bytes


class MessageSummary(BaseModel):
    """Lightweight message listing entry."""

    id: str
    folder: str | None = None
    thread_id: str | None = None
    subject: str = "(no subject)"
    sender: list[str] = Field(default_factory=list, alias="from")
    to: list[str] = Field(default_factory=list)
    cc: list[str] = Field(default_factory=list)
    date: str | None = None
    flags: list[str] = Field(default_factory=list)
    has_attachments: bool = False
    snippet: str | None = None

    model_config = {"populate_by_name": True}

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class MessageDetail(BaseModel):
    """Full message content."""

    id: str
    folder: str | None = None
    thread_id: str | None = None
    message_id: str | None = None
    subject: str = "(no subject)"
    sender: list[str] = Field(default_factory=list, alias="from")
    to: list[str] = Field(default_factory=list)
    cc: list[str] = Field(default_factory=list)
    date: str | None = None
    flags: list[str] = Field(default_factory=list)
    body_text: str | None = None
    body_html: str | None = None
    attachments: list[AttachmentInfo] = Field(default_factory=list)
    in_reply_to: str | None = None
    references: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class FolderInfo(BaseModel):
    """Folder (IMAP mailbox or Gmail label) listing entry."""

    path: str = Field(..., description="Identifier used to address the folder")
    name: str
    delimiter: str | None = None
    flags: list[str] = Field(default_factory=list)
    special_use: str | None = Field(None, description="Canonical role, e.g. \\Trash")


class OutgoingMessage(BaseModel):
    """A message to send or save as a draft."""

    to: list[str]
    subject: str
    body: str
    html_body: str | None = None
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    from_address: str | None = None
    in_reply_to: str | None = None
    references: list[str] = Field(default_factory=list)
    thread_id: str | None = None
    attachments: list[str] = Field(default_factory=list, description="Local file paths")


class BatchFailure(BaseModel):
    """One item that failed in a batch operation."""

    id: str
    display_id: str
    error: str


class BatchResult(BaseModel):
    """Partition of a batch operation into successes and failures."""

    successes: list[Any] = Field(default_factory=list)
    failures: list[BatchFailure] = Field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.successes)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "failures": [f.model_dump() for f in self.failures],
        }


class SendResult(BaseModel):
    """Outcome of sending or drafting a message."""

    id: str = Field(..., description="Provider ID of the sent message or draft, or 'unknown'")
    thread_id: str | None = None
    folder: str | None = None
    recipients: list[str] = Field(default_factory=list)


class LabelMutation(BaseModel):
    """Label changes to apply to messages or threads."""

    add_label_ids: list[str] = Field(default_factory=list)
    remove_label_ids: list[str] = Field(default_factory=list)

    def to_request(self) -> dict[str, list[str]]:
        """Gmail request body; empty directions are omitted."""
        body: dict[str, list[str]] = {}
        if self.add_label_ids:
            body["addLabelIds"] = self.add_label_ids
        if self.remove_label_ids:
            body["removeLabelIds"] = self.remove_label_ids
        return body
