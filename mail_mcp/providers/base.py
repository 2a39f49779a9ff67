"""Capability interface shared by the mail providers."""

from abc import ABC, abstractmethod
from typing import Any

from ..models import (
    AttachmentContent,
    BatchResult,
    FolderInfo,
    LabelMutation,
    MessageDetail,
    MessageRef,
    MessageSummary,
    OutgoingMessage,
    SearchCriteria,
    SendResult,
)
from ..utils.errors import UnsupportedOperationError


class MailProvider(ABC):
    """
    One account's mailbox, behind a provider-neutral interface.

    Core mailbox operations are abstract. Label, filter and thread operations
    only exist on some backends; the defaults here raise
    UnsupportedOperationError so callers never branch on provider type.
    """

    provider_name: str = "unknown"

    def __init__(self, email: str):
        self.email = email

    def _unsupported(self, operation: str) -> UnsupportedOperationError:
        return UnsupportedOperationError(operation, self.provider_name)

    # Messages

    @abstractmethod
    async def search_emails(self, criteria: SearchCriteria) -> list[MessageSummary]:
        """Search a folder; newest first, at most criteria.max_results entries."""

    @abstractmethod
    async def read_email(
        self, ref: MessageRef, summary: bool = False, max_body_chars: int = 1000
    ) -> MessageDetail | MessageSummary:
        """Fetch one message, in full or as a summary with a snippet."""

    @abstractmethod
    async def send_email(self, message: OutgoingMessage) -> SendResult:
        """Send a message."""

    @abstractmethod
    async def save_draft(self, message: OutgoingMessage) -> SendResult:
        """Store a message as a draft."""

    @abstractmethod
    async def move_email(self, ref: MessageRef, destination: str) -> None:
        """Move one message to another folder."""

    @abstractmethod
    async def move_emails(self, ids: list[str], folder: str, destination: str) -> BatchResult:
        """Move several messages from one folder to another."""

    @abstractmethod
    async def delete_email(self, ref: MessageRef, permanent: bool = False) -> str | None:
        """
        Delete a message.

        Returns:
            The trash folder the message was moved to, or None if it was
            deleted permanently
        """

    @abstractmethod
    async def mark_emails_read(self, ids: list[str], folder: str = "INBOX") -> BatchResult:
        """Mark messages as read."""

    @abstractmethod
    async def download_attachment(self, ref: MessageRef, identifier: str) -> AttachmentContent:
        """Fetch one attachment's bytes."""

    # Folders

    @abstractmethod
    async def list_folders(self) -> list[FolderInfo]:
        """List folders (or labels acting as folders)."""

    @abstractmethod
    async def create_folder(self, name: str) -> FolderInfo:
        """Create a folder."""

    # Labels, filters and threads

    async def modify_email(self, message_id: str, mutation: LabelMutation) -> list[str]:
        raise self._unsupported("modify_email")

    async def batch_modify_emails(
        self, ids: list[str], mutation: LabelMutation, batch_size: int | None = None
    ) -> BatchResult:
        raise self._unsupported("batch_modify_emails")

    async def batch_delete_emails(
        self, ids: list[str], batch_size: int | None = None
    ) -> BatchResult:
        raise self._unsupported("batch_delete_emails")

    async def modify_thread(self, thread_id: str, mutation: LabelMutation) -> int:
        raise self._unsupported("modify_thread")

    async def batch_modify_threads(
        self, ids: list[str], mutation: LabelMutation, batch_size: int | None = None
    ) -> BatchResult:
        raise self._unsupported("batch_modify_threads")

    async def list_labels(self) -> dict[str, Any]:
        raise self._unsupported("list_email_labels")

    async def create_label(
        self,
        name: str,
        message_list_visibility: str | None = None,
        label_list_visibility: str | None = None,
    ) -> dict[str, Any]:
        raise self._unsupported("create_label")

    async def update_label(
        self,
        label_id: str,
        name: str | None = None,
        message_list_visibility: str | None = None,
        label_list_visibility: str | None = None,
    ) -> dict[str, Any]:
        raise self._unsupported("update_label")

    async def delete_label(self, label_id: str) -> dict[str, Any]:
        raise self._unsupported("delete_label")

    async def get_or_create_label(
        self,
        name: str,
        message_list_visibility: str | None = None,
        label_list_visibility: str | None = None,
    ) -> tuple[dict[str, Any], bool]:
        raise self._unsupported("get_or_create_label")

    async def create_filter(
        self, criteria: dict[str, Any], action: dict[str, Any]
    ) -> dict[str, Any]:
        raise self._unsupported("create_filter")

    async def list_filters(self) -> list[dict[str, Any]]:
        raise self._unsupported("list_filters")

    async def get_filter(self, filter_id: str) -> dict[str, Any]:
        raise self._unsupported("get_filter")

    async def delete_filter(self, filter_id: str) -> None:
        raise self._unsupported("delete_filter")
