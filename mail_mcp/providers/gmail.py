"""Gmail provider over the Gmail v1 REST API.

Every call is stateless: a fresh httpx.AsyncClient per request, with the
account's bearer token. Expired tokens are refreshed before the request and
the new bundle is handed back to the caller for persistence.

API documentation: https://developers.google.com/gmail/api/reference/rest
"""

import asyncio
import base64
import logging
from collections.abc import Callable
from email.utils import getaddresses
from typing import Any

import httpx

from ..core.config import Settings
from ..models import (
    AttachmentContent,
    AttachmentInfo,
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
from ..oauth.google import GoogleOAuthClient
from ..storage.credential_store import OAuthTokens
from ..utils.errors import (
    AuthenticationError,
    FilterNotFoundError,
    LabelNotFoundError,
    ValidationError,
)
from .base import MailProvider
from .batch import process_batches
from .mime import build_message

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 10
METADATA_HEADERS = ["Subject", "From", "To", "Cc", "Date"]

# System labels that act as special-use folders
SPECIAL_USE_LABELS = {
    "TRASH": "\\Trash",
    "SENT": "\\Sent",
    "DRAFT": "\\Drafts",
    "SPAM": "\\Junk",
    "STARRED": "\\Flagged",
}


def _b64url_decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _header_value(headers: list[dict[str, str]], name: str) -> str | None:
    wanted = name.lower()
    for header in headers:
        if header.get("name", "").lower() == wanted:
            return header.get("value")
    return None


def _address_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [
        f"{display} <{address}>" if display else address
        for display, address in getaddresses([value])
        if address or display
    ]


def _quote_term(value: str) -> str:
    return f'"{value}"' if any(c.isspace() for c in value) else value


def build_gmail_query(criteria: SearchCriteria) -> str:
    """Translate uniform search criteria into a Gmail search query."""
    terms: list[str] = []
    if criteria.sender:
        terms.append(f"from:{_quote_term(criteria.sender)}")
    if criteria.recipient:
        terms.append(f"to:{_quote_term(criteria.recipient)}")
    if criteria.subject:
        terms.append(f"subject:{_quote_term(criteria.subject)}")
    if criteria.since:
        terms.append(f"after:{criteria.since.strftime('%Y/%m/%d')}")
    if criteria.before:
        terms.append(f"before:{criteria.before.strftime('%Y/%m/%d')}")
    if criteria.seen is not None:
        terms.append("is:read" if criteria.seen else "is:unread")
    if criteria.flagged is not None:
        terms.append("is:starred" if criteria.flagged else "-is:starred")
    if criteria.text:
        terms.append(_quote_term(criteria.text))
    if criteria.folder:
        terms.append(f"in:{_quote_term(criteria.folder)}")
    if criteria.query:
        terms.append(criteria.query)
    return " ".join(terms)


def _walk_payload(
    root: dict[str, Any],
) -> tuple[str | None, str | None, list[AttachmentInfo]]:
    """Collect text, html and attachment parts from a message payload tree."""
    text: list[str] = []
    html: list[str] = []
    attachments: list[AttachmentInfo] = []

    stack = [root]
    while stack:
        part = stack.pop()
        body = part.get("body") or {}
        mime_type = part.get("mimeType", "")

        if body.get("attachmentId"):
            attachment_id = body["attachmentId"]
            attachments.append(
                AttachmentInfo(
                    id=attachment_id,
                    filename=part.get("filename") or f"attachment-{attachment_id}",
                    mime_type=mime_type or "application/octet-stream",
                    size=body.get("size", 0),
                )
            )
        elif body.get("data") and mime_type == "text/plain":
            text.append(_b64url_decode(body["data"]).decode("utf-8", errors="replace"))
        elif body.get("data") and mime_type == "text/html":
            html.append(_b64url_decode(body["data"]).decode("utf-8", errors="replace"))

        stack.extend(reversed(part.get("parts") or []))

    return "".join(text) or None, "".join(html) or None, attachments


def _format_label(label: dict[str, Any]) -> dict[str, Any]:
    """Format a label for display."""
    return {
        "id": label.get("id"),
        "name": label.get("name"),
        "type": label.get("type", "user"),
        "message_list_visibility": label.get("messageListVisibility"),
        "label_list_visibility": label.get("labelListVisibility"),
        "messages_total": label.get("messagesTotal"),
        "messages_unread": label.get("messagesUnread"),
    }


def _format_filter(gmail_filter: dict[str, Any]) -> dict[str, Any]:
    """Format a filter for display."""
    return {
        "id": gmail_filter.get("id"),
        "criteria": gmail_filter.get("criteria", {}),
        "action": gmail_filter.get("action", {}),
    }


class GmailClient:
    """Stateless Gmail REST client for one account."""

    def __init__(
        self,
        tokens: OAuthTokens,
        oauth_client: GoogleOAuthClient | None,
        on_refresh: Callable[[OAuthTokens], None] | None,
        settings: Settings,
    ):
        """Initialize the Gmail client.

        Args:
            tokens: Current token bundle for the account
            oauth_client: Used to refresh expired tokens
            on_refresh: Called with the new bundle after a refresh
            settings: Endpoint and timeout configuration
        """
        self.tokens = tokens
        self.oauth_client = oauth_client
        self.on_refresh = on_refresh
        self.settings = settings

    async def _ensure_fresh_token(self) -> None:
        if not self.tokens.is_expired():
            return
        if self.oauth_client is None or not self.tokens.refresh_token:
            raise AuthenticationError(
                "Gmail access token expired and cannot be refreshed. "
                "Re-run 'mail-mcp auth gmail'."
            )
        self.tokens = await self.oauth_client.refresh(self.tokens)
        if self.on_refresh is not None:
            self.on_refresh(self.tokens)

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated Gmail API call.

        Raises:
            httpx.HTTPStatusError: If the API returns an error status
        """
        await self._ensure_fresh_token()

        async with httpx.AsyncClient(timeout=self.settings.http_timeout) as client:
            response = await client.request(
                method,
                f"{self.settings.gmail_api_base_url}{path}",
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {self.tokens.access_token}"},
            )
            response.raise_for_status()
            if not response.content:
                return {}
            return response.json()


class GmailProvider(MailProvider):
    """Mailbox, label, filter and thread operations for a Gmail account."""

    provider_name = "gmail"

    def __init__(self, email: str, client: GmailClient, settings: Settings):
        super().__init__(email)
        self.client = client
        self.settings = settings

    # Messages

    async def search_emails(self, criteria: SearchCriteria) -> list[MessageSummary]:
        query = build_gmail_query(criteria)
        params: dict[str, Any] = {"maxResults": criteria.max_results or DEFAULT_MAX_RESULTS}
        if query:
            params["q"] = query

        listing = await self.client.request("GET", "/messages", params=params)
        ids = [m["id"] for m in listing.get("messages", [])]
        messages = await asyncio.gather(
            *(
                self.client.request(
                    "GET",
                    f"/messages/{message_id}",
                    params={"format": "metadata", "metadataHeaders": METADATA_HEADERS},
                )
                for message_id in ids
            )
        )
        logger.info(f"Gmail search '{query}' for {self.email}: {len(messages)} results")
        return [self._summary(message) for message in messages]

    def _summary(self, message: dict[str, Any]) -> MessageSummary:
        payload = message.get("payload") or {}
        headers = payload.get("headers") or []
        return MessageSummary(
            id=message["id"],
            thread_id=message.get("threadId"),
            subject=_header_value(headers, "Subject") or "(no subject)",
            sender=_address_list(_header_value(headers, "From")),
            to=_address_list(_header_value(headers, "To")),
            cc=_address_list(_header_value(headers, "Cc")),
            date=_header_value(headers, "Date"),
            flags=message.get("labelIds", []),
            has_attachments=payload.get("mimeType") == "multipart/mixed",
            snippet=message.get("snippet"),
        )

    async def read_email(
        self, ref: MessageRef, summary: bool = False, max_body_chars: int = 1000
    ) -> MessageDetail | MessageSummary:
        message = await self.client.request(
            "GET", f"/messages/{ref.id}", params={"format": "full"}
        )
        payload = message.get("payload") or {}
        text, html, attachments = _walk_payload(payload)

        if summary:
            result = self._summary(message)
            result.has_attachments = result.has_attachments or bool(attachments)
            result.snippet = (message.get("snippet") or "")[:max_body_chars] or None
            return result

        headers = payload.get("headers") or []
        return MessageDetail(
            id=message["id"],
            thread_id=message.get("threadId"),
            message_id=_header_value(headers, "Message-ID"),
            subject=_header_value(headers, "Subject") or "(no subject)",
            sender=_address_list(_header_value(headers, "From")),
            to=_address_list(_header_value(headers, "To")),
            cc=_address_list(_header_value(headers, "Cc")),
            date=_header_value(headers, "Date"),
            flags=message.get("labelIds", []),
            body_text=text,
            body_html=html,
            attachments=attachments,
            in_reply_to=_header_value(headers, "In-Reply-To"),
            references=(_header_value(headers, "References") or "").split(),
        )

    def _raw_message(self, message: OutgoingMessage) -> dict[str, Any]:
        raw = build_message(message, self.email, include_bcc=True).as_bytes()
        body: dict[str, Any] = {"raw": _b64url_encode(raw)}
        if message.thread_id:
            body["threadId"] = message.thread_id
        return body

    async def send_email(self, message: OutgoingMessage) -> SendResult:
        response = await self.client.request(
            "POST", "/messages/send", json=self._raw_message(message)
        )
        logger.info(f"Sent Gmail message {response.get('id')} from {self.email}")
        return SendResult(
            id=response.get("id", "unknown"),
            thread_id=response.get("threadId"),
            recipients=message.to + message.cc + message.bcc,
        )

    async def save_draft(self, message: OutgoingMessage) -> SendResult:
        response = await self.client.request(
            "POST", "/drafts", json={"message": self._raw_message(message)}
        )
        draft_message = response.get("message") or {}
        return SendResult(
            id=response.get("id", "unknown"),
            thread_id=draft_message.get("threadId"),
            folder="DRAFT",
            recipients=message.to + message.cc + message.bcc,
        )

    async def modify_email(self, message_id: str, mutation: LabelMutation) -> list[str]:
        response = await self.client.request(
            "POST", f"/messages/{message_id}/modify", json=mutation.to_request()
        )
        return response.get("labelIds", [])

    async def move_email(self, ref: MessageRef, destination: str) -> None:
        await self.modify_email(
            ref.id,
            LabelMutation(add_label_ids=[destination], remove_label_ids=[ref.folder or "INBOX"]),
        )

    async def move_emails(self, ids: list[str], folder: str, destination: str) -> BatchResult:
        return await self.batch_modify_emails(
            ids, LabelMutation(add_label_ids=[destination], remove_label_ids=[folder or "INBOX"])
        )

    async def delete_email(self, ref: MessageRef, permanent: bool = False) -> str | None:
        if permanent:
            await self.client.request("DELETE", f"/messages/{ref.id}")
            logger.info(f"Permanently deleted Gmail message {ref.id}")
            return None
        await self.client.request("POST", f"/messages/{ref.id}/trash")
        return "TRASH"

    async def mark_emails_read(self, ids: list[str], folder: str = "INBOX") -> BatchResult:
        return await self.batch_modify_emails(ids, LabelMutation(remove_label_ids=["UNREAD"]))

    async def download_attachment(self, ref: MessageRef, identifier: str) -> AttachmentContent:
        response = await self.client.request(
            "GET", f"/messages/{ref.id}/attachments/{identifier}"
        )
        if not response.get("data"):
            raise ValidationError("No attachment data received")

        message = await self.client.request(
            "GET", f"/messages/{ref.id}", params={"format": "full"}
        )
        _, _, attachments = _walk_payload(message.get("payload") or {})
        info = next((a for a in attachments if a.id == identifier), None)

        return AttachmentContent(
            filename=info.filename if info else f"attachment-{identifier}",
            mime_type=info.mime_type if info else "application/octet-stream",
            data=_b64url_decode(response["data"]),
        )

    # Batches

    def _batch_size(self, batch_size: int | None) -> int:
        return batch_size or self.settings.batch_size

    async def batch_modify_emails(
        self, ids: list[str], mutation: LabelMutation, batch_size: int | None = None
    ) -> BatchResult:
        async def process_chunk(chunk: list[str]) -> list[str]:
            await self.client.request(
                "POST", "/messages/batchModify", json={"ids": chunk, **mutation.to_request()}
            )
            return chunk

        return await process_batches(ids, self._batch_size(batch_size), process_chunk)

    async def batch_delete_emails(
        self, ids: list[str], batch_size: int | None = None
    ) -> BatchResult:
        async def process_chunk(chunk: list[str]) -> list[str]:
            await self.client.request("POST", "/messages/batchDelete", json={"ids": chunk})
            return chunk

        return await process_batches(ids, self._batch_size(batch_size), process_chunk)

    # Threads

    async def modify_thread(self, thread_id: str, mutation: LabelMutation) -> int:
        response = await self.client.request(
            "POST", f"/threads/{thread_id}/modify", json=mutation.to_request()
        )
        return len(response.get("messages", []))

    async def batch_modify_threads(
        self, ids: list[str], mutation: LabelMutation, batch_size: int | None = None
    ) -> BatchResult:
        async def process_chunk(chunk: list[str]) -> list[dict[str, Any]]:
            counts = await asyncio.gather(
                *(self.modify_thread(thread_id, mutation) for thread_id in chunk)
            )
            return [
                {"thread_id": thread_id, "message_count": count}
                for thread_id, count in zip(chunk, counts, strict=True)
            ]

        return await process_batches(ids, self._batch_size(batch_size), process_chunk)

    # Labels

    async def _labels(self) -> list[dict[str, Any]]:
        response = await self.client.request("GET", "/labels")
        return response.get("labels", [])

    async def list_labels(self) -> dict[str, Any]:
        labels = await self._labels()
        system = [_format_label(label) for label in labels if label.get("type") == "system"]
        user = [_format_label(label) for label in labels if label.get("type") != "system"]
        return {
            "system_labels": system,
            "user_labels": user,
            "count": {"total": len(labels), "system": len(system), "user": len(user)},
        }

    async def create_label(
        self,
        name: str,
        message_list_visibility: str | None = None,
        label_list_visibility: str | None = None,
    ) -> dict[str, Any]:
        label = await self.client.request(
            "POST",
            "/labels",
            json={
                "name": name,
                "messageListVisibility": message_list_visibility or "show",
                "labelListVisibility": label_list_visibility or "labelShow",
            },
        )
        logger.info(f"Created Gmail label {name} ({label.get('id')})")
        return _format_label(label)

    async def update_label(
        self,
        label_id: str,
        name: str | None = None,
        message_list_visibility: str | None = None,
        label_list_visibility: str | None = None,
    ) -> dict[str, Any]:
        updates = {
            key: value
            for key, value in (
                ("name", name),
                ("messageListVisibility", message_list_visibility),
                ("labelListVisibility", label_list_visibility),
            )
            if value is not None
        }
        if not updates:
            raise ValidationError("No label fields to update")

        label = await self.client.request("PATCH", f"/labels/{label_id}", json=updates)
        return _format_label(label)

    async def delete_label(self, label_id: str) -> dict[str, Any]:
        try:
            label = await self.client.request("GET", f"/labels/{label_id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise LabelNotFoundError(label_id) from e
            raise
        if label.get("type") == "system":
            raise ValidationError(f'Cannot delete system label with ID "{label_id}".')

        await self.client.request("DELETE", f"/labels/{label_id}")
        logger.info(f"Deleted Gmail label {label.get('name')} ({label_id})")
        return {"id": label_id, "name": label.get("name")}

    async def get_or_create_label(
        self,
        name: str,
        message_list_visibility: str | None = None,
        label_list_visibility: str | None = None,
    ) -> tuple[dict[str, Any], bool]:
        for label in await self._labels():
            if label.get("name") == name:
                return _format_label(label), False
        created = await self.create_label(name, message_list_visibility, label_list_visibility)
        return created, True

    # Filters

    async def create_filter(
        self, criteria: dict[str, Any], action: dict[str, Any]
    ) -> dict[str, Any]:
        created = await self.client.request(
            "POST", "/settings/filters", json={"criteria": criteria, "action": action}
        )
        logger.info(f"Created Gmail filter {created.get('id')}")
        return _format_filter(created)

    async def list_filters(self) -> list[dict[str, Any]]:
        response = await self.client.request("GET", "/settings/filters")
        return [_format_filter(f) for f in response.get("filter", [])]

    async def get_filter(self, filter_id: str) -> dict[str, Any]:
        try:
            found = await self.client.request("GET", f"/settings/filters/{filter_id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise FilterNotFoundError(filter_id) from e
            raise
        return _format_filter(found)

    async def delete_filter(self, filter_id: str) -> None:
        try:
            await self.client.request("DELETE", f"/settings/filters/{filter_id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise FilterNotFoundError(filter_id) from e
            raise
        logger.info(f"Deleted Gmail filter {filter_id}")

    # Folders

    async def list_folders(self) -> list[FolderInfo]:
        return [
            FolderInfo(
                path=label["id"],
                name=label.get("name", label["id"]),
                flags=[label.get("type", "user")],
                special_use=SPECIAL_USE_LABELS.get(label["id"])
                if label.get("type") == "system"
                else None,
            )
            for label in await self._labels()
        ]

    async def create_folder(self, name: str) -> FolderInfo:
        label = await self.create_label(name)
        return FolderInfo(path=label["id"], name=label["name"], flags=["user"])
