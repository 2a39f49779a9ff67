"""Tests for the Gmail REST provider."""

import base64
from datetime import UTC, date, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from mail_mcp.core.config import Settings
from mail_mcp.models import LabelMutation, MessageRef, OutgoingMessage, SearchCriteria
from mail_mcp.providers.gmail import (
    GmailClient,
    GmailProvider,
    _b64url_decode,
    _walk_payload,
    build_gmail_query,
)
from mail_mcp.storage.credential_store import OAuthTokens
from mail_mcp.utils.errors import (
    AuthenticationError,
    FilterNotFoundError,
    LabelNotFoundError,
    ValidationError,
)


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def _http_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://gmail.googleapis.com/test")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


@pytest.fixture
def gmail_client(oauth_tokens: OAuthTokens, settings: Settings) -> GmailClient:
    client = GmailClient(oauth_tokens, None, None, settings)
    client.request = AsyncMock(return_value={})
    return client


@pytest.fixture
def provider(gmail_client: GmailClient, settings: Settings) -> GmailProvider:
    return GmailProvider("user@gmail.com", gmail_client, settings)


class TestBuildGmailQuery:
    """Tests for translating search criteria into Gmail query syntax."""

    def test_all_terms(self):
        criteria = SearchCriteria(
            sender="alice@example.com",
            recipient="bob@example.com",
            subject="weekly report",
            since=date(2025, 1, 5),
            before=date(2025, 2, 1),
            seen=False,
            flagged=True,
            query="has:attachment",
        )
        assert build_gmail_query(criteria) == (
            'from:alice@example.com to:bob@example.com subject:"weekly report" '
            "after:2025/01/05 before:2025/02/01 is:unread is:starred has:attachment"
        )

    def test_empty(self):
        assert build_gmail_query(SearchCriteria()) == ""

    def test_folder_and_unflagged(self):
        criteria = SearchCriteria(folder="INBOX", flagged=False, seen=True)
        assert build_gmail_query(criteria) == "is:read -is:starred in:INBOX"


class TestWalkPayload:
    """Tests for collecting bodies and attachments from a payload tree."""

    def test_nested_parts(self):
        payload = {
            "mimeType": "multipart/mixed",
            "parts": [
                {
                    "mimeType": "multipart/alternative",
                    "parts": [
                        {"mimeType": "text/plain", "body": {"data": _b64(b"plain body")}},
                        {"mimeType": "text/html", "body": {"data": _b64(b"<p>html</p>")}},
                    ],
                },
                {
                    "mimeType": "application/pdf",
                    "filename": "invoice.pdf",
                    "body": {"attachmentId": "att-1", "size": 2048},
                },
            ],
        }

        text, html, attachments = _walk_payload(payload)

        assert text == "plain body"
        assert html == "<p>html</p>"
        assert len(attachments) == 1
        assert attachments[0].id == "att-1"
        assert attachments[0].filename == "invoice.pdf"
        assert attachments[0].size == 2048


class TestGmailClient:
    """Tests for authenticated requests and token refresh."""

    @pytest.mark.asyncio
    async def test_request_sends_bearer_token(self, oauth_tokens: OAuthTokens, settings: Settings):
        client = GmailClient(oauth_tokens, None, None, settings)
        response = httpx.Response(
            200, json={"labels": []}, request=httpx.Request("GET", "https://example.test")
        )
        http = MagicMock()
        http.request = AsyncMock(return_value=response)

        with patch("mail_mcp.providers.gmail.httpx.AsyncClient") as mock_client_cls:
            mock_client_cls.return_value.__aenter__.return_value = http
            result = await client.request("GET", "/labels")

        assert result == {"labels": []}
        args, kwargs = http.request.call_args
        assert args == ("GET", f"{settings.gmail_api_base_url}/labels")
        assert kwargs["headers"]["Authorization"] == "Bearer test_access_token"

    @pytest.mark.asyncio
    async def test_empty_response_body(self, oauth_tokens: OAuthTokens, settings: Settings):
        client = GmailClient(oauth_tokens, None, None, settings)
        response = httpx.Response(204, request=httpx.Request("DELETE", "https://example.test"))
        http = MagicMock()
        http.request = AsyncMock(return_value=response)

        with patch("mail_mcp.providers.gmail.httpx.AsyncClient") as mock_client_cls:
            mock_client_cls.return_value.__aenter__.return_value = http
            assert await client.request("DELETE", "/labels/L1") == {}

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed_and_persisted(self, settings: Settings):
        expired = OAuthTokens(
            access_token="old",
            refresh_token="refresh",
            expires_at=datetime.now(UTC) - timedelta(minutes=1),
        )
        fresh = OAuthTokens(access_token="new", refresh_token="refresh")
        oauth_client = MagicMock()
        oauth_client.refresh = AsyncMock(return_value=fresh)
        persisted: list[OAuthTokens] = []

        client = GmailClient(expired, oauth_client, persisted.append, settings)
        await client._ensure_fresh_token()

        oauth_client.refresh.assert_awaited_once_with(expired)
        assert client.tokens is fresh
        assert persisted == [fresh]

    @pytest.mark.asyncio
    async def test_expired_without_refresh_token(self, settings: Settings):
        expired = OAuthTokens(
            access_token="old", expires_at=datetime.now(UTC) - timedelta(minutes=1)
        )
        client = GmailClient(expired, MagicMock(), None, settings)

        with pytest.raises(AuthenticationError, match="auth gmail"):
            await client._ensure_fresh_token()


class TestMessages:
    """Tests for message operations."""

    @pytest.mark.asyncio
    async def test_search(self, provider: GmailProvider, gmail_client: GmailClient):
        async def fake_request(method: str, path: str, **kwargs: Any) -> dict[str, Any]:
            if path == "/messages":
                return {"messages": [{"id": "m1"}, {"id": "m2"}]}
            return {
                "id": path.rsplit("/", 1)[-1],
                "threadId": "t1",
                "labelIds": ["INBOX", "UNREAD"],
                "snippet": "hello",
                "payload": {
                    "mimeType": "text/plain",
                    "headers": [
                        {"name": "Subject", "value": f"Subject {path[-1]}"},
                        {"name": "From", "value": "Alice <alice@example.com>"},
                    ],
                },
            }

        gmail_client.request.side_effect = fake_request

        results = await provider.search_emails(SearchCriteria(sender="alice@example.com"))

        assert [r.id for r in results] == ["m1", "m2"]
        assert results[0].subject == "Subject 1"
        assert results[0].sender == ["Alice <alice@example.com>"]
        assert results[0].flags == ["INBOX", "UNREAD"]
        first_call = gmail_client.request.call_args_list[0]
        assert first_call.kwargs["params"] == {"maxResults": 10, "q": "from:alice@example.com"}

    @pytest.mark.asyncio
    async def test_read_email(self, provider: GmailProvider, gmail_client: GmailClient):
        gmail_client.request.return_value = {
            "id": "m1",
            "threadId": "t1",
            "labelIds": ["INBOX"],
            "payload": {
                "mimeType": "multipart/mixed",
                "headers": [
                    {"name": "Subject", "value": "Invoice"},
                    {"name": "Message-ID", "value": "<abc@mail.gmail.com>"},
                ],
                "parts": [
                    {"mimeType": "text/plain", "body": {"data": _b64(b"see attached")}},
                    {
                        "mimeType": "application/pdf",
                        "filename": "invoice.pdf",
                        "body": {"attachmentId": "att-1", "size": 10},
                    },
                ],
            },
        }

        detail = await provider.read_email(MessageRef(id="m1"))

        assert detail.subject == "Invoice"
        assert detail.thread_id == "t1"
        assert detail.body_text == "see attached"
        assert detail.message_id == "<abc@mail.gmail.com>"
        assert [a.filename for a in detail.attachments] == ["invoice.pdf"]

    @pytest.mark.asyncio
    async def test_send_includes_raw_and_thread(
        self, provider: GmailProvider, gmail_client: GmailClient
    ):
        gmail_client.request.return_value = {"id": "sent-1", "threadId": "t9"}

        result = await provider.send_email(
            OutgoingMessage(
                to=["a@example.com"],
                bcc=["hidden@example.com"],
                subject="Re: hi",
                body="reply",
                thread_id="t9",
            )
        )

        assert result.id == "sent-1"
        method, path = gmail_client.request.call_args.args
        body = gmail_client.request.call_args.kwargs["json"]
        assert (method, path) == ("POST", "/messages/send")
        assert body["threadId"] == "t9"
        raw = _b64url_decode(body["raw"])
        assert b"Bcc: hidden@example.com" in raw

    @pytest.mark.asyncio
    async def test_delete_moves_to_trash(self, provider: GmailProvider, gmail_client: GmailClient):
        assert await provider.delete_email(MessageRef(id="m1")) == "TRASH"
        gmail_client.request.assert_awaited_once_with("POST", "/messages/m1/trash")

    @pytest.mark.asyncio
    async def test_delete_permanently(self, provider: GmailProvider, gmail_client: GmailClient):
        assert await provider.delete_email(MessageRef(id="m1"), permanent=True) is None
        gmail_client.request.assert_awaited_once_with("DELETE", "/messages/m1")

    @pytest.mark.asyncio
    async def test_move_swaps_labels(self, provider: GmailProvider, gmail_client: GmailClient):
        await provider.move_email(MessageRef(id="m1", folder="INBOX"), "Label_7")

        gmail_client.request.assert_awaited_once_with(
            "POST",
            "/messages/m1/modify",
            json={"addLabelIds": ["Label_7"], "removeLabelIds": ["INBOX"]},
        )

    @pytest.mark.asyncio
    async def test_download_attachment(self, provider: GmailProvider, gmail_client: GmailClient):
        async def fake_request(method: str, path: str, **kwargs: Any) -> dict[str, Any]:
            if "/attachments/" in path:
                return {"data": _b64(b"%PDF-1.4"), "size": 8}
            return {
                "id": "m1",
                "payload": {
                    "parts": [
                        {
                            "mimeType": "application/pdf",
                            "filename": "invoice.pdf",
                            "body": {"attachmentId": "att-1"},
                        }
                    ]
                },
            }

        gmail_client.request.side_effect = fake_request

        content = await provider.download_attachment(MessageRef(id="m1"), "att-1")

        assert content.filename == "invoice.pdf"
        assert content.mime_type == "application/pdf"
        assert content.data == b"%PDF-1.4"


class TestBatchOperations:
    """Batch operations retry failed chunks item by item."""

    @pytest.mark.asyncio
    async def test_partial_failure(self, provider: GmailProvider, gmail_client: GmailClient):
        """One bad ID among five yields four successes and one failure."""
        labels: dict[str, set[str]] = {}

        async def fake_request(method: str, path: str, **kwargs: Any) -> dict[str, Any]:
            body = kwargs["json"]
            if "bad-message-id-000" in body["ids"]:
                raise _http_error(400)
            for message_id in body["ids"]:
                labels.setdefault(message_id, set()).update(body.get("addLabelIds", []))
            return {}

        gmail_client.request.side_effect = fake_request
        ids = ["m1", "m2", "bad-message-id-000", "m3", "m4"]

        result = await provider.batch_modify_emails(
            ids, LabelMutation(add_label_ids=["Label_1"]), batch_size=5
        )

        assert result.successes == ["m1", "m2", "m3", "m4"]
        assert result.failure_count == 1
        failure = result.failures[0]
        assert failure.id == "bad-message-id-000"
        assert failure.display_id == "bad-message-id-0..."
        assert labels == {m: {"Label_1"} for m in ["m1", "m2", "m3", "m4"]}
        # One whole-batch attempt, then five individual retries
        assert gmail_client.request.await_count == 6
        retries = [c.kwargs["json"] for c in gmail_client.request.call_args_list[1:]]
        assert retries == [{"ids": [m], "addLabelIds": ["Label_1"]} for m in ids]

    @pytest.mark.asyncio
    async def test_chunks_use_batch_size(self, provider: GmailProvider, gmail_client: GmailClient):
        result = await provider.batch_delete_emails([f"m{i}" for i in range(7)], batch_size=3)

        assert result.success_count == 7
        chunks = [c.kwargs["json"]["ids"] for c in gmail_client.request.call_args_list]
        assert [len(c) for c in chunks] == [3, 3, 1]
        assert gmail_client.request.call_args.args == ("POST", "/messages/batchDelete")

    @pytest.mark.asyncio
    async def test_mark_read_removes_unread(
        self, provider: GmailProvider, gmail_client: GmailClient
    ):
        await provider.mark_emails_read(["m1", "m2"])

        gmail_client.request.assert_awaited_once_with(
            "POST",
            "/messages/batchModify",
            json={"ids": ["m1", "m2"], "removeLabelIds": ["UNREAD"]},
        )

    @pytest.mark.asyncio
    async def test_batch_modify_threads(self, provider: GmailProvider, gmail_client: GmailClient):
        gmail_client.request.return_value = {"messages": [{"id": "a"}, {"id": "b"}]}

        result = await provider.batch_modify_threads(
            ["t1", "t2"], LabelMutation(remove_label_ids=["INBOX"])
        )

        assert result.successes == [
            {"thread_id": "t1", "message_count": 2},
            {"thread_id": "t2", "message_count": 2},
        ]


class TestLabels:
    """Tests for label management."""

    LABELS = {
        "labels": [
            {"id": "INBOX", "name": "INBOX", "type": "system"},
            {"id": "TRASH", "name": "TRASH", "type": "system"},
            {"id": "Label_1", "name": "Receipts", "type": "user"},
        ]
    }

    @pytest.mark.asyncio
    async def test_list_labels_groups(self, provider: GmailProvider, gmail_client: GmailClient):
        gmail_client.request.return_value = self.LABELS

        labels = await provider.list_labels()

        assert [label["id"] for label in labels["system_labels"]] == ["INBOX", "TRASH"]
        assert [label["name"] for label in labels["user_labels"]] == ["Receipts"]
        assert labels["count"] == {"total": 3, "system": 2, "user": 1}

    @pytest.mark.asyncio
    async def test_get_or_create_finds_existing(
        self, provider: GmailProvider, gmail_client: GmailClient
    ):
        gmail_client.request.return_value = self.LABELS

        label, created = await provider.get_or_create_label("Receipts")

        assert created is False
        assert label["id"] == "Label_1"
        gmail_client.request.assert_awaited_once_with("GET", "/labels")

    @pytest.mark.asyncio
    async def test_get_or_create_creates_missing(
        self, provider: GmailProvider, gmail_client: GmailClient
    ):
        gmail_client.request.side_effect = [
            self.LABELS,
            {"id": "Label_2", "name": "Travel", "type": "user"},
        ]

        label, created = await provider.get_or_create_label("Travel")

        assert created is True
        assert label["id"] == "Label_2"
        assert gmail_client.request.call_args.kwargs["json"] == {
            "name": "Travel",
            "messageListVisibility": "show",
            "labelListVisibility": "labelShow",
        }

    @pytest.mark.asyncio
    async def test_delete_system_label_refused(
        self, provider: GmailProvider, gmail_client: GmailClient
    ):
        gmail_client.request.return_value = {"id": "INBOX", "name": "INBOX", "type": "system"}

        with pytest.raises(ValidationError, match="Cannot delete system label"):
            await provider.delete_label("INBOX")
        gmail_client.request.assert_awaited_once_with("GET", "/labels/INBOX")

    @pytest.mark.asyncio
    async def test_delete_unknown_label(self, provider: GmailProvider, gmail_client: GmailClient):
        gmail_client.request.side_effect = _http_error(404)

        with pytest.raises(LabelNotFoundError):
            await provider.delete_label("Label_404")

    @pytest.mark.asyncio
    async def test_update_label_sends_only_given_fields(
        self, provider: GmailProvider, gmail_client: GmailClient
    ):
        gmail_client.request.return_value = {"id": "Label_1", "name": "Bills"}

        await provider.update_label("Label_1", name="Bills")

        gmail_client.request.assert_awaited_once_with(
            "PATCH", "/labels/Label_1", json={"name": "Bills"}
        )

    @pytest.mark.asyncio
    async def test_update_label_without_fields(self, provider: GmailProvider):
        with pytest.raises(ValidationError):
            await provider.update_label("Label_1")

    @pytest.mark.asyncio
    async def test_list_folders_marks_special_use(
        self, provider: GmailProvider, gmail_client: GmailClient
    ):
        gmail_client.request.return_value = self.LABELS

        folders = await provider.list_folders()

        assert {f.path: f.special_use for f in folders} == {
            "INBOX": None,
            "TRASH": "\\Trash",
            "Label_1": None,
        }


class TestFilters:
    """Tests for filter management."""

    @pytest.mark.asyncio
    async def test_list_filters(self, provider: GmailProvider, gmail_client: GmailClient):
        gmail_client.request.return_value = {
            "filter": [{"id": "f1", "criteria": {"from": "a@example.com"}, "action": {}}]
        }

        filters = await provider.list_filters()

        assert filters == [{"id": "f1", "criteria": {"from": "a@example.com"}, "action": {}}]

    @pytest.mark.asyncio
    async def test_list_filters_empty(self, provider: GmailProvider, gmail_client: GmailClient):
        assert await provider.list_filters() == []

    @pytest.mark.asyncio
    async def test_get_missing_filter(self, provider: GmailProvider, gmail_client: GmailClient):
        gmail_client.request.side_effect = _http_error(404)

        with pytest.raises(FilterNotFoundError, match="f404"):
            await provider.get_filter("f404")

    @pytest.mark.asyncio
    async def test_delete_filter_propagates_other_errors(
        self, provider: GmailProvider, gmail_client: GmailClient
    ):
        gmail_client.request.side_effect = _http_error(500)

        with pytest.raises(httpx.HTTPStatusError):
            await provider.delete_filter("f1")
