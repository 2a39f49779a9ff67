"""Tests for the IMAP/SMTP provider and its session pool."""

from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import aiosmtplib
import pytest
from conftest import FakeImapFactory, fetch_lines, imap_response

from mail_mcp.core.config import Settings
from mail_mcp.models import (
    MessageDetail,
    MessageRef,
    MessageSummary,
    OutgoingMessage,
    SearchCriteria,
)
from mail_mcp.providers.imap import (
    ImapProvider,
    ImapSessionPool,
    build_search_predicates,
    find_trash_folder,
    parse_fetch_response,
    parse_list_response,
    parse_search_response,
    quote_mailbox,
    verify_login,
)
from mail_mcp.storage.credential_store import AppPasswordCredentials
from mail_mcp.utils.errors import (
    AuthenticationError,
    MessageNotFoundError,
    ProtocolError,
    ProviderConnectionError,
    ValidationError,
)


def _headers(subject: str) -> bytes:
    return (
        f"From: sender@example.com\r\nTo: user@icloud.com\r\nSubject: {subject}\r\n"
        "Date: Tue, 07 Jan 2025 09:30:00 +0000\r\n\r\n"
    ).encode()


@pytest.fixture
def pool(settings: Settings, imap_factory: FakeImapFactory) -> ImapSessionPool:
    return ImapSessionPool(settings, client_factory=imap_factory)


@pytest.fixture
def provider(
    imap_credentials: AppPasswordCredentials, pool: ImapSessionPool, settings: Settings
) -> ImapProvider:
    return ImapProvider(imap_credentials, pool, settings)


class TestParsing:
    """Tests for IMAP response parsing helpers."""

    def test_quote_mailbox(self):
        assert quote_mailbox("INBOX") == '"INBOX"'
        assert quote_mailbox('My "Stuff"') == '"My \\"Stuff\\""'

    def test_parse_search_response_skips_status_line(self):
        assert parse_search_response([b"4 8 15", b"SEARCH completed (1 2 3)"]) == [4, 8, 15]
        assert parse_search_response([b"", b"SEARCH completed"]) == []

    def test_parse_fetch_uid_after_literal(self):
        """Some servers send UID in the line following the literal."""
        lines = [
            b"1 FETCH (FLAGS (\\Seen) BODY[] {5}",
            bytearray(b"hello"),
            b" UID 42)",
            b"FETCH completed",
        ]
        [record] = parse_fetch_response(lines)

        assert record.uid == 42
        assert record.flags == ["\\Seen"]
        assert record.data == b"hello"

    def test_parse_fetch_multiple(self):
        records = parse_fetch_response(
            fetch_lines((3, b"Subject: a\r\n\r\n", ""), (9, b"Subject: b\r\n\r\n", "\\Flagged"))
        )
        assert [r.uid for r in records] == [3, 9]
        assert records[0].flags == []
        assert records[1].flags == ["\\Flagged"]
        assert records[1].size == len(b"Subject: b\r\n\r\n")

    def test_parse_list_response(self):
        folders = parse_list_response(
            [
                b'(\\HasNoChildren) "/" "INBOX"',
                b'(\\HasNoChildren \\Trash) "/" "Deleted Messages"',
                b'(\\HasNoChildren) "/" "Work/Projects"',
                b'(\\Noselect) "/" {8}',
                bytearray(b"My Stuff"),
                b'() NIL "Flat"',
                b"LIST completed",
            ]
        )

        assert [f.path for f in folders] == [
            "INBOX",
            "Deleted Messages",
            "Work/Projects",
            "My Stuff",
            "Flat",
        ]
        assert folders[1].special_use == "\\Trash"
        assert folders[2].name == "Projects"
        assert folders[4].delimiter is None

    def test_build_search_predicates(self):
        criteria = SearchCriteria(
            sender="alice@example.com",
            subject="report",
            since=date(2025, 1, 5),
            seen=False,
            flagged=True,
            query="invoice",
        )
        assert build_search_predicates(criteria) == [
            "FROM",
            '"alice@example.com"',
            "SUBJECT",
            '"report"',
            "SINCE",
            "05-Jan-2025",
            "UNSEEN",
            "FLAGGED",
            "TEXT",
            '"invoice"',
        ]

    def test_build_search_predicates_empty(self):
        assert build_search_predicates(SearchCriteria()) == ["ALL"]


class TestFindTrashFolder:
    """Trash discovery prefers special-use, then name match, then iCloud's folder name."""

    def _folders(self, *lines: bytes):
        return parse_list_response([*lines, b"LIST completed"])

    def test_special_use_wins(self):
        folders = self._folders(b'() "/" "Old Trash"', b'(\\Trash) "/" "Bin"')
        assert find_trash_folder(folders).path == "Bin"

    def test_name_match(self):
        folders = self._folders(b'() "/" "INBOX"', b'() "/" "[Mail]/Trash"')
        assert find_trash_folder(folders).path == "[Mail]/Trash"

    def test_icloud_name(self):
        folders = self._folders(b'() "/" "INBOX"', b'() "/" "Deleted Messages"')
        assert find_trash_folder(folders).path == "Deleted Messages"

    def test_none(self):
        assert find_trash_folder(self._folders(b'() "/" "INBOX"')) is None


class TestSessionPool:
    """Tests for cached IMAP sessions."""

    @pytest.mark.asyncio
    async def test_session_is_cached(
        self, pool: ImapSessionPool, imap_factory: FakeImapFactory, imap_credentials
    ):
        async with pool.session(imap_credentials) as first:
            pass
        async with pool.session(imap_credentials) as second:
            pass

        assert first is second
        assert len(imap_factory.clients) == 1
        assert imap_factory.client.connect_kwargs["host"] == "imap.mail.me.com"
        assert imap_factory.client.names().count("noop") == 1

    @pytest.mark.asyncio
    async def test_failed_probe_reconnects(
        self, pool: ImapSessionPool, imap_factory: FakeImapFactory, imap_credentials
    ):
        async with pool.session(imap_credentials):
            pass
        imap_factory.client.script("noop", imap_response("NO"))

        async with pool.session(imap_credentials):
            pass

        assert len(imap_factory.clients) == 2
        assert "logout" in imap_factory.clients[0].names()

    @pytest.mark.asyncio
    async def test_connection_error_invalidates(
        self, pool: ImapSessionPool, imap_factory: FakeImapFactory, imap_credentials
    ):
        with pytest.raises(ConnectionError):
            async with pool.session(imap_credentials):
                raise ConnectionError("reset")

        assert imap_credentials.email not in pool

    @pytest.mark.asyncio
    async def test_login_rejected(
        self, pool: ImapSessionPool, imap_factory: FakeImapFactory, imap_credentials
    ):
        client = imap_factory.prepare()
        client.script("login", imap_response("NO", b"AUTHENTICATIONFAILED"))

        with pytest.raises(AuthenticationError, match="AUTHENTICATIONFAILED"):
            async with pool.session(imap_credentials):
                pass
        assert imap_credentials.email not in pool

    @pytest.mark.asyncio
    async def test_dropped_login_closes_connection(
        self, pool: ImapSessionPool, imap_factory: FakeImapFactory, imap_credentials
    ):
        client = imap_factory.prepare()
        client.script("login", ConnectionResetError("reset during login"))

        with pytest.raises(ConnectionResetError):
            async with pool.session(imap_credentials):
                pass
        assert client.names() == ["hello", "login", "logout"]
        assert imap_credentials.email not in pool

    @pytest.mark.asyncio
    async def test_close_all(
        self, pool: ImapSessionPool, imap_factory: FakeImapFactory, imap_credentials
    ):
        async with pool.session(imap_credentials):
            pass
        await pool.close_all()

        assert imap_credentials.email not in pool
        assert "logout" in imap_factory.client.names()


class TestSearch:
    """Tests for ImapProvider.search_emails."""

    @pytest.mark.asyncio
    async def test_truncates_to_newest_uids(
        self, provider: ImapProvider, imap_factory: FakeImapFactory
    ):
        """Results are the max_results highest UIDs, newest first."""
        client = imap_factory.prepare()
        client.script("uid search", imap_response("OK", b"3 10 7 1 12", b"SEARCH completed"))
        client.script(
            "uid fetch",
            imap_response(
                "OK",
                *fetch_lines(
                    (7, _headers("seven"), ""),
                    (10, _headers("ten"), "\\Seen"),
                    (12, _headers("twelve"), ""),
                ),
            ),
        )

        results = await provider.search_emails(SearchCriteria(max_results=3))

        assert [r.id for r in results] == ["12", "10", "7"]
        assert [r.subject for r in results] == ["twelve", "ten", "seven"]
        assert results[1].flags == ["\\Seen"]
        assert results[0].folder == "INBOX"
        assert client.calls("uid fetch") == [
            ("12,10,7", "(UID FLAGS RFC822.SIZE BODY.PEEK[HEADER])")
        ]

    @pytest.mark.asyncio
    async def test_default_limit_is_fifty(
        self, provider: ImapProvider, imap_factory: FakeImapFactory
    ):
        client = imap_factory.prepare()
        uids = " ".join(str(n) for n in range(1, 81)).encode()
        client.script("uid search", imap_response("OK", uids, b"SEARCH completed"))

        await provider.search_emails(SearchCriteria())

        [(uid_set, _)] = client.calls("uid fetch")
        fetched = uid_set.split(",")
        assert len(fetched) == 50
        assert fetched[0] == "80"
        assert fetched[-1] == "31"

    @pytest.mark.asyncio
    async def test_no_matches_skips_fetch(
        self, provider: ImapProvider, imap_factory: FakeImapFactory
    ):
        client = imap_factory.prepare()
        client.script("uid search", imap_response("OK", b"", b"SEARCH completed"))

        assert await provider.search_emails(SearchCriteria(subject="nothing")) == []
        assert client.calls("uid fetch") == []

    @pytest.mark.asyncio
    async def test_reselect_avoided(self, provider: ImapProvider, imap_factory: FakeImapFactory):
        """A mailbox already selected on the cached session is not selected again."""
        client = imap_factory.prepare()
        client.script(
            "uid search", imap_response("OK", b"", b"done"), imap_response("OK", b"", b"done")
        )

        await provider.search_emails(SearchCriteria(folder="INBOX"))
        await provider.search_emails(SearchCriteria(folder="INBOX"))
        assert client.calls("select") == [('"INBOX"',)]

        client.script("uid search", imap_response("OK", b"", b"done"))
        await provider.search_emails(SearchCriteria(folder="Archive"))
        assert client.calls("select") == [('"INBOX"',), ('"Archive"',)]

    @pytest.mark.asyncio
    async def test_search_failure(self, provider: ImapProvider, imap_factory: FakeImapFactory):
        client = imap_factory.prepare()
        client.script("uid search", imap_response("BAD", b"Could not parse command"))

        with pytest.raises(ProtocolError, match="Could not parse command"):
            await provider.search_emails(SearchCriteria())


class TestRetry:
    """Connection-level failures reconnect and retry once."""

    @pytest.mark.asyncio
    async def test_retry_succeeds_on_new_connection(
        self, provider: ImapProvider, imap_factory: FakeImapFactory
    ):
        first = imap_factory.prepare()
        first.script("uid search", ConnectionResetError("connection reset"))
        second = imap_factory.prepare()
        second.script("uid search", imap_response("OK", b"", b"done"))

        assert await provider.search_emails(SearchCriteria()) == []
        assert len(imap_factory.clients) == 2
        assert second.calls("select") == [('"INBOX"',)]

    @pytest.mark.asyncio
    async def test_dropped_login_is_closed_before_retry(
        self, provider: ImapProvider, imap_factory: FakeImapFactory
    ):
        first = imap_factory.prepare()
        first.script("login", ConnectionResetError("reset during login"))
        second = imap_factory.prepare()
        second.script("uid search", imap_response("OK", b"", b"done"))

        assert await provider.search_emails(SearchCriteria()) == []
        assert len(imap_factory.clients) == 2
        assert first.names()[-1] == "logout"
        assert "logout" not in second.names()

    @pytest.mark.asyncio
    async def test_second_failure_raises(
        self, provider: ImapProvider, imap_factory: FakeImapFactory
    ):
        imap_factory.prepare().script("select", ConnectionResetError("reset"))
        imap_factory.prepare().script("select", ConnectionResetError("reset again"))

        with pytest.raises(ProviderConnectionError, match="reset again"):
            await provider.search_emails(SearchCriteria())


class TestReadEmail:
    """Tests for ImapProvider.read_email and download_attachment."""

    @pytest.mark.asyncio
    async def test_full_message(
        self, provider: ImapProvider, imap_factory: FakeImapFactory, sample_message: bytes
    ):
        client = imap_factory.prepare()
        client.script("uid fetch", imap_response("OK", *fetch_lines((5, sample_message, "\\Seen"))))

        detail = await provider.read_email(MessageRef(id="5", folder="Archive"))

        assert isinstance(detail, MessageDetail)
        assert detail.id == "5"
        assert detail.folder == "Archive"
        assert detail.subject == "Quarterly report"
        assert detail.flags == ["\\Seen"]
        assert [a.id for a in detail.attachments] == ["report.pdf"]
        assert client.calls("select") == [('"Archive"',)]
        assert client.calls("uid fetch") == [("5", "(UID FLAGS BODY.PEEK[])")]

    @pytest.mark.asyncio
    async def test_summary_mode(
        self, provider: ImapProvider, imap_factory: FakeImapFactory, sample_message: bytes
    ):
        client = imap_factory.prepare()
        client.script("uid fetch", imap_response("OK", *fetch_lines((5, sample_message, ""))))

        summary = await provider.read_email(MessageRef(id="5"), summary=True, max_body_chars=10)

        assert isinstance(summary, MessageSummary)
        assert summary.has_attachments is True
        assert summary.snippet == "Please fin"
        [(_, items)] = client.calls("uid fetch")
        assert "BODY.PEEK[]<0.20000>" in items

    @pytest.mark.asyncio
    async def test_missing_message(self, provider: ImapProvider, imap_factory: FakeImapFactory):
        imap_factory.prepare().script("uid fetch", imap_response("OK", b"FETCH completed"))

        with pytest.raises(MessageNotFoundError, match="UID 99"):
            await provider.read_email(MessageRef(id="99"))

    @pytest.mark.asyncio
    async def test_invalid_uid(self, provider: ImapProvider):
        with pytest.raises(ValidationError, match="Invalid UID"):
            await provider.read_email(MessageRef(id="abc"))

    @pytest.mark.asyncio
    async def test_download_attachment(
        self, provider: ImapProvider, imap_factory: FakeImapFactory, sample_message: bytes
    ):
        imap_factory.prepare().script(
            "uid fetch", imap_response("OK", *fetch_lines((5, sample_message, "")))
        )

        content = await provider.download_attachment(MessageRef(id="5"), "0")

        assert content.filename == "report.pdf"
        assert content.mime_type == "application/pdf"
        assert content.data.startswith(b"%PDF")


class TestMoveAndFlag:
    """Tests for moving and flagging messages."""

    @pytest.mark.asyncio
    async def test_move_uses_move_capability(
        self, provider: ImapProvider, imap_factory: FakeImapFactory
    ):
        client = imap_factory.prepare()
        await provider.move_email(MessageRef(id="5"), "Archive")

        assert client.calls("uid move") == [("5", '"Archive"')]
        assert client.calls("uid copy") == []

    @pytest.mark.asyncio
    async def test_move_fallback_without_capability(
        self, settings: Settings, imap_credentials: AppPasswordCredentials
    ):
        factory = FakeImapFactory(capabilities=())
        provider = ImapProvider(imap_credentials, ImapSessionPool(settings, factory), settings)

        await provider.move_email(MessageRef(id="5"), "Archive")

        client = factory.client
        assert client.calls("uid copy") == [("5", '"Archive"')]
        assert client.calls("uid store") == [("5", "+FLAGS", "(\\Deleted)")]
        assert client.names()[-1] == "expunge"

    @pytest.mark.asyncio
    async def test_move_invalidates_selected_mailbox(
        self, provider: ImapProvider, imap_factory: FakeImapFactory
    ):
        client = imap_factory.prepare()
        await provider.move_email(MessageRef(id="5"), "Archive")
        await provider.move_email(MessageRef(id="6"), "Archive")

        assert client.calls("select") == [('"INBOX"',), ('"INBOX"',)]

    @pytest.mark.asyncio
    async def test_move_emails_records_invalid_ids(
        self, provider: ImapProvider, imap_factory: FakeImapFactory
    ):
        client = imap_factory.prepare()

        result = await provider.move_emails(["5", "abc", "7"], "INBOX", "Archive")

        assert result.successes == ["5", "7"]
        assert [f.id for f in result.failures] == ["abc"]
        assert client.calls("uid move") == [("5,7", '"Archive"')]

    @pytest.mark.asyncio
    async def test_move_emails_all_invalid(self, provider: ImapProvider):
        with pytest.raises(ValidationError, match="No valid UIDs"):
            await provider.move_emails(["x", "y"], "INBOX", "Archive")

    @pytest.mark.asyncio
    async def test_mark_emails_read(self, provider: ImapProvider, imap_factory: FakeImapFactory):
        client = imap_factory.prepare()

        result = await provider.mark_emails_read(["5", "6"])

        assert result.success_count == 2
        assert client.calls("uid store") == [("5,6", "+FLAGS", "(\\Seen)")]


class TestDelete:
    """Tests for ImapProvider.delete_email."""

    @pytest.mark.asyncio
    async def test_moves_to_icloud_trash(
        self, provider: ImapProvider, imap_factory: FakeImapFactory
    ):
        client = imap_factory.prepare()
        client.script(
            "list",
            imap_response(
                "OK", b'() "/" "INBOX"', b'() "/" "Deleted Messages"', b"LIST completed"
            ),
        )

        trash = await provider.delete_email(MessageRef(id="5"))

        assert trash == "Deleted Messages"
        assert client.calls("uid move") == [("5", '"Deleted Messages"')]

    @pytest.mark.asyncio
    async def test_no_trash_deletes_permanently(
        self, provider: ImapProvider, imap_factory: FakeImapFactory
    ):
        client = imap_factory.prepare()
        client.script("list", imap_response("OK", b'() "/" "INBOX"', b"LIST completed"))

        assert await provider.delete_email(MessageRef(id="5")) is None
        assert client.calls("uid store") == [("5", "+FLAGS", "(\\Deleted)")]
        assert "expunge" in client.names()

    @pytest.mark.asyncio
    async def test_delete_from_trash_is_permanent(
        self, provider: ImapProvider, imap_factory: FakeImapFactory
    ):
        client = imap_factory.prepare()
        client.script("list", imap_response("OK", b'(\\Trash) "/" "Trash"', b"LIST completed"))

        assert await provider.delete_email(MessageRef(id="5", folder="Trash")) is None
        assert client.calls("uid move") == []

    @pytest.mark.asyncio
    async def test_permanent_skips_folder_listing(
        self, provider: ImapProvider, imap_factory: FakeImapFactory
    ):
        client = imap_factory.prepare()

        assert await provider.delete_email(MessageRef(id="5"), permanent=True) is None
        assert client.calls("list") == []


class TestFoldersAndDrafts:
    """Tests for folder management and draft saving."""

    @pytest.mark.asyncio
    async def test_create_folder(self, provider: ImapProvider, imap_factory: FakeImapFactory):
        client = imap_factory.prepare()

        folder = await provider.create_folder("Receipts")

        assert folder.path == "Receipts"
        assert client.calls("create") == [('"Receipts"',)]

    @pytest.mark.asyncio
    async def test_save_draft_uses_drafts_special_use(
        self, provider: ImapProvider, imap_factory: FakeImapFactory
    ):
        client = imap_factory.prepare()
        client.script(
            "list", imap_response("OK", b'(\\Drafts) "/" "My Drafts"', b"LIST completed")
        )
        client.script("append", imap_response("OK", b"[APPENDUID 1700 456] APPEND completed"))

        result = await provider.save_draft(
            OutgoingMessage(to=["a@example.com"], subject="Draft", body="text")
        )

        assert result.id == "456"
        assert result.folder == "My Drafts"
        [(raw, mailbox, flags)] = client.calls("append")
        assert mailbox == '"My Drafts"'
        assert flags == "(\\Draft)"
        assert b"Subject: Draft" in raw


class TestSendEmail:
    """Tests for sending over SMTP."""

    @pytest.mark.asyncio
    async def test_send_includes_bcc_in_envelope(self, provider: ImapProvider):
        smtp = AsyncMock()
        with patch("mail_mcp.providers.imap.aiosmtplib.SMTP") as mock_smtp:
            mock_smtp.return_value.__aenter__.return_value = smtp

            result = await provider.send_email(
                OutgoingMessage(
                    to=["a@example.com"], bcc=["hidden@example.com"], subject="Hi", body="b"
                )
            )

        mock_smtp.assert_called_once()
        kwargs = mock_smtp.call_args.kwargs
        assert kwargs["hostname"] == "smtp.mail.me.com"
        assert kwargs["start_tls"] is True
        smtp.login.assert_awaited_once_with("user@icloud.com", "abcd-efgh-ijkl-mnop")
        message = smtp.send_message.await_args.args[0]
        assert message["Bcc"] is None
        assert smtp.send_message.await_args.kwargs["recipients"] == [
            "a@example.com",
            "hidden@example.com",
        ]
        assert result.recipients == ["a@example.com", "hidden@example.com"]

    @pytest.mark.asyncio
    async def test_smtp_auth_failure(self, provider: ImapProvider):
        smtp = AsyncMock()
        smtp.login.side_effect = aiosmtplib.SMTPAuthenticationError(535, "bad credentials")
        with patch("mail_mcp.providers.imap.aiosmtplib.SMTP") as mock_smtp:
            mock_smtp.return_value.__aenter__.return_value = smtp

            with pytest.raises(AuthenticationError):
                await provider.send_email(
                    OutgoingMessage(to=["a@example.com"], subject="Hi", body="b")
                )


class TestVerifyLogin:
    """Tests for the login check used when adding an account."""

    @pytest.mark.asyncio
    async def test_success_logs_out(self, settings: Settings, imap_credentials):
        factory = FakeImapFactory()
        await verify_login(imap_credentials, settings, factory)

        assert factory.client.names() == ["hello", "login", "logout"]

    @pytest.mark.asyncio
    async def test_unreachable(self, settings: Settings, imap_credentials):
        factory = MagicMock(side_effect=OSError("no route to host"))

        with pytest.raises(ProviderConnectionError, match="no route to host"):
            await verify_login(imap_credentials, settings, factory)
