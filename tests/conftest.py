"""Pytest configuration and fixtures for mail-mcp tests."""

import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from mail_mcp.accounts.manager import AccountManager
from mail_mcp.core.config import Settings
from mail_mcp.storage.credential_store import (
    AppPasswordCredentials,
    CredentialStore,
    OAuthTokens,
)


def imap_response(result: str = "OK", *lines: Any) -> SimpleNamespace:
    """Build an aioimaplib-style response (``result`` plus raw ``lines``)."""
    return SimpleNamespace(result=result, lines=list(lines) or [b"Completed"])


class FakeImapClient:
    """
    Stand-in for ``aioimaplib.IMAP4_SSL`` that records every command.

    Responses are scripted per command name (``"select"``, ``"uid fetch"``...)
    as a list consumed in order; once a script runs out, the command answers OK.
    Raising is scripted by putting an exception instance in the list.
    """

    def __init__(self, capabilities: tuple[str, ...] = ("MOVE",), **kwargs: Any):
        self.capabilities = set(capabilities)
        self.connect_kwargs = kwargs
        self.commands: list[tuple[str, tuple[Any, ...]]] = []
        self.scripts: dict[str, list[Any]] = {}

    def script(self, command: str, *responses: Any) -> None:
        self.scripts.setdefault(command, []).extend(responses)

    def names(self) -> list[str]:
        return [name for name, _ in self.commands]

    def calls(self, command: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.commands if name == command]

    async def _answer(self, command: str, *args: Any) -> SimpleNamespace:
        self.commands.append((command, args))
        queue = self.scripts.get(command)
        if queue:
            response = queue.pop(0)
            if isinstance(response, BaseException):
                raise response
            return response
        return imap_response("OK")

    def has_capability(self, capability: str) -> bool:
        return capability in self.capabilities

    async def wait_hello_from_server(self) -> None:
        self.commands.append(("hello", ()))

    async def login(self, user: str, password: str) -> SimpleNamespace:
        return await self._answer("login", user, password)

    async def logout(self) -> SimpleNamespace:
        return await self._answer("logout")

    async def noop(self) -> SimpleNamespace:
        return await self._answer("noop")

    async def select(self, mailbox: str) -> SimpleNamespace:
        return await self._answer("select", mailbox)

    async def uid_search(self, *criteria: str) -> SimpleNamespace:
        return await self._answer("uid search", *criteria)

    async def uid(self, command: str, *args: Any) -> SimpleNamespace:
        return await self._answer(f"uid {command}", *args)

    async def expunge(self) -> SimpleNamespace:
        return await self._answer("expunge")

    async def list(self, reference: str, pattern: str) -> SimpleNamespace:
        return await self._answer("list", reference, pattern)

    async def create(self, mailbox: str) -> SimpleNamespace:
        return await self._answer("create", mailbox)

    async def append(self, message: bytes, mailbox: str, flags: str) -> SimpleNamespace:
        return await self._answer("append", message, mailbox, flags)


class FakeImapFactory:
    """Client factory handing out a new FakeImapClient per connection."""

    def __init__(self, capabilities: tuple[str, ...] = ("MOVE",)):
        self.capabilities = capabilities
        self.clients: list[FakeImapClient] = []
        self.pending: list[FakeImapClient] = []

    def __call__(self, **kwargs: Any) -> FakeImapClient:
        client = self.pending.pop(0) if self.pending else FakeImapClient(self.capabilities)
        client.connect_kwargs = kwargs
        self.clients.append(client)
        return client

    def prepare(self) -> FakeImapClient:
        """Create the client the next connection will receive, so it can be scripted."""
        client = FakeImapClient(self.capabilities)
        self.pending.append(client)
        return client

    @property
    def client(self) -> FakeImapClient:
        return self.clients[-1]


def fetch_lines(*messages: tuple[int, bytes, str]) -> list[Any]:
    """UID FETCH response lines for (uid, raw message, flags) triples."""
    lines: list[Any] = []
    for seq, (uid, raw, flags) in enumerate(messages, start=1):
        lines.append(
            f"{seq} FETCH (UID {uid} FLAGS ({flags}) RFC822.SIZE {len(raw)} "
            f"BODY[HEADER] {{{len(raw)}}}".encode()
        )
        lines.append(bytearray(raw))
        lines.append(b")")
    lines.append(b"Fetch completed")
    return lines


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(temp_dir: Path) -> Settings:
    """Settings pointing every path at the temporary directory."""
    return Settings(
        mail_config_dir=temp_dir / "config",
        log_dir=temp_dir / "logs",
        imap_noop_timeout=1.0,
    )


@pytest.fixture
def store(settings: Settings) -> CredentialStore:
    """Create a CredentialStore rooted in the temporary config directory."""
    return CredentialStore(settings.mail_config_dir)


@pytest.fixture
def manager(store: CredentialStore) -> AccountManager:
    """Create an AccountManager with an empty registry."""
    return AccountManager(store)


@pytest.fixture
def imap_credentials() -> AppPasswordCredentials:
    return AppPasswordCredentials(email="user@icloud.com", app_password="abcd-efgh-ijkl-mnop")


@pytest.fixture
def oauth_tokens() -> OAuthTokens:
    return OAuthTokens(
        access_token="test_access_token",
        refresh_token="test_refresh_token",
        expires_at=datetime.now(UTC) + timedelta(hours=1),
        scope="https://www.googleapis.com/auth/gmail.modify",
    )


@pytest.fixture
def imap_factory() -> FakeImapFactory:
    """Factory for fake aioimaplib clients that advertise MOVE."""
    return FakeImapFactory()


@pytest.fixture
def sample_message() -> bytes:
    """A multipart message with a text body, an HTML body and a PDF attachment."""
    return (
        b"From: Alice <alice@example.com>\r\n"
        b"To: user@icloud.com\r\n"
        b"Cc: carol@example.com\r\n"
        b"Subject: Quarterly report\r\n"
        b"Date: Mon, 06 Jan 2025 10:00:00 +0000\r\n"
        b"Message-ID: <report-1@example.com>\r\n"
        b"MIME-Version: 1.0\r\n"
        b'Content-Type: multipart/mixed; boundary="outer"\r\n'
        b"\r\n"
        b"--outer\r\n"
        b'Content-Type: multipart/alternative; boundary="inner"\r\n'
        b"\r\n"
        b"--inner\r\n"
        b"Content-Type: text/plain; charset=utf-8\r\n"
        b"\r\n"
        b"Please find the report attached.\r\n"
        b"--inner\r\n"
        b"Content-Type: text/html; charset=utf-8\r\n"
        b"\r\n"
        b"<p>Please find the report attached.</p>\r\n"
        b"--inner--\r\n"
        b"--outer\r\n"
        b"Content-Type: application/pdf\r\n"
        b'Content-Disposition: attachment; filename="report.pdf"\r\n'
        b"Content-Transfer-Encoding: base64\r\n"
        b"\r\n"
        b"JVBERi0xLjQK\r\n"
        b"--outer--\r\n"
    )
