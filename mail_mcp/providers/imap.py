"""IMAP/SMTP provider for app-password accounts (iCloud Mail by default).

One authenticated IMAP connection is cached per account in an
ImapSessionPool. Every operation runs inside ``pool.session()``, which holds
the account's lock, probes the cached connection and reconnects when the
probe fails. Messages are always addressed by UID.
"""

import asyncio
import logging
import re
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import Any, TypeVar

import aioimaplib
import aiosmtplib

from ..core.config import Settings
from ..models import (
    AttachmentContent,
    BatchFailure,
    BatchResult,
    FolderInfo,
    MessageDetail,
    MessageRef,
    MessageSummary,
    OutgoingMessage,
    SearchCriteria,
    SendResult,
)
from ..storage.credential_store import AppPasswordCredentials
from ..utils.errors import (
    AuthenticationError,
    MessageNotFoundError,
    ProtocolError,
    ProviderConnectionError,
    ValidationError,
)
from .base import MailProvider
from .mime import (
    ParsedMessage,
    build_message,
    find_attachment,
    parse_headers,
    parse_message,
    snippet,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors after which a cached connection can no longer be trusted
CONNECTION_ERRORS: tuple[type[BaseException], ...] = (
    aioimaplib.Abort,
    aioimaplib.CommandTimeout,
    asyncio.TimeoutError,
    ConnectionError,
    OSError,
)

DEFAULT_MAX_RESULTS = 50
SUMMARY_FETCH_BYTES = 20000
DEFAULT_DRAFTS_FOLDER = "Drafts"
WELL_KNOWN_TRASH_FOLDER = "Deleted Messages"
SPECIAL_USE_FLAGS = ("\\Trash", "\\Sent", "\\Drafts", "\\Junk", "\\Archive", "\\All", "\\Flagged")

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

_FETCH_START = re.compile(rb"^\d+ FETCH \(")
_UID = re.compile(rb"UID (\d+)")
_FLAGS = re.compile(rb"FLAGS \(([^)]*)\)")
_SIZE = re.compile(rb"RFC822\.SIZE (\d+)")
_APPENDUID = re.compile(r"APPENDUID \d+ (\d+)")
_LIST_LINE = re.compile(
    r'^\((?P<flags>[^)]*)\)\s+(?P<delimiter>"(?:[^"\\]|\\.)*"|NIL)\s+(?P<name>.+)$'
)
_LITERAL = re.compile(r"^\{(\d+)\}$")


def quote_mailbox(mailbox: str) -> str:
    """Quote a mailbox name or search string per RFC 3501 section 9."""
    escaped = mailbox.replace("\\", "\\\\").replace('"', r"\"")
    return f'"{escaped}"'


def _unquote(value: str) -> str:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1].replace(r"\"", '"').replace("\\\\", "\\")
    return value


def _imap_date(value: date) -> str:
    return f"{value.day:02d}-{_MONTHS[value.month - 1]}-{value.year}"


def _response_text(response: Any) -> str:
    lines = getattr(response, "lines", None) or []
    for line in reversed(lines):
        if isinstance(line, bytes | bytearray):
            line = bytes(line).decode("utf-8", errors="replace")
        if line:
            return str(line)
    return "no response"


def check_response(response: Any, command: str) -> None:
    """Raise ProtocolError unless the server answered OK."""
    if response.result != "OK":
        raise ProtocolError(command, _response_text(response))


def build_search_predicates(criteria: SearchCriteria) -> list[str]:
    """Translate uniform search criteria into IMAP SEARCH keys."""
    predicates: list[str] = []
    if criteria.sender:
        predicates += ["FROM", quote_mailbox(criteria.sender)]
    if criteria.recipient:
        predicates += ["TO", quote_mailbox(criteria.recipient)]
    if criteria.subject:
        predicates += ["SUBJECT", quote_mailbox(criteria.subject)]
    if criteria.since:
        predicates += ["SINCE", _imap_date(criteria.since)]
    if criteria.before:
        predicates += ["BEFORE", _imap_date(criteria.before)]
    if criteria.seen is not None:
        predicates.append("SEEN" if criteria.seen else "UNSEEN")
    if criteria.flagged is not None:
        predicates.append("FLAGGED" if criteria.flagged else "UNFLAGGED")
    if criteria.text:
        predicates += ["BODY", quote_mailbox(criteria.text)]
    if criteria.query:
        predicates += ["TEXT", quote_mailbox(criteria.query)]
    return predicates or ["ALL"]


def parse_search_response(lines: list[Any]) -> list[int]:
    """Extract UIDs from a UID SEARCH response; the tagged status line is skipped."""
    uids: list[int] = []
    for line in lines[:-1]:
        if isinstance(line, bytes | bytearray):
            line = bytes(line).decode("ascii", errors="ignore")
        uids.extend(int(token) for token in str(line).split() if token.isdigit())
    return uids


@dataclass
class FetchedMessage:
    """One message's items from a UID FETCH response."""

    uid: int | None = None
    flags: list[str] = field(default_factory=list)
    size: int | None = None
    data: bytes | None = None

    def absorb(self, line: bytes) -> None:
        if self.uid is None and (match := _UID.search(line)):
            self.uid = int(match.group(1))
        if match := _FLAGS.search(line):
            self.flags = [f.decode("utf-8", errors="replace") for f in match.group(1).split()]
        if match := _SIZE.search(line):
            self.size = int(match.group(1))


def parse_fetch_response(lines: list[Any]) -> list[FetchedMessage]:
    """
    Group a UID FETCH response into per-message records.

    Literal data arrives as bytearray lines. Servers differ on whether UID
    and FLAGS come before the literal or in a trailing line after it, so
    both positions are read.
    """
    records: list[FetchedMessage] = []
    current: FetchedMessage | None = None
    for line in lines:
        if isinstance(line, bytearray):
            if current is not None:
                current.data = bytes(line)
            continue
        if isinstance(line, str):
            line = line.encode("utf-8")
        if _FETCH_START.match(line):
            current = FetchedMessage()
            records.append(current)
            current.absorb(line)
        elif current is not None:
            current.absorb(line)
    return [record for record in records if record.uid is not None]


def parse_list_response(lines: list[Any]) -> list[FolderInfo]:
    """Parse LIST responses into folders."""
    folders: list[FolderInfo] = []
    decoded = [
        bytes(line).decode("utf-8", errors="replace") if isinstance(line, bytes | bytearray)
        else str(line)
        for line in lines
    ]
    index = 0
    while index < len(decoded):
        match = _LIST_LINE.match(decoded[index].strip())
        index += 1
        if not match:
            continue

        name = match.group("name").strip()
        if (literal := _LITERAL.match(name)) and index < len(decoded):
            name = decoded[index][: int(literal.group(1))]
            index += 1
        name = _unquote(name)

        delimiter_token = match.group("delimiter")
        delimiter = None if delimiter_token == "NIL" else _unquote(delimiter_token)
        flags = match.group("flags").split()
        special_use = next((f for f in flags if f in SPECIAL_USE_FLAGS), None)

        folders.append(
            FolderInfo(
                path=name,
                name=name.rsplit(delimiter, 1)[-1] if delimiter else name,
                delimiter=delimiter,
                flags=flags,
                special_use=special_use,
            )
        )
    return folders


def find_trash_folder(folders: Iterable[FolderInfo]) -> FolderInfo | None:
    """Find the trash-equivalent folder: special-use, then name match, then iCloud's name."""
    folders = list(folders)
    for folder in folders:
        if folder.special_use == "\\Trash":
            return folder
    for folder in folders:
        if "trash" in folder.path.lower():
            return folder
    for folder in folders:
        if folder.path == WELL_KNOWN_TRASH_FOLDER:
            return folder
    return None


def _validate_uid(uid: str) -> str:
    uid = str(uid).strip()
    if not uid.isdigit():
        raise ValidationError(f"Invalid UID: {uid}")
    return uid


class ImapSession:
    """One authenticated IMAP connection and its selected mailbox."""

    def __init__(
        self,
        credentials: AppPasswordCredentials,
        settings: Settings,
        client_factory: Callable[..., Any] = aioimaplib.IMAP4_SSL,
    ):
        self.credentials = credentials
        self.settings = settings
        self._client_factory = client_factory
        self.client: Any = None
        self.selected_mailbox: str | None = None

    @property
    def email(self) -> str:
        return self.credentials.email.lower()

    async def connect(self) -> None:
        """Open the connection and log in."""
        host, port = self.credentials.imap_host, self.credentials.imap_port
        logger.info(f"Connecting to IMAP server {host}:{port} as {self.email}")

        client = self._client_factory(host=host, port=port, timeout=self.settings.imap_timeout)
        try:
            await client.wait_hello_from_server()
            response = await client.login(self.credentials.email, self.credentials.app_password)
        except CONNECTION_ERRORS:
            await self._discard(client)
            raise
        if response.result != "OK":
            await self._discard(client)
            raise AuthenticationError(
                f"IMAP login failed for {self.credentials.email}: {_response_text(response)}"
            )

        self.client = client
        self.selected_mailbox = None
        logger.info(f"IMAP connection established for {self.email}")

    async def _discard(self, client: Any) -> None:
        """Log out of a connection that never became the session's client."""
        try:
            await asyncio.wait_for(client.logout(), timeout=self.settings.imap_noop_timeout)
        except CONNECTION_ERRORS as e:
            logger.debug(f"Error closing unused IMAP connection for {self.email}: {e}")


    async def is_usable(self) -> bool:
        """Probe the connection with NOOP."""
        if self.client is None:
            return False
        try:
            response = await asyncio.wait_for(
                self.client.noop(), timeout=self.settings.imap_noop_timeout
            )
        except CONNECTION_ERRORS as e:
            logger.debug(f"IMAP probe failed for {self.email}: {e}")
            return False
        return response.result == "OK"

    async def select(self, mailbox: str) -> None:
        """Open a mailbox unless it is already the selected one."""
        if self.selected_mailbox == mailbox:
            logger.debug(f"Mailbox {mailbox} already selected, skipping")
            return

        # Unknown until the server confirms
        self.selected_mailbox = None
        response = await self.client.select(quote_mailbox(mailbox))
        check_response(response, f"SELECT {mailbox}")
        self.selected_mailbox = mailbox
        logger.debug(f"Selected mailbox {mailbox}")

    def invalidate_mailbox(self) -> None:
        self.selected_mailbox = None

    async def close(self) -> None:
        """Log out; errors are ignored since the connection is being discarded."""
        if self.client is None:
            return
        try:
            await asyncio.wait_for(self.client.logout(), timeout=self.settings.imap_noop_timeout)
        except Exception as e:
            logger.debug(f"Error closing IMAP connection for {self.email}: {e}")
        finally:
            self.client = None
            self.selected_mailbox = None


class ImapSessionPool:
    """
    Cached IMAP sessions keyed by account email.

    At most one session is live per account. Use ``session()`` rather than
    ``acquire()`` directly: it serializes access per account and drops the
    cached session when a connection-level error escapes.
    """

    def __init__(
        self,
        settings: Settings,
        client_factory: Callable[..., Any] = aioimaplib.IMAP4_SSL,
    ):
        self.settings = settings
        self._client_factory = client_factory
        self._sessions: dict[str, ImapSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __contains__(self, email: str) -> bool:
        return email.lower() in self._sessions

    def _lock_for(self, email: str) -> asyncio.Lock:
        if email not in self._locks:
            self._locks[email] = asyncio.Lock()
        return self._locks[email]

    async def _open(self, credentials: AppPasswordCredentials) -> ImapSession:
        session = ImapSession(credentials, self.settings, self._client_factory)
        await session.connect()
        self._sessions[session.email] = session
        return session

    async def acquire(self, credentials: AppPasswordCredentials) -> ImapSession:
        """Return a usable session, connecting or reconnecting as needed."""
        email = credentials.email.lower()
        session = self._sessions.get(email)
        if session is None:
            return await self._open(credentials)

        if await session.is_usable():
            logger.debug(f"Reusing IMAP session for {email}")
            return session

        logger.warning(f"IMAP session for {email} is stale, reconnecting")
        self._sessions.pop(email, None)
        await session.close()
        return await self._open(credentials)

    async def invalidate(self, email: str) -> None:
        """Drop and close an account's cached session."""
        session = self._sessions.pop(email.lower(), None)
        if session is not None:
            await session.close()
            logger.info(f"Discarded IMAP session for {email}")

    @asynccontextmanager
    async def session(self, credentials: AppPasswordCredentials) -> AsyncIterator[ImapSession]:
        """Hold the account's session for the duration of one operation."""
        email = credentials.email.lower()
        async with self._lock_for(email):
            session = await self.acquire(credentials)
            try:
                yield session
            except CONNECTION_ERRORS:
                await self.invalidate(email)
                raise

    async def close_all(self) -> None:
        for email in list(self._sessions):
            await self.invalidate(email)


class ImapProvider(MailProvider):
    """Mailbox operations over IMAP, with sending over SMTP."""

    provider_name = "imap"

    def __init__(
        self,
        credentials: AppPasswordCredentials,
        pool: ImapSessionPool,
        settings: Settings,
    ):
        super().__init__(credentials.email.lower())
        self.credentials = credentials
        self.pool = pool
        self.settings = settings

    async def _run(self, operation: Callable[[ImapSession], Awaitable[T]]) -> T:
        """Run an operation, reconnecting and retrying once on a dropped connection."""
        try:
            async with self.pool.session(self.credentials) as session:
                return await operation(session)
        except CONNECTION_ERRORS as e:
            logger.warning(f"IMAP connection error for {self.email} ({e}), retrying once")

        try:
            async with self.pool.session(self.credentials) as session:
                return await operation(session)
        except CONNECTION_ERRORS as e:
            raise ProviderConnectionError(f"IMAP connection failed for {self.email}: {e}") from e

    # Messages

    async def search_emails(self, criteria: SearchCriteria) -> list[MessageSummary]:
        folder = criteria.folder or "INBOX"
        limit = criteria.max_results or DEFAULT_MAX_RESULTS
        predicates = build_search_predicates(criteria)

        async def operation(session: ImapSession) -> list[MessageSummary]:
            await session.select(folder)
            response = await session.client.uid_search(*predicates)
            check_response(response, "SEARCH")

            uids = sorted(set(parse_search_response(response.lines)), reverse=True)[:limit]
            if not uids:
                return []

            try:
                response = await session.client.uid(
                    "fetch",
                    ",".join(str(uid) for uid in uids),
                    "(UID FLAGS RFC822.SIZE BODY.PEEK[HEADER])",
                )
                check_response(response, "FETCH")
            except Exception:
                session.invalidate_mailbox()
                raise

            by_uid = {r.uid: r for r in parse_fetch_response(response.lines)}
            return [
                self._summary(by_uid[uid], folder, parse_headers(by_uid[uid].data or b""))
                for uid in uids
                if uid in by_uid
            ]

        results = await self._run(operation)
        logger.info(f"IMAP search in {folder} for {self.email}: {len(results)} results")
        return results

    async def read_email(
        self, ref: MessageRef, summary: bool = False, max_body_chars: int = 1000
    ) -> MessageDetail | MessageSummary:
        uid = _validate_uid(ref.id)
        items = (
            f"(UID FLAGS RFC822.SIZE BODY.PEEK[]<0.{SUMMARY_FETCH_BYTES}>)"
            if summary
            else "(UID FLAGS BODY.PEEK[])"
        )

        async def operation(session: ImapSession) -> FetchedMessage:
            return await self._fetch_one(session, uid, ref.folder, items)

        record = await self._run(operation)
        parsed = parse_message(record.data or b"")

        if summary:
            result = self._summary(record, ref.folder, parsed)
            result.has_attachments = result.has_attachments or bool(parsed.attachments)
            result.snippet = snippet(parsed, max_body_chars)
            return result

        return MessageDetail(
            id=uid,
            folder=ref.folder,
            message_id=parsed.message_id,
            subject=parsed.subject or "(no subject)",
            sender=list(parsed.sender),
            to=list(parsed.to),
            cc=list(parsed.cc),
            date=parsed.date,
            flags=record.flags,
            body_text=parsed.text,
            body_html=parsed.html,
            attachments=[a.to_info() for a in parsed.attachments],
            in_reply_to=parsed.in_reply_to,
            references=list(parsed.references),
        )

    async def download_attachment(self, ref: MessageRef, identifier: str) -> AttachmentContent:
        uid = _validate_uid(ref.id)

        async def operation(session: ImapSession) -> FetchedMessage:
            return await self._fetch_one(session, uid, ref.folder, "(UID BODY.PEEK[])")

        record = await self._run(operation)
        attachment = find_attachment(parse_message(record.data or b""), identifier)
        return AttachmentContent(
            filename=attachment.filename, mime_type=attachment.content_type, data=attachment.payload
        )

    async def _fetch_one(
        self, session: ImapSession, uid: str, folder: str, items: str
    ) -> FetchedMessage:
        await session.select(folder)
        response = await session.client.uid("fetch", uid, items)
        check_response(response, "FETCH")
        records = parse_fetch_response(response.lines)
        if not records or records[0].data is None:
            raise MessageNotFoundError(uid, folder)
        return records[0]

    def _summary(
        self, record: FetchedMessage, folder: str, parsed: ParsedMessage
    ) -> MessageSummary:
        return MessageSummary(
            id=str(record.uid),
            folder=folder,
            subject=parsed.subject or "(no subject)",
            sender=list(parsed.sender),
            to=list(parsed.to),
            cc=list(parsed.cc),
            date=parsed.date,
            flags=record.flags,
            has_attachments=parsed.content_type == "multipart/mixed",
        )

    # Moving, flagging and deleting

    async def _move(self, session: ImapSession, uids: list[str], destination: str) -> None:
        """Move UIDs out of the selected mailbox."""
        uid_set = ",".join(uids)
        target = quote_mailbox(destination)
        try:
            if session.client.has_capability("MOVE"):
                check_response(await session.client.uid("move", uid_set, target), "MOVE")
            else:
                check_response(await session.client.uid("copy", uid_set, target), "COPY")
                check_response(
                    await session.client.uid("store", uid_set, "+FLAGS", r"(\Deleted)"), "STORE"
                )
                check_response(await session.client.expunge(), "EXPUNGE")
        finally:
            session.invalidate_mailbox()

    async def move_email(self, ref: MessageRef, destination: str) -> None:
        uid = _validate_uid(ref.id)

        async def operation(session: ImapSession) -> None:
            await session.select(ref.folder)
            await self._move(session, [uid], destination)

        await self._run(operation)
        logger.info(f"Moved UID {uid} from {ref.folder} to {destination} for {self.email}")

    async def move_emails(self, ids: list[str], folder: str, destination: str) -> BatchResult:
        valid, result = self._partition_uids(ids)

        async def operation(session: ImapSession) -> None:
            await session.select(folder)
            await self._move(session, valid, destination)

        await self._run(operation)
        result.successes.extend(valid)
        logger.info(f"Moved {len(valid)} messages from {folder} to {destination}")
        return result

    async def mark_emails_read(self, ids: list[str], folder: str = "INBOX") -> BatchResult:
        valid, result = self._partition_uids(ids)

        async def operation(session: ImapSession) -> None:
            await session.select(folder)
            try:
                response = await session.client.uid(
                    "store", ",".join(valid), "+FLAGS", r"(\Seen)"
                )
                check_response(response, "STORE")
            finally:
                session.invalidate_mailbox()

        await self._run(operation)
        result.successes.extend(valid)
        return result

    def _partition_uids(self, ids: list[str]) -> tuple[list[str], BatchResult]:
        """Split IDs into numeric UIDs and failures for everything else."""
        result = BatchResult()
        valid: list[str] = []
        for item in ids:
            candidate = str(item).strip()
            if candidate.isdigit():
                valid.append(candidate)
            else:
                result.failures.append(
                    BatchFailure(id=str(item), display_id=str(item), error="Invalid UID")
                )
        if not valid:
            raise ValidationError("No valid UIDs provided")
        return valid, result

    async def delete_email(self, ref: MessageRef, permanent: bool = False) -> str | None:
        uid = _validate_uid(ref.id)

        async def operation(session: ImapSession) -> str | None:
            trash = None
            if not permanent:
                trash = find_trash_folder(await self._list_folders(session))
                if trash is None:
                    logger.warning(
                        f"No trash folder found for {self.email}; deleting UID {uid} permanently"
                    )
                elif trash.path == ref.folder:
                    trash = None

            await session.select(ref.folder)
            if trash is not None:
                await self._move(session, [uid], trash.path)
                return trash.path

            try:
                check_response(
                    await session.client.uid("store", uid, "+FLAGS", r"(\Deleted)"), "STORE"
                )
                check_response(await session.client.expunge(), "EXPUNGE")
            finally:
                session.invalidate_mailbox()
            return None

        destination = await self._run(operation)
        logger.info(
            f"Deleted UID {uid} in {ref.folder} for {self.email} "
            f"({'moved to ' + destination if destination else 'permanently'})"
        )
        return destination

    # Folders

    async def _list_folders(self, session: ImapSession) -> list[FolderInfo]:
        response = await session.client.list('""', "*")
        check_response(response, "LIST")
        return parse_list_response(response.lines)

    async def list_folders(self) -> list[FolderInfo]:
        return await self._run(self._list_folders)

    async def create_folder(self, name: str) -> FolderInfo:
        async def operation(session: ImapSession) -> None:
            check_response(await session.client.create(quote_mailbox(name)), f"CREATE {name}")

        await self._run(operation)
        logger.info(f"Created folder {name} for {self.email}")
        return FolderInfo(path=name, name=name)

    # Drafts and sending

    async def append_message(
        self, folder: str, raw: bytes, flags: Iterable[str] = ("\\Draft",)
    ) -> str:
        """
        Append a raw message to a folder.

        Returns:
            The new message's UID, or "unknown" when the server does not report one
        """

        async def operation(session: ImapSession) -> str:
            try:
                response = await session.client.append(
                    raw, mailbox=quote_mailbox(folder), flags=f"({' '.join(flags)})"
                )
                check_response(response, f"APPEND {folder}")
            finally:
                session.invalidate_mailbox()

            match = _APPENDUID.search(_all_text(response.lines))
            return match.group(1) if match else "unknown"

        return await self._run(operation)

    async def save_draft(self, message: OutgoingMessage) -> SendResult:
        email_message = build_message(message, self.email)
        folders = await self.list_folders()
        drafts = next((f.path for f in folders if f.special_use == "\\Drafts"), None)
        drafts = drafts or DEFAULT_DRAFTS_FOLDER

        uid = await self.append_message(drafts, email_message.as_bytes())
        logger.info(f"Saved draft to {drafts} for {self.email} (UID {uid})")
        return SendResult(id=uid, folder=drafts, recipients=message.to + message.cc + message.bcc)

    async def send_email(self, message: OutgoingMessage) -> SendResult:
        email_message = build_message(message, self.email)
        recipients = message.to + message.cc + message.bcc
        host, port = self.credentials.smtp_host, self.credentials.smtp_port

        try:
            async with aiosmtplib.SMTP(
                hostname=host,
                port=port,
                use_tls=port == 465,
                start_tls=port != 465,
                timeout=self.settings.imap_timeout,
            ) as smtp:
                await smtp.login(self.credentials.email, self.credentials.app_password)
                await smtp.send_message(email_message, recipients=recipients)
        except aiosmtplib.SMTPAuthenticationError as e:
            raise AuthenticationError(f"SMTP login failed for {self.email}: {e}") from e
        except aiosmtplib.SMTPException as e:
            raise ProtocolError("SMTP send", str(e)) from e

        logger.info(f"Sent email from {self.email} to {len(recipients)} recipients")
        return SendResult(id=email_message["Message-ID"], recipients=recipients)


def _all_text(lines: list[Any]) -> str:
    return " ".join(
        bytes(line).decode("utf-8", errors="replace") if isinstance(line, bytes | bytearray)
        else str(line)
        for line in lines
    )


async def verify_login(
    credentials: AppPasswordCredentials,
    settings: Settings,
    client_factory: Callable[..., Any] = aioimaplib.IMAP4_SSL,
) -> None:
    """
    Check that credentials can log in to the IMAP server.

    Raises:
        AuthenticationError: If the server rejects the login
        ProviderConnectionError: If the server cannot be reached
    """
    session = ImapSession(credentials, settings, client_factory)
    try:
        await session.connect()
    except CONNECTION_ERRORS as e:
        raise ProviderConnectionError(
            f"Could not connect to {credentials.imap_host}:{credentials.imap_port}: {e}"
        ) from e
    finally:
        await session.close()
