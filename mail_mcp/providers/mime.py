"""MIME parsing and construction.

Parsing walks the message tree once and accumulates bodies and an attachment
index into an immutable result. Attachments are identified by content-id,
else filename, else their position in the attachment list.
"""

import logging
import mimetypes
import re
from dataclasses import dataclass, field
from datetime import datetime
from email import policy
from email.message import EmailMessage, Message
from email.parser import BytesParser
from email.utils import format_datetime, getaddresses, make_msgid, parsedate_to_datetime
from pathlib import Path

from ..models import AttachmentInfo, OutgoingMessage
from ..utils.errors import AttachmentNotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedAttachment:
    """One attachment found while walking a message."""

    part_id: str
    filename: str
    content_type: str
    payload: bytes
    content_id: str | None = None
    index: int = 0

    @property
    def size(self) -> int:
        return len(self.payload)

    def to_info(self) -> AttachmentInfo:
        return AttachmentInfo(
            id=self.part_id,
            filename=self.filename,
            mime_type=self.content_type,
            size=self.size,
            content_id=self.content_id,
        )


@dataclass(frozen=True)
class ParsedMessage:
    """Structured view of a raw RFC 5322 message."""

    subject: str | None = None
    sender: tuple[str, ...] = ()
    to: tuple[str, ...] = ()
    cc: tuple[str, ...] = ()
    date: str | None = None
    message_id: str | None = None
    in_reply_to: str | None = None
    references: tuple[str, ...] = ()
    content_type: str = "text/plain"
    text: str | None = None
    html: str | None = None
    attachments: tuple[ParsedAttachment, ...] = field(default_factory=tuple)


@dataclass
class _Accumulator:
    text: list[str] = field(default_factory=list)
    html: list[str] = field(default_factory=list)
    attachments: list[ParsedAttachment] = field(default_factory=list)


def parse_message(raw: bytes) -> ParsedMessage:
    """Parse raw message bytes into bodies, addresses and an attachment index."""
    message = BytesParser(policy=policy.default).parsebytes(raw)
    acc = _Accumulator()
    _walk(message, acc)

    return ParsedMessage(
        subject=_header(message, "Subject"),
        sender=_addresses(message, "From"),
        to=_addresses(message, "To"),
        cc=_addresses(message, "Cc"),
        date=_parse_date(_header(message, "Date")),
        message_id=_header(message, "Message-ID"),
        in_reply_to=_header(message, "In-Reply-To"),
        references=tuple((_header(message, "References") or "").split()),
        content_type=message.get_content_type(),
        text="".join(acc.text) or None,
        html="".join(acc.html) or None,
        attachments=tuple(acc.attachments),
    )


def parse_headers(raw: bytes) -> ParsedMessage:
    """Parse only the header block; bodies and attachments are left empty."""
    message = BytesParser(policy=policy.default).parsebytes(raw, headersonly=True)
    return ParsedMessage(
        subject=_header(message, "Subject"),
        sender=_addresses(message, "From"),
        to=_addresses(message, "To"),
        cc=_addresses(message, "Cc"),
        date=_parse_date(_header(message, "Date")),
        message_id=_header(message, "Message-ID"),
        in_reply_to=_header(message, "In-Reply-To"),
        references=tuple((_header(message, "References") or "").split()),
        content_type=message.get_content_type(),
    )


def _walk(root: Message, acc: _Accumulator) -> None:
    """Depth-first walk over the part tree, children visited in order."""
    stack: list[Message] = [root]
    while stack:
        part = stack.pop()
        if part.is_multipart():
            stack.extend(reversed(part.get_payload()))
            continue

        content_type = part.get_content_type()
        disposition = part.get_content_disposition()
        filename = part.get_filename()

        if disposition == "attachment" or filename or (
            disposition == "inline" and not content_type.startswith("text/")
        ):
            _add_attachment(part, acc)
        elif content_type == "text/plain":
            acc.text.append(_decode_text(part))
        elif content_type == "text/html":
            acc.html.append(_decode_text(part))
        elif part is not root:
            # Unnamed non-text leaf (e.g. image/png without disposition)
            _add_attachment(part, acc)


def _add_attachment(part: Message, acc: _Accumulator) -> None:
    index = len(acc.attachments)
    filename = part.get_filename()
    content_id = part.get("Content-ID")
    if content_id:
        content_id = content_id.strip().strip("<>")
    payload = part.get_payload(decode=True) or b""

    acc.attachments.append(
        ParsedAttachment(
            part_id=content_id or filename or str(index),
            filename=filename or f"attachment-{index}",
            content_type=part.get_content_type(),
            payload=payload,
            content_id=content_id,
            index=index,
        )
    )


def _decode_text(part: Message) -> str:
    payload = part.get_payload(decode=True)
    if payload is None:
        return ""
    charset = part.get_content_charset() or "utf-8"
    try:
        return payload.decode(charset)
    except (LookupError, UnicodeDecodeError):
        return payload.decode("utf-8", errors="replace")


def _header(message: Message, name: str) -> str | None:
    value = message.get(name)
    return str(value).strip() if value is not None else None


def _addresses(message: Message, name: str) -> tuple[str, ...]:
    values = message.get_all(name) or []
    result = []
    for display_name, address in getaddresses([str(v) for v in values]):
        if not address and not display_name:
            continue
        result.append(f"{display_name} <{address}>" if display_name else address)
    return tuple(result)


def _parse_date(value: str | None) -> str | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value).isoformat()
    except (TypeError, ValueError):
        return value


def find_attachment(parsed: ParsedMessage, identifier: str) -> ParsedAttachment:
    """
    Locate an attachment by identifier.

    Match order: content-id, then filename, then positional index.

    Raises:
        AttachmentNotFoundError: If nothing matches
    """
    wanted = identifier.strip().strip("<>")
    for attachment in parsed.attachments:
        if attachment.content_id and attachment.content_id == wanted:
            return attachment

    for attachment in parsed.attachments:
        if attachment.filename == identifier:
            return attachment

    if identifier.isdigit():
        index = int(identifier)
        if 0 <= index < len(parsed.attachments):
            return parsed.attachments[index]

    raise AttachmentNotFoundError(identifier)


_WHITESPACE = re.compile(r"\s+")
_TAGS = re.compile(r"<[^>]+>")


def snippet(parsed: ParsedMessage, max_chars: int = 1000) -> str | None:
    """Whitespace-collapsed preview of the body, text preferred over html."""
    body = parsed.text
    if not body and parsed.html:
        body = _TAGS.sub(" ", parsed.html)
    if not body:
        return None
    return _WHITESPACE.sub(" ", body).strip()[:max_chars]


def build_message(
    outgoing: OutgoingMessage, sender: str, include_bcc: bool = False
) -> EmailMessage:
    """
    Build an RFC 5322 message for sending or drafting.

    Bcc recipients are left out of the headers unless include_bcc is set;
    SMTP callers pass them to the transport envelope instead. The Gmail API
    reads recipients from the headers and strips Bcc itself.

    Raises:
        ValidationError: If an attachment path does not exist
    """
    message = EmailMessage()
    message["From"] = outgoing.from_address or sender
    message["To"] = ", ".join(outgoing.to)
    if outgoing.cc:
        message["Cc"] = ", ".join(outgoing.cc)
    if include_bcc and outgoing.bcc:
        message["Bcc"] = ", ".join(outgoing.bcc)
    message["Subject"] = outgoing.subject
    message["Date"] = format_datetime(datetime.now().astimezone())
    domain = sender.rsplit("@", 1)[-1] if "@" in sender else None
    message["Message-ID"] = make_msgid(domain=domain)

    if outgoing.in_reply_to:
        message["In-Reply-To"] = outgoing.in_reply_to
        references = outgoing.references or [outgoing.in_reply_to]
        message["References"] = " ".join(references)
    elif outgoing.references:
        message["References"] = " ".join(outgoing.references)

    message.set_content(outgoing.body)
    if outgoing.html_body:
        message.add_alternative(outgoing.html_body, subtype="html")

    for file_path in outgoing.attachments:
        path = Path(file_path).expanduser()
        if not path.is_file():
            raise ValidationError(f"Attachment file not found: {file_path}")
        mime_type, _ = mimetypes.guess_type(path.name)
        maintype, subtype = (mime_type or "application/octet-stream").split("/", 1)
        message.add_attachment(
            path.read_bytes(), maintype=maintype, subtype=subtype, filename=path.name
        )
        logger.info(f"Attached file: {path.name} ({maintype}/{subtype})")

    return message
