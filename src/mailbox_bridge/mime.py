"""Helpers for building and walking RFC 5322 messages.

Only what the drivers need: composing outgoing messages and drafts, and
pulling text/html bodies and attachments out of a parsed message.
"""

from __future__ import annotations

import re
from email.message import EmailMessage
from email.utils import formataddr, formatdate, getaddresses, make_msgid

from bs4 import BeautifulSoup

from mailbox_bridge.models import Sender

_ANGLE_ID = re.compile(r"<([^<>\s]+)>")


def strip_brackets(value: str | None) -> str | None:
    """Return a message id without surrounding angle brackets."""

    if value is None:
        return None
    value = value.strip()
    if value.startswith("<") and value.endswith(">"):
        value = value[1:-1]
    return value or None


def extract_message_ids(value: str | None) -> list[str]:
    """Return every ``<id>`` found in a References / In-Reply-To header."""

    if not value:
        return []
    found = _ANGLE_ID.findall(value)
    if found:
        return found
    # Some clients omit the brackets entirely.
    return [part for part in value.split() if part]


def parse_senders(value: str | None) -> list[Sender]:
    if not value:
        return []
    return [Sender(name=name or None, email=addr) for name, addr in getaddresses([value]) if addr]


def split_addresses(value: str | None) -> list[Sender]:
    """Parse a comma separated address string as typed into a draft form."""

    if not value:
        return []
    return parse_senders(value)


def format_senders(senders: list[Sender]) -> str:
    return ", ".join(formataddr((s.name or "", s.email)) for s in senders)


def build_mime_message(
    *,
    from_email: str,
    to: list[Sender],
    subject: str,
    html: str,
    cc: list[Sender] | None = None,
    bcc: list[Sender] | None = None,
    attachments: list | None = None,
    headers: dict[str, str] | None = None,
    message_id: str | None = None,
) -> EmailMessage:
    """Compose an HTML message with optional attachments.

    A Message-ID is always set so the sent copy can be found again by
    header search.
    """

    msg = EmailMessage()
    msg["From"] = from_email
    if to:
        msg["To"] = format_senders(to)
    if cc:
        msg["Cc"] = format_senders(cc)
    if bcc:
        msg["Bcc"] = format_senders(bcc)
    msg["Subject"] = subject
    msg["Date"] = formatdate(localtime=False, usegmt=True)

    domain = from_email.rsplit("@", 1)[-1] if "@" in from_email else None
    msg["Message-ID"] = f"<{message_id}>" if message_id else make_msgid(domain=domain)

    for key, value in (headers or {}).items():
        if not value:
            continue
        if key in msg:
            del msg[key]
        msg[key] = value

    msg.set_content(html_to_text(html))
    msg.add_alternative(html or "", subtype="html")

    for attachment in attachments or []:
        maintype, _, subtype = (attachment.mime_type or "application/octet-stream").partition("/")
        msg.add_attachment(
            attachment.content,
            maintype=maintype,
            subtype=subtype or "octet-stream",
            filename=attachment.filename,
        )

    return msg


def message_body_parts(msg: EmailMessage) -> tuple[str, str]:
    """Return ``(text, html)`` bodies of a parsed message."""

    return _part_content(msg.get_body(preferencelist=("plain",))), _part_content(
        msg.get_body(preferencelist=("html",))
    )


def _part_content(part: EmailMessage | None) -> str:
    if part is None:
        return ""
    try:
        return part.get_content()
    except (LookupError, UnicodeDecodeError):
        # Unknown or lying charset; fall back to a lossy decode.
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")


def iter_attachments(msg: EmailMessage) -> list[EmailMessage]:
    return list(msg.iter_attachments())


def html_to_text(html: str) -> str:
    """Render the plain-text alternative of an HTML body."""

    soup = BeautifulSoup(html or "", "html.parser")
    for element in soup(["script", "style", "head"]):
        element.decompose()
    return soup.get_text("\n", strip=True) + "\n"
