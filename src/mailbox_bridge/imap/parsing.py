"""Helpers for turning raw IMAP FETCH data into internal models."""

from __future__ import annotations

from datetime import datetime, timezone
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import parsedate_to_datetime
from typing import Any

from mailbox_bridge import folders
from mailbox_bridge.mime import (
    extract_message_ids,
    iter_attachments,
    message_body_parts,
    parse_senders,
    strip_brackets,
)
from mailbox_bridge.models import Attachment, Message, Sender, ThreadLabel

SEEN = "\\Seen"
FLAGGED = "\\Flagged"
DRAFT = "\\Draft"
DELETED = "\\Deleted"

_parser = BytesParser(policy=policy.default)


def decode_flags(flags: Any) -> set[str]:
    return {f.decode() if isinstance(f, bytes) else str(f) for f in flags or ()}


def parse_bytes(raw: bytes, *, headers_only: bool = False) -> EmailMessage:
    return _parser.parsebytes(raw or b"", headersonly=headers_only)


def derive_thread_id(
    references: list[str],
    in_reply_to: str | None,
    message_id: str | None,
) -> str | None:
    """Thread id: first References entry, else In-Reply-To, else own Message-ID."""

    if references:
        return references[0]
    if in_reply_to:
        return in_reply_to
    return message_id


def threading_headers(msg: EmailMessage) -> tuple[str | None, list[str], str | None]:
    """Return ``(message_id, references, in_reply_to)`` with brackets stripped."""

    message_id = strip_brackets(str(msg.get("Message-ID") or ""))
    references = extract_message_ids(str(msg.get("References") or ""))
    in_reply_to_ids = extract_message_ids(str(msg.get("In-Reply-To") or ""))
    return message_id, references, in_reply_to_ids[0] if in_reply_to_ids else None


def _parse_date(value: str | None, fallback: datetime | None) -> datetime:
    if value:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError, OverflowError):
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    if fallback is not None:
        return fallback if fallback.tzinfo else fallback.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc)


def folder_label(path: str, delimiter: str, standard_key: str | None) -> list[ThreadLabel]:
    """Tags describing the folder that holds a message.

    Standard folders also carry their system label id (``INBOX``, ``SENT``,
    ...) so folder filters behave like they do for Gmail.
    """

    name = path.rsplit(delimiter, 1)[-1] if delimiter else path
    tags = [ThreadLabel(id=path, name=name, type="system" if standard_key else "user")]
    if standard_key is not None:
        system_id = folders.SYSTEM_LABEL_IDS[standard_key]
        if system_id != path:
            tags.append(ThreadLabel(id=system_id, name=system_id))
    return tags


def parse_imap_message(
    raw: bytes,
    *,
    uid: int,
    flags: Any,
    folder: str,
    folder_tags: list[ThreadLabel],
    connection_id: str | None = None,
    internal_date: datetime | None = None,
) -> Message:
    """Convert a fetched RFC 5322 message into a :class:`Message`.

    Messages without a Message-ID header use their UID as id, which the
    raw UID lookup strategy can resolve again.
    """

    msg = parse_bytes(raw)
    flag_set = decode_flags(flags)
    message_id, references, in_reply_to = threading_headers(msg)

    text, html = message_body_parts(msg)

    attachments: list[Attachment] = []
    for index, part in enumerate(iter_attachments(msg)):
        filename = part.get_filename() or f"attachment-{index}"
        payload = part.get_payload(decode=True) or b""
        attachments.append(
            Attachment(
                filename=filename,
                mime_type=part.get_content_type(),
                size=len(payload),
                attachment_id=f"{uid}:{part.get_filename() or index}",
                headers={k: str(v) for k, v in part.items()},
            )
        )

    unread = SEEN not in flag_set
    is_draft = DRAFT in flag_set
    tags = list(folder_tags)
    if unread:
        tags.append(ThreadLabel(id=folders.UNREAD_LABEL, name=folders.UNREAD_LABEL))
    if FLAGGED in flag_set:
        tags.append(ThreadLabel(id=folders.STARRED_LABEL, name=folders.STARRED_LABEL))
    if is_draft:
        tags.append(ThreadLabel(id=folders.SYSTEM_LABEL_IDS[folders.DRAFTS], name="DRAFT"))

    senders = parse_senders(str(msg.get("From") or ""))
    own_id = message_id or str(uid)

    return Message(
        id=own_id,
        thread_id=derive_thread_id(references, in_reply_to, message_id) or own_id,
        connection_id=connection_id,
        subject=str(msg.get("Subject") or ""),
        sender=senders[0] if senders else Sender(email=""),
        to=parse_senders(str(msg.get("To") or "")),
        cc=parse_senders(str(msg.get("Cc") or "")),
        bcc=parse_senders(str(msg.get("Bcc") or "")),
        reply_to=str(msg.get("Reply-To")) if msg.get("Reply-To") else None,
        received_on=_parse_date(str(msg.get("Date") or ""), internal_date),
        unread=unread,
        body=text,
        decoded_body=html or text,
        attachments=attachments,
        tags=tags,
        message_id_header=message_id,
        references=references,
        in_reply_to=in_reply_to,
        is_draft=is_draft,
        list_unsubscribe=str(msg.get("List-Unsubscribe")) if msg.get("List-Unsubscribe") else None,
        uid=uid,
        folder=folder,
    )


def header_stub(headers: bytes, *, uid: int, flags: Any, folder: str) -> tuple[str, dict[str, Any]]:
    """Return ``(thread_id, raw)`` for a listing entry from header bytes only."""

    msg = parse_bytes(headers, headers_only=True)
    message_id, references, in_reply_to = threading_headers(msg)
    thread_id = derive_thread_id(references, in_reply_to, message_id) or str(uid)
    raw = {
        "uid": uid,
        "folder": folder,
        "message_id": message_id,
        "subject": str(msg.get("Subject") or ""),
        "from": str(msg.get("From") or ""),
        "date": str(msg.get("Date") or ""),
        "flags": sorted(decode_flags(flags)),
    }
    return thread_id, raw
