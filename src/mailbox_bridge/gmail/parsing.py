"""Helpers for parsing Gmail API payloads into internal models."""

from __future__ import annotations

import base64
import binascii
from collections.abc import Iterator
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from mailbox_bridge.mime import extract_message_ids, parse_senders, strip_brackets
from mailbox_bridge.models import Attachment, Label, LabelColor, Message, Sender, ThreadLabel


def _header_map(message: dict[str, Any]) -> dict[str, str]:
    payload = message.get("payload") or {}
    headers = payload.get("headers") or []
    result: dict[str, str] = {}
    for h in headers:
        name = h.get("name")
        value = h.get("value")
        if isinstance(name, str) and isinstance(value, str):
            # Gmail can include duplicates; keep the first.
            result.setdefault(name.lower(), value)
    return result


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _received_on(message: dict[str, Any], hm: dict[str, str]) -> datetime:
    internal_date_ms: int | None
    internal_date_raw = message.get("internalDate")
    try:
        internal_date_ms = int(internal_date_raw) if internal_date_raw is not None else None
    except (TypeError, ValueError):
        internal_date_ms = None

    if internal_date_ms is not None:
        return datetime.fromtimestamp(internal_date_ms / 1000, tz=timezone.utc)
    return _parse_date(hm.get("date")) or datetime.now(timezone.utc)


def decode_base64url(data: str | None) -> bytes:
    if not data:
        return b""
    try:
        return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
    except (binascii.Error, ValueError):
        return b""


def _walk(part: dict[str, Any]) -> Iterator[dict[str, Any]]:
    yield part
    for child in part.get("parts") or []:
        yield from _walk(child)


def _bodies(payload: dict[str, Any]) -> tuple[str, str]:
    text = html = ""
    for part in _walk(payload):
        if part.get("filename"):
            continue
        mime_type = part.get("mimeType")
        data = (part.get("body") or {}).get("data")
        if not data:
            continue
        content = decode_base64url(data).decode("utf-8", errors="replace")
        if mime_type == "text/plain" and not text:
            text = content
        elif mime_type == "text/html" and not html:
            html = content
    return text, html


def _attachments(payload: dict[str, Any]) -> list[Attachment]:
    attachments: list[Attachment] = []
    for part in _walk(payload):
        body = part.get("body") or {}
        if not part.get("filename") or not body.get("attachmentId"):
            continue
        attachments.append(
            Attachment(
                filename=part["filename"],
                mime_type=part.get("mimeType") or "application/octet-stream",
                size=int(body.get("size") or 0),
                attachment_id=body["attachmentId"],
                headers={
                    h["name"]: h["value"]
                    for h in part.get("headers") or []
                    if isinstance(h.get("name"), str) and isinstance(h.get("value"), str)
                },
            )
        )
    return attachments


def message_to_model(message: dict[str, Any], connection_id: str | None = None) -> Message:
    """Convert a Gmail API message (format=full) to :class:`Message`.

    Args:
        message: Gmail API message dict.
        connection_id: Connection the message was fetched through.

    Returns:
        Message: Parsed message with bodies and attachment metadata.
    """

    hm = _header_map(message)
    payload = message.get("payload") or {}

    label_ids = message.get("labelIds") or []
    if not isinstance(label_ids, list):
        label_ids = []
    label_ids = [str(x) for x in label_ids if isinstance(x, str)]

    senders = parse_senders(hm.get("from"))
    text, html = _bodies(payload)
    in_reply_to = extract_message_ids(hm.get("in-reply-to"))

    return Message(
        id=str(message.get("id") or ""),
        thread_id=str(message.get("threadId") or message.get("id") or ""),
        connection_id=connection_id,
        subject=hm.get("subject") or "",
        sender=senders[0] if senders else Sender(email=""),
        to=parse_senders(hm.get("to")),
        cc=parse_senders(hm.get("cc")),
        bcc=parse_senders(hm.get("bcc")),
        reply_to=hm.get("reply-to"),
        received_on=_received_on(message, hm),
        unread="UNREAD" in label_ids,
        body=text,
        decoded_body=html or text,
        attachments=_attachments(payload),
        tags=[ThreadLabel(id=label_id, name=label_id) for label_id in label_ids],
        message_id_header=strip_brackets(hm.get("message-id")),
        references=extract_message_ids(hm.get("references")),
        in_reply_to=in_reply_to[0] if in_reply_to else None,
        is_draft="DRAFT" in label_ids,
        list_unsubscribe=hm.get("list-unsubscribe"),
    )


def label_to_model(label: dict[str, Any]) -> Label:
    color = label.get("color") or None
    return Label(
        id=str(label.get("id") or ""),
        name=str(label.get("name") or ""),
        type=str(label.get("type") or "user").lower(),
        color=(
            LabelColor(
                background_color=color.get("backgroundColor") or "#E3E3E3",
                text_color=color.get("textColor") or "#333333",
            )
            if isinstance(color, dict)
            else None
        ),
    )


def label_to_body(label: Label) -> dict[str, Any]:
    body: dict[str, Any] = {
        "name": label.name,
        "labelListVisibility": "labelShow",
        "messageListVisibility": "show",
    }
    if label.color is not None:
        body["color"] = {
            "backgroundColor": label.color.background_color,
            "textColor": label.color.text_color,
        }
    return body
