"""Unit tests for IMAP message parsing."""

from datetime import datetime, timezone

from fakes import make_raw
from mailbox_bridge.imap.parsing import (
    decode_flags,
    derive_thread_id,
    folder_label,
    header_stub,
    parse_imap_message,
)

INBOX_TAGS = folder_label("INBOX", "/", "inbox")


def test_derive_thread_id_prefers_references() -> None:
    assert derive_thread_id(["root@x", "mid@x"], "mid@x", "me@x") == "root@x"
    assert derive_thread_id([], "parent@x", "me@x") == "parent@x"
    assert derive_thread_id([], None, "me@x") == "me@x"
    assert derive_thread_id([], None, None) is None


def test_decode_flags_accepts_bytes_and_str() -> None:
    assert decode_flags((b"\\Seen", "\\Flagged")) == {"\\Seen", "\\Flagged"}
    assert decode_flags(None) == set()


class TestFolderLabel:
    """Folder tags carried by IMAP messages."""

    def test_standard_folder_gets_system_id(self) -> None:
        tags = folder_label("[Gmail]/Sent Mail", "/", "sent")

        assert [(t.id, t.name, t.type) for t in tags] == [
            ("[Gmail]/Sent Mail", "Sent Mail", "system"),
            ("SENT", "SENT", "system"),
        ]

    def test_inbox_is_not_duplicated(self) -> None:
        assert [t.id for t in INBOX_TAGS] == ["INBOX"]

    def test_custom_folder(self) -> None:
        tags = folder_label("Projects/2025", "/", None)

        assert [(t.id, t.name, t.type) for t in tags] == [("Projects/2025", "2025", "user")]


class TestParseImapMessage:
    """Conversion of fetched messages."""

    def test_reply_joins_thread_of_root(self) -> None:
        raw = make_raw(
            subject="Re: Plans",
            message_id="reply-1@example.com",
            references="<root@example.com> <mid@example.com>",
            in_reply_to="<mid@example.com>",
        )

        message = parse_imap_message(
            raw, uid=7, flags=(b"\\Seen",), folder="INBOX", folder_tags=INBOX_TAGS, connection_id="c1"
        )

        assert message.id == "reply-1@example.com"
        assert message.thread_id == "root@example.com"
        assert message.references == ["root@example.com", "mid@example.com"]
        assert message.in_reply_to == "mid@example.com"
        assert message.uid == 7
        assert message.folder == "INBOX"
        assert message.connection_id == "c1"
        assert message.unread is False
        assert message.sender.email == "alice@example.com"
        assert message.sender.name == "Alice"
        assert "Hello there" in message.body

    def test_flags_become_tags(self) -> None:
        raw = make_raw(subject="Draft", message_id="d1@example.com")

        message = parse_imap_message(
            raw,
            uid=3,
            flags=(b"\\Flagged", b"\\Draft"),
            folder="INBOX",
            folder_tags=INBOX_TAGS,
        )

        assert message.unread is True
        assert message.is_draft is True
        assert [t.id for t in message.tags] == ["INBOX", "UNREAD", "STARRED", "DRAFT"]

    def test_missing_message_id_uses_uid(self) -> None:
        raw = make_raw(subject="No id", message_id=None)

        message = parse_imap_message(raw, uid=42, flags=(), folder="INBOX", folder_tags=INBOX_TAGS)

        assert message.id == "42"
        assert message.thread_id == "42"

    def test_attachments_are_addressed_by_uid_and_filename(self) -> None:
        raw = make_raw(subject="Invoice", message_id="inv@example.com", attachment=("invoice.pdf", b"%PDF"))

        message = parse_imap_message(raw, uid=9, flags=(), folder="INBOX", folder_tags=INBOX_TAGS)

        assert len(message.attachments) == 1
        attachment = message.attachments[0]
        assert attachment.filename == "invoice.pdf"
        assert attachment.attachment_id == "9:invoice.pdf"
        assert attachment.mime_type == "application/pdf"
        assert attachment.size == 4

    def test_unparseable_date_falls_back_to_internal_date(self) -> None:
        raw = make_raw(subject="Dated", message_id="dated@example.com").replace(
            b"Date: Wed, 01 Jan 2025 09:00:00 +0000", b"Date: not a date"
        )
        internal = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

        message = parse_imap_message(
            raw, uid=1, flags=(), folder="INBOX", folder_tags=INBOX_TAGS, internal_date=internal
        )

        assert message.received_on == internal


def test_header_stub() -> None:
    raw = make_raw(subject="Re: Plans", message_id="r@x", in_reply_to="<p@x>")
    headers = raw.partition(b"\n\n")[0]

    thread_id, stub = header_stub(headers, uid=5, flags=(b"\\Seen",), folder="INBOX")

    assert thread_id == "p@x"
    assert stub["uid"] == 5
    assert stub["folder"] == "INBOX"
    assert stub["message_id"] == "r@x"
    assert stub["subject"] == "Re: Plans"
    assert stub["flags"] == ["\\Seen"]
