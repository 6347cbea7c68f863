"""Unit tests for MIME composition and header helpers."""

from email import policy
from email.parser import BytesParser

from mailbox_bridge.mime import (
    build_mime_message,
    html_to_text,
    extract_message_ids,
    message_body_parts,
    parse_senders,
    split_addresses,
    strip_brackets,
)
from mailbox_bridge.models import OutgoingAttachment, Sender


def test_strip_brackets() -> None:
    assert strip_brackets("<abc@example.com>") == "abc@example.com"
    assert strip_brackets("  abc@example.com ") == "abc@example.com"
    assert strip_brackets("<>") is None
    assert strip_brackets(None) is None


def test_extract_message_ids() -> None:
    assert extract_message_ids("<a@x> <b@y>\r\n <c@z>") == ["a@x", "b@y", "c@z"]
    assert extract_message_ids("a@x b@y") == ["a@x", "b@y"]
    assert extract_message_ids(None) == []


def test_parse_senders_and_split_addresses() -> None:
    senders = parse_senders('"Doe, Jane" <jane@example.com>, bob@example.com')

    assert senders == [
        Sender(name="Doe, Jane", email="jane@example.com"),
        Sender(name=None, email="bob@example.com"),
    ]
    assert split_addresses("") == []
    assert [s.email for s in split_addresses("a@x.com, b@y.com")] == ["a@x.com", "b@y.com"]


def test_build_mime_message_round_trips_through_parser() -> None:
    msg = build_mime_message(
        from_email="me@example.com",
        to=[Sender(name="Alice", email="alice@example.com")],
        cc=[Sender(email="carol@example.com")],
        subject="Quarterly report",
        html="<p>Numbers attached.</p>",
        attachments=[
            OutgoingAttachment(filename="q3.pdf", mime_type="application/pdf", content=b"%PDF-1.4")
        ],
        headers={"In-Reply-To": "<orig@example.com>", "X-Empty": ""},
        message_id="fixed-id@example.com",
    )

    parsed = BytesParser(policy=policy.default).parsebytes(msg.as_bytes())
    text, html = message_body_parts(parsed)

    assert parsed["Message-ID"] == "<fixed-id@example.com>"
    assert parsed["In-Reply-To"] == "<orig@example.com>"
    assert "X-Empty" not in parsed
    assert "Alice <alice@example.com>" in parsed["To"]
    assert parsed["Cc"] == "carol@example.com"
    assert "Numbers attached." in text
    assert "<p>Numbers attached.</p>" in html
    attachments = list(parsed.iter_attachments())
    assert [a.get_filename() for a in attachments] == ["q3.pdf"]
    assert attachments[0].get_content() == b"%PDF-1.4"


def test_build_mime_message_generates_message_id() -> None:
    msg = build_mime_message(
        from_email="me@example.com",
        to=[Sender(email="alice@example.com")],
        subject="Hi",
        html="Hi",
    )

    assert msg["Message-ID"].endswith("@example.com>")


def test_html_to_text_drops_styles_and_decodes_entities() -> None:
    text = html_to_text(
        "<html><head><title>x</title><style>p{color:red}</style></head>"
        "<body><script>track()</script><p>Tom &amp; Jerry</p><p>Second<br>line</p></body></html>"
    )

    assert text == "Tom & Jerry\nSecond\nline\n"
    assert html_to_text("") == "\n"


def test_build_mime_message_text_part_is_readable() -> None:
    msg = build_mime_message(
        from_email="me@example.com",
        to=[Sender(email="alice@example.com")],
        subject="Hi",
        html="<style>p{color:red}</style><p>Tom &amp; Jerry</p>",
    )

    text, html = message_body_parts(msg)

    assert text.strip() == "Tom & Jerry"
    assert "p{color:red}" not in text
    assert "<style>" in html
