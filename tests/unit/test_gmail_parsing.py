"""Unit tests for Gmail payload parsing."""

from datetime import datetime, timezone

from mailbox_bridge.gmail.parsing import (
    _header_map,
    decode_base64url,
    label_to_body,
    label_to_model,
    message_to_model,
)
from mailbox_bridge.models import Label, LabelColor


def test_header_map_keeps_first_value() -> None:
    message = {
        "payload": {
            "headers": [
                {"name": "Subject", "value": "First"},
                {"name": "subject", "value": "Second"},
                {"name": "X-Broken", "value": None},
            ]
        }
    }

    assert _header_map(message) == {"subject": "First"}


def test_decode_base64url_handles_missing_padding() -> None:
    assert decode_base64url("aGk") == b"hi"
    assert decode_base64url(None) == b""


class TestMessageToModel:
    """Conversion of users.messages resources."""

    def test_full_message(self, sample_gmail_message) -> None:
        message = message_to_model(sample_gmail_message, connection_id="c1")

        assert message.id == "msg123456"
        assert message.thread_id == "thread789"
        assert message.connection_id == "c1"
        assert message.subject == "Weekly Newsletter - Python Tips"
        assert message.sender.email == "newsletter@python.org"
        assert message.sender.name == "Python Weekly"
        assert [s.email for s in message.to] == ["user@example.com", "bob@example.com"]
        assert [s.email for s in message.cc] == ["carol@example.com"]
        assert message.received_on == datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)
        assert message.unread is True
        assert message.is_draft is False
        assert message.body == "Welcome to this week's Python tips!"
        assert message.decoded_body == "<p>Welcome to this week's Python tips!</p>"
        assert message.message_id_header == "news-1@python.org"
        assert message.list_unsubscribe == "<https://python.org/unsubscribe?id=123>"
        assert [t.id for t in message.tags] == ["INBOX", "UNREAD", "Label_7"]

    def test_attachment_metadata(self, sample_gmail_message) -> None:
        message = message_to_model(sample_gmail_message)

        assert len(message.attachments) == 1
        attachment = message.attachments[0]
        assert attachment.filename == "tips.pdf"
        assert attachment.attachment_id == "att-1"
        assert attachment.size == 2048
        assert attachment.mime_type == "application/pdf"

    def test_date_header_is_used_without_internal_date(self) -> None:
        message = message_to_model(
            {
                "id": "m1",
                "labelIds": ["DRAFT"],
                "payload": {
                    "mimeType": "text/plain",
                    "headers": [{"name": "Date", "value": "Tue, 31 Dec 2024 10:00:00 +0000"}],
                    "body": {"data": "aGk"},
                },
            }
        )

        assert message.thread_id == "m1"
        assert message.received_on == datetime(2024, 12, 31, 10, 0, tzinfo=timezone.utc)
        assert message.is_draft is True
        assert message.body == "hi"
        assert message.decoded_body == "hi"
        assert message.sender.email == ""


def test_label_round_trip() -> None:
    label = label_to_model(
        {
            "id": "Label_1",
            "name": "Work",
            "type": "user",
            "color": {"backgroundColor": "#000000", "textColor": "#ffffff"},
        }
    )

    assert label == Label(
        id="Label_1",
        name="Work",
        type="user",
        color=LabelColor(background_color="#000000", text_color="#ffffff"),
    )
    assert label_to_body(label) == {
        "name": "Work",
        "labelListVisibility": "labelShow",
        "messageListVisibility": "show",
        "color": {"backgroundColor": "#000000", "textColor": "#ffffff"},
    }


def test_system_label_type_is_lowercased() -> None:
    assert label_to_model({"id": "INBOX", "name": "INBOX", "type": "SYSTEM"}).type == "system"
