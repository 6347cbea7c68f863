"""Pytest configuration and shared fixtures."""

import base64

import pytest


@pytest.fixture
def mock_settings(tmp_path):
    """Provide settings with no delays and a throwaway cache directory."""
    from mailbox_bridge.config import Settings

    return Settings(
        cache_dir=tmp_path / "cache",
        blob_dir=tmp_path / "blobs",
        sync_page_size=2,
        sync_page_delay=0.0,
        sync_thread_delay=0.0,
        rate_limit_max_attempts=3,
        rate_limit_delay=0.0,
        imap_command_timeout=5.0,
        log_level="DEBUG",
        debug=True,
    )


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


@pytest.fixture
def sample_gmail_message() -> dict:
    """Provide a Gmail API message payload with text, HTML and an attachment."""
    return {
        "id": "msg123456",
        "threadId": "thread789",
        "labelIds": ["INBOX", "UNREAD", "Label_7"],
        "snippet": "Weekly Newsletter - Python Tips",
        "internalDate": "1735722000000",
        "payload": {
            "mimeType": "multipart/mixed",
            "headers": [
                {"name": "Subject", "value": "Weekly Newsletter - Python Tips"},
                {"name": "From", "value": "Python Weekly <newsletter@python.org>"},
                {"name": "To", "value": "user@example.com, Bob <bob@example.com>"},
                {"name": "Cc", "value": "carol@example.com"},
                {"name": "Message-ID", "value": "<news-1@python.org>"},
                {"name": "List-Unsubscribe", "value": "<https://python.org/unsubscribe?id=123>"},
            ],
            "parts": [
                {
                    "mimeType": "multipart/alternative",
                    "parts": [
                        {
                            "mimeType": "text/plain",
                            "body": {"data": _b64("Welcome to this week's Python tips!")},
                        },
                        {
                            "mimeType": "text/html",
                            "body": {"data": _b64("<p>Welcome to this week's Python tips!</p>")},
                        },
                    ],
                },
                {
                    "mimeType": "application/pdf",
                    "filename": "tips.pdf",
                    "headers": [{"name": "Content-Type", "value": "application/pdf"}],
                    "body": {"attachmentId": "att-1", "size": 2048},
                },
            ],
        },
    }
