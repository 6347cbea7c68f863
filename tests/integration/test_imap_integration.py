"""Integration tests against a real IMAP/SMTP account.

Run with ``pytest -m integration`` and these variables set:
``MAILBOX_BRIDGE_IT_EMAIL``, ``MAILBOX_BRIDGE_IT_PASSWORD`` and
``MAILBOX_BRIDGE_IT_IMAP_HOST``.
"""

import os

import pytest

from mailbox_bridge.driver import connection_to_driver
from mailbox_bridge.models import Connection

_EMAIL = os.environ.get("MAILBOX_BRIDGE_IT_EMAIL")
_PASSWORD = os.environ.get("MAILBOX_BRIDGE_IT_PASSWORD")
_HOST = os.environ.get("MAILBOX_BRIDGE_IT_IMAP_HOST")

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not (_EMAIL and _PASSWORD and _HOST), reason="IMAP test account not configured"),
]


@pytest.fixture
def driver(mock_settings):
    connection = Connection(
        id="integration",
        user_id=_EMAIL or "",
        provider_id="imapAndSmtp",
        email=_EMAIL or "",
        refresh_token=_PASSWORD,
        host=_HOST,
    )
    return connection_to_driver(connection, mock_settings)


class TestImapIntegration:
    """Read-only checks against a live mailbox."""

    @pytest.mark.asyncio
    async def test_labels_include_inbox(self, driver) -> None:
        try:
            labels = await driver.get_user_labels()
        finally:
            await driver.close()

        assert any(label.id.upper() == "INBOX" for label in labels)

    @pytest.mark.asyncio
    async def test_list_and_get_first_thread(self, driver) -> None:
        try:
            page = await driver.list("inbox", max_results=5)
            if not page.threads:
                pytest.skip("Inbox is empty")
            thread = await driver.get(page.threads[0].id)
        finally:
            await driver.close()

        assert thread.messages
