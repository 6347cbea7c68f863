"""Unit tests for the Gmail driver."""

from __future__ import annotations

import base64
import json
from email import message_from_bytes
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from mailbox_bridge.exceptions import (
    NotFoundError,
    RateLimitedError,
    SendFailureError,
    UnauthorizedError,
)
from mailbox_bridge.gmail import GmailMailManager
from mailbox_bridge.gmail.client import folder_filters
from mailbox_bridge.models import AuthConfig, DraftData, Label, ManagerConfig, OutgoingMessage, Sender


def _http_error(status: int, reason: str = "") -> HttpError:
    body = {"error": {"code": status, "message": "x", "errors": [{"reason": reason}] if reason else []}}
    return HttpError(SimpleNamespace(status=status, reason="x"), json.dumps(body).encode())


def _driver(settings, on_fatal=None) -> tuple[GmailMailManager, MagicMock]:
    service = MagicMock()
    config = ManagerConfig(
        auth=AuthConfig(email="me@gmail.com", access_token="at", refresh_token="rt"),
        connection_id="c1",
        on_fatal=on_fatal,
    )
    return GmailMailManager(config, settings, service=service), service.users.return_value


def _decode_raw(raw: str):
    return message_from_bytes(base64.urlsafe_b64decode(raw))


class TestFolderFilters:
    """Folder names mapped to Gmail list parameters."""

    def test_standard_folders_become_system_labels(self) -> None:
        assert folder_filters("inbox", None, None) == (["INBOX"], None)
        assert folder_filters("bin", None, None) == (["TRASH"], None)
        assert folder_filters("spam", "from:x", None) == (["SPAM"], "from:x")
        assert folder_filters("drafts", None, ["INBOX"]) == (["DRAFT", "INBOX"], None)

    def test_archive_is_a_query(self) -> None:
        assert folder_filters("archive", None, None) == ([], "-in:inbox")
        assert folder_filters("archive", "invoice", None) == ([], "-in:inbox invoice")

    def test_custom_labels_pass_through(self) -> None:
        assert folder_filters("Label_7", None, ["Label_7"]) == (["Label_7"], None)


class TestThreads:
    """Thread listing, fetching and mutation."""

    @pytest.mark.asyncio
    async def test_list_passes_filters_and_token(self, mock_settings) -> None:
        driver, users = _driver(mock_settings)
        threads = users.threads.return_value
        threads.list.return_value.execute.return_value = {
            "threads": [{"id": "t1"}, {"id": "t2"}, {"id": "t1"}],
            "nextPageToken": "next",
        }

        page = await driver.list("inbox", max_results=10, page_token="tok")

        threads.list.assert_called_once_with(
            userId="me", q=None, maxResults=10, labelIds=["INBOX"], pageToken="tok"
        )
        assert [s.id for s in page.threads] == ["t1", "t2"]
        assert page.next_page_token == "next"

    @pytest.mark.asyncio
    async def test_get_builds_thread(self, mock_settings, sample_gmail_message) -> None:
        driver, users = _driver(mock_settings)
        users.threads.return_value.get.return_value.execute.return_value = {
            "id": "thread789",
            "messages": [sample_gmail_message],
        }

        thread = await driver.get("thread:thread789")

        users.threads.return_value.get.assert_called_once_with(userId="me", id="thread789", format="full")
        assert thread.latest.id == "msg123456"
        assert thread.has_unread is True

    @pytest.mark.asyncio
    async def test_get_missing_thread_raises_not_found(self, mock_settings) -> None:
        driver, users = _driver(mock_settings)
        users.threads.return_value.get.return_value.execute.side_effect = _http_error(404)

        with pytest.raises(NotFoundError) as exc_info:
            await driver.get("gone")

        assert exc_info.value.operation == "get"

    @pytest.mark.asyncio
    async def test_rate_limit_is_classified(self, mock_settings) -> None:
        driver, users = _driver(mock_settings)
        users.threads.return_value.get.return_value.execute.side_effect = _http_error(
            403, "userRateLimitExceeded"
        )

        with pytest.raises(RateLimitedError) as exc_info:
            await driver.get("t1")

        assert isinstance(exc_info.value.original_error, HttpError)

    @pytest.mark.asyncio
    async def test_modify_skips_missing_threads(self, mock_settings) -> None:
        driver, users = _driver(mock_settings)
        modify = users.threads.return_value.modify
        modify.return_value.execute.side_effect = [_http_error(404), {}]

        await driver.modify_labels(["thread:a", "b"], add_labels=["STARRED"], remove_labels=["INBOX"])

        body = {"addLabelIds": ["STARRED"], "removeLabelIds": ["INBOX"]}
        assert [c.kwargs for c in modify.call_args_list] == [
            {"userId": "me", "id": "a", "body": body},
            {"userId": "me", "id": "b", "body": body},
        ]

    @pytest.mark.asyncio
    async def test_mark_as_read_removes_unread(self, mock_settings) -> None:
        driver, users = _driver(mock_settings)

        await driver.mark_as_read(["t1"])

        users.threads.return_value.modify.assert_called_once_with(
            userId="me", id="t1", body={"addLabelIds": [], "removeLabelIds": ["UNREAD"]}
        )

    @pytest.mark.asyncio
    async def test_delete_trashes_thread(self, mock_settings) -> None:
        driver, users = _driver(mock_settings)

        await driver.delete("thread:t1")

        users.threads.return_value.trash.assert_called_once_with(userId="me", id="t1")


class TestSending:
    """Sending messages and drafts."""

    @pytest.mark.asyncio
    async def test_create_sends_raw_message(self, mock_settings) -> None:
        driver, users = _driver(mock_settings)
        send = users.messages.return_value.send
        send.return_value.execute.return_value = {"id": "sent-1"}

        result = await driver.create(
            OutgoingMessage(to=[Sender(email="bob@example.com")], subject="Hi", thread_id="t1")
        )

        assert result.id == "sent-1"
        body = send.call_args.kwargs["body"]
        assert body["threadId"] == "t1"
        assert _decode_raw(body["raw"])["Subject"] == "Hi"

    @pytest.mark.asyncio
    async def test_rejected_send_is_a_send_failure(self, mock_settings) -> None:
        driver, users = _driver(mock_settings)
        users.messages.return_value.send.return_value.execute.side_effect = _http_error(400, "invalidArgument")

        with pytest.raises(SendFailureError) as exc_info:
            await driver.create(OutgoingMessage(to=[Sender(email="bob@example.com")], subject="Hi"))

        assert exc_info.value.operation == "create"

    @pytest.mark.asyncio
    async def test_rate_limited_send_stays_a_rate_limit(self, mock_settings) -> None:
        driver, users = _driver(mock_settings)
        users.messages.return_value.send.return_value.execute.side_effect = _http_error(429)

        with pytest.raises(RateLimitedError):
            await driver.create(OutgoingMessage(to=[Sender(email="bob@example.com")], subject="Hi"))

    @pytest.mark.asyncio
    async def test_updating_a_draft_replaces_it(self, mock_settings) -> None:
        driver, users = _driver(mock_settings)
        drafts = users.drafts.return_value
        drafts.create.return_value.execute.return_value = {"id": "d2"}

        result = await driver.create_draft(DraftData(id="d1", to="bob@example.com", subject="Draft"))

        drafts.delete.assert_called_once_with(userId="me", id="d1")
        assert result.id == "d2"
        raw = drafts.create.call_args.kwargs["body"]["message"]["raw"]
        assert _decode_raw(raw)["To"] == "bob@example.com"

    @pytest.mark.asyncio
    async def test_get_draft(self, mock_settings, sample_gmail_message) -> None:
        driver, users = _driver(mock_settings)
        users.drafts.return_value.get.return_value.execute.return_value = {
            "id": "d1",
            "message": sample_gmail_message,
        }

        draft = await driver.get_draft("d1")

        assert draft.id == "d1"
        assert draft.to == ["user@example.com", "bob@example.com"]
        assert draft.subject == "Weekly Newsletter - Python Tips"
        assert draft.content.startswith("<p>")

    @pytest.mark.asyncio
    async def test_send_draft_with_overrides(self, mock_settings) -> None:
        driver, users = _driver(mock_settings)

        await driver.send_draft("d1", OutgoingMessage(to=[Sender(email="carol@example.com")], subject="Now"))

        body = users.drafts.return_value.send.call_args.kwargs["body"]
        assert body["id"] == "d1"
        assert _decode_raw(body["message"]["raw"])["To"] == "carol@example.com"


class TestLabels:
    """Label operations and caching."""

    @pytest.mark.asyncio
    async def test_labels_cached_until_mutation(self, mock_settings) -> None:
        driver, users = _driver(mock_settings)
        labels = users.labels.return_value
        labels.list.return_value.execute.return_value = {
            "labels": [{"id": "INBOX", "name": "INBOX", "type": "system"}]
        }

        await driver.get_user_labels()
        await driver.get_user_labels()
        assert labels.list.call_count == 1

        await driver.create_label(Label(id="", name="Receipts"))
        await driver.get_user_labels()
        assert labels.list.call_count == 2

    @pytest.mark.asyncio
    async def test_get_missing_label(self, mock_settings) -> None:
        driver, users = _driver(mock_settings)
        users.labels.return_value.get.return_value.execute.side_effect = _http_error(404)

        with pytest.raises(NotFoundError):
            await driver.get_label("Label_404")

    @pytest.mark.asyncio
    async def test_count_uses_unread_threads(self, mock_settings) -> None:
        driver, users = _driver(mock_settings)
        labels = users.labels.return_value
        labels.list.return_value.execute.return_value = {"labels": [{"id": "INBOX"}, {"id": "Label_1"}]}
        labels.get.return_value.execute.side_effect = [{"threadsUnread": 4}, _http_error(500)]

        counts = await driver.count()

        assert [(c.label, c.count) for c in counts] == [("INBOX", 4)]


class TestAccount:
    """History, identity and credential handling."""

    @pytest.mark.asyncio
    async def test_list_history_follows_pages(self, mock_settings) -> None:
        driver, users = _driver(mock_settings)
        users.history.return_value.list.return_value.execute.side_effect = [
            {"history": [{"id": "1"}], "historyId": "5", "nextPageToken": "p2"},
            {"history": [{"id": "2"}], "historyId": "6"},
        ]

        page = await driver.list_history("1")

        assert [h["id"] for h in page.history] == ["1", "2"]
        assert page.history_id == "6"

    @pytest.mark.asyncio
    async def test_aliases_and_profile(self, mock_settings) -> None:
        driver, users = _driver(mock_settings)
        users.settings.return_value.sendAs.return_value.list.return_value.execute.return_value = {
            "sendAs": [
                {"sendAsEmail": "me@gmail.com", "isPrimary": True},
                {"sendAsEmail": "alias@example.com", "displayName": "Alias"},
            ]
        }
        users.getProfile.return_value.execute.return_value = {"emailAddress": "me@gmail.com"}

        aliases = await driver.get_email_aliases()
        info = await driver.get_user_info()

        assert [(a.email, a.primary) for a in aliases] == [("me@gmail.com", True), ("alias@example.com", False)]
        assert info.address == "me@gmail.com"

    @pytest.mark.asyncio
    async def test_revoke_posts_token(self, mock_settings) -> None:
        driver, _ = _driver(mock_settings)

        with patch("mailbox_bridge.gmail.client.requests.post") as post:
            post.return_value.status_code = 200
            assert await driver.revoke_refresh_token("rt") is True

        assert post.call_args.kwargs["params"] == {"token": "rt"}

    @pytest.mark.asyncio
    async def test_invalid_grant_tears_down_the_session(self, mock_settings) -> None:
        torn_down: list[bool] = []

        async def on_fatal() -> None:
            torn_down.append(True)

        driver, users = _driver(mock_settings, on_fatal=on_fatal)
        users.threads.return_value.list.return_value.execute.side_effect = RefreshError(
            "invalid_grant: Token has been expired or revoked."
        )

        with pytest.raises(UnauthorizedError) as exc_info:
            await driver.list("inbox")

        assert exc_info.value.operation == "list"
        assert torn_down == [True]
        assert driver._service is None
