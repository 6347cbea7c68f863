"""Unit tests for data models."""

import pytest
from pydantic import ValidationError

from fakes import make_message
from mailbox_bridge.models import (
    DraftData,
    Label,
    Sender,
    Thread,
    ThreadLabel,
    ThreadList,
    ThreadStub,
)


class TestThread:
    """Test suite for Thread aggregation."""

    def test_from_messages_orders_oldest_first(self) -> None:
        """Messages are sorted by received date and the newest becomes latest."""
        newer = make_message("t1", offset_minutes=30, subject="Re: Hello")
        older = make_message("t1", offset_minutes=0)

        thread = Thread.from_messages([newer, older])

        assert [m.id for m in thread.messages] == ["t1-0", "t1-30"]
        assert thread.latest is not None
        assert thread.latest.subject == "Re: Hello"
        assert thread.total_replies == 2

    def test_drafts_never_become_latest(self) -> None:
        """A newer draft stays in messages but is not the latest message."""
        sent = make_message("t1", offset_minutes=0)
        draft = make_message("t1", offset_minutes=10, is_draft=True, labels=("DRAFT",))

        thread = Thread.from_messages([sent, draft])

        assert len(thread.messages) == 2
        assert thread.latest == sent
        assert thread.total_replies == 1

    def test_only_drafts_has_no_latest(self) -> None:
        thread = Thread.from_messages([make_message("t1", is_draft=True)])

        assert thread.latest is None
        assert thread.total_replies == 0

    def test_unread_and_labels_are_aggregated(self) -> None:
        """has_unread is true if any message is unread; labels are unioned."""
        first = make_message("t1", labels=("INBOX",))
        second = make_message("t1", offset_minutes=5, unread=True, labels=("INBOX", "UNREAD"))

        thread = Thread.from_messages([first, second])

        assert thread.has_unread is True
        assert [label.id for label in thread.labels] == ["INBOX", "UNREAD"]

    def test_explicit_labels_win(self) -> None:
        labels = [ThreadLabel(id="Label_1", name="Work", type="user")]
        thread = Thread.from_messages([make_message("t1")], labels=labels)

        assert thread.labels == labels

    def test_messages_are_immutable(self) -> None:
        message = make_message("t1")

        with pytest.raises(ValidationError):
            message.subject = "changed"


class TestThreadList:
    """Test suite for ThreadList."""

    def test_deduplicated_keeps_first_occurrence(self) -> None:
        stubs = [
            ThreadStub(id="a", raw={"uid": 3}),
            ThreadStub(id="b"),
            ThreadStub(id="a", raw={"uid": 1}),
        ]

        page = ThreadList.deduplicated(stubs, "token")

        assert [s.id for s in page.threads] == ["a", "b"]
        assert page.threads[0].raw == {"uid": 3}
        assert page.next_page_token == "token"


class TestOtherModels:
    """Small models used by drivers."""

    def test_sender_requires_email(self) -> None:
        with pytest.raises(ValidationError):
            Sender(name="Nobody")

    def test_label_defaults(self) -> None:
        label = Label(id="Work", name="Work")

        assert label.type == "user"
        assert label.color is None

    def test_draft_data_is_all_optional(self) -> None:
        draft = DraftData()

        assert draft.id is None
        assert draft.attachments == []
