"""Thread and message models shared by every provider driver.

Messages are immutable once fetched: a mutation on the provider is followed
by a fresh fetch, never by patching a model in place.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Sender(BaseModel):
    """A mailbox address with an optional display name."""

    model_config = ConfigDict(frozen=True)

    name: str | None = Field(default=None, description="Display name")
    email: str = Field(description="Email address")


class ThreadLabel(BaseModel):
    """A label reference attached to a message or thread."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Provider label id (IMAP: folder path)")
    name: str = Field(description="Display name")
    type: str = Field(default="system", description="system or user")


class Attachment(BaseModel):
    """Attachment metadata; content is fetched on demand."""

    model_config = ConfigDict(frozen=True)

    filename: str
    mime_type: str = Field(default="application/octet-stream")
    size: int = Field(default=0, description="Size in bytes")
    attachment_id: str = Field(
        description="Provider attachment id (IMAP: '<uid>:<filename-or-index>')"
    )
    headers: dict[str, str] = Field(default_factory=dict)


class Message(BaseModel):
    """A single parsed email message."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Provider message id (IMAP: Message-ID without brackets)")
    thread_id: str = Field(description="Id of the thread the message belongs to")
    connection_id: str | None = Field(default=None)
    subject: str = Field(default="")
    sender: Sender
    to: list[Sender] = Field(default_factory=list)
    cc: list[Sender] = Field(default_factory=list)
    bcc: list[Sender] = Field(default_factory=list)
    reply_to: str | None = Field(default=None)
    received_on: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    unread: bool = Field(default=False)
    body: str = Field(default="", description="Plain text body as sent")
    decoded_body: str = Field(default="", description="HTML body, or the text body when absent")
    attachments: list[Attachment] = Field(default_factory=list)
    tags: list[ThreadLabel] = Field(default_factory=list)

    # Threading headers, brackets stripped.
    message_id_header: str | None = Field(default=None)
    references: list[str] = Field(default_factory=list)
    in_reply_to: str | None = Field(default=None)

    is_draft: bool = Field(default=False)
    list_unsubscribe: str | None = Field(default=None)
    uid: int | None = Field(default=None, description="IMAP UID within `folder`")
    folder: str | None = Field(default=None, description="IMAP folder holding the message")


class Thread(BaseModel):
    """A conversation: chronologically ordered messages plus aggregates."""

    messages: list[Message] = Field(default_factory=list)
    latest: Message | None = Field(default=None)
    has_unread: bool = Field(default=False)
    total_replies: int = Field(default=0)
    labels: list[ThreadLabel] = Field(default_factory=list)

    @classmethod
    def from_messages(
        cls,
        messages: list[Message],
        labels: list[ThreadLabel] | None = None,
    ) -> Thread:
        """Build a thread, ordering messages oldest first.

        Drafts are kept in ``messages`` but never become ``latest`` and do not
        count as replies.
        """

        ordered = sorted(messages, key=lambda m: m.received_on)
        sent = [m for m in ordered if not m.is_draft]
        if labels is None:
            seen: dict[str, ThreadLabel] = {}
            for m in ordered:
                for tag in m.tags:
                    seen.setdefault(tag.id, tag)
            labels = list(seen.values())

        return cls(
            messages=ordered,
            latest=sent[-1] if sent else None,
            has_unread=any(m.unread for m in ordered),
            total_replies=len(sent),
            labels=labels,
        )


class ThreadStub(BaseModel):
    """A thread reference returned by list operations."""

    id: str
    raw: dict[str, Any] | None = Field(default=None, description="Provider payload")


class ThreadList(BaseModel):
    """One page of a thread listing."""

    threads: list[ThreadStub] = Field(default_factory=list)
    next_page_token: str | None = Field(default=None)

    @classmethod
    def deduplicated(cls, stubs: list[ThreadStub], next_page_token: str | None) -> ThreadList:
        """Keep the first stub per thread id, preserving order."""

        seen: set[str] = set()
        unique: list[ThreadStub] = []
        for stub in stubs:
            if stub.id in seen:
                continue
            seen.add(stub.id)
            unique.append(stub)
        return cls(threads=unique, next_page_token=next_page_token)
