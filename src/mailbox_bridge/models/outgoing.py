"""Models for messages and drafts leaving the mailbox."""

from __future__ import annotations

from pydantic import BaseModel, Field

from mailbox_bridge.models.thread import Sender


class OutgoingAttachment(BaseModel):
    """File attached to an outgoing message or draft."""

    filename: str
    mime_type: str = Field(default="application/octet-stream")
    content: bytes


class OutgoingMessage(BaseModel):
    """A message to send."""

    to: list[Sender]
    subject: str = ""
    message: str = Field(default="", description="HTML body")
    cc: list[Sender] = Field(default_factory=list)
    bcc: list[Sender] = Field(default_factory=list)
    attachments: list[OutgoingAttachment] = Field(default_factory=list)
    headers: dict[str, str] = Field(default_factory=dict)
    thread_id: str | None = Field(default=None, description="Thread to reply into")
    from_email: str | None = Field(default=None)


class SentMessage(BaseModel):
    """Result of a successful send."""

    id: str | None = None


class DraftData(BaseModel):
    """Draft contents; recipients are comma separated addresses."""

    id: str | None = Field(default=None, description="Existing draft to replace")
    to: str | None = None
    cc: str | None = None
    bcc: str | None = None
    subject: str | None = None
    message: str | None = None
    attachments: list[OutgoingAttachment] = Field(default_factory=list)


class DraftResult(BaseModel):
    """Result of saving a draft."""

    id: str | None = None
    success: bool = True


class ParsedDraft(BaseModel):
    """A stored draft."""

    id: str
    to: list[str] = Field(default_factory=list)
    subject: str = ""
    content: str = ""
