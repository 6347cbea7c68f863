"""Data models for mailbox-bridge.

This package contains Pydantic models for data validation and serialization.
"""

from .connection import AuthConfig, Connection, EmailAlias, HistoryPage, ManagerConfig, UserInfo
from .label import Label, LabelColor, LabelCount
from .outgoing import (
    DraftData,
    DraftResult,
    OutgoingAttachment,
    OutgoingMessage,
    ParsedDraft,
    SentMessage,
)
from .thread import Attachment, Message, Sender, Thread, ThreadLabel, ThreadList, ThreadStub

__all__ = [
    "Attachment",
    "AuthConfig",
    "Connection",
    "DraftData",
    "DraftResult",
    "EmailAlias",
    "HistoryPage",
    "Label",
    "LabelColor",
    "LabelCount",
    "ManagerConfig",
    "Message",
    "OutgoingAttachment",
    "OutgoingMessage",
    "ParsedDraft",
    "Sender",
    "SentMessage",
    "Thread",
    "ThreadLabel",
    "ThreadList",
    "ThreadStub",
    "UserInfo",
]
