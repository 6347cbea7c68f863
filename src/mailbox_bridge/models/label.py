"""Label models.

For IMAP a label is a folder path; for Gmail it is a first-class tag.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class LabelColor(BaseModel):
    """Label colors as understood by Gmail."""

    background_color: str = Field(default="#E3E3E3")
    text_color: str = Field(default="#333333")


class Label(BaseModel):
    """A provider label or folder."""

    id: str = Field(description="Label id (IMAP: full folder path)")
    name: str = Field(description="Display name")
    type: str = Field(default="user", description="system or user")
    color: LabelColor | None = Field(default=None)


class LabelCount(BaseModel):
    """Unread count for one label or folder."""

    label: str
    count: int = 0
