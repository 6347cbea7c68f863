"""Connection and driver configuration models."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Connection(BaseModel):
    """A mailbox account owned by a user."""

    id: str
    user_id: str
    provider_id: str = Field(description="google, microsoft or imapAndSmtp")
    email: str
    access_token: str | None = None
    refresh_token: str | None = None
    host: str | None = None
    port: int | None = None
    secure: bool | None = None
    smtp_host: str | None = None
    smtp_port: int | None = None
    smtp_secure: bool | None = None


class AuthConfig(BaseModel):
    """Credential material handed to a driver.

    IMAP/SMTP connections carry the account password in ``refresh_token``.
    """

    access_token: str = ""
    refresh_token: str = ""
    email: str
    user_id: str | None = None
    host: str | None = None
    port: int | None = None
    secure: bool | None = None
    smtp_host: str | None = None
    smtp_port: int | None = None
    smtp_secure: bool | None = None


class ManagerConfig(BaseModel):
    """Driver construction input."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    auth: AuthConfig
    connection_id: str | None = None
    on_fatal: Callable[[], Awaitable[Any]] | None = Field(
        default=None,
        description="Signs the user out and deletes the connection after a fatal auth error",
    )


class EmailAlias(BaseModel):
    email: str
    name: str | None = None
    primary: bool = False


class UserInfo(BaseModel):
    address: str
    name: str = ""
    photo: str = ""


class HistoryPage(BaseModel):
    """Mailbox change history since a given history id."""

    history: list[dict[str, Any]] = Field(default_factory=list)
    history_id: str | None = None
