"""Provider driver registry.

Resolves a provider identifier plus credentials into a concrete
:class:`MailManager`.
"""

from __future__ import annotations

from enum import Enum

from mailbox_bridge.config import Settings
from mailbox_bridge.exceptions import ConfigurationError, UnsupportedProviderError
from mailbox_bridge.models import AuthConfig, Connection, ManagerConfig

from .base import MailManager, sanitize_context, teardown_session


class ProviderKind(str, Enum):
    """Supported provider identifiers."""

    GOOGLE = "google"
    MICROSOFT = "microsoft"
    IMAP_SMTP = "imapAndSmtp"

    @classmethod
    def parse(cls, value: ProviderKind | str) -> ProviderKind:
        try:
            return cls(value)
        except ValueError as exc:
            raise UnsupportedProviderError(
                f"Provider not supported: {value!r}",
                context={"provider": str(value)},
            ) from exc


def create_driver(
    provider: ProviderKind | str,
    config: ManagerConfig,
    settings: Settings | None = None,
) -> MailManager:
    """Build the driver for ``provider``.

    Raises:
        UnsupportedProviderError: If ``provider`` is not registered.
    """

    kind = ProviderKind.parse(provider)

    # Imported lazily: driver modules import this package's base module.
    match kind:
        case ProviderKind.GOOGLE:
            from mailbox_bridge.gmail import GmailMailManager

            return GmailMailManager(config, settings)
        case ProviderKind.IMAP_SMTP:
            from mailbox_bridge.imap import ImapSmtpMailManager

            return ImapSmtpMailManager(config, settings)
        case ProviderKind.MICROSOFT:
            from .outlook import OutlookMailManager

            return OutlookMailManager(config, settings)


def connection_to_driver(
    connection: Connection,
    settings: Settings | None = None,
    *,
    on_fatal=None,
) -> MailManager:
    """Build the driver for a stored connection.

    Raises:
        ConfigurationError: If the connection carries no credentials.
    """

    if not connection.access_token and not connection.refresh_token:
        raise ConfigurationError(
            f"Invalid connection {connection.id!r}: missing credentials",
            context={"connection_id": connection.id},
        )

    auth = AuthConfig(
        access_token=connection.access_token or "",
        refresh_token=connection.refresh_token or "",
        email=connection.email,
        user_id=connection.user_id,
        host=connection.host,
        port=connection.port,
        secure=connection.secure,
        smtp_host=connection.smtp_host,
        smtp_port=connection.smtp_port,
        smtp_secure=connection.smtp_secure,
    )
    config = ManagerConfig(auth=auth, connection_id=connection.id, on_fatal=on_fatal)
    return create_driver(connection.provider_id, config, settings)


__all__ = [
    "MailManager",
    "ProviderKind",
    "connection_to_driver",
    "create_driver",
    "sanitize_context",
    "teardown_session",
]
