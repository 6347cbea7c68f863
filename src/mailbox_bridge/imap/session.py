"""A single-flight IMAP connection.

IMAP keeps a selected mailbox per connection, so command sequences that
select a folder and then search or fetch must never interleave. Every
sequence runs through :meth:`ImapSession.run`, which serializes callers on
an ``asyncio.Lock``, connects lazily, and runs the blocking ``imapclient``
calls in a worker thread under a per-call timeout.
"""

from __future__ import annotations

import asyncio
import ssl
from collections.abc import Callable
from typing import Any, TypeVar

import structlog
from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientAbortError

from mailbox_bridge.exceptions import ConfigurationError, ProviderTimeoutError

logger = structlog.get_logger()

T = TypeVar("T")

ClientFactory = Callable[..., Any]


def default_client_factory(host: str, port: int, secure: bool, timeout: float) -> IMAPClient:
    context = ssl.create_default_context() if secure else None
    client = IMAPClient(host, port=port, ssl=secure, ssl_context=context, timeout=timeout)
    if not secure:
        # Plain connections upgrade when the server offers it.
        if client.has_capability("STARTTLS"):
            client.starttls(ssl.create_default_context())
    return client


class ImapSession:
    """Owns one lazily (re)connected IMAP client."""

    def __init__(
        self,
        *,
        host: str | None,
        port: int,
        secure: bool,
        username: str,
        password: str,
        connect_timeout: float = 10.0,
        command_timeout: float | None = 60.0,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.secure = secure
        self.username = username
        self._password = password
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self._client_factory = client_factory or default_client_factory
        self._client: Any | None = None
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def run(self, fn: Callable[..., T], *args: Any, operation: str = "imap") -> T:
        """Run ``fn(client, *args)`` exclusively on the connection.

        Raises:
            ProviderTimeoutError: If the call exceeds ``command_timeout``. The
                connection is discarded and re-established on next use.
        """

        async with self._lock:
            client = await self._ensure_connected()
            try:
                call = asyncio.to_thread(fn, client, *args)
                if self.command_timeout:
                    return await asyncio.wait_for(call, self.command_timeout)
                return await call
            except asyncio.TimeoutError as exc:
                logger.warning(
                    "imap_command_timeout",
                    operation=operation,
                    host=self.host,
                    timeout=self.command_timeout,
                )
                self._drop(client)
                raise ProviderTimeoutError(
                    f"IMAP command timed out after {self.command_timeout}s",
                    context={"operation": operation, "host": self.host},
                ) from exc
            except (IMAPClientAbortError, OSError):
                logger.warning("imap_connection_lost", operation=operation, host=self.host)
                self._drop(client)
                raise

    async def close(self) -> None:
        """Log out and forget the connection. Safe to call when not connected."""

        async with self._lock:
            client = self._client
            self._client = None
            if client is None:
                return
            try:
                await asyncio.to_thread(client.logout)
            except (IMAPClientAbortError, OSError) as exc:
                logger.warning("imap_logout_failed", host=self.host, error=str(exc))
                client.shutdown()
            logger.info("imap_session_closed", host=self.host)

    async def _ensure_connected(self) -> Any:
        if self._client is not None:
            return self._client
        if not self.host:
            raise ConfigurationError(
                "IMAP host is not configured",
                context={"username": self.username},
            )

        logger.info("imap_connecting", host=self.host, port=self.port, secure=self.secure)
        client = await asyncio.to_thread(
            self._client_factory, self.host, self.port, self.secure, self.connect_timeout
        )
        try:
            await asyncio.to_thread(client.login, self.username, self._password)
        except Exception:
            client.shutdown()
            raise
        self._client = client
        logger.info("imap_connected", host=self.host)
        return client

    def _drop(self, client: Any) -> None:
        if self._client is client:
            self._client = None
        try:
            client.shutdown()
        except OSError as exc:
            logger.debug("imap_shutdown_failed", error=str(exc))
