"""The uniform mail driver interface and its error envelope.

Every concrete driver subclasses :class:`MailManager` and funnels each
operation through :meth:`MailManager._run`, which classifies failures as
fatal or transient, logs them with a sanitized context, tears the session
down on fatal credential errors and re-raises a :class:`StandardizedError`.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, ClassVar, TypeVar

import structlog

from mailbox_bridge.config import Settings
from mailbox_bridge.exceptions import RateLimitedError, StandardizedError, UnauthorizedError
from mailbox_bridge.models import (
    DraftData,
    DraftResult,
    EmailAlias,
    HistoryPage,
    Label,
    LabelCount,
    ManagerConfig,
    OutgoingMessage,
    ParsedDraft,
    SentMessage,
    Thread,
    ThreadList,
    UserInfo,
)
from mailbox_bridge.utils import is_rate_limit

logger = structlog.get_logger()

T = TypeVar("T")

FATAL_ERRORS: frozenset[str] = frozenset({"invalid_grant"})

SENSITIVE_KEYS: frozenset[str] = frozenset(
    {"tokens", "access_token", "refresh_token", "password", "code", "message", "raw", "data"}
)

REDACTED = "[REDACTED]"

THREAD_PREFIX = "thread:"


def sanitize_context(context: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Return a copy of ``context`` with sensitive values redacted."""

    if context is None:
        return None

    sanitized: dict[str, Any] = {}
    for key, value in context.items():
        if key in SENSITIVE_KEYS:
            sanitized[key] = REDACTED
        elif isinstance(value, Mapping):
            sanitized[key] = sanitize_context(value)
        else:
            sanitized[key] = value
    return sanitized


def is_fatal_error(error: BaseException, fatal_types: tuple[type[BaseException], ...] = ()) -> bool:
    """Return True if ``error`` means the current credentials are dead."""

    if isinstance(error, UnauthorizedError):
        return True
    if fatal_types and isinstance(error, fatal_types):
        return True

    code = getattr(error, "code", None)
    if isinstance(code, str) and code in FATAL_ERRORS:
        return True

    message = str(error)
    return any(fatal in message for fatal in FATAL_ERRORS)


async def teardown_session(steps: list[Awaitable[Any]]) -> bool:
    """Run every teardown step and report whether all of them succeeded.

    Steps run concurrently; a failing step never prevents the others.
    """

    results = await asyncio.gather(*steps, return_exceptions=True)
    ok = True
    for result in results:
        if isinstance(result, BaseException):
            ok = False
            logger.error("session_teardown_step_failed", error=str(result))
    return ok


class MailManager(ABC):
    """Capability set implemented by each provider driver.

    Operations are coroutines. Ids handed to thread operations may carry a
    ``thread:`` prefix, which :meth:`normalize_ids` strips.
    """

    provider_id: ClassVar[str] = ""
    driver_name: ClassVar[str] = "driver"
    fatal_error_types: ClassVar[tuple[type[BaseException], ...]] = ()

    def __init__(self, config: ManagerConfig, settings: Settings | None = None) -> None:
        from mailbox_bridge.config import get_settings

        self.config = config
        self.settings = settings or get_settings()
        self.user_labels: list[Label] = []

    # Threads and messages

    @abstractmethod
    async def list(
        self,
        folder: str,
        query: str | None = None,
        max_results: int = 100,
        label_ids: list[str] | None = None,
        page_token: str | int | None = None,
    ) -> ThreadList:
        """List thread stubs of a folder, newest first."""

    @abstractmethod
    async def get(self, id: str) -> Thread:
        """Return the full thread for a thread or message id."""

    @abstractmethod
    async def create(self, data: OutgoingMessage) -> SentMessage:
        """Send a new message."""

    @abstractmethod
    async def delete(self, id: str) -> None:
        """Move a thread or message to the trash."""

    @abstractmethod
    async def modify_labels(
        self,
        ids: list[str],
        add_labels: list[str] | None = None,
        remove_labels: list[str] | None = None,
    ) -> None:
        """Add and remove labels on threads."""

    @abstractmethod
    async def mark_as_read(self, ids: list[str]) -> None: ...

    @abstractmethod
    async def mark_as_unread(self, ids: list[str]) -> None: ...

    @abstractmethod
    async def get_attachment(self, message_id: str, attachment_id: str) -> str | None:
        """Return attachment content, base64 encoded."""

    # Labels

    @abstractmethod
    async def get_user_labels(self) -> list[Label]: ...

    @abstractmethod
    async def get_label(self, label_id: str) -> Label: ...

    @abstractmethod
    async def create_label(self, label: Label) -> None: ...

    @abstractmethod
    async def update_label(self, label_id: str, label: Label) -> None: ...

    @abstractmethod
    async def delete_label(self, label_id: str) -> None: ...

    # Drafts

    @abstractmethod
    async def create_draft(self, data: DraftData) -> DraftResult: ...

    @abstractmethod
    async def get_draft(self, draft_id: str) -> ParsedDraft: ...

    @abstractmethod
    async def list_drafts(
        self,
        query: str | None = None,
        max_results: int = 20,
        page_token: str | int | None = None,
    ) -> ThreadList: ...

    @abstractmethod
    async def send_draft(self, draft_id: str, data: OutgoingMessage | None = None) -> None: ...

    # Account

    @abstractmethod
    async def count(self) -> list[LabelCount]: ...

    @abstractmethod
    async def get_email_aliases(self) -> list[EmailAlias]: ...

    @abstractmethod
    async def get_user_info(self) -> UserInfo: ...

    @abstractmethod
    async def list_history(self, history_id: str) -> HistoryPage: ...

    @abstractmethod
    async def revoke_refresh_token(self, refresh_token: str) -> bool: ...

    @abstractmethod
    def get_scope(self) -> str: ...

    async def close(self) -> None:
        """Release protocol resources. Safe to call more than once."""

    def normalize_ids(self, ids: list[str]) -> list[str]:
        """Strip the ``thread:`` prefix from every id."""

        return self._run_sync(
            "normalize_ids",
            lambda: [i[len(THREAD_PREFIX) :] if i.startswith(THREAD_PREFIX) else i for i in ids],
            {"ids": ids},
        )

    # Error envelope

    async def _run(
        self,
        operation: str,
        fn: Callable[[], Awaitable[T]],
        context: Mapping[str, Any] | None = None,
    ) -> T:
        try:
            return await fn()
        except Exception as exc:
            if isinstance(exc, StandardizedError) and exc.operation is not None:
                # Already enveloped by a nested operation.
                raise
            fatal = is_fatal_error(exc, self.fatal_error_types)
            error = self._standardize(exc, operation, context, fatal)
            if fatal:
                await self._teardown(operation)
            if error is exc:
                raise
            raise error from exc

    def _run_sync(
        self,
        operation: str,
        fn: Callable[[], T],
        context: Mapping[str, Any] | None = None,
    ) -> T:
        try:
            return fn()
        except Exception as exc:
            if isinstance(exc, StandardizedError) and exc.operation is not None:
                raise
            fatal = is_fatal_error(exc, self.fatal_error_types)
            error = self._standardize(exc, operation, context, fatal)
            if fatal:
                # Cannot await here; schedule the teardown on the running loop if any.
                try:
                    loop = asyncio.get_running_loop()
                except RuntimeError:
                    loop = None
                if loop is not None:
                    loop.create_task(self._teardown(operation))
            if error is exc:
                raise
            raise error from exc

    def _standardize(
        self,
        exc: Exception,
        operation: str,
        context: Mapping[str, Any] | None,
        fatal: bool,
    ) -> StandardizedError:
        sanitized = sanitize_context(context)

        logger.error(
            "driver_operation_failed",
            driver=self.driver_name,
            operation=operation,
            error=str(exc),
            error_type=type(exc).__name__,
            context=sanitized,
            is_fatal=fatal,
            exc_info=exc,
        )

        if isinstance(exc, StandardizedError):
            if fatal and not isinstance(exc, UnauthorizedError):
                return UnauthorizedError(
                    exc.message,
                    operation=operation,
                    context=sanitized,
                    original_error=exc,
                )
            exc.operation = operation
            exc.context = sanitized
            return exc

        if fatal:
            error_cls: type[StandardizedError] = UnauthorizedError
        elif is_rate_limit(exc):
            error_cls = RateLimitedError
        else:
            error_cls = StandardizedError

        code = getattr(exc, "code", None)
        return error_cls(
            str(exc) or "An unknown error occurred",
            code=code if isinstance(code, str) and code else None,
            operation=operation,
            context=sanitized,
            original_error=exc,
        )

    async def _teardown(self, operation: str) -> bool:
        steps: list[Awaitable[Any]] = [self.close()]
        if self.config.on_fatal is not None:
            steps.append(self.config.on_fatal())
        ok = await teardown_session(steps)
        logger.warning(
            "driver_session_torn_down",
            driver=self.driver_name,
            operation=operation,
            email=self.config.auth.email,
            all_succeeded=ok,
        )
        return ok
