"""Custom exceptions for mailbox-bridge.

Every driver operation surfaces failures as a :class:`StandardizedError`
(or one of its subclasses), carrying the failing operation name, a
sanitized copy of its context and the original exception.
"""

from __future__ import annotations

from typing import Any


class StandardizedError(Exception):
    """Base exception for all mailbox-bridge errors."""

    default_code = "UNKNOWN_ERROR"

    def __init__(
        self,
        message: str = "An unknown error occurred",
        *,
        code: str | None = None,
        operation: str | None = None,
        context: dict[str, Any] | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.operation = operation
        self.context = context
        self.original_error = original_error

    def __str__(self) -> str:
        if self.operation:
            return f"[{self.operation}] {self.message}"
        return self.message


class NotFoundError(StandardizedError):
    """Raised when an id resolves to nothing after all lookup strategies."""

    default_code = "NOT_FOUND"


class UnauthorizedError(StandardizedError):
    """Raised when the provider rejects the connection's credentials."""

    default_code = "UNAUTHORIZED"


class RateLimitedError(StandardizedError):
    """Raised when the provider keeps throttling after the retry budget is spent."""

    default_code = "RATE_LIMITED"


class SendFailureError(StandardizedError):
    """Raised when the transport rejects an outgoing message."""

    default_code = "SEND_FAILURE"


class UnsupportedOperationError(StandardizedError):
    """Raised for operations the provider cannot represent (e.g. IMAP label removal)."""

    default_code = "UNSUPPORTED_OPERATION"


class UnsupportedProviderError(StandardizedError):
    """Raised for unregistered provider ids and for stub drivers."""

    default_code = "UNSUPPORTED_PROVIDER"


class ProviderTimeoutError(StandardizedError):
    """Raised when a protocol call exceeds its per-call timeout."""

    default_code = "TIMEOUT"


class ConfigurationError(StandardizedError):
    """Raised for missing or invalid connection configuration."""

    default_code = "CONFIGURATION_ERROR"
