"""Utility functions for mailbox-bridge.

Currently the rate-limit classifier and the bounded retry scheduler used by
the sync engine around every provider call.
"""

from .retry import RATE_LIMIT_REASONS, is_rate_limit, with_retry

__all__ = ["RATE_LIMIT_REASONS", "is_rate_limit", "with_retry"]
