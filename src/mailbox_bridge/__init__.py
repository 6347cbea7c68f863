"""mailbox-bridge - uniform mailbox drivers with a local thread cache.

This package provides Gmail and IMAP/SMTP drivers behind a single async
interface, a standardized error envelope, rate-limit aware retries, and an
engine that synchronizes threads into a local SQLite + blob cache.
"""

__version__ = "0.1.0"
__author__ = "Trickl"

from mailbox_bridge.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__", "__author__"]
