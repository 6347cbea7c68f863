"""Gmail REST provider driver."""

from mailbox_bridge.gmail.client import GmailMailManager

__all__ = ["GmailMailManager"]
