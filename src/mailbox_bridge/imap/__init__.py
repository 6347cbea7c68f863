"""IMAP/SMTP provider driver."""

from mailbox_bridge.imap.client import ImapSmtpMailManager
from mailbox_bridge.imap.session import ImapSession
from mailbox_bridge.imap.smtp import SmtpTransport

__all__ = ["ImapSession", "ImapSmtpMailManager", "SmtpTransport"]
