"""IMAP mailbox discovery and standard folder resolution.

Servers name their special folders differently ("Trash", "Deleted Items",
"[Gmail]/Trash", ...). Standard folder names are resolved against the
server's LIST response using ordered variant lists; the first variant that
matches a mailbox wins.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from mailbox_bridge import folders
from mailbox_bridge.models import Label, LabelColor

FOLDER_VARIANTS: dict[str, tuple[str, ...]] = {
    folders.INBOX: ("INBOX", "Inbox"),
    folders.SENT: ("Sent", "Sent Items", "Sent Messages", "Sent Mail", "[Gmail]/Sent Mail"),
    folders.DRAFTS: ("Drafts", "Draft", "[Gmail]/Drafts"),
    folders.TRASH: ("Trash", "Deleted Items", "Deleted", "Deleted Messages", "Bin", "[Gmail]/Trash"),
    folders.JUNK: ("Junk", "Spam", "Junk E-mail", "Junk Email", "Bulk Mail", "[Gmail]/Spam"),
    folders.ARCHIVE: ("Archive", "Archives", "All Mail", "[Gmail]/All Mail"),
}

# RFC 6154 special-use attributes, consulted only when no name variant matches.
SPECIAL_USE_FLAGS: dict[str, str] = {
    folders.SENT: "\\Sent",
    folders.DRAFTS: "\\Drafts",
    folders.TRASH: "\\Trash",
    folders.JUNK: "\\Junk",
    folders.ARCHIVE: "\\Archive",
}

COMMON_LOOKUP_FOLDERS: tuple[str, ...] = (
    folders.INBOX,
    folders.SENT,
    folders.DRAFTS,
    folders.ARCHIVE,
)

_SYSTEM_FLAGS = frozenset({"\\Sent", "\\Drafts", "\\Trash", "\\Junk", "\\Archive", "\\All", "\\Flagged"})

DEFAULT_LABEL_COLOR = LabelColor(background_color="#E3E3E3", text_color="#333333")


def _text(value: bytes | str | None) -> str:
    if value is None:
        return ""
    return value.decode() if isinstance(value, bytes) else str(value)


@dataclass(frozen=True)
class MailboxInfo:
    """One entry of an IMAP LIST response."""

    path: str
    delimiter: str = "/"
    flags: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_list_entry(cls, entry: tuple) -> MailboxInfo:
        flags, delimiter, name = entry
        return cls(
            path=_text(name),
            delimiter=_text(delimiter) or "/",
            flags=frozenset(_text(f) for f in flags or ()),
        )

    @property
    def name(self) -> str:
        """Last path segment."""

        return self.path.rsplit(self.delimiter, 1)[-1] if self.delimiter else self.path

    @property
    def selectable(self) -> bool:
        return "\\Noselect" not in self.flags and "\\NonExistent" not in self.flags

    @property
    def is_system(self) -> bool:
        return self.path.upper() == "INBOX" or bool(self.flags & _SYSTEM_FLAGS)

    def matches(self, variant: str) -> bool:
        if self.path == variant or self.name == variant:
            return True
        return self.path.endswith(f"{self.delimiter}{variant}")

    def to_label(self) -> Label:
        return Label(
            id=self.path,
            name=self.name,
            type="system" if self.is_system else "user",
            color=DEFAULT_LABEL_COLOR,
        )


def find_folder(standard: str, mailboxes: list[MailboxInfo]) -> str | None:
    """Return the path of the mailbox serving ``standard``, if any."""

    key = folders.standard_folder(standard)
    if key is None:
        return None

    candidates = [mb for mb in mailboxes if mb.selectable]
    for variant in FOLDER_VARIANTS[key]:
        for mailbox in candidates:
            if mailbox.matches(variant):
                return mailbox.path

    flag = SPECIAL_USE_FLAGS.get(key)
    if flag is not None:
        for mailbox in candidates:
            if flag in mailbox.flags:
                return mailbox.path
    return None


def resolve_folder(folder: str, mailboxes: list[MailboxInfo]) -> str:
    """Map a standard folder name or a label id to an IMAP path.

    Standard names that match no mailbox fall back to their first variant;
    any other value is used verbatim.
    """

    key = folders.standard_folder(folder)
    if key is None:
        return folder
    return find_folder(key, mailboxes) or FOLDER_VARIANTS[key][0]


def standard_key_for_path(path: str, mailboxes: list[MailboxInfo]) -> str | None:
    """Inverse of :func:`find_folder`."""

    for key in folders.STANDARD_FOLDERS:
        if find_folder(key, mailboxes) == path:
            return key
    return None


def lookup_order(mailboxes: list[MailboxInfo]) -> list[str]:
    """Selectable mailbox paths, common folders first."""

    ordered: list[str] = []
    for key in COMMON_LOOKUP_FOLDERS:
        path = find_folder(key, mailboxes)
        if path is not None and path not in ordered:
            ordered.append(path)
    for mailbox in mailboxes:
        if mailbox.selectable and mailbox.path not in ordered:
            ordered.append(mailbox.path)
    return ordered
