"""Standard folder names shared by drivers and the thread cache.

Callers address folders by the names below; each driver maps them to its
own representation (Gmail system label ids, IMAP folder paths). The cache
stores the Gmail-style system label id on every thread so folder queries
work the same way for every provider.
"""

from __future__ import annotations

INBOX = "inbox"
SENT = "sent"
DRAFTS = "drafts"
TRASH = "trash"
JUNK = "junk"
ARCHIVE = "archive"

STANDARD_FOLDERS: tuple[str, ...] = (INBOX, SENT, DRAFTS, TRASH, JUNK, ARCHIVE)

_ALIASES: dict[str, str] = {
    "bin": TRASH,
    "spam": JUNK,
    "draft": DRAFTS,
}

SYSTEM_LABEL_IDS: dict[str, str] = {
    INBOX: "INBOX",
    SENT: "SENT",
    DRAFTS: "DRAFT",
    TRASH: "TRASH",
    JUNK: "SPAM",
    ARCHIVE: "ARCHIVE",
}

UNREAD_LABEL = "UNREAD"
STARRED_LABEL = "STARRED"
TRASH_LABEL = SYSTEM_LABEL_IDS[TRASH]


def standard_folder(folder: str | None) -> str | None:
    """Return the standard folder key for ``folder`` or None if it is custom."""

    if not folder:
        return None
    key = folder.strip().lower()
    key = _ALIASES.get(key, key)
    return key if key in STANDARD_FOLDERS else None


def system_label_id(folder: str | None) -> str | None:
    """Return the system label id stored in the cache for ``folder``."""

    key = standard_folder(folder)
    if key is None:
        return folder or None
    return SYSTEM_LABEL_IDS[key]
