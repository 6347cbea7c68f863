"""Unit tests for IMAP mailbox discovery and folder resolution."""

from mailbox_bridge.imap.mailboxes import (
    MailboxInfo,
    find_folder,
    lookup_order,
    resolve_folder,
    standard_key_for_path,
)


def _mailboxes(*entries: tuple) -> list[MailboxInfo]:
    return [MailboxInfo.from_list_entry(e) for e in entries]


GMAIL_STYLE = _mailboxes(
    ((b"\\HasNoChildren",), b"/", "INBOX"),
    ((b"\\HasChildren", b"\\Noselect"), b"/", "[Gmail]"),
    ((b"\\HasNoChildren", b"\\All"), b"/", "[Gmail]/All Mail"),
    ((b"\\HasNoChildren", b"\\Drafts"), b"/", "[Gmail]/Drafts"),
    ((b"\\HasNoChildren", b"\\Sent"), b"/", "[Gmail]/Sent Mail"),
    ((b"\\HasNoChildren", b"\\Junk"), b"/", "[Gmail]/Spam"),
    ((b"\\HasNoChildren", b"\\Trash"), b"/", "[Gmail]/Trash"),
    ((b"\\HasNoChildren",), b"/", "Receipts"),
)


class TestMailboxInfo:
    """Parsing of LIST entries."""

    def test_from_list_entry_decodes_bytes(self) -> None:
        mailbox = MailboxInfo.from_list_entry(((b"\\HasNoChildren",), b".", "INBOX.Projects"))

        assert mailbox.path == "INBOX.Projects"
        assert mailbox.delimiter == "."
        assert mailbox.name == "Projects"
        assert mailbox.flags == frozenset({"\\HasNoChildren"})

    def test_noselect_is_not_selectable(self) -> None:
        assert not GMAIL_STYLE[1].selectable
        assert GMAIL_STYLE[0].selectable

    def test_to_label_marks_system_folders(self) -> None:
        inbox = GMAIL_STYLE[0].to_label()
        trash = GMAIL_STYLE[6].to_label()
        custom = GMAIL_STYLE[7].to_label()

        assert (inbox.id, inbox.type) == ("INBOX", "system")
        assert (trash.id, trash.name, trash.type) == ("[Gmail]/Trash", "Trash", "system")
        assert (custom.id, custom.type) == ("Receipts", "user")
        assert custom.color is not None


class TestFindFolder:
    """Standard folder resolution against server folder names."""

    def test_resolves_prefixed_gmail_folders(self) -> None:
        assert find_folder("sent", GMAIL_STYLE) == "[Gmail]/Sent Mail"
        assert find_folder("drafts", GMAIL_STYLE) == "[Gmail]/Drafts"
        assert find_folder("bin", GMAIL_STYLE) == "[Gmail]/Trash"
        assert find_folder("spam", GMAIL_STYLE) == "[Gmail]/Spam"
        assert find_folder("archive", GMAIL_STYLE) == "[Gmail]/All Mail"

    def test_resolves_exchange_names(self) -> None:
        mailboxes = _mailboxes(
            ((), b"/", "INBOX"),
            ((), b"/", "Sent Items"),
            ((), b"/", "Deleted Items"),
            ((), b"/", "Junk E-mail"),
        )

        assert find_folder("sent", mailboxes) == "Sent Items"
        assert find_folder("trash", mailboxes) == "Deleted Items"
        assert find_folder("junk", mailboxes) == "Junk E-mail"
        assert find_folder("drafts", mailboxes) is None

    def test_variant_order_wins_over_mailbox_order(self) -> None:
        mailboxes = _mailboxes(((), b"/", "Deleted Items"), ((), b"/", "Trash"))

        assert find_folder("trash", mailboxes) == "Trash"

    def test_special_use_flag_is_a_fallback(self) -> None:
        mailboxes = _mailboxes(((), b"/", "INBOX"), ((b"\\Sent",), b"/", "Outbox Copies"))

        assert find_folder("sent", mailboxes) == "Outbox Copies"

    def test_custom_names_do_not_resolve(self) -> None:
        assert find_folder("Receipts", GMAIL_STYLE) is None


def test_resolve_folder_falls_back_to_first_variant() -> None:
    mailboxes = _mailboxes(((), b"/", "INBOX"))

    assert resolve_folder("inbox", mailboxes) == "INBOX"
    assert resolve_folder("sent", mailboxes) == "Sent"
    assert resolve_folder("Receipts", mailboxes) == "Receipts"


def test_standard_key_for_path() -> None:
    assert standard_key_for_path("[Gmail]/Trash", GMAIL_STYLE) == "trash"
    assert standard_key_for_path("INBOX", GMAIL_STYLE) == "inbox"
    assert standard_key_for_path("Receipts", GMAIL_STYLE) is None


def test_lookup_order_puts_common_folders_first() -> None:
    order = lookup_order(GMAIL_STYLE)

    assert order[:4] == ["INBOX", "[Gmail]/Sent Mail", "[Gmail]/Drafts", "[Gmail]/All Mail"]
    assert "[Gmail]" not in order
    assert set(order[4:]) == {"[Gmail]/Spam", "[Gmail]/Trash", "Receipts"}
