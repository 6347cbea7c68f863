"""IMAP/SMTP mail driver.

Folders act as labels, threads are reconstructed from the Message-ID,
References and In-Reply-To headers, and outgoing mail goes through SMTP.

Notes:
    ``imapclient`` and ``smtplib`` are synchronous. Every IMAP command
    sequence is a plain ``_*_sync(client, ...)`` method executed through
    :meth:`ImapSession.run`, which serializes them on the connection.
"""

from __future__ import annotations

import base64
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any

import structlog
from imapclient.exceptions import IMAPClientAbortError, IMAPClientError, LoginError

from mailbox_bridge import folders
from mailbox_bridge.config import Settings
from mailbox_bridge.driver.base import MailManager
from mailbox_bridge.exceptions import (
    NotFoundError,
    SendFailureError,
    StandardizedError,
    UnsupportedOperationError,
)
from mailbox_bridge.imap.mailboxes import (
    MailboxInfo,
    find_folder,
    lookup_order,
    resolve_folder,
    standard_key_for_path,
)
from mailbox_bridge.imap.parsing import (
    DELETED,
    DRAFT,
    FLAGGED,
    SEEN,
    folder_label,
    header_stub,
    parse_bytes,
    parse_imap_message,
)
from mailbox_bridge.imap.session import ClientFactory, ImapSession
from mailbox_bridge.imap.smtp import SmtpTransport
from mailbox_bridge.mime import (
    build_mime_message,
    iter_attachments,
    message_body_parts,
    parse_senders,
    split_addresses,
    strip_brackets,
)
from mailbox_bridge.models import (
    DraftData,
    DraftResult,
    EmailAlias,
    HistoryPage,
    Label,
    LabelCount,
    ManagerConfig,
    Message,
    OutgoingAttachment,
    OutgoingMessage,
    ParsedDraft,
    SentMessage,
    Thread,
    ThreadList,
    ThreadStub,
    UserInfo,
)

logger = structlog.get_logger()

DEFAULT_IMAP_PORT = 993

_LOOKUP_HEADERS: tuple[tuple[str, str], ...] = (
    ("message-id", "Message-ID"),
    ("references", "References"),
    ("in-reply-to", "In-Reply-To"),
)

_FLAG_LABELS = frozenset({folders.UNREAD_LABEL, folders.STARRED_LABEL})


@dataclass(frozen=True)
class _Located:
    folder: str
    uids: list[int]
    strategy: str


def _page_start(page_token: str | int | None) -> int:
    try:
        return max(1, int(page_token or 1))
    except (TypeError, ValueError):
        return 1


def _select(client: Any, path: str) -> int:
    info = client.select_folder(path)
    return int(info.get(b"EXISTS", 0))


def _search_in(client: Any, path: str, criteria: list[str]) -> list[int]:
    try:
        _select(client, path)
        return sorted(client.search(criteria))
    except IMAPClientAbortError:
        raise
    except IMAPClientError as exc:
        logger.warning("imap_folder_search_failed", folder=path, error=str(exc))
        return []


def _locate(client: Any, mailboxes: list[MailboxInfo], message_id: str) -> _Located | None:
    """Find the folder and UIDs of a message.

    Strategies run in order (Message-ID, References, In-Reply-To, raw UID);
    each scans the common folders first. The first hit wins and leaves its
    folder selected.
    """

    order = lookup_order(mailboxes)
    for strategy, header in _LOOKUP_HEADERS:
        for path in order:
            uids = _search_in(client, path, ["HEADER", header, f"<{message_id}>"])
            if uids:
                return _Located(folder=path, uids=uids, strategy=strategy)

    if message_id.isdigit():
        for path in order:
            uids = _search_in(client, path, ["UID", message_id])
            if uids:
                return _Located(folder=path, uids=uids, strategy="uid")
    return None


def _thread_uids(client: Any, located: _Located, message_id: str) -> list[int]:
    """UIDs of every message in the located folder that names ``message_id``."""

    if located.strategy == "uid":
        return located.uids

    _select(client, located.folder)
    found = set(located.uids)
    for _, header in _LOOKUP_HEADERS:
        found.update(client.search(["HEADER", header, f"<{message_id}>"]))
    return sorted(found)


def _page_uids(
    client: Any,
    exists: int,
    page_token: str | int | None,
    max_results: int,
    query: str | None,
) -> tuple[list[int], str | None]:
    """Return the UIDs of one page, newest first, and the next page token."""

    start = _page_start(page_token)
    size = max(1, max_results)

    if query:
        matches = sorted(client.search(["TEXT", query]), reverse=True)
        total = len(matches)
        end = min(start + size - 1, total)
        uids = matches[start - 1 : end]
    else:
        total = exists
        if start > total:
            return [], None
        end = min(start + size - 1, total)
        # Sequence number 1 is the oldest message; pages count from the newest.
        low, high = total - end + 1, total - start + 1
        client.use_uid = False
        try:
            response = client.fetch(f"{low}:{high}", ["UID"])
        finally:
            client.use_uid = True
        uids = sorted((int(data[b"UID"]) for data in response.values()), reverse=True)

    next_token = str(end + 1) if end < total else None
    return uids, next_token


def _move(client: Any, uids: list[int], destination: str) -> None:
    if client.has_capability("MOVE"):
        client.move(uids, destination)
        return
    client.copy(uids, destination)
    client.add_flags(uids, [DELETED])
    client.expunge()


def _apply_flags(client: Any, uids: list[int], add: list[str], remove: list[str]) -> None:
    if folders.UNREAD_LABEL in add:
        client.remove_flags(uids, [SEEN])
    if folders.UNREAD_LABEL in remove:
        client.add_flags(uids, [SEEN])
    if folders.STARRED_LABEL in add:
        client.add_flags(uids, [FLAGGED])
    if folders.STARRED_LABEL in remove:
        client.remove_flags(uids, [FLAGGED])


class ImapSmtpMailManager(MailManager):
    """Driver for any IMAP4rev1 mailbox paired with an SMTP server.

    The account password travels in ``config.auth.refresh_token``.
    """

    provider_id = "imapAndSmtp"
    driver_name = "imap"
    fatal_error_types = (LoginError, smtplib.SMTPAuthenticationError)

    def __init__(
        self,
        config: ManagerConfig,
        settings: Settings | None = None,
        *,
        client_factory: ClientFactory | None = None,
        smtp_factory: Any | None = None,
    ) -> None:
        super().__init__(config, settings)
        auth = config.auth

        port = auth.port or DEFAULT_IMAP_PORT
        secure = auth.secure if auth.secure is not None else port == DEFAULT_IMAP_PORT
        smtp_port = auth.smtp_port or (465 if port == DEFAULT_IMAP_PORT else 587)
        smtp_secure = auth.smtp_secure if auth.smtp_secure is not None else smtp_port == 465

        self.session = ImapSession(
            host=auth.host,
            port=port,
            secure=secure,
            username=auth.email,
            password=auth.refresh_token,
            connect_timeout=self.settings.imap_connect_timeout,
            command_timeout=self.settings.imap_command_timeout,
            client_factory=client_factory,
        )
        self.smtp = SmtpTransport(
            host=auth.smtp_host or auth.host,
            port=smtp_port,
            secure=smtp_secure,
            username=auth.email,
            password=auth.refresh_token,
            timeout=self.settings.smtp_timeout,
            smtp_factory=smtp_factory,
        )
        self._mailbox_cache: list[MailboxInfo] | None = None

    # Threads and messages

    async def list(
        self,
        folder: str,
        query: str | None = None,
        max_results: int = 100,
        label_ids: list[str] | None = None,
        page_token: str | int | None = None,
    ) -> ThreadList:
        target = folder or (label_ids[0] if label_ids else folders.INBOX)
        return await self._run(
            "list",
            lambda: self.session.run(
                self._list_sync, target, query, max_results, page_token, operation="list"
            ),
            {"folder": target, "query": query, "max_results": max_results, "page_token": page_token},
        )

    async def get(self, id: str) -> Thread:
        thread_id = self.normalize_ids([id])[0]

        async def fetch() -> Thread:
            messages = await self.session.run(self._get_sync, thread_id, operation="get")
            return Thread.from_messages(messages)

        return await self._run("get", fetch, {"id": thread_id})

    async def create(self, data: OutgoingMessage) -> SentMessage:
        async def send() -> SentMessage:
            msg = self._compose(data)
            await self.smtp.send(msg)
            await self._save_sent_copy(msg)
            return SentMessage(id=strip_brackets(str(msg["Message-ID"])))

        return await self._run(
            "create",
            send,
            {"to": [s.email for s in data.to], "subject": data.subject, "thread_id": data.thread_id},
        )

    async def delete(self, id: str) -> None:
        thread_id = self.normalize_ids([id])[0]
        await self._run(
            "delete",
            lambda: self.session.run(self._delete_sync, thread_id, operation="delete"),
            {"id": thread_id},
        )

    async def modify_labels(
        self,
        ids: list[str],
        add_labels: list[str] | None = None,
        remove_labels: list[str] | None = None,
    ) -> None:
        await self._modify("modify_labels", ids, list(add_labels or []), list(remove_labels or []))

    async def mark_as_read(self, ids: list[str]) -> None:
        await self._modify("mark_as_read", ids, [], [folders.UNREAD_LABEL])

    async def mark_as_unread(self, ids: list[str]) -> None:
        await self._modify("mark_as_unread", ids, [folders.UNREAD_LABEL], [])

    async def get_attachment(self, message_id: str, attachment_id: str) -> str | None:
        uid_text, _, matcher = attachment_id.partition(":")

        async def fetch() -> str | None:
            if not uid_text.isdigit() or not matcher:
                raise StandardizedError(
                    f"Malformed attachment id: {attachment_id!r}",
                    code="INVALID_ATTACHMENT_ID",
                )
            return await self.session.run(
                self._attachment_sync,
                message_id,
                int(uid_text),
                matcher,
                operation="get_attachment",
            )

        return await self._run(
            "get_attachment", fetch, {"message_id": message_id, "attachment_id": attachment_id}
        )

    # Labels

    async def get_user_labels(self) -> list[Label]:
        if self.user_labels:
            return list(self.user_labels)

        async def fetch() -> list[Label]:
            mailboxes = await self.session.run(self._mailboxes_sync, operation="get_user_labels")
            self.user_labels = [mb.to_label() for mb in mailboxes if mb.selectable]
            return list(self.user_labels)

        return await self._run("get_user_labels", fetch)

    async def get_label(self, label_id: str) -> Label:
        async def find() -> Label:
            for label in await self.get_user_labels():
                if label.id == label_id:
                    return label
            raise NotFoundError(f"Label not found: {label_id}")

        return await self._run("get_label", find, {"label_id": label_id})

    async def create_label(self, label: Label) -> None:
        await self._mutate_labels(
            "create_label", lambda client: client.create_folder(label.name), {"name": label.name}
        )

    async def update_label(self, label_id: str, label: Label) -> None:
        def rename(client: Any) -> None:
            paths = {mb.path for mb in self._mailboxes_sync(client)}
            if label_id not in paths:
                raise NotFoundError(f"Folder not found: {label_id}")
            if label.name != label_id:
                client.rename_folder(label_id, label.name)

        await self._mutate_labels(
            "update_label", rename, {"label_id": label_id, "name": label.name}
        )

    async def delete_label(self, label_id: str) -> None:
        await self._mutate_labels(
            "delete_label", lambda client: client.delete_folder(label_id), {"label_id": label_id}
        )

    # Drafts

    async def create_draft(self, data: DraftData) -> DraftResult:
        async def save() -> DraftResult:
            msg = build_mime_message(
                from_email=self.config.auth.email,
                to=split_addresses(data.to),
                subject=data.subject or "",
                html=data.message or "",
                cc=split_addresses(data.cc),
                bcc=split_addresses(data.bcc),
                attachments=data.attachments,
                message_id=data.id,
            )
            await self.session.run(self._save_draft_sync, msg, data.id, operation="create_draft")
            return DraftResult(id=strip_brackets(str(msg["Message-ID"])), success=True)

        return await self._run(
            "create_draft", save, {"draft_id": data.id, "subject": data.subject}
        )

    async def get_draft(self, draft_id: str) -> ParsedDraft:
        async def fetch() -> ParsedDraft:
            msg = await self.session.run(self._load_draft_sync, draft_id, operation="get_draft")
            text, html = message_body_parts(msg)
            return ParsedDraft(
                id=draft_id,
                to=[s.email for s in parse_senders(str(msg.get("To") or ""))],
                subject=str(msg.get("Subject") or ""),
                content=html or text,
            )

        return await self._run("get_draft", fetch, {"draft_id": draft_id})

    async def list_drafts(
        self,
        query: str | None = None,
        max_results: int = 20,
        page_token: str | int | None = None,
    ) -> ThreadList:
        return await self._run(
            "list_drafts",
            lambda: self.session.run(
                self._list_drafts_sync, query, max_results, page_token, operation="list_drafts"
            ),
            {"query": query, "max_results": max_results, "page_token": page_token},
        )

    async def send_draft(self, draft_id: str, data: OutgoingMessage | None = None) -> None:
        async def send() -> None:
            draft = await self.session.run(self._load_draft_sync, draft_id, operation="send_draft")
            outgoing = self._merge_draft(draft, data)
            if not outgoing.to:
                raise SendFailureError("Draft has no recipients", context={"draft_id": draft_id})
            msg = self._compose(outgoing)
            await self.smtp.send(msg)
            await self._save_sent_copy(msg)
            await self.session.run(self._delete_draft_sync, draft_id, operation="send_draft")

        await self._run("send_draft", send, {"draft_id": draft_id})

    # Account

    async def count(self) -> list[LabelCount]:
        return await self._run("count", lambda: self.session.run(self._count_sync, operation="count"))

    async def get_email_aliases(self) -> list[EmailAlias]:
        return [EmailAlias(email=self.config.auth.email, primary=True)]

    async def get_user_info(self) -> UserInfo:
        return UserInfo(address=self.config.auth.email)

    async def list_history(self, history_id: str) -> HistoryPage:
        async def unsupported() -> HistoryPage:
            raise UnsupportedOperationError("IMAP has no change history")

        return await self._run("list_history", unsupported, {"history_id": history_id})

    async def revoke_refresh_token(self, refresh_token: str) -> bool:
        logger.info("imap_revoke_noop", email=self.config.auth.email)
        return True

    def get_scope(self) -> str:
        return "imap smtp"

    async def close(self) -> None:
        await self.session.close()

    # Internals

    async def _modify(self, operation: str, ids: list[str], add: list[str], remove: list[str]) -> None:
        thread_ids = self.normalize_ids(ids)
        trash = folders.TRASH_LABEL in add
        destinations = [label for label in add if label not in _FLAG_LABELS and label != folders.TRASH_LABEL]
        removed_folders = [label for label in remove if label not in _FLAG_LABELS]

        async def modify() -> None:
            if removed_folders and not destinations and not trash:
                raise UnsupportedOperationError(
                    "IMAP cannot remove a folder label without moving the message",
                    context={"remove_labels": removed_folders},
                )
            await self.session.run(
                self._modify_sync,
                thread_ids,
                add,
                remove,
                destinations[0] if destinations else None,
                trash,
                operation=operation,
            )

        await self._run(
            operation,
            modify,
            {"ids": thread_ids, "add_labels": add, "remove_labels": remove},
        )

    async def _mutate_labels(self, operation: str, fn: Any, context: dict[str, Any]) -> None:
        async def mutate() -> None:
            try:
                await self.session.run(fn, operation=operation)
            finally:
                self._invalidate_labels()

        await self._run(operation, mutate, context)

    def _invalidate_labels(self) -> None:
        self.user_labels = []
        self._mailbox_cache = None

    async def _save_sent_copy(self, msg: EmailMessage) -> None:
        if not self.settings.imap_save_sent_copy:
            return
        try:
            await self.session.run(self._append_sent_sync, msg, operation="save_sent_copy")
        except self.fatal_error_types:
            raise
        except (IMAPClientError, OSError, StandardizedError) as exc:
            # The message is already delivered; only the local copy is missing.
            logger.warning("imap_sent_copy_failed", error=str(exc))

    def _compose(self, data: OutgoingMessage) -> EmailMessage:
        headers = dict(data.headers)
        if data.thread_id:
            headers.setdefault("In-Reply-To", f"<{data.thread_id}>")
            headers.setdefault("References", f"<{data.thread_id}>")
        return build_mime_message(
            from_email=data.from_email or self.config.auth.email,
            to=data.to,
            subject=data.subject,
            html=data.message,
            cc=data.cc,
            bcc=data.bcc,
            attachments=data.attachments,
            headers=headers,
        )

    def _merge_draft(self, draft: EmailMessage, data: OutgoingMessage | None) -> OutgoingMessage:
        text, html = message_body_parts(draft)
        stored = OutgoingMessage(
            to=parse_senders(str(draft.get("To") or "")),
            subject=str(draft.get("Subject") or ""),
            message=html or text,
            cc=parse_senders(str(draft.get("Cc") or "")),
            bcc=parse_senders(str(draft.get("Bcc") or "")),
            attachments=[
                OutgoingAttachment(
                    filename=part.get_filename() or f"attachment-{index}",
                    mime_type=part.get_content_type(),
                    content=part.get_payload(decode=True) or b"",
                )
                for index, part in enumerate(iter_attachments(draft))
            ],
        )
        if data is None:
            return stored
        return OutgoingMessage(
            to=data.to or stored.to,
            subject=data.subject or stored.subject,
            message=data.message or stored.message,
            cc=data.cc or stored.cc,
            bcc=data.bcc or stored.bcc,
            attachments=data.attachments or stored.attachments,
            headers=data.headers,
            thread_id=data.thread_id,
            from_email=data.from_email,
        )

    # Blocking command sequences (run inside ImapSession.run)

    def _mailboxes_sync(self, client: Any) -> list[MailboxInfo]:
        if self._mailbox_cache is None:
            self._mailbox_cache = [MailboxInfo.from_list_entry(e) for e in client.list_folders()]
        return self._mailbox_cache

    def _folder_tags(self, path: str, mailboxes: list[MailboxInfo]) -> list:
        delimiter = next((mb.delimiter for mb in mailboxes if mb.path == path), "/")
        return folder_label(path, delimiter, standard_key_for_path(path, mailboxes))

    def _fetch_messages(
        self, client: Any, path: str, uids: list[int], mailboxes: list[MailboxInfo]
    ) -> list[Message]:
        if not uids:
            return []

        tags = self._folder_tags(path, mailboxes)
        response = client.fetch(uids, ["FLAGS", "INTERNALDATE", "BODY.PEEK[]"])
        messages: list[Message] = []
        for uid, data in response.items():
            raw = data.get(b"BODY[]")
            if raw is None:
                logger.warning("imap_message_body_missing", folder=path, uid=uid)
                continue
            try:
                messages.append(
                    parse_imap_message(
                        raw,
                        uid=int(uid),
                        flags=data.get(b"FLAGS"),
                        folder=path,
                        folder_tags=tags,
                        connection_id=self.config.connection_id,
                        internal_date=data.get(b"INTERNALDATE"),
                    )
                )
            except (ValueError, TypeError, LookupError) as exc:
                logger.warning("imap_message_parse_failed", folder=path, uid=uid, error=str(exc))
        return messages

    def _stubs(self, client: Any, path: str, uids: list[int]) -> list[tuple[int, str, dict]]:
        if not uids:
            return []

        response = client.fetch(uids, ["FLAGS", "BODY.PEEK[HEADER]"])
        entries: list[tuple[int, str, dict]] = []
        for uid in uids:
            data = response.get(uid)
            if data is None:
                continue
            try:
                thread_id, raw = header_stub(
                    data.get(b"BODY[HEADER]") or b"", uid=uid, flags=data.get(b"FLAGS"), folder=path
                )
            except (ValueError, TypeError, LookupError) as exc:
                logger.warning("imap_header_parse_failed", folder=path, uid=uid, error=str(exc))
                continue
            entries.append((uid, thread_id, raw))
        return entries

    def _list_sync(
        self,
        client: Any,
        folder: str,
        query: str | None,
        max_results: int,
        page_token: str | int | None,
    ) -> ThreadList:
        mailboxes = self._mailboxes_sync(client)
        path = resolve_folder(folder, mailboxes)
        exists = _select(client, path)
        uids, next_token = _page_uids(client, exists, page_token, max_results, query)
        stubs = [ThreadStub(id=thread_id, raw=raw) for _, thread_id, raw in self._stubs(client, path, uids)]
        logger.debug("imap_listed", folder=path, exists=exists, returned=len(stubs), next_page_token=next_token)
        return ThreadList.deduplicated(stubs, next_token)

    def _get_sync(self, client: Any, thread_id: str) -> list[Message]:
        mailboxes = self._mailboxes_sync(client)
        located = _locate(client, mailboxes, thread_id)
        if located is None:
            raise NotFoundError(f"Message not found: {thread_id}", context={"id": thread_id})

        uids = _thread_uids(client, located, thread_id)
        messages = self._fetch_messages(client, located.folder, uids, mailboxes)
        if not messages:
            raise NotFoundError(f"Message not found: {thread_id}", context={"id": thread_id})
        logger.debug(
            "imap_thread_resolved",
            id=thread_id,
            folder=located.folder,
            strategy=located.strategy,
            messages=len(messages),
        )
        return messages

    def _trash_sync(self, client: Any, mailboxes: list[MailboxInfo], path: str, uids: list[int]) -> None:
        trash = find_folder(folders.TRASH, mailboxes)
        if trash is not None and trash != path:
            _move(client, uids, trash)
            return
        client.add_flags(uids, [DELETED])
        client.expunge()

    def _delete_sync(self, client: Any, thread_id: str) -> None:
        mailboxes = self._mailboxes_sync(client)
        located = _locate(client, mailboxes, thread_id)
        if located is None:
            raise NotFoundError(f"Message not found: {thread_id}", context={"id": thread_id})
        uids = _thread_uids(client, located, thread_id)
        self._trash_sync(client, mailboxes, located.folder, uids)

    def _modify_sync(
        self,
        client: Any,
        thread_ids: list[str],
        add: list[str],
        remove: list[str],
        destination: str | None,
        trash: bool,
    ) -> None:
        mailboxes = self._mailboxes_sync(client)
        target = resolve_folder(destination, mailboxes) if destination else None

        for thread_id in thread_ids:
            try:
                located = _locate(client, mailboxes, thread_id)
                if located is None:
                    logger.warning("imap_modify_target_not_found", id=thread_id)
                    continue
                uids = _thread_uids(client, located, thread_id)
                _apply_flags(client, uids, add, remove)
                if trash:
                    self._trash_sync(client, mailboxes, located.folder, uids)
                elif target is not None and target != located.folder:
                    _move(client, uids, target)
            except IMAPClientAbortError:
                raise
            except IMAPClientError as exc:
                logger.warning("imap_modify_failed", id=thread_id, error=str(exc))

    def _attachment_sync(self, client: Any, message_id: str, uid: int, matcher: str) -> str | None:
        mailboxes = self._mailboxes_sync(client)
        located = _locate(client, mailboxes, message_id)
        if located is None:
            raise NotFoundError(f"Message not found: {message_id}", context={"id": message_id})

        _select(client, located.folder)
        data = client.fetch([uid], ["BODY.PEEK[]"]).get(uid)
        if not data or data.get(b"BODY[]") is None:
            return None

        msg = parse_bytes(data[b"BODY[]"])
        for index, part in enumerate(iter_attachments(msg)):
            if part.get_filename() == matcher or str(index) == matcher:
                return base64.b64encode(part.get_payload(decode=True) or b"").decode("ascii")
        return None

    def _append_sent_sync(self, client: Any, msg: EmailMessage) -> None:
        path = resolve_folder(folders.SENT, self._mailboxes_sync(client))
        client.append(path, msg.as_bytes(), flags=[SEEN])

    def _drafts_path(self, client: Any) -> str:
        path = find_folder(folders.DRAFTS, self._mailboxes_sync(client))
        if path is None:
            raise NotFoundError("Drafts folder not found")
        return path

    def _draft_uids(self, client: Any, path: str, draft_id: str) -> list[int]:
        _select(client, path)
        uids = client.search(["HEADER", "Message-ID", f"<{draft_id}>"])
        if not uids and draft_id.isdigit():
            uids = client.search(["UID", draft_id])
        return sorted(uids)

    def _save_draft_sync(self, client: Any, msg: EmailMessage, replaces: str | None) -> None:
        path = self._drafts_path(client)
        if replaces:
            self._remove_draft(client, path, replaces)
        client.append(path, msg.as_bytes(), flags=[DRAFT, SEEN])

    def _remove_draft(self, client: Any, path: str, draft_id: str) -> bool:
        uids = self._draft_uids(client, path, draft_id)
        if not uids:
            return False
        client.add_flags(uids, [DELETED])
        client.expunge()
        return True

    def _delete_draft_sync(self, client: Any, draft_id: str) -> None:
        if not self._remove_draft(client, self._drafts_path(client), draft_id):
            logger.warning("imap_draft_already_gone", draft_id=draft_id)

    def _load_draft_sync(self, client: Any, draft_id: str) -> EmailMessage:
        path = self._drafts_path(client)
        uids = self._draft_uids(client, path, draft_id)
        if not uids:
            raise NotFoundError(f"Draft not found: {draft_id}", context={"draft_id": draft_id})
        data = client.fetch(uids[:1], ["BODY.PEEK[]"]).get(uids[0]) or {}
        return parse_bytes(data.get(b"BODY[]") or b"")

    def _list_drafts_sync(
        self,
        client: Any,
        query: str | None,
        max_results: int,
        page_token: str | int | None,
    ) -> ThreadList:
        path = self._drafts_path(client)
        exists = _select(client, path)
        uids, next_token = _page_uids(client, exists, page_token, max_results, query)
        stubs = [
            ThreadStub(id=raw.get("message_id") or str(uid), raw=raw)
            for uid, _, raw in self._stubs(client, path, uids)
        ]
        return ThreadList.deduplicated(stubs, next_token)

    def _count_sync(self, client: Any) -> list[LabelCount]:
        counts: list[LabelCount] = []
        for mailbox in self._mailboxes_sync(client):
            if not mailbox.selectable:
                continue
            try:
                status = client.folder_status(mailbox.path, ["MESSAGES", "UNSEEN"])
            except IMAPClientAbortError:
                raise
            except IMAPClientError as exc:
                logger.warning("imap_folder_status_failed", folder=mailbox.path, error=str(exc))
                continue
            counts.append(LabelCount(label=mailbox.path, count=int(status.get(b"UNSEEN", 0))))
        return counts
