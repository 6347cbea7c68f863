"""Gmail REST driver.

A thin mapping of the driver operations onto the Gmail API
(``users.threads``, ``users.messages``, ``users.labels``, ``users.drafts``,
``users.history``, ``users.settings.sendAs`` and ``users.getProfile``).

Notes:
    The Google API client is synchronous. Calls are wrapped with
    `asyncio.to_thread` so the rest of the codebase can remain async-friendly.
"""

from __future__ import annotations

import asyncio
import base64
from typing import Any, NoReturn

import requests
import structlog
from googleapiclient.errors import HttpError

from mailbox_bridge import folders
from mailbox_bridge.config import Settings
from mailbox_bridge.driver.base import MailManager
from mailbox_bridge.exceptions import NotFoundError, SendFailureError
from mailbox_bridge.gmail.parsing import (
    decode_base64url,
    label_to_body,
    label_to_model,
    message_to_model,
)
from mailbox_bridge.mime import build_mime_message, split_addresses
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
    ThreadStub,
    UserInfo,
)
from mailbox_bridge.utils import is_rate_limit

logger = structlog.get_logger()

USER_ID = "me"
REVOKE_URL = "https://oauth2.googleapis.com/revoke"


def _status(exc: HttpError) -> int | None:
    return getattr(getattr(exc, "resp", None), "status", None)


def folder_filters(
    folder: str | None,
    query: str | None,
    label_ids: list[str] | None,
) -> tuple[list[str], str | None]:
    """Translate a folder name into Gmail ``labelIds`` and ``q`` parameters."""

    labels = list(label_ids or [])
    key = folders.standard_folder(folder)
    if key == folders.ARCHIVE:
        query = f"-in:inbox {query}" if query else "-in:inbox"
    elif key is not None:
        labels.insert(0, folders.SYSTEM_LABEL_IDS[key])
    elif folder:
        labels.insert(0, folder)
    return list(dict.fromkeys(labels)), query


def _raw(msg: Any) -> str:
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii")


class GmailMailManager(MailManager):
    """Gmail API driver for OAuth-connected Google accounts."""

    provider_id = "google"
    driver_name = "gmail"

    def __init__(
        self,
        config: ManagerConfig,
        settings: Settings | None = None,
        *,
        service: Any | None = None,
    ) -> None:
        super().__init__(config, settings)
        self._service: Any | None = service
        logger.info("gmail_driver_initialized", email=config.auth.email)

    # Threads and messages

    async def list(
        self,
        folder: str,
        query: str | None = None,
        max_results: int = 100,
        label_ids: list[str] | None = None,
        page_token: str | int | None = None,
    ) -> ThreadList:
        labels, q = folder_filters(folder, query, label_ids)
        return await self._run(
            "list",
            lambda: asyncio.to_thread(self._list_sync, labels, q, max_results, page_token),
            {"folder": folder, "query": q, "label_ids": labels, "page_token": page_token},
        )

    async def get(self, id: str) -> Thread:
        thread_id = self.normalize_ids([id])[0]
        return await self._run(
            "get", lambda: asyncio.to_thread(self._get_sync, thread_id), {"id": thread_id}
        )

    async def create(self, data: OutgoingMessage) -> SentMessage:
        return await self._run(
            "create",
            lambda: asyncio.to_thread(self._send_sync, data),
            {"to": [s.email for s in data.to], "subject": data.subject, "thread_id": data.thread_id},
        )

    async def delete(self, id: str) -> None:
        thread_id = self.normalize_ids([id])[0]
        await self._run(
            "delete",
            lambda: asyncio.to_thread(
                lambda: self._users().threads().trash(userId=USER_ID, id=thread_id).execute()
            ),
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
        def fetch() -> str | None:
            response = (
                self._users()
                .messages()
                .attachments()
                .get(userId=USER_ID, messageId=message_id, id=attachment_id)
                .execute()
            )
            data = response.get("data")
            if not data:
                return None
            return base64.b64encode(decode_base64url(data)).decode("ascii")

        return await self._run(
            "get_attachment",
            lambda: asyncio.to_thread(fetch),
            {"message_id": message_id, "attachment_id": attachment_id},
        )

    # Labels

    async def get_user_labels(self) -> list[Label]:
        if self.user_labels:
            return list(self.user_labels)

        def fetch() -> list[Label]:
            response = self._users().labels().list(userId=USER_ID).execute()
            return [label_to_model(item) for item in response.get("labels") or []]

        self.user_labels = await self._run("get_user_labels", lambda: asyncio.to_thread(fetch))
        return list(self.user_labels)

    async def get_label(self, label_id: str) -> Label:
        def fetch() -> Label:
            try:
                response = self._users().labels().get(userId=USER_ID, id=label_id).execute()
            except HttpError as exc:
                if _status(exc) == 404:
                    raise NotFoundError(f"Label not found: {label_id}", original_error=exc) from exc
                raise
            return label_to_model(response)

        return await self._run(
            "get_label", lambda: asyncio.to_thread(fetch), {"label_id": label_id}
        )

    async def create_label(self, label: Label) -> None:
        await self._mutate_labels(
            "create_label",
            lambda: self._users().labels().create(userId=USER_ID, body=label_to_body(label)).execute(),
            {"name": label.name},
        )

    async def update_label(self, label_id: str, label: Label) -> None:
        await self._mutate_labels(
            "update_label",
            lambda: self._users()
            .labels()
            .patch(userId=USER_ID, id=label_id, body=label_to_body(label))
            .execute(),
            {"label_id": label_id, "name": label.name},
        )

    async def delete_label(self, label_id: str) -> None:
        await self._mutate_labels(
            "delete_label",
            lambda: self._users().labels().delete(userId=USER_ID, id=label_id).execute(),
            {"label_id": label_id},
        )

    # Drafts

    async def create_draft(self, data: DraftData) -> DraftResult:
        return await self._run(
            "create_draft",
            lambda: asyncio.to_thread(self._save_draft_sync, data),
            {"draft_id": data.id, "subject": data.subject},
        )

    async def get_draft(self, draft_id: str) -> ParsedDraft:
        def fetch() -> ParsedDraft:
            try:
                response = (
                    self._users().drafts().get(userId=USER_ID, id=draft_id, format="full").execute()
                )
            except HttpError as exc:
                if _status(exc) == 404:
                    raise NotFoundError(f"Draft not found: {draft_id}", original_error=exc) from exc
                raise
            message = response.get("message") or {}
            parsed = message_to_model(message, self.config.connection_id)
            return ParsedDraft(
                id=str(response.get("id") or draft_id),
                to=[s.email for s in parsed.to],
                subject=parsed.subject,
                content=parsed.decoded_body,
            )

        return await self._run("get_draft", lambda: asyncio.to_thread(fetch), {"draft_id": draft_id})

    async def list_drafts(
        self,
        query: str | None = None,
        max_results: int = 20,
        page_token: str | int | None = None,
    ) -> ThreadList:
        def fetch() -> ThreadList:
            response = (
                self._users()
                .drafts()
                .list(
                    userId=USER_ID,
                    q=query,
                    maxResults=max_results,
                    pageToken=str(page_token) if page_token else None,
                )
                .execute()
            )
            stubs = [ThreadStub(id=str(d["id"]), raw=d) for d in response.get("drafts") or []]
            return ThreadList.deduplicated(stubs, response.get("nextPageToken"))

        return await self._run(
            "list_drafts",
            lambda: asyncio.to_thread(fetch),
            {"query": query, "max_results": max_results, "page_token": page_token},
        )

    async def send_draft(self, draft_id: str, data: OutgoingMessage | None = None) -> None:
        def send() -> None:
            body: dict[str, Any] = {"id": draft_id}
            if data is not None:
                body["message"] = {"raw": _raw(self._compose(data))}
                if data.thread_id:
                    body["message"]["threadId"] = data.thread_id
            try:
                self._users().drafts().send(userId=USER_ID, body=body).execute()
            except HttpError as exc:
                self._raise_send_failure(exc)

        await self._run("send_draft", lambda: asyncio.to_thread(send), {"draft_id": draft_id})

    # Account

    async def count(self) -> list[LabelCount]:
        return await self._run("count", lambda: asyncio.to_thread(self._count_sync))

    async def get_email_aliases(self) -> list[EmailAlias]:
        def fetch() -> list[EmailAlias]:
            response = self._users().settings().sendAs().list(userId=USER_ID).execute()
            return [
                EmailAlias(
                    email=alias["sendAsEmail"],
                    name=alias.get("displayName") or None,
                    primary=bool(alias.get("isPrimary")),
                )
                for alias in response.get("sendAs") or []
                if alias.get("sendAsEmail")
            ]

        return await self._run("get_email_aliases", lambda: asyncio.to_thread(fetch))

    async def get_user_info(self) -> UserInfo:
        def fetch() -> UserInfo:
            profile = self._users().getProfile(userId=USER_ID).execute()
            return UserInfo(address=profile.get("emailAddress") or self.config.auth.email)

        return await self._run("get_user_info", lambda: asyncio.to_thread(fetch))

    async def list_history(self, history_id: str) -> HistoryPage:
        return await self._run(
            "list_history",
            lambda: asyncio.to_thread(self._history_sync, history_id),
            {"history_id": history_id},
        )

    async def revoke_refresh_token(self, refresh_token: str) -> bool:
        def revoke() -> bool:
            response = requests.post(
                REVOKE_URL,
                params={"token": refresh_token},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=10,
            )
            logger.info("gmail_token_revoked", status_code=response.status_code)
            return response.status_code == 200

        return await self._run(
            "revoke_refresh_token",
            lambda: asyncio.to_thread(revoke),
            {"refresh_token": refresh_token},
        )

    def get_scope(self) -> str:
        return self.settings.gmail_scope

    async def close(self) -> None:
        service, self._service = self._service, None
        if service is not None and hasattr(service, "close"):
            await asyncio.to_thread(service.close)

    # Internals

    def _users(self) -> Any:
        if self._service is None:
            self._service = self._build_service()
        return self._service.users()

    def _build_service(self) -> Any:
        # Imported lazily to keep import-time cost low and tests fast.
        from google.oauth2.credentials import Credentials
        from googleapiclient.discovery import build

        auth = self.config.auth
        creds = Credentials(
            token=auth.access_token or None,
            refresh_token=auth.refresh_token or None,
            token_uri=self.settings.google_token_uri,
            client_id=self.settings.google_client_id,
            client_secret=self.settings.google_client_secret,
            scopes=[self.settings.gmail_scope],
        )
        logger.info("gmail_service_built", email=auth.email)
        # cache_discovery=False prevents writing discovery docs to disk.
        return build("gmail", "v1", credentials=creds, cache_discovery=False)

    async def _modify(self, operation: str, ids: list[str], add: list[str], remove: list[str]) -> None:
        thread_ids = self.normalize_ids(ids)

        def modify() -> None:
            body = {"addLabelIds": add, "removeLabelIds": remove}
            for thread_id in thread_ids:
                try:
                    self._users().threads().modify(userId=USER_ID, id=thread_id, body=body).execute()
                except HttpError as exc:
                    if _status(exc) != 404:
                        raise
                    logger.warning("gmail_modify_target_not_found", id=thread_id)

        await self._run(
            operation,
            lambda: asyncio.to_thread(modify),
            {"ids": thread_ids, "add_labels": add, "remove_labels": remove},
        )

    async def _mutate_labels(self, operation: str, call: Any, context: dict[str, Any]) -> None:
        async def mutate() -> None:
            try:
                await asyncio.to_thread(call)
            finally:
                self.user_labels = []

        await self._run(operation, mutate, context)

    def _compose(self, data: OutgoingMessage) -> Any:
        return build_mime_message(
            from_email=data.from_email or self.config.auth.email,
            to=data.to,
            subject=data.subject,
            html=data.message,
            cc=data.cc,
            bcc=data.bcc,
            attachments=data.attachments,
            headers=data.headers,
        )

    def _raise_send_failure(self, exc: HttpError) -> NoReturn:
        if is_rate_limit(exc):
            raise exc
        raise SendFailureError(
            f"Gmail rejected the message: {exc}",
            context={"status": _status(exc)},
            original_error=exc,
        ) from exc

    def _list_sync(
        self,
        label_ids: list[str],
        query: str | None,
        max_results: int,
        page_token: str | int | None,
    ) -> ThreadList:
        response = (
            self._users()
            .threads()
            .list(
                userId=USER_ID,
                q=query,
                maxResults=max_results,
                labelIds=label_ids or None,
                pageToken=str(page_token) if page_token else None,
            )
            .execute()
        )
        stubs = [ThreadStub(id=str(t["id"]), raw=t) for t in response.get("threads") or []]
        return ThreadList.deduplicated(stubs, response.get("nextPageToken"))

    def _get_sync(self, thread_id: str) -> Thread:
        try:
            response = (
                self._users().threads().get(userId=USER_ID, id=thread_id, format="full").execute()
            )
        except HttpError as exc:
            if _status(exc) == 404:
                raise NotFoundError(f"Thread not found: {thread_id}", original_error=exc) from exc
            raise

        messages = [
            message_to_model(m, self.config.connection_id) for m in response.get("messages") or []
        ]
        if not messages:
            raise NotFoundError(f"Thread has no messages: {thread_id}")
        return Thread.from_messages(messages)

    def _send_sync(self, data: OutgoingMessage) -> SentMessage:
        body: dict[str, Any] = {"raw": _raw(self._compose(data))}
        if data.thread_id:
            body["threadId"] = data.thread_id
        try:
            response = self._users().messages().send(userId=USER_ID, body=body).execute()
        except HttpError as exc:
            self._raise_send_failure(exc)
        return SentMessage(id=response.get("id"))

    def _save_draft_sync(self, data: DraftData) -> DraftResult:
        drafts = self._users().drafts()
        if data.id:
            # Drafts are replaced, not edited in place.
            try:
                drafts.delete(userId=USER_ID, id=data.id).execute()
            except HttpError as exc:
                if _status(exc) != 404:
                    raise
                logger.warning("gmail_draft_already_gone", draft_id=data.id)

        msg = build_mime_message(
            from_email=self.config.auth.email,
            to=split_addresses(data.to),
            subject=data.subject or "",
            html=data.message or "",
            cc=split_addresses(data.cc),
            bcc=split_addresses(data.bcc),
            attachments=data.attachments,
        )
        response = drafts.create(userId=USER_ID, body={"message": {"raw": _raw(msg)}}).execute()
        return DraftResult(id=response.get("id"), success=True)

    def _count_sync(self) -> list[LabelCount]:
        labels = self._users().labels().list(userId=USER_ID).execute().get("labels") or []
        counts: list[LabelCount] = []
        for label in labels:
            label_id = label.get("id")
            if not label_id:
                continue
            try:
                detail = self._users().labels().get(userId=USER_ID, id=label_id).execute()
            except HttpError as exc:
                if is_rate_limit(exc):
                    raise
                logger.warning("gmail_label_count_failed", label_id=label_id, error=str(exc))
                continue
            counts.append(LabelCount(label=label_id, count=int(detail.get("threadsUnread") or 0)))
        return counts

    def _history_sync(self, history_id: str) -> HistoryPage:
        history: list[dict[str, Any]] = []
        latest: str | None = None
        page_token: str | None = None
        while True:
            response = (
                self._users()
                .history()
                .list(userId=USER_ID, startHistoryId=history_id, pageToken=page_token)
                .execute()
            )
            history.extend(response.get("history") or [])
            latest = response.get("historyId") or latest
            page_token = response.get("nextPageToken")
            if page_token is None:
                break
        return HistoryPage(history=history, history_id=latest)
