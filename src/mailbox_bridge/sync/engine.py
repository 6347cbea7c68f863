"""Thread synchronization engine.

Pulls threads from a provider driver into the local cache: one metadata
row per thread in SQLite plus the full thread JSON in the blob store. The
cache is a projection of the provider; mutations always go to the provider
first and the affected threads are re-synced afterwards.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import AsyncIterator, Awaitable, Callable, Coroutine
from dataclasses import dataclass
from functools import partial
from typing import Any, TypeVar

import structlog

from mailbox_bridge import folders
from mailbox_bridge.cache import (
    FileSystemBlobStore,
    ThreadCacheRepository,
    ThreadRow,
    normalize_timestamp,
    thread_blob_key,
)
from mailbox_bridge.config import Settings
from mailbox_bridge.driver.base import MailManager
from mailbox_bridge.exceptions import NotFoundError
from mailbox_bridge.models import (
    OutgoingMessage,
    SentMessage,
    Thread,
    ThreadLabel,
    ThreadList,
    ThreadStub,
)
from mailbox_bridge.utils import with_retry

logger = structlog.get_logger()

T = TypeVar("T")

# Providers that archive by moving to a folder rather than dropping INBOX.
_ARCHIVE_BY_MOVE = frozenset({"imapAndSmtp"})

# Separates the timestamp and the thread id in a cache page token.
_CURSOR_SEP = "|"


def _encode_cursor(row: ThreadRow) -> str:
    return f"{row.latest_received_on}{_CURSOR_SEP}{row.id}"


def _decode_cursor(token: str | None) -> tuple[str | None, str | None]:
    """Split a page token into ``(received_on, thread_id)``.

    A bare timestamp is accepted and pages strictly before it.
    """

    if not token:
        return None, None
    received_on, sep, thread_id = token.partition(_CURSOR_SEP)
    return received_on, thread_id if sep else None


@dataclass(frozen=True)
class SyncResult:
    """Outcome of a folder sync."""

    synced: int
    message: str


@dataclass(frozen=True)
class ThreadSyncOutcome:
    """Outcome of a single thread sync."""

    success: bool
    thread_id: str
    reason: str | None = None


class GuardSet:
    """A set of in-progress keys with an atomic check-then-add."""

    def __init__(self) -> None:
        self._keys: set[str] = set()
        self._lock = threading.Lock()

    def try_acquire(self, key: str) -> bool:
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._keys.discard(key)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)


class ThreadSyncEngine:
    """Keeps the thread cache of one connection in step with its provider."""

    def __init__(
        self,
        driver: MailManager,
        repository: ThreadCacheRepository,
        blobs: FileSystemBlobStore,
        connection_id: str,
        provider_id: str | None = None,
        settings: Settings | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        from mailbox_bridge.config import get_settings

        self.driver = driver
        self.repository = repository
        self.blobs = blobs
        self.connection_id = connection_id
        self.provider_id = provider_id or driver.provider_id
        self.settings = settings or get_settings()
        self._sleep = sleep
        self._folders_in_sync = GuardSet()
        self._threads_in_sync = GuardSet()
        self._thread_sync_done: dict[str, asyncio.Event] = {}
        self._background: set[asyncio.Task[Any]] = set()

    # Sync

    async def stream_threads(self, folder: str, *, guarded: bool = False) -> AsyncIterator[ThreadStub]:
        """Yield thread stubs of ``folder`` page by page.

        Args:
            folder: Folder to list.
            guarded: Stop as soon as the folder's sync guard is released
                (see :meth:`stop_sync`).
        """

        page_token: str | None = None
        while True:
            await self._sleep(self.settings.sync_page_delay)
            page = await self._retry(
                f"list:{folder}",
                partial(
                    self.driver.list,
                    folder,
                    max_results=self.settings.sync_page_size,
                    page_token=page_token,
                ),
            )
            for stub in page.threads:
                if guarded and folder not in self._folders_in_sync:
                    return
                yield stub

            page_token = page.next_page_token
            if page_token is None or not self.settings.sync_loop:
                return
            if guarded and folder not in self._folders_in_sync:
                logger.info("folder_sync_stopped", folder=folder, connection_id=self.connection_id)
                return

    async def sync_threads(self, folder: str) -> SyncResult:
        """Sync every thread of ``folder`` into the cache.

        Per-thread failures are logged and skipped; a listing failure that
        outlives the retry budget propagates.
        """

        if not self._folders_in_sync.try_acquire(folder):
            logger.info("folder_sync_already_running", folder=folder, connection_id=self.connection_id)
            return SyncResult(synced=0, message="Sync already in progress")

        try:
            if not self.settings.sync_loop and self.repository.count() >= self.settings.sync_page_size:
                logger.info("folder_sync_skipped", folder=folder, reason="already_cached")
                return SyncResult(synced=0, message="Threads already synced")

            logger.info("folder_sync_started", folder=folder, connection_id=self.connection_id)
            synced = 0
            async for stub in self.stream_threads(folder, guarded=True):
                await self._sleep(self.settings.sync_thread_delay)
                try:
                    outcome = await self.sync_thread(stub.id)
                except Exception as exc:  # noqa: BLE001
                    logger.error(
                        "thread_sync_failed",
                        thread_id=stub.id,
                        folder=folder,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    continue
                if outcome.success:
                    synced += 1

            logger.info("folder_sync_completed", folder=folder, synced=synced)
            return SyncResult(synced=synced, message=f"Synced {synced} threads")
        except Exception as exc:
            logger.exception("folder_sync_failed", folder=folder, error=str(exc))
            raise
        finally:
            self._folders_in_sync.release(folder)

    async def sync_thread(self, thread_id: str) -> ThreadSyncOutcome:
        """Fetch one thread and write it to the blob store and the cache.

        Raises:
            StandardizedError: If the provider fetch fails after retries.
        """

        if not self._threads_in_sync.try_acquire(thread_id):
            logger.debug("thread_sync_already_running", thread_id=thread_id)
            return ThreadSyncOutcome(False, thread_id, "Sync already in progress")

        done = self._thread_sync_done[thread_id] = asyncio.Event()
        try:
            thread = await self._retry(f"get:{thread_id}", partial(self.driver.get, thread_id))
            latest = thread.latest
            if latest is None:
                logger.info("thread_sync_skipped", thread_id=thread_id, reason="no_latest_message")
                return ThreadSyncOutcome(False, thread_id, "No latest message")

            self.blobs.put(thread_blob_key(self.connection_id, thread_id), thread.model_dump_json())
            self.repository.upsert(
                ThreadRow(
                    id=thread_id,
                    thread_id=thread_id,
                    provider_id=self.provider_id,
                    latest_sender=latest.sender.model_dump(),
                    latest_received_on=normalize_timestamp(latest.received_on),
                    latest_subject=latest.subject,
                    latest_label_ids=[tag.id for tag in latest.tags],
                )
            )
            logger.debug("thread_synced", thread_id=thread_id, messages=len(thread.messages))
            return ThreadSyncOutcome(True, thread_id)
        finally:
            self._threads_in_sync.release(thread_id)
            self._thread_sync_done.pop(thread_id, None)
            done.set()

    def stop_sync(self, folder: str) -> None:
        """Ask a running folder sync to stop after the current thread."""

        self._folders_in_sync.release(folder)

    def is_syncing(self, folder: str) -> bool:
        return folder in self._folders_in_sync

    # Read path

    async def get_thread_from_db(self, thread_id: str, *, last_attempt: bool = False) -> Thread:
        """Return a cached thread, syncing it once on a cache miss.

        When another task is already syncing the thread, the miss waits for
        that sync instead of starting its own.

        Raises:
            NotFoundError: If the thread is still missing after one sync.
        """

        row = self.repository.get(thread_id)
        blob = self.blobs.get(thread_blob_key(self.connection_id, thread_id)) if row else None
        if row is None or blob is None:
            if last_attempt:
                raise NotFoundError(
                    f"Thread not found in cache: {thread_id}",
                    context={"thread_id": thread_id, "connection_id": self.connection_id},
                )
            logger.info("thread_cache_miss", thread_id=thread_id)
            outcome = await self.sync_thread(thread_id)
            in_flight = self._thread_sync_done.get(thread_id)
            if not outcome.success and in_flight is not None:
                # Another task is syncing this thread; read its result.
                await in_flight.wait()
            return await self.get_thread_from_db(thread_id, last_attempt=True)

        messages = Thread.model_validate_json(blob).messages
        sent = [m for m in messages if not m.is_draft]
        return Thread(
            messages=messages,
            latest=sent[-1] if sent else None,
            has_unread=folders.UNREAD_LABEL in row.latest_label_ids,
            total_replies=len(sent),
            labels=[ThreadLabel(id=label_id, name=label_id) for label_id in row.latest_label_ids],
        )

    async def list_threads_from_db(
        self,
        folder: str | None = folders.INBOX,
        query: str | None = None,
        max_results: int = 50,
        label_ids: list[str] | None = None,
        page_token: str | None = None,
    ) -> ThreadList:
        """List cached threads newest first, paged by received timestamp.

        An empty folder schedules a background sync of that folder.
        """

        folder_label = folders.system_label_id(folder)
        if folder and self.repository.count(folder_label) == 0:
            self._spawn(self.sync_threads(folder))

        before, before_id = _decode_cursor(page_token)
        rows = self.repository.list(
            folder_label=folder_label,
            label_ids=label_ids,
            query=query,
            before=before,
            before_id=before_id,
            limit=max_results,
        )
        stubs = [
            ThreadStub(
                id=row.id,
                raw={
                    "latest_received_on": row.latest_received_on,
                    "latest_subject": row.latest_subject,
                    "latest_sender": row.latest_sender,
                    "latest_label_ids": row.latest_label_ids,
                },
            )
            for row in rows
        ]
        next_page_token = _encode_cursor(rows[-1]) if rows and len(rows) == max_results else None
        return ThreadList(threads=stubs, next_page_token=next_page_token)

    def thread_count(self) -> int:
        return self.repository.count()

    def folder_thread_count(self, folder: str) -> int:
        return self.repository.count(folders.system_label_id(folder))

    def delete_thread(self, thread_id: str) -> bool:
        """Drop a thread from the cache (row and blob)."""

        removed = self.repository.delete(thread_id)
        self.blobs.delete(thread_blob_key(self.connection_id, thread_id))
        return removed

    # Mutations (provider first, then refresh)

    async def modify_labels(
        self,
        thread_ids: list[str],
        add_labels: list[str] | None = None,
        remove_labels: list[str] | None = None,
    ) -> None:
        ids = self.driver.normalize_ids(thread_ids)
        await self.driver.modify_labels(ids, add_labels or [], remove_labels or [])
        await self._refresh(ids)

    async def mark_as_read(self, thread_ids: list[str]) -> None:
        ids = self.driver.normalize_ids(thread_ids)
        await self.driver.mark_as_read(ids)
        await self._refresh(ids)

    async def mark_as_unread(self, thread_ids: list[str]) -> None:
        ids = self.driver.normalize_ids(thread_ids)
        await self.driver.mark_as_unread(ids)
        await self._refresh(ids)

    async def bulk_delete(self, thread_ids: list[str]) -> None:
        await self.modify_labels(thread_ids, [folders.TRASH_LABEL], [])

    async def bulk_archive(self, thread_ids: list[str]) -> None:
        inbox = folders.SYSTEM_LABEL_IDS[folders.INBOX]
        if self.provider_id in _ARCHIVE_BY_MOVE:
            await self.modify_labels(thread_ids, [folders.ARCHIVE], [inbox])
        else:
            await self.modify_labels(thread_ids, [], [inbox])

    async def delete(self, thread_id: str) -> None:
        ids = self.driver.normalize_ids([thread_id])
        await self.driver.delete(ids[0])
        await self._refresh(ids)

    async def create(self, data: OutgoingMessage) -> SentMessage:
        sent = await self.driver.create(data)
        if data.thread_id:
            await self._refresh([data.thread_id])
        return sent

    async def send_draft(self, draft_id: str, data: OutgoingMessage | None = None) -> None:
        await self.driver.send_draft(draft_id, data)
        if data is not None and data.thread_id:
            await self._refresh([data.thread_id])

    async def close(self) -> None:
        """Wait for background syncs, then release the driver."""

        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        await self.driver.close()

    # Internals

    async def _retry(self, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        return await with_retry(
            operation,
            max_attempts=self.settings.rate_limit_max_attempts,
            delay=self.settings.rate_limit_delay,
            sleep=self._sleep,
            name=name,
        )

    async def _refresh(self, thread_ids: list[str]) -> None:
        if not self.settings.refresh_after_mutation:
            return
        for thread_id in thread_ids:
            try:
                await self.sync_thread(thread_id)
            except NotFoundError:
                logger.info("thread_gone_after_mutation", thread_id=thread_id)
                self.delete_thread(thread_id)
            except Exception as exc:  # noqa: BLE001
                logger.warning("thread_refresh_failed", thread_id=thread_id, error=str(exc))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("background_sync_failed", error=str(exc), error_type=type(exc).__name__)
