"""Outlook driver placeholder.

Microsoft connections are accepted by the factory, but no Graph API driver
exists yet: every operation fails with ``UnsupportedProviderError``.
"""

from __future__ import annotations

from typing import NoReturn

from mailbox_bridge.driver.base import MailManager
from mailbox_bridge.exceptions import UnsupportedProviderError
from mailbox_bridge.models import (
    DraftData,
    DraftResult,
    EmailAlias,
    HistoryPage,
    Label,
    LabelCount,
    OutgoingMessage,
    ParsedDraft,
    SentMessage,
    Thread,
    ThreadList,
    UserInfo,
)


class OutlookMailManager(MailManager):
    """Registered stub for the ``microsoft`` provider."""

    provider_id = "microsoft"
    driver_name = "outlook"

    async def _unsupported(self, operation: str) -> NoReturn:
        async def fail() -> NoReturn:
            raise UnsupportedProviderError(
                "The Outlook driver is not implemented",
                code="NOT_IMPLEMENTED",
            )

        return await self._run(operation, fail, {"email": self.config.auth.email})

    async def list(
        self,
        folder: str,
        query: str | None = None,
        max_results: int = 100,
        label_ids: list[str] | None = None,
        page_token: str | int | None = None,
    ) -> ThreadList:
        return await self._unsupported("list")

    async def get(self, id: str) -> Thread:
        return await self._unsupported("get")

    async def create(self, data: OutgoingMessage) -> SentMessage:
        return await self._unsupported("create")

    async def delete(self, id: str) -> None:
        await self._unsupported("delete")

    async def modify_labels(
        self,
        ids: list[str],
        add_labels: list[str] | None = None,
        remove_labels: list[str] | None = None,
    ) -> None:
        await self._unsupported("modify_labels")

    async def mark_as_read(self, ids: list[str]) -> None:
        await self._unsupported("mark_as_read")

    async def mark_as_unread(self, ids: list[str]) -> None:
        await self._unsupported("mark_as_unread")

    async def get_attachment(self, message_id: str, attachment_id: str) -> str | None:
        return await self._unsupported("get_attachment")

    async def get_user_labels(self) -> list[Label]:
        return await self._unsupported("get_user_labels")

    async def get_label(self, label_id: str) -> Label:
        return await self._unsupported("get_label")

    async def create_label(self, label: Label) -> None:
        await self._unsupported("create_label")

    async def update_label(self, label_id: str, label: Label) -> None:
        await self._unsupported("update_label")

    async def delete_label(self, label_id: str) -> None:
        await self._unsupported("delete_label")

    async def create_draft(self, data: DraftData) -> DraftResult:
        return await self._unsupported("create_draft")

    async def get_draft(self, draft_id: str) -> ParsedDraft:
        return await self._unsupported("get_draft")

    async def list_drafts(
        self,
        query: str | None = None,
        max_results: int = 20,
        page_token: str | int | None = None,
    ) -> ThreadList:
        return await self._unsupported("list_drafts")

    async def send_draft(self, draft_id: str, data: OutgoingMessage | None = None) -> None:
        await self._unsupported("send_draft")

    async def count(self) -> list[LabelCount]:
        return await self._unsupported("count")

    async def get_email_aliases(self) -> list[EmailAlias]:
        return await self._unsupported("get_email_aliases")

    async def get_user_info(self) -> UserInfo:
        return await self._unsupported("get_user_info")

    async def list_history(self, history_id: str) -> HistoryPage:
        return await self._unsupported("list_history")

    async def revoke_refresh_token(self, refresh_token: str) -> bool:
        return await self._unsupported("revoke_refresh_token")

    def get_scope(self) -> str:
        return "https://graph.microsoft.com/.default"
