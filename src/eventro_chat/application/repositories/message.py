from __future__ import annotations

from datetime import datetime
from typing import Protocol

from eventro_chat.application.pagination import MessageCursor
from eventro_chat.domain.entities.message import Message


class MessageReader(Protocol):
    async def get_by_id(self, message_id: int) -> Message | None: ...

    async def list_before(
        self,
        conversation_id: int,
        *,
        before: MessageCursor | None = None,
        limit: int = 50,
        include_deleted: bool = False,
        public_senders_only: bool = False,
    ) -> list[Message]:
        """Newest-first window of messages strictly older than ``before``."""
        ...

    async def count_unread(
        self,
        conversation_id: int,
        user_id: int,
        since: datetime | None,
        *,
        public_senders_only: bool = False,
    ) -> int: ...


class MessageWriter(Protocol):
    async def create(
        self,
        conversation_id: int,
        sender_id: int,
        content: str,
        created_at: datetime,
    ) -> Message: ...

    async def mark_deleted(self, message_id: int) -> None: ...
