from __future__ import annotations

from datetime import datetime
from typing import Protocol

from eventro_chat.domain.entities.conversation import Conversation


class ConversationReader(Protocol):
    async def get_by_id(self, conversation_id: int) -> Conversation | None: ...

    async def list_for_user(self, user_id: int, *, limit: int = 50) -> list[Conversation]:
        """Conversations the user actively participates in, most recent activity first."""
        ...


class ConversationWriter(Protocol):
    async def create(self, event_id: int | None, created_at: datetime) -> Conversation: ...

    async def touch_last_message_at(self, conversation_id: int, ts: datetime) -> None: ...
