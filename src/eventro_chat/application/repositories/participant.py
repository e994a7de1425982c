from __future__ import annotations

from datetime import datetime
from typing import Protocol

from eventro_chat.domain.entities.participant import Participant


class ParticipantReader(Protocol):
    async def get(self, conversation_id: int, user_id: int) -> Participant | None: ...

    async def is_active_participant(self, conversation_id: int, user_id: int) -> bool: ...

    async def list_participants(
        self, conversation_id: int, *, active_only: bool = True
    ) -> list[Participant]: ...

    async def list_conversation_ids(self, user_id: int) -> list[int]:
        """Ids of conversations where the user is an active participant."""
        ...


class ParticipantWriter(Protocol):
    async def add(self, participant: Participant) -> None: ...

    async def set_active(self, conversation_id: int, user_id: int, is_active: bool) -> None: ...

    async def touch_last_read(self, conversation_id: int, user_id: int, ts: datetime) -> None: ...
