from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Callable, Protocol

from eventro_chat.application.repositories.conversation import (
    ConversationReader,
    ConversationWriter,
)
from eventro_chat.application.repositories.message import MessageReader, MessageWriter
from eventro_chat.application.repositories.outbox import OutboxWriter
from eventro_chat.application.repositories.participant import (
    ParticipantReader,
    ParticipantWriter,
)
from eventro_chat.application.repositories.user import UserReader


class UnitOfWork(Protocol):
    users: UserReader
    conversations: ConversationReader
    conversations_w: ConversationWriter
    participants: ParticipantReader
    participants_w: ParticipantWriter
    messages: MessageReader
    messages_w: MessageWriter
    outbox: OutboxWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...


# Opens a fresh unit of work per call; used by long-lived WebSocket code.
UoWFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]
