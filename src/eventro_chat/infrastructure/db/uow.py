from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from types import TracebackType
from typing import AsyncIterator, Self

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from eventro_chat.infrastructure.db.repositories.conversation import (
    ConversationReaderRepo,
    ConversationWriterRepo,
)
from eventro_chat.infrastructure.db.repositories.message import (
    MessageReaderRepo,
    MessageWriterRepo,
)
from eventro_chat.infrastructure.db.repositories.outbox import OutboxWriterRepo
from eventro_chat.infrastructure.db.repositories.participant import (
    ParticipantReaderRepo,
    ParticipantWriterRepo,
)
from eventro_chat.infrastructure.db.repositories.user import UserReaderRepo
from eventro_chat.infrastructure.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)


class SqlAlchemyUoW:
    """One AsyncSession, one transaction. Work not committed is rolled back on exit."""

    users: UserReaderRepo
    conversations: ConversationReaderRepo
    conversations_w: ConversationWriterRepo
    participants: ParticipantReaderRepo
    participants_w: ParticipantWriterRepo
    messages: MessageReaderRepo
    messages_w: MessageWriterRepo
    outbox: OutboxWriterRepo

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.users = UserReaderRepo(session)
        self.conversations = ConversationReaderRepo(session)
        self.conversations_w = ConversationWriterRepo(session)
        self.participants = ParticipantReaderRepo(session)
        self.participants_w = ParticipantWriterRepo(session)
        self.messages = MessageReaderRepo(session)
        self.messages_w = MessageWriterRepo(session)
        self.outbox = OutboxWriterRepo(session)

    async def flush(self) -> None:
        await self._session.flush()

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._session.in_transaction():
            if exc_type is not None:
                logger.debug("Rolling back after %s", exc_type.__name__)
            await self.rollback()


@asynccontextmanager
async def open_uow(
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
) -> AsyncIterator[SqlAlchemyUoW]:
    """Session-per-operation factory, used by the hub, REST routes and the outbox worker."""
    async with session_factory() as session:
        async with SqlAlchemyUoW(session) as uow:
            yield uow
