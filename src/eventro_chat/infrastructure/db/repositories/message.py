from __future__ import annotations

from datetime import datetime

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from eventro_chat.application.pagination import MessageCursor
from eventro_chat.domain.entities.message import Message
from eventro_chat.domain.value_objects.enums import ProfileVisibility
from eventro_chat.infrastructure.db.mappers import message as mapper
from eventro_chat.infrastructure.db.models.message import MessageModel
from eventro_chat.infrastructure.db.models.user import UserModel


def _only_public_senders(stmt: Select) -> Select:
    return stmt.join(UserModel, UserModel.id == MessageModel.sender_id).where(
        UserModel.profile_visibility == ProfileVisibility.PUBLIC.value
    )


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, message_id: int) -> Message | None:
        result = await self._session.get(MessageModel, message_id)
        return mapper.model_to_entity(result) if result else None

    async def list_before(
        self,
        conversation_id: int,
        *,
        before: MessageCursor | None = None,
        limit: int = 50,
        include_deleted: bool = False,
        public_senders_only: bool = False,
    ) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_id == conversation_id)
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .limit(limit)
        )
        if not include_deleted:
            stmt = stmt.where(MessageModel.is_deleted.is_(False))
        if public_senders_only:
            stmt = _only_public_senders(stmt)
        if before:
            ts, mid = before
            stmt = stmt.where(
                (MessageModel.created_at < ts)
                | ((MessageModel.created_at == ts) & (MessageModel.id < mid))
            )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def count_unread(
        self,
        conversation_id: int,
        user_id: int,
        since: datetime | None,
        *,
        public_senders_only: bool = False,
    ) -> int:
        stmt = (
            select(func.count(MessageModel.id))
            .where(
                MessageModel.conversation_id == conversation_id,
                MessageModel.is_deleted.is_(False),
                MessageModel.sender_id != user_id,
            )
        )
        if since is not None:
            stmt = stmt.where(MessageModel.created_at > since)
        if public_senders_only:
            stmt = _only_public_senders(stmt)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        conversation_id: int,
        sender_id: int,
        content: str,
        created_at: datetime,
    ) -> Message:
        model = MessageModel(
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            created_at=created_at,
            is_deleted=False,
        )
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def mark_deleted(self, message_id: int) -> None:
        stmt = (
            update(MessageModel)
            .where(MessageModel.id == message_id)
            .values(is_deleted=True)
        )
        await self._session.execute(stmt)
