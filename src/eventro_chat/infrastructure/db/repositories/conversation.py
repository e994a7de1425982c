from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from eventro_chat.domain.entities.conversation import Conversation
from eventro_chat.infrastructure.db.mappers import conversation as mapper
from eventro_chat.infrastructure.db.models.conversation import ConversationModel
from eventro_chat.infrastructure.db.models.participant import ParticipantModel


class ConversationReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, conversation_id: int) -> Conversation | None:
        result = await self._session.get(ConversationModel, conversation_id)
        return mapper.model_to_entity(result) if result else None

    async def list_for_user(self, user_id: int, *, limit: int = 50) -> list[Conversation]:
        stmt = (
            select(ConversationModel)
            .join(
                ParticipantModel,
                ParticipantModel.conversation_id == ConversationModel.id,
            )
            .where(
                ParticipantModel.user_id == user_id,
                ParticipantModel.is_active.is_(True),
            )
            .order_by(
                ConversationModel.last_message_at.desc().nullslast(),
                ConversationModel.id.desc(),
            )
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class ConversationWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, event_id: int | None, created_at: datetime) -> Conversation:
        model = ConversationModel(
            event_id=event_id,
            created_at=created_at,
            updated_at=created_at,
        )
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def touch_last_message_at(self, conversation_id: int, ts: datetime) -> None:
        stmt = (
            update(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .values(last_message_at=ts)
        )
        await self._session.execute(stmt)
