from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from eventro_chat.domain.entities.participant import Participant
from eventro_chat.infrastructure.db.mappers import participant as mapper
from eventro_chat.infrastructure.db.models.participant import ParticipantModel


class ParticipantReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, conversation_id: int, user_id: int) -> Participant | None:
        stmt = select(ParticipantModel).where(
            ParticipantModel.conversation_id == conversation_id,
            ParticipantModel.user_id == user_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def is_active_participant(self, conversation_id: int, user_id: int) -> bool:
        stmt = (
            select(ParticipantModel.id)
            .where(
                ParticipantModel.conversation_id == conversation_id,
                ParticipantModel.user_id == user_id,
                ParticipantModel.is_active.is_(True),
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def list_participants(
        self,
        conversation_id: int,
        *,
        active_only: bool = True,
    ) -> list[Participant]:
        stmt = (
            select(ParticipantModel)
            .where(ParticipantModel.conversation_id == conversation_id)
            .order_by(ParticipantModel.joined_at, ParticipantModel.user_id)
        )
        if active_only:
            stmt = stmt.where(ParticipantModel.is_active.is_(True))
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def list_conversation_ids(self, user_id: int) -> list[int]:
        stmt = select(ParticipantModel.conversation_id).where(
            ParticipantModel.user_id == user_id,
            ParticipantModel.is_active.is_(True),
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class ParticipantWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, participant: Participant) -> None:
        model = mapper.entity_to_model(participant)
        self._session.add(model)
        await self._session.flush()

    async def set_active(self, conversation_id: int, user_id: int, is_active: bool) -> None:
        stmt = (
            update(ParticipantModel)
            .where(
                ParticipantModel.conversation_id == conversation_id,
                ParticipantModel.user_id == user_id,
            )
            .values(is_active=is_active)
        )
        await self._session.execute(stmt)

    async def touch_last_read(self, conversation_id: int, user_id: int, ts: datetime) -> None:
        stmt = (
            update(ParticipantModel)
            .where(
                ParticipantModel.conversation_id == conversation_id,
                ParticipantModel.user_id == user_id,
            )
            .values(last_read_at=ts)
        )
        await self._session.execute(stmt)
