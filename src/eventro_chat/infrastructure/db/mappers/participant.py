from __future__ import annotations

from eventro_chat.domain.entities.participant import Participant
from eventro_chat.infrastructure.db.models.participant import ParticipantModel


def model_to_entity(model: ParticipantModel) -> Participant:
    return Participant(
        conversation_id=model.conversation_id,
        user_id=model.user_id,
        is_active=model.is_active,
        last_read_at=model.last_read_at,
        joined_at=model.joined_at,
    )


def entity_to_model(entity: Participant) -> ParticipantModel:
    return ParticipantModel(
        conversation_id=entity.conversation_id,
        user_id=entity.user_id,
        is_active=entity.is_active,
        last_read_at=entity.last_read_at,
        joined_at=entity.joined_at,
    )
