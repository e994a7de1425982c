from __future__ import annotations

from dataclasses import dataclass

from eventro_chat.domain.entities.conversation import Conversation
from eventro_chat.domain.entities.participant import Participant
from eventro_chat.domain.entities.user import User


@dataclass(frozen=True, slots=True)
class ConversationSummaryDTO:
    conversation: Conversation
    unread_count: int


@dataclass(frozen=True, slots=True)
class ParticipantViewDTO:
    participant: Participant
    user: User | None
