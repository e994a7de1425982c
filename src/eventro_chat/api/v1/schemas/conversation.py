from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CreateConversationRequest(BaseModel):
    participant_ids: list[int] = Field(min_length=1)
    event_id: int | None = None


class InviteParticipantRequest(BaseModel):
    user_id: int


class ConversationResponse(BaseModel):
    id: int
    event_id: int | None
    last_message_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ConversationSummaryResponse(ConversationResponse):
    unread_count: int


class ParticipantResponse(BaseModel):
    user_id: int
    display_name: str | None
    avatar_ref: str | None
    is_active: bool
    last_read_at: datetime | None
    joined_at: datetime
    is_online: bool
