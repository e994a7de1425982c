from __future__ import annotations

from fastapi import APIRouter, Query

from eventro_chat.api.deps import CurrentUser, HubDep, StoreDep
from eventro_chat.api.v1.schemas.conversation import (
    ConversationResponse,
    ConversationSummaryResponse,
    CreateConversationRequest,
    InviteParticipantRequest,
    ParticipantResponse,
)
from eventro_chat.application.policies.permissions import assert_same_user
from eventro_chat.services import conversation_service

router = APIRouter(prefix="/api/v1/conversation", tags=["conversations"])


@router.post("", response_model=ConversationResponse, status_code=201)
async def create_conversation(
    body: CreateConversationRequest,
    user: CurrentUser,
    store: StoreDep,
) -> ConversationResponse:
    conv = await store.write(
        lambda uow: conversation_service.create_conversation(
            user.id, body.participant_ids, body.event_id, uow,
        )
    )
    return ConversationResponse.model_validate(conv)


@router.get("/user/{user_id}", response_model=list[ConversationSummaryResponse])
async def list_user_conversations(
    user_id: int,
    user: CurrentUser,
    hub: HubDep,
    limit: int = Query(50, ge=1, le=200),
) -> list[ConversationSummaryResponse]:
    assert_same_user(user.id, user_id)
    summaries = await hub.store.read(
        lambda uow: conversation_service.list_user_conversations(
            user.id, limit, uow, policy=hub.settings.MESSAGING_VISIBILITY_POLICY,
        )
    )
    return [
        ConversationSummaryResponse(
            **ConversationResponse.model_validate(s.conversation).model_dump(),
            unread_count=s.unread_count,
        )
        for s in summaries
    ]


@router.get("/{conversation_id}/participants", response_model=list[ParticipantResponse])
async def list_participants(
    conversation_id: int,
    user: CurrentUser,
    hub: HubDep,
) -> list[ParticipantResponse]:
    views = await hub.store.read(
        lambda uow: conversation_service.list_participants(conversation_id, user.id, uow)
    )
    return [
        ParticipantResponse(
            user_id=v.participant.user_id,
            display_name=v.user.display_name if v.user else None,
            avatar_ref=v.user.avatar_ref if v.user else None,
            is_active=v.participant.is_active,
            last_read_at=v.participant.last_read_at,
            joined_at=v.participant.joined_at,
            is_online=hub.presence.is_user_online(v.participant.user_id),
        )
        for v in views
    ]


@router.post("/{conversation_id}/participants", response_model=ParticipantResponse, status_code=201)
async def invite_participant(
    conversation_id: int,
    body: InviteParticipantRequest,
    user: CurrentUser,
    hub: HubDep,
) -> ParticipantResponse:
    participant = await hub.store.write(
        lambda uow: conversation_service.invite_participant(
            conversation_id, user.id, body.user_id, uow,
        )
    )
    invited = await hub.store.read(lambda uow: uow.users.get_by_id(body.user_id))
    return ParticipantResponse(
        user_id=participant.user_id,
        display_name=invited.display_name if invited else None,
        avatar_ref=invited.avatar_ref if invited else None,
        is_active=participant.is_active,
        last_read_at=participant.last_read_at,
        joined_at=participant.joined_at,
        is_online=hub.presence.is_user_online(participant.user_id),
    )


@router.post("/{conversation_id}/leave", status_code=204)
async def leave_conversation(
    conversation_id: int,
    user: CurrentUser,
    hub: HubDep,
) -> None:
    await hub.store.write(
        lambda uow: conversation_service.leave_conversation(conversation_id, user.id, uow)
    )
    await hub.router.publish_participant_left(conversation_id, user.id)
