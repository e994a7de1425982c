from __future__ import annotations

from datetime import datetime, timezone

from eventro_chat.application.dto.conversation import (
    ConversationSummaryDTO,
    ParticipantViewDTO,
)
from eventro_chat.application.exceptions import NotFoundError, ValidationError
from eventro_chat.application.policies.permissions import (
    assert_participant,
    public_senders_only,
)
from eventro_chat.application.uow import UnitOfWork
from eventro_chat.domain.entities.conversation import Conversation
from eventro_chat.domain.entities.participant import Participant
from eventro_chat.domain.value_objects.enums import VisibilityPolicy


async def create_conversation(
    creator_id: int,
    participant_ids: list[int],
    event_id: int | None,
    uow: UnitOfWork,
) -> Conversation:
    """Create a conversation between the creator and at least one other user."""
    member_ids = list(dict.fromkeys([creator_id, *participant_ids]))
    if len(member_ids) < 2:
        raise ValidationError("A conversation needs at least two distinct participants")

    users = await uow.users.get_many(member_ids)
    missing = set(member_ids) - {u.id for u in users}
    if missing:
        raise NotFoundError(f"Unknown users: {sorted(missing)}")

    now = datetime.now(timezone.utc)
    conversation = await uow.conversations_w.create(event_id, now)
    for user_id in member_ids:
        await uow.participants_w.add(
            Participant(
                conversation_id=conversation.id,
                user_id=user_id,
                is_active=True,
                last_read_at=now if user_id == creator_id else None,
                joined_at=now,
            )
        )

    await uow.outbox.add(
        "chat.conversation_created",
        {
            "conversation_id": conversation.id,
            "event_id": event_id,
            "creator_id": creator_id,
            "participant_ids": member_ids,
        },
    )
    await uow.commit()
    return conversation


async def leave_conversation(conversation_id: int, user_id: int, uow: UnitOfWork) -> None:
    """Deactivate the membership; the row and its history are retained."""
    await assert_participant(uow.participants, user_id, conversation_id)
    await uow.participants_w.set_active(conversation_id, user_id, False)
    await uow.outbox.add(
        "chat.participant_left",
        {"conversation_id": conversation_id, "user_id": user_id},
    )
    await uow.commit()


async def invite_participant(
    conversation_id: int,
    inviter_id: int,
    user_id: int,
    uow: UnitOfWork,
) -> Participant:
    await assert_participant(uow.participants, inviter_id, conversation_id)
    if await uow.users.get_by_id(user_id) is None:
        raise NotFoundError("User not found")

    existing = await uow.participants.get(conversation_id, user_id)
    if existing is not None:
        if not existing.is_active:
            await uow.participants_w.set_active(conversation_id, user_id, True)
            await uow.commit()
        return await uow.participants.get(conversation_id, user_id)  # type: ignore[return-value]

    participant = Participant(
        conversation_id=conversation_id,
        user_id=user_id,
        is_active=True,
        last_read_at=None,
        joined_at=datetime.now(timezone.utc),
    )
    await uow.participants_w.add(participant)
    await uow.commit()
    return participant


async def list_participants(
    conversation_id: int,
    requester_id: int,
    uow: UnitOfWork,
) -> list[ParticipantViewDTO]:
    await assert_participant(uow.participants, requester_id, conversation_id)
    participants = await uow.participants.list_participants(conversation_id)
    users = {u.id: u for u in await uow.users.get_many([p.user_id for p in participants])}
    return [ParticipantViewDTO(participant=p, user=users.get(p.user_id)) for p in participants]


async def list_user_conversations(
    user_id: int,
    limit: int,
    uow: UnitOfWork,
    *,
    policy: VisibilityPolicy = VisibilityPolicy.ANY,
) -> list[ConversationSummaryDTO]:
    conversations = await uow.conversations.list_for_user(user_id, limit=limit)
    summaries: list[ConversationSummaryDTO] = []
    for conv in conversations:
        participant = await uow.participants.get(conv.id, user_id)
        if participant is None:
            continue
        unread = await uow.messages.count_unread(
            conv.id,
            user_id,
            participant.last_read_at,
            public_senders_only=public_senders_only(policy),
        )
        summaries.append(ConversationSummaryDTO(conversation=conv, unread_count=unread))
    return summaries


async def presence_audience(user_id: int, uow: UnitOfWork) -> list[int]:
    """Other active participants of every conversation the user is active in."""
    audience: set[int] = set()
    for conversation_id in await uow.participants.list_conversation_ids(user_id):
        for participant in await uow.participants.list_participants(conversation_id):
            audience.add(participant.user_id)
    audience.discard(user_id)
    return sorted(audience)
