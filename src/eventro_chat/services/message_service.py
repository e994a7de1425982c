from __future__ import annotations

from datetime import datetime, timezone

from eventro_chat.application.dto.message import MessagePage
from eventro_chat.application.exceptions import (
    EmptyContentError,
    ForbiddenError,
    NotAParticipantError,
    NotFoundError,
    ValidationError,
)
from eventro_chat.application.pagination import cursor_for, decode_cursor
from eventro_chat.application.policies.permissions import (
    assert_can_send,
    assert_participant,
    public_senders_only,
)
from eventro_chat.application.uow import UnitOfWork
from eventro_chat.domain.entities.message import Message
from eventro_chat.domain.entities.user import User
from eventro_chat.domain.value_objects.enums import VisibilityPolicy

DEFAULT_MAX_LENGTH = 4000


async def append(
    conversation_id: int,
    sender: User,
    content: str,
    uow: UnitOfWork,
    *,
    policy: VisibilityPolicy = VisibilityPolicy.ANY,
    max_length: int = DEFAULT_MAX_LENGTH,
) -> Message:
    """Persist a message and advance the sender's read cursor in one transaction."""
    if not content or not content.strip():
        raise EmptyContentError()
    if len(content) > max_length:
        raise ValidationError(f"Message content exceeds {max_length} characters")

    await assert_participant(uow.participants, sender.id, conversation_id)
    assert_can_send(sender, policy)

    now = datetime.now(timezone.utc)
    msg = await uow.messages_w.create(conversation_id, sender.id, content, now)
    await uow.participants_w.touch_last_read(conversation_id, sender.id, msg.created_at)
    await uow.conversations_w.touch_last_message_at(conversation_id, msg.created_at)
    await uow.outbox.add(
        "chat.message_created",
        {
            "message_id": msg.id,
            "conversation_id": msg.conversation_id,
            "sender_id": msg.sender_id,
            "content": msg.content,
            "created_at": msg.created_at.isoformat(),
        },
    )
    await uow.commit()
    return msg


async def recent(
    conversation_id: int,
    limit: int,
    uow: UnitOfWork,
    *,
    before: str | None = None,
    include_deleted: bool = False,
    policy: VisibilityPolicy = VisibilityPolicy.ANY,
) -> MessagePage:
    """Return up to ``limit`` messages older than ``before`` (or now), oldest first."""
    cursor = decode_cursor(before) if before else None
    rows = await uow.messages.list_before(
        conversation_id,
        before=cursor,
        limit=limit + 1,
        include_deleted=include_deleted,
        public_senders_only=public_senders_only(policy),
    )
    has_more = len(rows) > limit
    window = list(reversed(rows[:limit]))
    next_cursor = cursor_for(window[0]) if has_more and window else None
    return MessagePage(messages=window, has_more=has_more, next_cursor=next_cursor)


async def list_messages(
    conversation_id: int,
    user_id: int,
    limit: int,
    uow: UnitOfWork,
    *,
    before: str | None = None,
    policy: VisibilityPolicy = VisibilityPolicy.ANY,
) -> MessagePage:
    await assert_participant(uow.participants, user_id, conversation_id)
    return await recent(conversation_id, limit, uow, before=before, policy=policy)


async def open_conversation(
    conversation_id: int,
    user_id: int,
    limit: int,
    uow: UnitOfWork,
    *,
    policy: VisibilityPolicy = VisibilityPolicy.ANY,
) -> MessagePage:
    """History for a joining session; viewing the conversation marks it read."""
    await assert_participant(uow.participants, user_id, conversation_id)
    page = await recent(conversation_id, limit, uow, policy=policy)
    await uow.participants_w.touch_last_read(
        conversation_id, user_id, datetime.now(timezone.utc),
    )
    await uow.commit()
    return page


async def soft_delete(message_id: int, requester_id: int, uow: UnitOfWork) -> Message:
    """Flag a message as deleted. Deleting an already-deleted message is a no-op."""
    msg = await uow.messages.get_by_id(message_id)
    if msg is None:
        raise NotFoundError("Message not found")
    if msg.sender_id != requester_id:
        raise ForbiddenError("You can only delete your own messages")
    if msg.is_deleted:
        return msg

    await uow.messages_w.mark_deleted(message_id)
    await uow.outbox.add(
        "chat.message_deleted",
        {
            "message_id": msg.id,
            "conversation_id": msg.conversation_id,
            "sender_id": msg.sender_id,
        },
    )
    await uow.commit()
    return msg


async def mark_read(conversation_id: int, user_id: int, uow: UnitOfWork) -> datetime:
    await assert_participant(uow.participants, user_id, conversation_id)
    now = datetime.now(timezone.utc)
    await uow.participants_w.touch_last_read(conversation_id, user_id, now)
    await uow.commit()
    return now


async def unread_count(
    conversation_id: int,
    user_id: int,
    uow: UnitOfWork,
    *,
    policy: VisibilityPolicy = VisibilityPolicy.ANY,
) -> int:
    participant = await uow.participants.get(conversation_id, user_id)
    if participant is None or not participant.is_active:
        raise NotAParticipantError()
    return await uow.messages.count_unread(
        conversation_id,
        user_id,
        participant.last_read_at,
        public_senders_only=public_senders_only(policy),
    )
