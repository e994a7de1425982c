from __future__ import annotations

from fastapi import APIRouter, Query

from eventro_chat.api.deps import CurrentUser, HubDep, StoreDep
from eventro_chat.api.v1.schemas.common import CursorPagination, UserRef
from eventro_chat.api.v1.schemas.message import (
    DeleteMessageResponse,
    MarkReadResponse,
    MessageListResponse,
    MessageResponse,
    SendMessageRequest,
    UnreadCountResponse,
)
from eventro_chat.application.policies.permissions import assert_same_user
from eventro_chat.services import message_service

router = APIRouter(prefix="/api/v1", tags=["messages"])


@router.get("/conversation/{conversation_id}/messages", response_model=MessageListResponse)
async def list_messages(
    conversation_id: int,
    user: CurrentUser,
    hub: HubDep,
    user_id: int | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    before: str | None = Query(None),
) -> MessageListResponse:
    if user_id is not None:
        assert_same_user(user.id, user_id)
    page = await hub.store.read(
        lambda uow: message_service.list_messages(
            conversation_id,
            user.id,
            limit,
            uow,
            before=before,
            policy=hub.settings.MESSAGING_VISIBILITY_POLICY,
        )
    )
    return MessageListResponse(
        messages=[MessageResponse.model_validate(m) for m in page.messages],
        pagination=CursorPagination(
            limit=limit,
            has_more=page.has_more,
            next_cursor=page.next_cursor,
        ),
    )


@router.post("/conversation/message/send", response_model=MessageResponse, status_code=201)
async def send_message(
    body: SendMessageRequest,
    user: CurrentUser,
    hub: HubDep,
) -> MessageResponse:
    assert_same_user(user.id, body.sender_id)
    msg = await hub.store.write(
        lambda uow: message_service.append(
            body.conversation_id,
            user,
            body.content,
            uow,
            policy=hub.settings.MESSAGING_VISIBILITY_POLICY,
            max_length=hub.settings.MAX_MESSAGE_LENGTH,
        )
    )
    await hub.router.publish_new_message(msg)
    return MessageResponse.model_validate(msg)


@router.delete("/message/{message_id}", response_model=DeleteMessageResponse)
async def delete_message(
    message_id: int,
    body: UserRef,
    user: CurrentUser,
    store: StoreDep,
) -> DeleteMessageResponse:
    assert_same_user(user.id, body.user_id)
    msg = await store.write(lambda uow: message_service.soft_delete(message_id, user.id, uow))
    return DeleteMessageResponse(id=msg.id)


@router.post("/conversation/{conversation_id}/mark-read", response_model=MarkReadResponse)
async def mark_read(
    conversation_id: int,
    body: UserRef,
    user: CurrentUser,
    hub: HubDep,
) -> MarkReadResponse:
    assert_same_user(user.id, body.user_id)
    last_read_at = await hub.store.write(
        lambda uow: message_service.mark_read(conversation_id, user.id, uow)
    )
    await hub.router.publish_read_receipt(conversation_id, user.id, last_read_at)
    return MarkReadResponse(last_read_at=last_read_at)


@router.get(
    "/conversation/{conversation_id}/unread/{user_id}",
    response_model=UnreadCountResponse,
)
async def unread_count(
    conversation_id: int,
    user_id: int,
    user: CurrentUser,
    hub: HubDep,
) -> UnreadCountResponse:
    assert_same_user(user.id, user_id)
    count = await hub.store.read(
        lambda uow: message_service.unread_count(
            conversation_id,
            user.id,
            uow,
            policy=hub.settings.MESSAGING_VISIBILITY_POLICY,
        )
    )
    return UnreadCountResponse(unread_count=count)
