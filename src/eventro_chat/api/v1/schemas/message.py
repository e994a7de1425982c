from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from eventro_chat.api.v1.schemas.common import CursorPagination


class SendMessageRequest(BaseModel):
    conversation_id: int
    sender_id: int
    content: str


class MessageResponse(BaseModel):
    id: int
    conversation_id: int
    sender_id: int
    content: str
    created_at: datetime
    is_deleted: bool

    model_config = {"from_attributes": True}


class MessageListResponse(BaseModel):
    messages: list[MessageResponse]
    pagination: CursorPagination


class DeleteMessageResponse(BaseModel):
    id: int
    is_deleted: bool = True


class MarkReadResponse(BaseModel):
    last_read_at: datetime


class UnreadCountResponse(BaseModel):
    unread_count: int
