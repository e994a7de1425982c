"""Dispatches inbound WebSocket events for an authenticated session."""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Awaitable, Callable

from pydantic import ValidationError as PydanticValidationError

from eventro_chat.application.exceptions import (
    AppError,
    ConflictError,
    NotJoinedError,
    ValidationError,
)
from eventro_chat.application.policies.permissions import assert_participant
from eventro_chat.application.store_calls import StoreRunner
from eventro_chat.domain.entities.message import Message
from eventro_chat.domain.value_objects.enums import VisibilityPolicy
from eventro_chat.infrastructure.ws.protocol import (
    ClientEvent,
    ErrorEvent,
    Joined,
    Left,
    MessageDelivered,
    MessageHistory,
    MessageOut,
    NewMessage,
    Pong,
    ReadReceipt,
    TypingIndicator,
    WsInbound,
)
from eventro_chat.infrastructure.ws.registry import RoomRegistry, Session
from eventro_chat.infrastructure.ws.typing_state import TypingTracker
from eventro_chat.services import message_service
from eventro_chat.services.message_service import DEFAULT_MAX_LENGTH

logger = logging.getLogger(__name__)

Handler = Callable[[Session, WsInbound], Awaitable[None]]


class EventRouter:
    """Every failure is reported to the originating session only, as an
    ``error`` event, and leaves server state unchanged."""

    def __init__(
        self,
        registry: RoomRegistry,
        typing: TypingTracker,
        store: StoreRunner,
        *,
        history_limit: int = 50,
        visibility_policy: VisibilityPolicy = VisibilityPolicy.ANY,
        max_message_length: int = DEFAULT_MAX_LENGTH,
    ) -> None:
        self._registry = registry
        self._typing = typing
        self._store = store
        self._history_limit = history_limit
        self._policy = visibility_policy
        self._max_length = max_message_length
        self._handlers: dict[str, Handler] = {
            ClientEvent.AUTHENTICATE: self._on_authenticate,
            ClientEvent.JOIN_CONVERSATION: self._on_join,
            ClientEvent.LEAVE_CONVERSATION: self._on_leave,
            ClientEvent.SEND_MESSAGE: self._on_send,
            ClientEvent.TYPING_START: self._on_typing,
            ClientEvent.TYPING_STOP: self._on_typing,
            ClientEvent.MARK_READ: self._on_mark_read,
            ClientEvent.PING: self._on_ping,
        }

    async def dispatch(self, session: Session, raw: str) -> None:
        try:
            event = WsInbound.model_validate_json(raw)
        except PydanticValidationError:
            await self._send_error(
                session, "Malformed event payload", "invalid_payload", _declared_type(raw),
            )
            return

        handler = self._handlers.get(event.type)
        if handler is None:
            await self._send_error(
                session, f"Unknown event type: {event.type}", "unknown_event", event.type,
            )
            return

        try:
            await handler(session, event)
        except AppError as exc:
            logger.info("Rejected %s from session %s: %s", event.type, session.id, exc.code)
            await self._send_error(session, exc.detail, exc.code, event.type)
        except Exception:
            logger.exception("Unhandled error in %s for session %s", event.type, session.id)
            await self._send_error(
                session, "Message store unavailable", "store_unavailable", event.type,
            )

    # --- fan-out for writes made outside the socket (REST) ---

    async def publish_new_message(self, message: Message) -> None:
        await self._registry.broadcast(
            message.conversation_id, NewMessage(message=MessageOut.of(message)),
        )

    async def publish_read_receipt(
        self,
        conversation_id: int,
        user_id: int,
        timestamp: datetime,
        *,
        exclude_session_id: str | None = None,
    ) -> None:
        await self._registry.broadcast(
            conversation_id,
            ReadReceipt(conversation_id=conversation_id, user_id=user_id, timestamp=timestamp),
            exclude_session_id=exclude_session_id,
        )

    async def publish_participant_left(self, conversation_id: int, user_id: int) -> None:
        """Evict the user's sessions from the room and clear their typing flag."""
        self._registry.remove_user_from_room(user_id, conversation_id)
        if self._typing.stop(conversation_id, user_id):
            await self._broadcast_typing(conversation_id, user_id, False)

    # --- handlers ---

    async def _on_authenticate(self, session: Session, event: WsInbound) -> None:
        raise ConflictError("Session is already authenticated")

    async def _on_ping(self, session: Session, event: WsInbound) -> None:
        await self._registry.send_to_session(session, Pong())

    async def _on_join(self, session: Session, event: WsInbound) -> None:
        conversation_id = self._require_conversation(event)
        # Join before reading so a message committed during the read still reaches
        # this session live; the client dedupes by id. Undone if the read fails.
        rejoin = conversation_id in session.joined_rooms
        self._registry.join(session, conversation_id)
        try:
            # Reading history and marking it read are both safe to repeat.
            page = await self._store.read(
                lambda uow: message_service.open_conversation(
                    conversation_id,
                    session.user_id,
                    self._history_limit,
                    uow,
                    policy=self._policy,
                )
            )
        except Exception:
            if not rejoin:
                self._registry.leave(session, conversation_id)
            raise
        await self._registry.send_to_session(session, Joined(conversation_id=conversation_id))
        await self._registry.send_to_session(
            session,
            MessageHistory(
                conversation_id=conversation_id,
                messages=[MessageOut.of(m) for m in page.messages],
                has_more=page.has_more,
                next_cursor=page.next_cursor,
            ),
        )

    async def _on_leave(self, session: Session, event: WsInbound) -> None:
        conversation_id = self._require_conversation(event)
        if conversation_id not in session.joined_rooms:
            raise NotJoinedError()

        self._registry.leave(session, conversation_id)
        if self._typing.stop(conversation_id, session.user_id):
            await self._broadcast_typing(conversation_id, session.user_id, False, exclude=session)
        await self._registry.send_to_session(session, Left(conversation_id=conversation_id))

    async def _on_send(self, session: Session, event: WsInbound) -> None:
        conversation_id = self._require_conversation(event)
        message = await self._store.write(
            lambda uow: message_service.append(
                conversation_id,
                session.user,
                event.content or "",
                uow,
                policy=self._policy,
                max_length=self._max_length,
            )
        )

        # Committed; safe to fan out.
        await self.publish_new_message(message)
        await self._registry.send_to_session(session, MessageDelivered(message_id=message.id))
        if self._typing.stop(conversation_id, session.user_id):
            await self._broadcast_typing(conversation_id, session.user_id, False, exclude=session)

    async def _on_typing(self, session: Session, event: WsInbound) -> None:
        conversation_id = self._require_conversation(event)
        if conversation_id not in session.joined_rooms:
            raise NotJoinedError()
        await self._store.read(
            lambda uow: assert_participant(uow.participants, session.user_id, conversation_id)
        )

        is_typing = event.type == ClientEvent.TYPING_START
        if is_typing:
            changed = self._typing.start(conversation_id, session.user_id)
        else:
            changed = self._typing.stop(conversation_id, session.user_id)
        if changed:
            await self._broadcast_typing(conversation_id, session.user_id, is_typing, exclude=session)

    async def _on_mark_read(self, session: Session, event: WsInbound) -> None:
        conversation_id = self._require_conversation(event)
        timestamp = await self._store.write(
            lambda uow: message_service.mark_read(conversation_id, session.user_id, uow)
        )
        await self.publish_read_receipt(
            conversation_id, session.user_id, timestamp, exclude_session_id=session.id,
        )

    # --- helpers ---

    async def _broadcast_typing(
        self,
        conversation_id: int,
        user_id: int,
        is_typing: bool,
        *,
        exclude: Session | None = None,
    ) -> None:
        await self._registry.broadcast(
            conversation_id,
            TypingIndicator(conversation_id=conversation_id, user_id=user_id, is_typing=is_typing),
            exclude_session_id=exclude.id if exclude else None,
        )

    async def _send_error(
        self, session: Session, message: str, code: str, request_type: str | None,
    ) -> None:
        await self._registry.send_to_session(
            session, ErrorEvent(message=message, code=code, request_type=request_type),
        )

    @staticmethod
    def _require_conversation(event: WsInbound) -> int:
        if event.conversation_id is None:
            raise ValidationError("conversationId is required")
        return event.conversation_id


def _declared_type(raw: str) -> str | None:
    """The ``type`` field of a frame that failed validation, if it has a usable one."""
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    declared = data.get("type") if isinstance(data, dict) else None
    return declared if isinstance(declared, str) else None
