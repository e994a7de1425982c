"""Online/offline notifications derived from the room registry."""
from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from eventro_chat.application.exceptions import StoreTimeoutError
from eventro_chat.application.store_calls import StoreRunner
from eventro_chat.infrastructure.ws.protocol import PresenceChanged, ServerEvent
from eventro_chat.infrastructure.ws.registry import RoomRegistry, Session
from eventro_chat.services import conversation_service

logger = logging.getLogger(__name__)


class PresenceTracker:
    """A user is online while they hold at least one registered session.

    Announcements reach every open session of the user's active co-participants,
    whether or not that session has joined the shared conversation.

    The caller decides whether a session was the first or last one: it reads that
    from ``RoomRegistry.register``/``drop_session`` in the same step that mutates
    the registry, so concurrent opens and closes cannot both claim the transition.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        store: StoreRunner,
    ) -> None:
        self._registry = registry
        self._store = store

    def is_user_online(self, user_id: int) -> bool:
        return self._registry.is_online(user_id)

    async def session_opened(self, session: Session, *, first: bool) -> None:
        if first:
            await self._announce(session.user_id, ServerEvent.USER_ONLINE)

    async def session_closed(self, session: Session, *, last: bool) -> None:
        if last:
            await self._announce(session.user_id, ServerEvent.USER_OFFLINE)

    async def _announce(self, user_id: int, event_type: ServerEvent) -> None:
        try:
            audience = await self._store.read(
                lambda uow: conversation_service.presence_audience(user_id, uow)
            )
        except (StoreTimeoutError, SQLAlchemyError):
            logger.exception("Presence lookup failed for user %s", user_id)
            return

        delivered = await self._registry.send_to_users(
            audience, PresenceChanged(type=event_type, user_id=user_id)
        )
        logger.debug("%s for user %s reached %d sessions", event_type, user_id, delivered)
