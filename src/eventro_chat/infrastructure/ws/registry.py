"""In-process room registry: which sessions are listening to which conversations."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from eventro_chat.domain.entities.user import User
from eventro_chat.infrastructure.ws.protocol import WsOutbound

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """The subset of Starlette's WebSocket the registry needs."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


@dataclass(eq=False, slots=True)
class Session:
    id: str
    user: User
    transport: Transport
    joined_rooms: set[int] = field(default_factory=set)
    opened_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def user_id(self) -> int:
        return self.user.id


class RoomRegistry:
    """Membership here is advisory. Handlers re-check authorization on every write."""

    def __init__(self) -> None:
        self._rooms: dict[int, set[Session]] = {}
        self._by_user: dict[int, set[Session]] = {}

    def register(self, session: Session) -> bool:
        """Track the session. Returns True when it is the user's first one."""
        sessions = self._by_user.setdefault(session.user_id, set())
        first = not sessions
        sessions.add(session)
        logger.debug("Session %s registered for user %s", session.id, session.user_id)
        return first

    def join(self, session: Session, conversation_id: int) -> None:
        self._rooms.setdefault(conversation_id, set()).add(session)
        session.joined_rooms.add(conversation_id)

    def leave(self, session: Session, conversation_id: int) -> None:
        members = self._rooms.get(conversation_id)
        if members is not None:
            members.discard(session)
            if not members:
                del self._rooms[conversation_id]
        session.joined_rooms.discard(conversation_id)

    def drop_session(self, session: Session) -> bool:
        """Forget the session everywhere.

        Returns True only for the call that removed the user's last session;
        dropping an unknown or already dropped session returns False.
        """
        for conversation_id in sorted(session.joined_rooms):
            self.leave(session, conversation_id)

        sessions = self._by_user.get(session.user_id)
        if sessions is None or session not in sessions:
            return False
        sessions.discard(session)
        if sessions:
            return False
        del self._by_user[session.user_id]
        return True

    def remove_user_from_room(self, user_id: int, conversation_id: int) -> None:
        for session in self.sessions_for_user(user_id):
            self.leave(session, conversation_id)

    def room_members(self, conversation_id: int) -> list[Session]:
        return list(self._rooms.get(conversation_id, ()))

    def sessions_for_user(self, user_id: int) -> list[Session]:
        return list(self._by_user.get(user_id, ()))

    def is_online(self, user_id: int) -> bool:
        return bool(self._by_user.get(user_id))

    async def broadcast(
        self,
        conversation_id: int,
        event: WsOutbound,
        exclude_session_id: str | None = None,
    ) -> int:
        """Deliver ``event`` to every session in the room. Returns the delivery count."""
        payload = event.to_wire()
        delivered = 0
        # Snapshot: sessions may leave while we await sends.
        for session in self.room_members(conversation_id):
            if session.id == exclude_session_id:
                continue
            if await self._send(session, payload):
                delivered += 1
        return delivered

    async def send_to_users(self, user_ids: Iterable[int], event: WsOutbound) -> int:
        """Deliver ``event`` to every open session of the given users, joined or not."""
        payload = event.to_wire()
        delivered = 0
        for user_id in sorted(set(user_ids)):
            for session in self.sessions_for_user(user_id):
                if await self._send(session, payload):
                    delivered += 1
        return delivered

    async def send_to_session(self, session: Session, event: WsOutbound) -> bool:
        return await self._send(session, event.to_wire())

    async def close_all(self, code: int, reason: str) -> None:
        sessions = [s for group in self._by_user.values() for s in group]
        for session in sessions:
            try:
                await session.transport.close(code=code, reason=reason)
            except Exception:
                logger.debug("Close failed for session %s", session.id, exc_info=True)
        logger.info("Closed %d sessions (%s)", len(sessions), reason)

    @staticmethod
    async def _send(session: Session, payload: dict[str, Any]) -> bool:
        try:
            await session.transport.send_json(payload)
        except Exception:
            # The owning connection notices the broken socket and cleans up.
            logger.debug("Send to session %s failed", session.id, exc_info=True)
            return False
        return True
