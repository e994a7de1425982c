"""Server side of a /ws/chat connection: authenticate, serve, clean up."""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.websockets import WebSocket, WebSocketDisconnect

from eventro_chat.application.exceptions import StoreTimeoutError, UnauthenticatedError
from eventro_chat.application.ports.auth import TokenVerifier
from eventro_chat.application.store_calls import StoreRunner
from eventro_chat.domain.entities.user import User
from eventro_chat.domain.value_objects.enums import ConnectionState
from eventro_chat.infrastructure.ws.event_router import EventRouter
from eventro_chat.infrastructure.ws.presence import PresenceTracker
from eventro_chat.infrastructure.ws.protocol import (
    AUTH_FAILURE_CLOSE_CODES,
    Authenticated,
    ClientEvent,
    CloseCode,
    ErrorEvent,
    TypingIndicator,
    WsInbound,
)
from eventro_chat.infrastructure.ws.registry import RoomRegistry, Session
from eventro_chat.infrastructure.ws.typing_state import TypingTracker
from eventro_chat.logging_config import correlation_id_ctx
from eventro_chat.services import identity_service

logger = logging.getLogger(__name__)


class IdleTimeout(Exception):
    pass


@dataclass(slots=True)
class Connection:
    websocket: WebSocket
    state: ConnectionState = ConnectionState.CONNECTING
    session: Session | None = field(default=None)

    def transition(self, state: ConnectionState) -> None:
        logger.debug("Connection %s -> %s", self.state, state)
        self.state = state


class ConnectionManager:
    """Drives CONNECTING → AUTHENTICATING → OPEN → CLOSING → CLOSED.

    The first frame must be ``{"type": "authenticate", "token": ...}``.
    Frames of an open session are dispatched one at a time, in arrival order.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        router: EventRouter,
        presence: PresenceTracker,
        typing: TypingTracker,
        verifier: TokenVerifier,
        store: StoreRunner,
        *,
        auth_timeout: float = 10.0,
        idle_timeout: float = 120.0,
    ) -> None:
        self._registry = registry
        self._router = router
        self._presence = presence
        self._typing = typing
        self._verifier = verifier
        self._store = store
        self._auth_timeout = auth_timeout
        self._idle_timeout = idle_timeout

    async def serve(self, websocket: WebSocket) -> None:
        conn = Connection(websocket)
        await websocket.accept()
        conn.transition(ConnectionState.AUTHENTICATING)

        user = await self._authenticate(conn)
        if user is None:
            conn.transition(ConnectionState.CLOSED)
            return

        session = Session(id=uuid.uuid4().hex, user=user, transport=websocket)
        conn.session = session
        token = correlation_id_ctx.set(session.id)
        try:
            conn.transition(ConnectionState.OPEN)
            first = self._registry.register(session)
            logger.info("Session opened for user %s", user.id)
            await self._registry.send_to_session(
                session, Authenticated(user_id=user.id, display_name=user.display_name),
            )
            await self._presence.session_opened(session, first=first)
            await self._read_loop(conn)
        except WebSocketDisconnect as exc:
            logger.info("Client closed the connection (code=%s)", exc.code)
        except IdleTimeout:
            conn.transition(ConnectionState.CLOSING)
            logger.info("Closing idle session")
            await self._close(websocket, CloseCode.IDLE_TIMEOUT, "Idle timeout")
        except Exception:
            logger.exception("Connection failed")
            conn.transition(ConnectionState.CLOSING)
            await self._close(websocket, CloseCode.INTERNAL_ERROR, "Internal error")
        finally:
            if conn.state is not ConnectionState.CLOSING:
                conn.transition(ConnectionState.CLOSING)
            await self._cleanup(session)
            conn.transition(ConnectionState.CLOSED)
            correlation_id_ctx.reset(token)

    async def _read_loop(self, conn: Connection) -> None:
        assert conn.session is not None
        while True:
            raw = await self._receive_text(conn.websocket, self._idle_timeout)
            if raw is None:
                await self._registry.send_to_session(
                    conn.session,
                    ErrorEvent(message="Only JSON text frames are accepted", code="invalid_payload"),
                )
                continue
            await self._router.dispatch(conn.session, raw)

    async def _authenticate(self, conn: Connection) -> User | None:
        websocket = conn.websocket
        try:
            raw = await self._receive_text(websocket, self._auth_timeout)
        except IdleTimeout:
            await self._reject(websocket, CloseCode.AUTH_TIMEOUT, "Authentication timed out")
            return None
        except WebSocketDisconnect:
            return None

        frame: WsInbound | None = None
        if raw is not None:
            try:
                frame = WsInbound.model_validate_json(raw)
            except PydanticValidationError:
                frame = None
        if frame is None or frame.type != ClientEvent.AUTHENTICATE:
            await self._reject(websocket, CloseCode.AUTH_REQUIRED, "Authentication required")
            return None

        token = frame.token
        try:
            return await self._store.read(
                lambda uow: identity_service.authenticate(token, self._verifier, uow)
            )
        except UnauthenticatedError as exc:
            logger.info("Authentication rejected: %s", exc.reason)
            code = AUTH_FAILURE_CLOSE_CODES.get(exc.reason, CloseCode.INVALID_TOKEN)
            await self._reject(websocket, code, exc.detail)
        except (StoreTimeoutError, SQLAlchemyError):
            logger.exception("Authentication lookup failed")
            await self._reject(websocket, CloseCode.INTERNAL_ERROR, "Authentication unavailable")
        return None

    async def _cleanup(self, session: Session) -> None:
        last = self._registry.drop_session(session)
        if last:
            for conversation_id in self._typing.clear_user(session.user_id):
                await self._registry.broadcast(
                    conversation_id,
                    TypingIndicator(
                        conversation_id=conversation_id,
                        user_id=session.user_id,
                        is_typing=False,
                    ),
                )
        await self._presence.session_closed(session, last=last)
        logger.info("Session closed for user %s", session.user_id)

    async def _reject(self, websocket: WebSocket, code: CloseCode, reason: str) -> None:
        try:
            event = ErrorEvent(
                message=reason, code="unauthenticated", request_type=ClientEvent.AUTHENTICATE,
            )
            await websocket.send_json(event.to_wire())
        except Exception:
            logger.debug("Could not deliver rejection", exc_info=True)
        await self._close(websocket, code, reason)

    @staticmethod
    async def _receive_text(websocket: WebSocket, timeout: float) -> str | None:
        """Next text frame, or None for a binary frame.

        Raises IdleTimeout when nothing arrives within ``timeout`` seconds.
        """
        try:
            message = await asyncio.wait_for(websocket.receive(), timeout)
        except TimeoutError as exc:
            raise IdleTimeout() from exc
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
        return message.get("text")

    @staticmethod
    async def _close(websocket: WebSocket, code: int, reason: str) -> None:
        try:
            await websocket.close(code=code, reason=reason)
        except RuntimeError:
            # Already closed by the peer.
            logger.debug("Close after disconnect ignored")
