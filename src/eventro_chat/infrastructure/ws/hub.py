"""Composition root for the real-time core."""
from __future__ import annotations

import asyncio
import contextlib
import logging

from eventro_chat.application.ports.auth import TokenVerifier
from eventro_chat.application.ports.clock import Clock
from eventro_chat.application.store_calls import StoreRunner
from eventro_chat.application.uow import UoWFactory
from eventro_chat.config import Settings
from eventro_chat.infrastructure.ws.connection import ConnectionManager
from eventro_chat.infrastructure.ws.event_router import EventRouter
from eventro_chat.infrastructure.ws.presence import PresenceTracker
from eventro_chat.infrastructure.ws.protocol import CloseCode, TypingIndicator
from eventro_chat.infrastructure.ws.registry import RoomRegistry
from eventro_chat.infrastructure.ws.typing_state import TypingTracker

logger = logging.getLogger(__name__)


class ChatHub:
    """Owns the registry and everything that shares it.

    One hub per process; ``start``/``stop`` are driven by the app lifespan.
    """

    def __init__(
        self,
        uow_factory: UoWFactory,
        verifier: TokenVerifier,
        settings: Settings,
        *,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings
        self.verifier = verifier
        self.store = StoreRunner(uow_factory, timeout=settings.STORE_TIMEOUT_SECONDS)
        self.registry = RoomRegistry()
        self.typing = TypingTracker(settings.TYPING_TTL_SECONDS, clock)
        self.presence = PresenceTracker(self.registry, self.store)
        self.router = EventRouter(
            self.registry,
            self.typing,
            self.store,
            history_limit=settings.HISTORY_LIMIT,
            visibility_policy=settings.MESSAGING_VISIBILITY_POLICY,
            max_message_length=settings.MAX_MESSAGE_LENGTH,
        )
        self.connections = ConnectionManager(
            self.registry,
            self.router,
            self.presence,
            self.typing,
            verifier,
            self.store,
            auth_timeout=settings.WS_AUTH_TIMEOUT_SECONDS,
            idle_timeout=settings.WS_IDLE_TIMEOUT_SECONDS,
        )
        self._sweep_interval = settings.TYPING_SWEEP_INTERVAL_SECONDS
        self._sweeper: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="typing-sweeper")
        logger.info("Chat hub started")

    async def stop(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
        await self.registry.close_all(CloseCode.GOING_AWAY, "Server shutting down")
        logger.info("Chat hub stopped")

    async def sweep_typing(self) -> int:
        """Broadcast ``isTyping=false`` for every expired flag. Returns how many expired."""
        expired = self.typing.sweep()
        for conversation_id, user_id in expired:
            await self.registry.broadcast(
                conversation_id,
                TypingIndicator(conversation_id=conversation_id, user_id=user_id, is_typing=False),
            )
        return len(expired)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                await self.sweep_typing()
            except Exception:
                logger.exception("Typing sweep failed")
