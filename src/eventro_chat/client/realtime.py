"""Real-time chat client with reconnection and a REST fallback."""
from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections import deque
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from eventro_chat.application.exceptions import AppError, TransportError
from eventro_chat.client.errors import AuthenticationRejected
from eventro_chat.client.reconnect import ReconnectPolicy
from eventro_chat.client.rest import RestFallbackClient
from eventro_chat.client.status import (
    NOT_ALLOWED,
    OFFLINE,
    SEND_FAILED,
    ConnectionStatus,
    UserNotice,
    notice_for,
)
from eventro_chat.client.timeline import Pending, Timeline
from eventro_chat.infrastructure.ws.protocol import (
    AUTH_CLOSE_CODES,
    ClientEvent,
    CloseCode,
    MessageOut,
    ServerEvent,
)

logger = logging.getLogger(__name__)

CONNECT_ERRORS = (OSError, TimeoutError, WebSocketException, TransportError)

# Upper bound on REST pages fetched to close one history gap.
MAX_BACKFILL_PAGES = 10


class WebSocketLike(Protocol):
    close_code: int | None

    async def send(self, message: str) -> None: ...

    async def recv(self) -> str: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    async def wait_closed(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[str]: ...


Connector = Callable[[str], Awaitable[WebSocketLike]]
EventListener = Callable[[dict[str, Any]], None]
StatusListener = Callable[[ConnectionStatus], None]
NoticeListener = Callable[[UserNotice], None]


class ChatClient:
    """Keeps one authenticated connection to ``/ws/chat`` alive.

    Drops are retried per ``ReconnectPolicy``; joined conversations are
    re-joined after every reconnect. Once retries are exhausted the client
    goes ``degraded``: history is polled and sends go through ``rest``.

    While connected a ``ping`` goes out every ``heartbeat_interval`` seconds so
    a reader that never sends is not closed as idle by the server.
    """

    def __init__(
        self,
        url: str,
        token: str,
        *,
        rest: RestFallbackClient | None = None,
        policy: ReconnectPolicy | None = None,
        poll_interval: float = 5.0,
        heartbeat_interval: float = 30.0,
        auth_timeout: float = 10.0,
        connect: Connector = ws_connect,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._url = url
        self._token = token
        self._rest = rest
        self._policy = policy or ReconnectPolicy()
        self._poll_interval = poll_interval
        self._heartbeat_interval = heartbeat_interval
        self._auth_timeout = auth_timeout
        self._connect = connect
        self._sleep = sleep

        self.user_id: int | None = None
        self.status = ConnectionStatus.CLOSED
        self.timelines: dict[int, Timeline] = {}
        self._joined: set[int] = set()
        self._in_flight: deque[Pending] = deque()
        self._ws: WebSocketLike | None = None
        self._closing = False
        self._run_task: asyncio.Task[None] | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._backfill_tasks: set[asyncio.Task[None]] = set()

        self._event_listeners: list[EventListener] = []
        self._status_listeners: list[StatusListener] = []
        self._notice_listeners: list[NoticeListener] = []

    # --- listeners ---

    def on_event(self, listener: EventListener) -> None:
        self._event_listeners.append(listener)

    def on_status(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    def on_notice(self, listener: NoticeListener) -> None:
        self._notice_listeners.append(listener)

    # --- lifecycle ---

    async def connect(self) -> None:
        """Open and authenticate. Authentication failures are raised; network
        failures are retried in the background."""
        self._closing = False
        self._set_status(ConnectionStatus.CONNECTING)
        try:
            await self._open()
        except AuthenticationRejected as exc:
            self._set_status(ConnectionStatus.CLOSED)
            self._notify(notice_for(exc))
            raise
        except CONNECT_ERRORS:
            logger.info("Initial connection failed, retrying", exc_info=True)
            self._run_task = asyncio.create_task(self._run(connected=False), name="chat-client")
            return
        self._run_task = asyncio.create_task(self._run(connected=True), name="chat-client")

    async def close(self) -> None:
        """Intentional close: no reconnection."""
        self._closing = True
        await self._stop_polling()
        await self._stop_heartbeat()
        for task in list(self._backfill_tasks):
            task.cancel()
        if self._ws is not None:
            with contextlib.suppress(*CONNECT_ERRORS):
                await self._ws.close(CloseCode.NORMAL, "Client closed")
        if self._run_task is not None:
            self._run_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._run_task
            self._run_task = None
        self._ws = None
        self._set_status(ConnectionStatus.CLOSED)

    # --- commands ---

    def timeline(self, conversation_id: int) -> Timeline:
        return self.timelines.setdefault(conversation_id, Timeline(conversation_id))

    async def join(self, conversation_id: int) -> None:
        self._joined.add(conversation_id)
        self.timeline(conversation_id)
        if self.status is ConnectionStatus.CONNECTED:
            await self._send_frame(ClientEvent.JOIN_CONVERSATION, conversationId=conversation_id)
        elif self.status is ConnectionStatus.DEGRADED:
            await self._poll_once(conversation_id)

    async def leave(self, conversation_id: int) -> None:
        self._joined.discard(conversation_id)
        if self.status is ConnectionStatus.CONNECTED:
            await self._send_frame(ClientEvent.LEAVE_CONVERSATION, conversationId=conversation_id)

    async def send_message(self, conversation_id: int, content: str) -> Pending:
        """Show the message optimistically, then deliver it."""
        if self.user_id is None:
            raise TransportError("Not authenticated")
        pending = self.timeline(conversation_id).add_pending(self.user_id, content)

        if self.status is ConnectionStatus.CONNECTED:
            self._in_flight.append(pending)
            try:
                await self._send_frame(
                    ClientEvent.SEND_MESSAGE, conversationId=conversation_id, content=content,
                )
            except CONNECT_ERRORS:
                self._in_flight.remove(pending)
                self._fail(pending, SEND_FAILED)
        elif self.status is ConnectionStatus.DEGRADED and self._rest is not None:
            try:
                message = await self._rest.send_message(conversation_id, self.user_id, content)
            except (AppError, TransportError) as exc:
                self._fail(pending, notice_for(exc))
            else:
                self.timeline(conversation_id).confirm(message)
        else:
            self._fail(pending, OFFLINE)
        return pending

    async def start_typing(self, conversation_id: int) -> None:
        await self._send_if_connected(ClientEvent.TYPING_START, conversationId=conversation_id)

    async def stop_typing(self, conversation_id: int) -> None:
        await self._send_if_connected(ClientEvent.TYPING_STOP, conversationId=conversation_id)

    async def mark_read(self, conversation_id: int) -> None:
        if self.status is ConnectionStatus.CONNECTED:
            await self._send_frame(ClientEvent.MARK_READ, conversationId=conversation_id)
        elif self._rest is not None and self.user_id is not None:
            await self._rest.mark_read(conversation_id, self.user_id)

    # --- connection loop ---

    async def _open(self) -> None:
        ws = await self._connect(self._url)
        await ws.send(json.dumps({"type": ClientEvent.AUTHENTICATE, "token": self._token}))
        try:
            raw = await asyncio.wait_for(ws.recv(), self._auth_timeout)
        except ConnectionClosed as exc:
            raise AuthenticationRejected(ws.close_code, "Connection closed during authentication") from exc
        event = json.loads(raw)

        if event.get("type") == ServerEvent.ERROR:
            # The server follows a rejection with a close frame carrying the reason code.
            with contextlib.suppress(*CONNECT_ERRORS):
                await asyncio.wait_for(ws.wait_closed(), self._auth_timeout)
            raise AuthenticationRejected(ws.close_code, event.get("message", "Authentication rejected"))
        if event.get("type") != ServerEvent.AUTHENTICATED:
            await ws.close(CloseCode.NORMAL, "Unexpected handshake")
            raise TransportError(f"Unexpected handshake reply: {event.get('type')}")

        self._ws = ws
        self.user_id = event["userId"]
        await self._stop_polling()
        await self._start_heartbeat()
        self._set_status(ConnectionStatus.CONNECTED)
        logger.info("Connected as user %s", self.user_id)

    async def _run(self, *, connected: bool) -> None:
        close_code: int | None = None
        while not self._closing:
            if connected:
                close_code = await self._pump()
                await self._stop_heartbeat()
                if self._closing:
                    break
                self._fail_in_flight()
            connected = await self._reconnect(close_code)
            if not connected:
                break

    async def _pump(self) -> int | None:
        """Read frames until the connection ends. Returns the close code."""
        ws = self._ws
        assert ws is not None
        try:
            async for raw in ws:
                self._handle_frame(raw)
        except ConnectionClosed:
            pass
        logger.info("Connection closed (code=%s)", ws.close_code)
        return ws.close_code

    async def _reconnect(self, close_code: int | None) -> bool:
        attempts = 0
        while self._policy.should_reconnect(close_code, attempts):
            attempts += 1
            self._set_status(ConnectionStatus.RECONNECTING)
            await self._sleep(self._policy.delay_for(attempts))
            if self._closing:
                return False
            try:
                await self._open()
            except AuthenticationRejected as exc:
                close_code = exc.close_code if exc.close_code is not None else CloseCode.AUTH_REQUIRED
                continue
            except CONNECT_ERRORS:
                logger.info("Reconnect attempt %d failed", attempts, exc_info=True)
                close_code = None
                continue
            await self._rejoin()
            return True

        if close_code in AUTH_CLOSE_CODES:
            self._set_status(ConnectionStatus.CLOSED)
            self._notify(NOT_ALLOWED)
        elif close_code == CloseCode.NORMAL:
            self._set_status(ConnectionStatus.CLOSED)
        else:
            await self._enter_degraded()
        return False

    async def _start_heartbeat(self) -> None:
        await self._stop_heartbeat()
        if self._heartbeat_interval > 0:
            self._heartbeat_task = asyncio.create_task(self._heartbeat(), name="chat-client-heartbeat")

    async def _stop_heartbeat(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._heartbeat_task
            self._heartbeat_task = None

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                await self._send_frame(ClientEvent.PING)
            except CONNECT_ERRORS:
                # The pump sees the same broken socket and drives reconnection.
                logger.debug("Heartbeat ping failed", exc_info=True)
                return

    async def _rejoin(self) -> None:
        for conversation_id in sorted(self._joined):
            await self._send_frame(ClientEvent.JOIN_CONVERSATION, conversationId=conversation_id)

    # --- degraded mode ---

    async def _enter_degraded(self) -> None:
        self._ws = None
        self._set_status(ConnectionStatus.DEGRADED)
        self._notify(OFFLINE)
        if self._rest is not None and self._poll_task is None:
            self._poll_task = asyncio.create_task(self._poll_loop(), name="chat-client-poll")

    async def _poll_loop(self) -> None:
        while True:
            for conversation_id in sorted(self._joined):
                await self._poll_once(conversation_id)
            await asyncio.sleep(self._poll_interval)

    async def _poll_once(self, conversation_id: int) -> None:
        if self._rest is None or self.user_id is None:
            return
        try:
            page = await self._rest.fetch_messages(conversation_id, self.user_id)
        except (AppError, TransportError):
            logger.info("History poll failed for conversation %s", conversation_id, exc_info=True)
            return
        if self.timeline(conversation_id).merge_history(page.messages) and page.has_more:
            self._schedule_backfill(conversation_id, page.next_cursor)
        self._emit({
            "type": ServerEvent.MESSAGE_HISTORY,
            "conversationId": conversation_id,
            "messages": [m.model_dump(by_alias=True, mode="json") for m in page.messages],
        })

    async def _stop_polling(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._poll_task
            self._poll_task = None

    # --- history gaps ---

    def _schedule_backfill(self, conversation_id: int, cursor: str | None) -> None:
        if self._rest is None or not cursor:
            return
        task = asyncio.create_task(
            self._backfill(conversation_id, cursor), name=f"chat-client-backfill-{conversation_id}",
        )
        self._backfill_tasks.add(task)
        task.add_done_callback(self._backfill_tasks.discard)

    async def _backfill(self, conversation_id: int, cursor: str) -> None:
        """Page back over REST until the history reaches messages already known."""
        assert self._rest is not None and self.user_id is not None
        timeline = self.timeline(conversation_id)
        for _ in range(MAX_BACKFILL_PAGES):
            known = timeline.confirmed_ids()
            try:
                page = await self._rest.fetch_messages(conversation_id, self.user_id, before=cursor)
            except (AppError, TransportError):
                logger.info("History backfill failed for conversation %s", conversation_id, exc_info=True)
                return
            for message in page.messages:
                timeline.confirm(message)
            if not page.has_more or not page.next_cursor or any(m.id in known for m in page.messages):
                return
            cursor = page.next_cursor
        logger.warning(
            "History backfill for conversation %s stopped after %d pages", conversation_id, MAX_BACKFILL_PAGES,
        )

    # --- inbound frames ---

    def _handle_frame(self, raw: str) -> None:
        try:
            event = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring non-JSON frame")
            return

        event_type = event.get("type")
        if event_type == ServerEvent.NEW_MESSAGE:
            message = MessageOut.model_validate(event["message"])
            self.timeline(message.conversation_id).confirm(message)
        elif event_type == ServerEvent.MESSAGE_DELIVERED:
            # Each send_message is answered by exactly one delivered or error frame.
            if self._in_flight:
                self._in_flight.popleft()
        elif event_type == ServerEvent.MESSAGE_HISTORY:
            conversation_id = event["conversationId"]
            messages = [MessageOut.model_validate(m) for m in event.get("messages", [])]
            if self.timeline(conversation_id).merge_history(messages) and event.get("hasMore"):
                self._schedule_backfill(conversation_id, event.get("nextCursor"))
        elif event_type == ServerEvent.ERROR:
            notice = notice_for(event.get("code", ""))
            # Errors name the request they answer; only send_message ones settle a send.
            if event.get("requestType") == ClientEvent.SEND_MESSAGE and self._in_flight:
                self._fail(self._in_flight.popleft(), notice)
            else:
                self._notify(notice)
        self._emit(event)

    # --- helpers ---

    async def _send_frame(self, event_type: ClientEvent, **fields: Any) -> None:
        if self._ws is None:
            raise TransportError("Not connected")
        await self._ws.send(json.dumps({"type": event_type, **fields}))

    async def _send_if_connected(self, event_type: ClientEvent, **fields: Any) -> None:
        if self.status is ConnectionStatus.CONNECTED:
            with contextlib.suppress(*CONNECT_ERRORS):
                await self._send_frame(event_type, **fields)

    def _fail(self, pending: Pending, notice: UserNotice) -> None:
        if self.timeline(pending.conversation_id).mark_failed(pending.temp_id) is not None:
            self._notify(notice)

    def _fail_in_flight(self) -> None:
        while self._in_flight:
            self._fail(self._in_flight.popleft(), SEND_FAILED)

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self.status:
            return
        logger.debug("Status %s -> %s", self.status, status)
        self.status = status
        for listener in self._status_listeners:
            listener(status)

    def _notify(self, notice: UserNotice) -> None:
        for listener in self._notice_listeners:
            listener(notice)

    def _emit(self, event: dict[str, Any]) -> None:
        for listener in self._event_listeners:
            listener(event)
