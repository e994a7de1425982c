"""Shared test fixtures."""
from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator

import jwt
import pytest

from eventro_chat.application.pagination import MessageCursor
from eventro_chat.application.repositories.outbox import OutboxRecord
from eventro_chat.domain.entities.conversation import Conversation
from eventro_chat.domain.entities.message import Message
from eventro_chat.domain.entities.participant import Participant
from eventro_chat.domain.entities.user import User
from eventro_chat.domain.value_objects.enums import ProfileVisibility

TEST_SECRET = "test-secret-key-for-eventro-chat-hs256"
T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_token(sub: int = 1, *, secret: str = TEST_SECRET, expires_in: int = 3600, **claims: Any) -> str:
    payload = {"sub": str(sub), "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in)}
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def make_user(
    user_id: int = 1,
    *,
    name: str | None = None,
    visibility: ProfileVisibility = ProfileVisibility.PUBLIC,
) -> User:
    return User(
        id=user_id,
        display_name=name or f"User {user_id}",
        avatar_ref=None,
        profile_visibility=visibility,
    )


# --- in-memory store ---


@dataclass
class FakeStore:
    users: dict[int, User] = field(default_factory=dict)
    conversations: dict[int, Conversation] = field(default_factory=dict)
    participants: dict[tuple[int, int], Participant] = field(default_factory=dict)
    messages: dict[int, Message] = field(default_factory=dict)
    outbox: list[OutboxRecord] = field(default_factory=list)
    outbox_status: dict[int, str] = field(default_factory=dict)
    commits: int = 0
    _next_id: int = 1

    def next_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    def add_user(self, user_id: int, **kwargs: Any) -> User:
        user = make_user(user_id, **kwargs)
        self.users[user_id] = user
        return user

    def add_conversation(
        self,
        *member_ids: int,
        inactive: tuple[int, ...] = (),
        event_id: int | None = None,
    ) -> Conversation:
        conv = Conversation(
            id=self.next_id(),
            event_id=event_id,
            last_message_at=None,
            created_at=T0,
            updated_at=T0,
        )
        self.conversations[conv.id] = conv
        for user_id in (*member_ids, *inactive):
            self.participants[(conv.id, user_id)] = Participant(
                conversation_id=conv.id,
                user_id=user_id,
                is_active=user_id not in inactive,
                last_read_at=None,
                joined_at=T0,
            )
        return conv

    def add_message(
        self,
        conversation_id: int,
        sender_id: int,
        content: str = "hello",
        *,
        created_at: datetime | None = None,
        is_deleted: bool = False,
    ) -> Message:
        msg = Message(
            id=self.next_id(),
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            created_at=created_at or T0,
            is_deleted=is_deleted,
        )
        self.messages[msg.id] = msg
        return msg

    def participant(self, conversation_id: int, user_id: int) -> Participant | None:
        return self.participants.get((conversation_id, user_id))

    def outbox_types(self) -> list[str]:
        return [r.event_type for r in self.outbox]

    @asynccontextmanager
    async def uow(self) -> AsyncIterator[FakeUoW]:
        yield FakeUoW(self)


@dataclass
class FakeUserReader:
    _store: FakeStore

    async def get_by_id(self, user_id: int) -> User | None:
        return self._store.users.get(user_id)

    async def get_many(self, user_ids: list[int]) -> list[User]:
        return [self._store.users[u] for u in user_ids if u in self._store.users]


@dataclass
class FakeConversationReader:
    _store: FakeStore

    async def get_by_id(self, conversation_id: int) -> Conversation | None:
        return self._store.conversations.get(conversation_id)

    async def list_for_user(self, user_id: int, *, limit: int = 50) -> list[Conversation]:
        convs = [
            self._store.conversations[cid]
            for (cid, uid), p in self._store.participants.items()
            if uid == user_id and p.is_active
        ]
        convs.sort(key=lambda c: c.last_message_at or c.created_at, reverse=True)
        return convs[:limit]


@dataclass
class FakeConversationWriter:
    _store: FakeStore

    async def create(self, event_id: int | None, created_at: datetime) -> Conversation:
        conv = Conversation(
            id=self._store.next_id(),
            event_id=event_id,
            last_message_at=None,
            created_at=created_at,
            updated_at=created_at,
        )
        self._store.conversations[conv.id] = conv
        return conv

    async def touch_last_message_at(self, conversation_id: int, ts: datetime) -> None:
        conv = self._store.conversations[conversation_id]
        self._store.conversations[conversation_id] = Conversation(
            id=conv.id,
            event_id=conv.event_id,
            last_message_at=ts,
            created_at=conv.created_at,
            updated_at=ts,
        )


@dataclass
class FakeParticipantReader:
    _store: FakeStore

    async def get(self, conversation_id: int, user_id: int) -> Participant | None:
        return self._store.participants.get((conversation_id, user_id))

    async def is_active_participant(self, conversation_id: int, user_id: int) -> bool:
        p = self._store.participants.get((conversation_id, user_id))
        return p is not None and p.is_active

    async def list_participants(
        self, conversation_id: int, *, active_only: bool = True
    ) -> list[Participant]:
        return [
            p
            for (cid, _), p in self._store.participants.items()
            if cid == conversation_id and (p.is_active or not active_only)
        ]

    async def list_conversation_ids(self, user_id: int) -> list[int]:
        return sorted(
            cid for (cid, uid), p in self._store.participants.items() if uid == user_id and p.is_active
        )


@dataclass
class FakeParticipantWriter:
    _store: FakeStore

    async def add(self, participant: Participant) -> None:
        self._store.participants[(participant.conversation_id, participant.user_id)] = participant

    async def set_active(self, conversation_id: int, user_id: int, is_active: bool) -> None:
        p = self._store.participants[(conversation_id, user_id)]
        self._store.participants[(conversation_id, user_id)] = Participant(
            conversation_id=p.conversation_id,
            user_id=p.user_id,
            is_active=is_active,
            last_read_at=p.last_read_at,
            joined_at=p.joined_at,
        )

    async def touch_last_read(self, conversation_id: int, user_id: int, ts: datetime) -> None:
        p = self._store.participants[(conversation_id, user_id)]
        self._store.participants[(conversation_id, user_id)] = Participant(
            conversation_id=p.conversation_id,
            user_id=p.user_id,
            is_active=p.is_active,
            last_read_at=ts,
            joined_at=p.joined_at,
        )


@dataclass
class FakeMessageReader:
    _store: FakeStore

    async def get_by_id(self, message_id: int) -> Message | None:
        return self._store.messages.get(message_id)

    async def list_before(
        self,
        conversation_id: int,
        *,
        before: MessageCursor | None = None,
        limit: int = 50,
        include_deleted: bool = False,
        public_senders_only: bool = False,
    ) -> list[Message]:
        rows = [
            m
            for m in self._store.messages.values()
            if m.conversation_id == conversation_id
            and (include_deleted or not m.is_deleted)
            and (before is None or (m.created_at, m.id) < before)
            and (not public_senders_only or self._is_public(m.sender_id))
        ]
        rows.sort(key=lambda m: (m.created_at, m.id), reverse=True)
        return rows[:limit]

    async def count_unread(
        self,
        conversation_id: int,
        user_id: int,
        since: datetime | None,
        *,
        public_senders_only: bool = False,
    ) -> int:
        return sum(
            1
            for m in self._store.messages.values()
            if m.conversation_id == conversation_id
            and m.sender_id != user_id
            and not m.is_deleted
            and (since is None or m.created_at > since)
            and (not public_senders_only or self._is_public(m.sender_id))
        )

    def _is_public(self, user_id: int) -> bool:
        user = self._store.users.get(user_id)
        return user is not None and user.is_public


@dataclass
class FakeMessageWriter:
    _store: FakeStore

    async def create(
        self,
        conversation_id: int,
        sender_id: int,
        content: str,
        created_at: datetime,
    ) -> Message:
        msg = Message(
            id=self._store.next_id(),
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            created_at=created_at,
        )
        self._store.messages[msg.id] = msg
        return msg

    async def mark_deleted(self, message_id: int) -> None:
        msg = self._store.messages[message_id]
        self._store.messages[message_id] = Message(
            id=msg.id,
            conversation_id=msg.conversation_id,
            sender_id=msg.sender_id,
            content=msg.content,
            created_at=msg.created_at,
            is_deleted=True,
        )


@dataclass
class FakeOutboxWriter:
    _store: FakeStore

    async def add(self, event_type: str, payload: dict[str, Any]) -> None:
        self._store.outbox.append(
            OutboxRecord(id=self._store.next_id(), event_type=event_type, payload=payload, attempts=0)
        )

    async def fetch_pending(self, batch_size: int) -> list[OutboxRecord]:
        pending = [r for r in self._store.outbox if r.id not in self._store.outbox_status]
        return pending[:batch_size]

    async def mark_sent(self, ids: list[int]) -> None:
        for record_id in ids:
            self._store.outbox_status[record_id] = "sent"

    async def mark_failed(self, record_id: int, next_retry_at: datetime) -> None:
        self._store.outbox_status[record_id] = "failed"

    async def mark_dead(self, ids: list[int]) -> None:
        for record_id in ids:
            self._store.outbox_status[record_id] = "dead"


class FakeUoW:
    """In-memory UoW for unit tests. Writes are visible immediately."""

    def __init__(self, store: FakeStore | None = None) -> None:
        self.store = store or FakeStore()
        self.users = FakeUserReader(self.store)
        self.conversations = FakeConversationReader(self.store)
        self.conversations_w = FakeConversationWriter(self.store)
        self.participants = FakeParticipantReader(self.store)
        self.participants_w = FakeParticipantWriter(self.store)
        self.messages = FakeMessageReader(self.store)
        self.messages_w = FakeMessageWriter(self.store)
        self.outbox = FakeOutboxWriter(self.store)

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self.store.commits += 1

    async def rollback(self) -> None:
        pass


# --- real-time fakes ---


class FakeTransport:
    """Stands in for a Starlette WebSocket in registry and router tests."""

    def __init__(self, *, broken: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed: tuple[int, str | None] | None = None
        self.broken = broken

    async def send_json(self, data: Any) -> None:
        if self.broken:
            raise RuntimeError("socket is gone")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = (code, reason)

    def types(self) -> list[str]:
        return [e["type"] for e in self.sent]

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [e for e in self.sent if e["type"] == event_type]


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self._mono = start

    def now(self) -> datetime:
        return T0 + timedelta(seconds=self._mono)

    def monotonic(self) -> float:
        return self._mono

    def advance(self, seconds: float) -> None:
        self._mono += seconds


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def uow(store: FakeStore) -> FakeUoW:
    return FakeUoW(store)
