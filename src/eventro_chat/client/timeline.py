"""Client-side message timeline with optimistic sends.

A message typed by the user shows up immediately as ``Pending`` under a
temporary id. When the server's copy arrives it replaces the pending entry,
matched on sender, content and a creation time within ``match_window``.
Temporary ids never collide with server ids.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone

from eventro_chat.infrastructure.ws.protocol import MessageOut

DEFAULT_MATCH_WINDOW = timedelta(seconds=30)


@dataclass(frozen=True, slots=True)
class Pending:
    temp_id: str
    conversation_id: int
    sender_id: int
    content: str
    created_at: datetime
    failed: bool = False


@dataclass(frozen=True, slots=True)
class Confirmed:
    message: MessageOut


TimelineEntry = Pending | Confirmed


def _sort_key(entry: TimelineEntry) -> tuple[datetime, int]:
    if isinstance(entry, Confirmed):
        return entry.message.created_at, entry.message.id
    # Pending entries sort after confirmed ones with the same timestamp.
    return entry.created_at, 2**63


class Timeline:
    def __init__(
        self,
        conversation_id: int,
        *,
        match_window: timedelta = DEFAULT_MATCH_WINDOW,
    ) -> None:
        self.conversation_id = conversation_id
        self._match_window = match_window
        self._entries: list[TimelineEntry] = []

    @property
    def entries(self) -> list[TimelineEntry]:
        return list(self._entries)

    @property
    def pending(self) -> list[Pending]:
        return [e for e in self._entries if isinstance(e, Pending)]

    def confirmed_ids(self) -> set[int]:
        return {e.message.id for e in self._entries if isinstance(e, Confirmed)}

    def add_pending(self, sender_id: int, content: str, now: datetime | None = None) -> Pending:
        entry = Pending(
            temp_id=f"temp-{uuid.uuid4().hex}",
            conversation_id=self.conversation_id,
            sender_id=sender_id,
            content=content,
            created_at=now or datetime.now(timezone.utc),
        )
        self._entries.append(entry)
        return entry

    def confirm(self, message: MessageOut) -> Pending | None:
        """Insert a server message. Returns the pending entry it replaced, if any."""
        if message.id in self.confirmed_ids():
            return None

        match = self._find_pending(message)
        if match is not None:
            self._entries[self._entries.index(match)] = Confirmed(message)
        else:
            self._entries.append(Confirmed(message))
        self._entries.sort(key=_sort_key)
        return match

    def merge_history(self, messages: list[MessageOut]) -> bool:
        """Adopt a server window of the newest messages.

        Confirmed entries inside the window's time range are replaced by it;
        older ones are kept. Pending entries the window does not cover stay.

        Returns True when entries older than the window are kept but none of
        them overlap it, so messages may be missing in between.
        """
        if not messages:
            return False
        window = sorted((Confirmed(m) for m in messages), key=_sort_key)
        window_ids = {e.message.id for e in window}
        start, end = _sort_key(window[0]), _sort_key(window[-1])

        known = [e for e in self._entries if isinstance(e, Confirmed)]
        older = [e for e in known if _sort_key(e) < start]
        overlaps = any(e.message.id in window_ids for e in known)

        kept: list[TimelineEntry] = [
            e for e in known if not start <= _sort_key(e) <= end and e.message.id not in window_ids
        ]
        kept.extend(window)
        for entry in self.pending:
            if not any(self._matches(entry, m) for m in messages):
                kept.append(entry)
        self._entries = sorted(kept, key=_sort_key)
        return bool(older) and not overlaps

    def mark_failed(self, temp_id: str) -> Pending | None:
        for index, entry in enumerate(self._entries):
            if isinstance(entry, Pending) and entry.temp_id == temp_id:
                failed = replace(entry, failed=True)
                self._entries[index] = failed
                return failed
        return None

    def remove(self, temp_id: str) -> None:
        self._entries = [
            e for e in self._entries if not (isinstance(e, Pending) and e.temp_id == temp_id)
        ]

    def _find_pending(self, message: MessageOut) -> Pending | None:
        for entry in self._entries:
            if isinstance(entry, Pending) and self._matches(entry, message):
                return entry
        return None

    def _matches(self, entry: Pending, message: MessageOut) -> bool:
        return (
            entry.sender_id == message.sender_id
            and entry.content == message.content
            and abs(message.created_at - entry.created_at) <= self._match_window
        )
