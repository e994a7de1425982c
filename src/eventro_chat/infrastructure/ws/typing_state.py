"""Ephemeral "is typing" flags with a time-to-live."""
from __future__ import annotations

from eventro_chat.application.ports.clock import Clock, SystemClock

TypingKey = tuple[int, int]  # (conversation_id, user_id)


class TypingTracker:
    """Each mutator returns True only when the visible state changed,
    so callers broadcast transitions and never repeats."""

    def __init__(self, ttl: float, clock: Clock | None = None) -> None:
        self._ttl = ttl
        self._clock = clock or SystemClock()
        self._expires_at: dict[TypingKey, float] = {}

    def start(self, conversation_id: int, user_id: int) -> bool:
        changed = not self.is_typing(conversation_id, user_id)
        self._expires_at[(conversation_id, user_id)] = self._clock.monotonic() + self._ttl
        return changed

    def stop(self, conversation_id: int, user_id: int) -> bool:
        return self._expires_at.pop((conversation_id, user_id), None) is not None

    def is_typing(self, conversation_id: int, user_id: int) -> bool:
        expires_at = self._expires_at.get((conversation_id, user_id))
        return expires_at is not None and expires_at > self._clock.monotonic()

    def typing_users(self, conversation_id: int) -> list[int]:
        return sorted(
            user_id
            for (conv_id, user_id) in self._expires_at
            if conv_id == conversation_id and self.is_typing(conv_id, user_id)
        )

    def sweep(self) -> list[TypingKey]:
        """Drop expired entries and return them."""
        now = self._clock.monotonic()
        expired = [key for key, at in self._expires_at.items() if at <= now]
        for key in expired:
            del self._expires_at[key]
        return expired

    def clear_user(self, user_id: int) -> list[int]:
        """Forget every flag held by ``user_id``. Returns the affected conversations."""
        keys = [key for key in self._expires_at if key[1] == user_id]
        for key in keys:
            del self._expires_at[key]
        return sorted(conv_id for conv_id, _ in keys)
