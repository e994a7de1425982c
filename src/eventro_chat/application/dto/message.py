from __future__ import annotations

from dataclasses import dataclass

from eventro_chat.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class MessagePage:
    """A window of messages in ascending order plus the cursor for the next older window."""

    messages: list[Message]
    has_more: bool
    next_cursor: str | None
