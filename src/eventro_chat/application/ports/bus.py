from __future__ import annotations

from typing import Any, Protocol


class EventPublisher(Protocol):
    """Publishes integration events to the rest of the platform."""

    async def publish(self, channel: str, event_type: str, payload: dict[str, Any]) -> None: ...
