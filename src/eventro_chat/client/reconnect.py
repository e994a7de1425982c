"""Backoff schedule for re-establishing a dropped real-time connection."""
from __future__ import annotations

from dataclasses import dataclass

from eventro_chat.infrastructure.ws.protocol import AUTH_CLOSE_CODES, CloseCode


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    base_delay: float = 1.0
    max_delay: float = 30.0
    max_attempts: int = 5

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before reconnect ``attempt`` (1-based): 2, 4, 8, 16, 30."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def should_reconnect(self, close_code: int | None, attempts_made: int) -> bool:
        if close_code == CloseCode.NORMAL or close_code in AUTH_CLOSE_CODES:
            return False
        return attempts_made < self.max_attempts
