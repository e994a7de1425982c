from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class TokenClaims:
    """Verified bearer-token claims, before the user lookup."""

    user_id: int

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> TokenClaims:
        # Tokens issued by the legacy auth controller carry ``userId`` instead of ``sub``.
        raw = payload.get("sub", payload.get("userId"))
        if raw is None:
            raise KeyError("sub")
        return cls(user_id=int(raw))
