from __future__ import annotations

from typing import Protocol

from eventro_chat.application.dto.principal import TokenClaims


class TokenVerifier(Protocol):
    """Raises ``jwt.PyJWTError`` subclasses on bad tokens."""

    async def verify(self, token: str) -> TokenClaims: ...
