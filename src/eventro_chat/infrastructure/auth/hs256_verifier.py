from __future__ import annotations

import jwt

from eventro_chat.application.dto.principal import TokenClaims


class HS256Verifier:
    """Verify JWTs signed with the platform's shared secret."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    async def verify(self, token: str) -> TokenClaims:
        payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        return TokenClaims.from_payload(payload)
