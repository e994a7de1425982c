from __future__ import annotations

from typing import Protocol

from eventro_chat.domain.entities.user import User


class UserReader(Protocol):
    async def get_by_id(self, user_id: int) -> User | None: ...

    async def get_many(self, user_ids: list[int]) -> list[User]: ...
