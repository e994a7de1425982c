from __future__ import annotations

from pydantic import BaseModel


class UserRef(BaseModel):
    """Body of write endpoints that name the acting user explicitly."""

    user_id: int


class CursorPagination(BaseModel):
    limit: int
    has_more: bool
    next_cursor: str | None = None


class ErrorResponse(BaseModel):
    detail: str
    code: str
