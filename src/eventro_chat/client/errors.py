from __future__ import annotations

from eventro_chat.application.exceptions import AppError, TransportError


class RequestRejected(AppError):
    """The server answered, and the answer was no."""

    def __init__(self, code: str, detail: str, status_code: int | None = None) -> None:
        super().__init__(detail)
        self.code = code
        self.status_code = status_code


class AuthenticationRejected(AppError):
    code = "unauthenticated"

    def __init__(self, close_code: int | None, detail: str = "Authentication rejected") -> None:
        super().__init__(detail)
        self.close_code = close_code


class RequestTimeout(TransportError):
    code = "timeout"
