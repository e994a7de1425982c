from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    code = "app_error"

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class UnauthenticatedError(AppError):
    """Credential missing or unusable. ``reason`` picks the WS close code."""

    code = "unauthenticated"

    def __init__(self, reason: str, detail: str = "") -> None:
        self.reason = reason
        super().__init__(detail or f"Authentication failed: {reason}")


class NotFoundError(AppError):
    code = "not_found"


class ForbiddenError(AppError):
    code = "forbidden"


class NotAParticipantError(ForbiddenError):
    code = "not_a_participant"

    def __init__(self, detail: str = "Not a participant of this conversation") -> None:
        super().__init__(detail)


class ConflictError(AppError):
    code = "conflict"


class ValidationError(AppError):
    code = "validation_error"


class EmptyContentError(ValidationError):
    code = "empty_content"

    def __init__(self, detail: str = "Message content must not be empty") -> None:
        super().__init__(detail)


class StoreTimeoutError(AppError):
    code = "timeout"

    def __init__(self, detail: str = "Message store did not respond in time") -> None:
        super().__init__(detail)


class TransportError(AppError):
    """Real-time transport dropped for reasons not attributable to the user."""

    code = "transport_error"


class NotJoinedError(ValidationError):
    code = "not_joined"

    def __init__(self, detail: str = "Join the conversation first") -> None:
        super().__init__(detail)
