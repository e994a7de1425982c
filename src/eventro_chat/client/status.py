"""Connection status and the notices a chat UI shows for failures."""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

import httpx

from eventro_chat.application.exceptions import AppError, StoreTimeoutError, TransportError
from eventro_chat.client.errors import AuthenticationRejected, RequestRejected, RequestTimeout


class ConnectionStatus(StrEnum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DEGRADED = "degraded"
    CLOSED = "closed"


class NoticeKind(StrEnum):
    SEND_FAILED = "send_failed"
    OFFLINE = "offline"
    NOT_ALLOWED = "not_allowed"


@dataclass(frozen=True, slots=True)
class UserNotice:
    kind: NoticeKind
    text: str
    retryable: bool


_NOT_ALLOWED_CODES = frozenset({"unauthenticated", "forbidden", "not_a_participant"})
_NOT_ALLOWED_STATUSES = frozenset({401, 403})

SEND_FAILED = UserNotice(NoticeKind.SEND_FAILED, "Message could not be sent. Tap to retry.", True)
OFFLINE = UserNotice(NoticeKind.OFFLINE, "You are offline. Messages will sync when the connection is back.", True)
NOT_ALLOWED = UserNotice(NoticeKind.NOT_ALLOWED, "You are not allowed to post in this conversation.", False)


def notice_for(error: BaseException | str) -> UserNotice:
    """Map a failure (exception or server error code) to a user-visible notice."""
    if isinstance(error, str):
        return NOT_ALLOWED if error in _NOT_ALLOWED_CODES else SEND_FAILED

    if isinstance(error, AuthenticationRejected):
        return NOT_ALLOWED
    if isinstance(error, RequestRejected):
        if error.status_code in _NOT_ALLOWED_STATUSES or error.code in _NOT_ALLOWED_CODES:
            return NOT_ALLOWED
        return SEND_FAILED
    if isinstance(error, (RequestTimeout, StoreTimeoutError, TimeoutError, httpx.TimeoutException)):
        return SEND_FAILED
    if isinstance(error, (TransportError, httpx.TransportError, ConnectionError)):
        return OFFLINE
    if isinstance(error, AppError):
        return NOT_ALLOWED if error.code in _NOT_ALLOWED_CODES else SEND_FAILED
    return SEND_FAILED
