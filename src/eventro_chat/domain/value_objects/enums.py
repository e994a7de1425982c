from __future__ import annotations

from enum import StrEnum


class ProfileVisibility(StrEnum):
    PUBLIC = "public"
    PRIVATE = "private"


class VisibilityPolicy(StrEnum):
    ANY = "any"
    PUBLIC_ONLY = "public_only"


class ConnectionState(StrEnum):
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"
