"""Identity gate: bearer credential -> platform user."""
from __future__ import annotations

import logging

import jwt

from eventro_chat.application.exceptions import UnauthenticatedError
from eventro_chat.application.ports.auth import TokenVerifier
from eventro_chat.application.uow import UnitOfWork
from eventro_chat.domain.entities.user import User

logger = logging.getLogger(__name__)

MISSING = "missing"
MALFORMED = "malformed"
EXPIRED = "expired"
INVALID_SIGNATURE = "invalid_signature"
UNKNOWN_USER = "unknown_user"


async def authenticate(
    credential: str | None,
    verifier: TokenVerifier,
    uow: UnitOfWork,
) -> User:
    if not credential or not credential.strip():
        raise UnauthenticatedError(MISSING, "Authentication token is required")

    try:
        claims = await verifier.verify(credential.strip())
    except jwt.ExpiredSignatureError as exc:
        raise UnauthenticatedError(EXPIRED, "Authentication token has expired") from exc
    except jwt.InvalidSignatureError as exc:
        raise UnauthenticatedError(INVALID_SIGNATURE, "Invalid token signature") from exc
    except (jwt.PyJWTError, KeyError, ValueError) as exc:
        logger.debug("Rejected malformed token", exc_info=True)
        raise UnauthenticatedError(MALFORMED, "Invalid authentication token") from exc

    user = await uow.users.get_by_id(claims.user_id)
    if user is None:
        raise UnauthenticatedError(UNKNOWN_USER, "User not found")
    return user
