"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from eventro_chat.application.ports.auth import TokenVerifier
from eventro_chat.application.store_calls import StoreRunner
from eventro_chat.config import Settings
from eventro_chat.domain.entities.user import User
from eventro_chat.infrastructure.auth.hs256_verifier import HS256Verifier
from eventro_chat.infrastructure.auth.jwks_verifier import JWKSVerifier
from eventro_chat.infrastructure.ws.hub import ChatHub
from eventro_chat.services import identity_service

# Missing credentials are reported by the identity gate, as 401.
_bearer_scheme = HTTPBearer(auto_error=False)


def build_verifier(settings: Settings) -> TokenVerifier:
    if settings.JWT_VERIFY_MODE == "jwks":
        assert settings.JWKS_URL, "JWKS_URL must be set when JWT_VERIFY_MODE=jwks"
        return JWKSVerifier(settings.JWKS_URL)
    return HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)


def get_hub(request: Request) -> ChatHub:
    return request.app.state.hub


HubDep = Annotated[ChatHub, Depends(get_hub)]


def get_store(hub: HubDep) -> StoreRunner:
    return hub.store


StoreDep = Annotated[StoreRunner, Depends(get_store)]


async def get_current_user(
    hub: HubDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> User:
    token = credentials.credentials if credentials else None
    return await hub.store.read(
        lambda uow: identity_service.authenticate(token, hub.verifier, uow)
    )


CurrentUser = Annotated[User, Depends(get_current_user)]
