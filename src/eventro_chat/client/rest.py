"""REST client for the chat API, used when the real-time channel is unavailable."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from types import TracebackType
from typing import Any, Self

import httpx

from eventro_chat.application.exceptions import TransportError
from eventro_chat.client.errors import RequestRejected, RequestTimeout
from eventro_chat.infrastructure.ws.protocol import MessageOut

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0


@dataclass(frozen=True, slots=True)
class HistoryPage:
    messages: list[MessageOut]
    has_more: bool
    next_cursor: str | None


class RestFallbackClient:
    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_messages(
        self,
        conversation_id: int,
        user_id: int,
        *,
        limit: int = 50,
        before: str | None = None,
    ) -> HistoryPage:
        params: dict[str, Any] = {"user_id": user_id, "limit": limit}
        if before:
            params["before"] = before
        data = await self._request(
            "GET", f"/api/v1/conversation/{conversation_id}/messages", params=params,
        )
        pagination = data["pagination"]
        return HistoryPage(
            messages=[MessageOut.model_validate(m) for m in data["messages"]],
            has_more=pagination["has_more"],
            next_cursor=pagination.get("next_cursor"),
        )

    async def send_message(self, conversation_id: int, sender_id: int, content: str) -> MessageOut:
        data = await self._request(
            "POST",
            "/api/v1/conversation/message/send",
            json={"conversation_id": conversation_id, "sender_id": sender_id, "content": content},
        )
        return MessageOut.model_validate(data)

    async def delete_message(self, message_id: int, user_id: int) -> None:
        await self._request("DELETE", f"/api/v1/message/{message_id}", json={"user_id": user_id})

    async def mark_read(self, conversation_id: int, user_id: int) -> datetime:
        data = await self._request(
            "POST",
            f"/api/v1/conversation/{conversation_id}/mark-read",
            json={"user_id": user_id},
        )
        return datetime.fromisoformat(data["last_read_at"])

    async def unread_count(self, conversation_id: int, user_id: int) -> int:
        data = await self._request(
            "GET", f"/api/v1/conversation/{conversation_id}/unread/{user_id}",
        )
        return int(data["unread_count"])

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise RequestTimeout(f"{method} {url} timed out") from exc
        except httpx.TransportError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = {}
            detail = body.get("detail") if isinstance(body, dict) else None
            code = body.get("code") if isinstance(body, dict) else None
            logger.info("%s %s rejected with %d", method, url, response.status_code)
            raise RequestRejected(
                code or f"http_{response.status_code}",
                str(detail or response.reason_phrase),
                response.status_code,
            )
        return response.json()
