from __future__ import annotations

import httpx
import pytest

from eventro_chat.application.exceptions import StoreTimeoutError, TransportError
from eventro_chat.client.errors import AuthenticationRejected, RequestRejected, RequestTimeout
from eventro_chat.client.status import NoticeKind, notice_for


@pytest.mark.parametrize(
    ("error", "kind"),
    [
        ("not_a_participant", NoticeKind.NOT_ALLOWED),
        ("forbidden", NoticeKind.NOT_ALLOWED),
        ("empty_content", NoticeKind.SEND_FAILED),
        ("store_unavailable", NoticeKind.SEND_FAILED),
        ("timeout", NoticeKind.SEND_FAILED),
        (AuthenticationRejected(4003), NoticeKind.NOT_ALLOWED),
        (RequestRejected("not_a_participant", "no", 403), NoticeKind.NOT_ALLOWED),
        (RequestRejected("http_500", "boom", 500), NoticeKind.SEND_FAILED),
        (RequestTimeout("slow"), NoticeKind.SEND_FAILED),
        (StoreTimeoutError(), NoticeKind.SEND_FAILED),
        (TransportError("dropped"), NoticeKind.OFFLINE),
        (httpx.ConnectError("refused"), NoticeKind.OFFLINE),
        (ConnectionResetError(), NoticeKind.OFFLINE),
        (ValueError("?"), NoticeKind.SEND_FAILED),
    ],
)
def test_notice_for(error, kind):
    assert notice_for(error).kind is kind


def test_only_not_allowed_is_a_hard_stop():
    assert notice_for("forbidden").retryable is False
    assert notice_for(TransportError("x")).retryable is True
    assert notice_for("timeout").retryable is True
