"""End-to-end tests for the REST API and /ws/chat over an in-memory store."""
from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from eventro_chat.app import create_app
from eventro_chat.config import Settings
from eventro_chat.infrastructure.auth.hs256_verifier import HS256Verifier
from eventro_chat.infrastructure.ws.hub import ChatHub
from tests.conftest import TEST_SECRET, T0, FakeStore, make_token


def _auth(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


def _receive_until(ws: Any, event_type: str) -> dict[str, Any]:
    while True:
        frame = ws.receive_json()
        if frame["type"] == event_type:
            return frame


@pytest.fixture
def chat_store() -> FakeStore:
    store = FakeStore()
    store.add_user(1, name="Ann")
    store.add_user(2, name="Bob")
    store.add_user(3, name="Eve")
    store.add_conversation(1, 2)
    return store


@pytest.fixture
def conv_id(chat_store: FakeStore) -> int:
    return next(iter(chat_store.conversations))


@pytest.fixture
def client(chat_store: FakeStore):
    settings = Settings(POSTGRES_USER="u", POSTGRES_PASSWORD="p", POSTGRES_DB="d")
    hub = ChatHub(chat_store.uow, HS256Verifier(TEST_SECRET), settings)
    app = create_app(hub=hub)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


# --- REST ---


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_request_id_is_echoed(client):
    assert client.get("/healthz", headers={"X-Request-ID": "req-123"}).headers["X-Request-ID"] == "req-123"
    generated = client.get("/healthz").headers["X-Request-ID"]
    assert len(generated) == 32


def test_missing_token_is_401(client, conv_id):
    resp = client.get(f"/api/v1/conversation/{conv_id}/messages")
    assert resp.status_code == 401
    assert resp.json()["code"] == "unauthenticated"
    assert resp.headers["WWW-Authenticate"] == "Bearer"


def test_foreign_signature_is_401(client, conv_id):
    token = make_token(1, secret="another-secret-key-for-eventro-chat-x")
    resp = client.get(
        f"/api/v1/conversation/{conv_id}/messages",
        headers={"Authorization": f"Bearer {token}"},
    )
    assert resp.status_code == 401


def test_send_message(client, chat_store, conv_id):
    resp = client.post(
        "/api/v1/conversation/message/send",
        json={"conversation_id": conv_id, "sender_id": 1, "content": "hi Bob"},
        headers=_auth(1),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["content"] == "hi Bob"
    assert body["sender_id"] == 1
    assert body["is_deleted"] is False
    assert chat_store.outbox_types() == ["chat.message_created"]


def test_send_as_someone_else_is_403(client, conv_id):
    resp = client.post(
        "/api/v1/conversation/message/send",
        json={"conversation_id": conv_id, "sender_id": 2, "content": "spoof"},
        headers=_auth(1),
    )
    assert resp.status_code == 403


def test_non_participant_cannot_send(client, chat_store, conv_id):
    resp = client.post(
        "/api/v1/conversation/message/send",
        json={"conversation_id": conv_id, "sender_id": 3, "content": "let me in"},
        headers=_auth(3),
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "not_a_participant"
    assert chat_store.messages == {}


def test_blank_content_is_422(client, conv_id):
    resp = client.post(
        "/api/v1/conversation/message/send",
        json={"conversation_id": conv_id, "sender_id": 1, "content": "   "},
        headers=_auth(1),
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "empty_content"


def test_list_messages_paginates_oldest_first(client, chat_store, conv_id):
    for minute in range(5):
        chat_store.add_message(conv_id, 2, f"m{minute}", created_at=T0.replace(minute=minute))

    first = client.get(
        f"/api/v1/conversation/{conv_id}/messages",
        params={"user_id": 1, "limit": 3},
        headers=_auth(1),
    )
    assert first.status_code == 200
    page = first.json()
    assert [m["content"] for m in page["messages"]] == ["m2", "m3", "m4"]
    assert page["pagination"]["has_more"] is True

    second = client.get(
        f"/api/v1/conversation/{conv_id}/messages",
        params={"limit": 3, "before": page["pagination"]["next_cursor"]},
        headers=_auth(1),
    )
    older = second.json()
    assert [m["content"] for m in older["messages"]] == ["m0", "m1"]
    assert older["pagination"]["has_more"] is False


def test_bad_cursor_is_422(client, conv_id):
    resp = client.get(
        f"/api/v1/conversation/{conv_id}/messages",
        params={"before": "%%%"},
        headers=_auth(1),
    )
    assert resp.status_code == 422


def test_list_messages_requires_participation(client, conv_id):
    resp = client.get(f"/api/v1/conversation/{conv_id}/messages", headers=_auth(3))
    assert resp.status_code == 403


def test_delete_message(client, chat_store, conv_id):
    msg = chat_store.add_message(conv_id, 1, "oops")

    forbidden = client.request("DELETE", f"/api/v1/message/{msg.id}", json={"user_id": 2}, headers=_auth(2))
    assert forbidden.status_code == 403

    resp = client.request("DELETE", f"/api/v1/message/{msg.id}", json={"user_id": 1}, headers=_auth(1))
    assert resp.status_code == 200
    assert resp.json() == {"id": msg.id, "is_deleted": True}
    assert chat_store.messages[msg.id].is_deleted is True

    again = client.request("DELETE", f"/api/v1/message/{msg.id}", json={"user_id": 1}, headers=_auth(1))
    assert again.status_code == 200

    missing = client.request("DELETE", "/api/v1/message/999", json={"user_id": 1}, headers=_auth(1))
    assert missing.status_code == 404


def test_mark_read_resets_unread_count(client, chat_store, conv_id):
    chat_store.add_message(conv_id, 2, "one")
    chat_store.add_message(conv_id, 2, "two")
    chat_store.add_message(conv_id, 1, "mine")

    unread = client.get(f"/api/v1/conversation/{conv_id}/unread/1", headers=_auth(1))
    assert unread.status_code == 200
    assert unread.json() == {"unread_count": 2}

    marked = client.post(
        f"/api/v1/conversation/{conv_id}/mark-read", json={"user_id": 1}, headers=_auth(1),
    )
    assert marked.status_code == 200
    assert marked.json()["last_read_at"]

    unread = client.get(f"/api/v1/conversation/{conv_id}/unread/1", headers=_auth(1))
    assert unread.json() == {"unread_count": 0}


def test_unread_for_other_user_is_403(client, conv_id):
    resp = client.get(f"/api/v1/conversation/{conv_id}/unread/2", headers=_auth(1))
    assert resp.status_code == 403


def test_conversation_lifecycle(client, chat_store):
    created = client.post(
        "/api/v1/conversation",
        json={"participant_ids": [2], "event_id": 77},
        headers=_auth(1),
    )
    assert created.status_code == 201
    conv = created.json()
    assert conv["event_id"] == 77

    listing = client.get("/api/v1/conversation/user/1", headers=_auth(1))
    assert listing.status_code == 200
    assert conv["id"] in [c["id"] for c in listing.json()]

    invited = client.post(
        f"/api/v1/conversation/{conv['id']}/participants", json={"user_id": 3}, headers=_auth(1),
    )
    assert invited.status_code == 201
    assert invited.json()["display_name"] == "Eve"

    participants = client.get(f"/api/v1/conversation/{conv['id']}/participants", headers=_auth(3))
    assert participants.status_code == 200
    assert sorted(p["user_id"] for p in participants.json()) == [1, 2, 3]
    assert all(p["is_online"] is False for p in participants.json())

    left = client.post(f"/api/v1/conversation/{conv['id']}/leave", headers=_auth(3))
    assert left.status_code == 204
    assert chat_store.participant(conv["id"], 3).is_active is False

    after = client.get(f"/api/v1/conversation/{conv['id']}/messages", headers=_auth(3))
    assert after.status_code == 403


def test_create_with_unknown_user_is_404(client):
    resp = client.post("/api/v1/conversation", json={"participant_ids": [99]}, headers=_auth(1))
    assert resp.status_code == 404


# --- WebSocket ---


def test_ws_authenticates(client):
    with client.websocket_connect("/ws/chat") as ws:
        ws.send_json({"type": "authenticate", "token": make_token(1)})
        assert ws.receive_json() == {"type": "authenticated", "userId": 1, "displayName": "Ann"}

        ws.send_json({"type": "ping"})
        assert _receive_until(ws, "pong") == {"type": "pong"}


@pytest.mark.parametrize(
    ("first_frame", "close_code"),
    [
        ({"type": "ping"}, 4001),
        ({"type": "authenticate"}, 4001),
        ({"type": "authenticate", "token": "not-a-jwt"}, 4002),
        ({"type": "authenticate", "token": make_token(1, secret="another-secret-key-for-eventro-chat-x")}, 4002),
        ({"type": "authenticate", "token": make_token(1, expires_in=-60)}, 4003),
        ({"type": "authenticate", "token": make_token(404)}, 4004),
    ],
)
def test_ws_rejects_bad_handshake(client, first_frame, close_code):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/chat") as ws:
            ws.send_json(first_frame)
            error = ws.receive_json()
            assert error["type"] == "error"
            assert error["code"] == "unauthenticated"
            ws.receive_json()

    assert exc_info.value.code == close_code


def test_ws_two_clients_exchange_messages(client, chat_store, conv_id):
    with client.websocket_connect("/ws/chat") as ann, client.websocket_connect("/ws/chat") as bob:
        ann.send_json({"type": "authenticate", "token": make_token(1)})
        _receive_until(ann, "authenticated")
        bob.send_json({"type": "authenticate", "token": make_token(2)})
        _receive_until(bob, "authenticated")

        for ws in (ann, bob):
            ws.send_json({"type": "join_conversation", "conversationId": conv_id})
            _receive_until(ws, "joined")
            history = _receive_until(ws, "message_history")
            assert history["messages"] == []

        bob.send_json({"type": "typing_start", "conversationId": conv_id})
        typing = _receive_until(ann, "typing_indicator")
        assert typing["userId"] == 2 and typing["isTyping"] is True

        bob.send_json({"type": "send_message", "conversationId": conv_id, "content": "hey Ann"})
        delivered = _receive_until(bob, "message_delivered")
        received = _receive_until(ann, "new_message")
        assert received["message"]["id"] == delivered["messageId"]
        assert received["message"]["content"] == "hey Ann"
        stopped = _receive_until(ann, "typing_indicator")
        assert stopped["isTyping"] is False

        ann.send_json({"type": "mark_read", "conversationId": conv_id})
        receipt = _receive_until(bob, "read_receipt")
        assert receipt["userId"] == 1

    assert [m.content for m in chat_store.messages.values()] == ["hey Ann"]


def test_ws_send_error_keeps_connection_open(client, conv_id):
    with client.websocket_connect("/ws/chat") as ws:
        ws.send_json({"type": "authenticate", "token": make_token(1)})
        _receive_until(ws, "authenticated")

        ws.send_json({"type": "send_message", "conversationId": conv_id, "content": ""})
        assert _receive_until(ws, "error")["code"] == "empty_content"

        ws.send_text("{not json")
        assert _receive_until(ws, "error")["code"] == "invalid_payload"

        ws.send_json({"type": "launch_rockets"})
        assert _receive_until(ws, "error")["code"] == "unknown_event"

        ws.send_json({"type": "ping"})
        _receive_until(ws, "pong")


def test_rest_send_fans_out_to_ws(client, conv_id):
    with client.websocket_connect("/ws/chat") as ann:
        ann.send_json({"type": "authenticate", "token": make_token(1)})
        _receive_until(ann, "authenticated")
        ann.send_json({"type": "join_conversation", "conversationId": conv_id})
        _receive_until(ann, "message_history")

        resp = client.post(
            "/api/v1/conversation/message/send",
            json={"conversation_id": conv_id, "sender_id": 2, "content": "over REST"},
            headers=_auth(2),
        )
        assert resp.status_code == 201

        pushed = _receive_until(ann, "new_message")
        assert pushed["message"]["id"] == resp.json()["id"]
        assert pushed["message"]["content"] == "over REST"


def test_online_participants_are_reported(client, conv_id):
    with client.websocket_connect("/ws/chat") as ann:
        ann.send_json({"type": "authenticate", "token": make_token(1)})
        _receive_until(ann, "authenticated")

        resp = client.get(f"/api/v1/conversation/{conv_id}/participants", headers=_auth(2))
        online = {p["user_id"]: p["is_online"] for p in resp.json()}
        assert online == {1: True, 2: False}


def _connect_as(ws: Any, user_id: int) -> None:
    ws.send_json({"type": "authenticate", "token": make_token(user_id)})
    _receive_until(ws, "authenticated")


def _join(ws: Any, conversation_id: int) -> dict[str, Any]:
    ws.send_json({"type": "join_conversation", "conversationId": conversation_id})
    return _receive_until(ws, "message_history")


def test_rejoin_after_disconnect_sees_every_missed_message(client, chat_store, conv_id):
    chat_store.add_message(conv_id, 2, "before")
    with client.websocket_connect("/ws/chat") as ann:
        _connect_as(ann, 1)
        assert [m["content"] for m in _join(ann, conv_id)["messages"]] == ["before"]

    with client.websocket_connect("/ws/chat") as bob:
        _connect_as(bob, 2)
        _join(bob, conv_id)
        for content in ("m1", "m2", "m3"):
            bob.send_json({"type": "send_message", "conversationId": conv_id, "content": content})
            _receive_until(bob, "message_delivered")

        with client.websocket_connect("/ws/chat") as ann:
            _connect_as(ann, 1)
            history = _join(ann, conv_id)

    contents = [m["content"] for m in history["messages"]]
    ids = [m["id"] for m in history["messages"]]
    assert contents == ["before", "m1", "m2", "m3"]
    assert len(set(ids)) == len(ids)
    assert history["hasMore"] is False


def test_presence_reaches_participant_who_has_not_joined(client):
    with client.websocket_connect("/ws/chat") as ann:
        _connect_as(ann, 1)

        with client.websocket_connect("/ws/chat") as bob:
            _connect_as(bob, 2)
            assert _receive_until(ann, "user_online") == {"type": "user_online", "userId": 2}

        assert _receive_until(ann, "user_offline") == {"type": "user_offline", "userId": 2}


def test_ws_errors_name_the_failed_request(client, conv_id):
    with client.websocket_connect("/ws/chat") as eve:
        _connect_as(eve, 3)

        eve.send_json({"type": "join_conversation", "conversationId": conv_id})
        error = _receive_until(eve, "error")
        assert error["code"] == "not_a_participant"
        assert error["requestType"] == "join_conversation"
