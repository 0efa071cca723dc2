# tests/v1/test_messages_api.py
"""Tests for the conversation and history REST endpoints."""

from fastapi import status
from jose import jwt

from athlinked.core.settings import settings
from athlinked.schemas.message import OutboundMessage, TextMessage
from athlinked.services.message_store import MessageStore, conversation_id_for

ALICE = "user-alice"
BOB = "user-bob"
CAROL = "user-carol"


def seed(store: MessageStore, sender: str, receiver: str, count: int = 1) -> str:
    for i in range(count):
        payload = store.send_message(
            sender, OutboundMessage(receiver_id=receiver, content=TextMessage(body=f"m{i}"))
        )
    return payload.conversation_id


def test_requires_bearer_token(client) -> None:
    response = client.get("/api/v1/messages/conversations")
    assert response.status_code in {status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN}


def test_rejects_token_with_wrong_secret(client) -> None:
    token = jwt.encode({"sub": ALICE}, "wrong-secret", algorithm=settings.jwt_algorithm)

    response = client.get(
        "/api/v1/messages/conversations", headers={"Authorization": f"Bearer {token}"}
    )

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["detail"] == "Could not validate credentials"


def test_list_conversations(client, store, alice_headers) -> None:
    seed(store, BOB, ALICE, 2)
    seed(store, ALICE, CAROL)

    response = client.get("/api/v1/messages/conversations", headers=alice_headers)

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert [c["other_user_id"] for c in data] == [CAROL, BOB]
    assert data[1]["unread_count"] == 2
    assert data[1]["last_message"] == "m1"


def test_open_conversation_is_get_or_create(client, alice_headers, bob_headers) -> None:
    created = client.post(
        "/api/v1/messages/conversations", json={"other_user_id": BOB}, headers=alice_headers
    )
    again = client.post(
        "/api/v1/messages/conversations", json={"other_user_id": ALICE}, headers=bob_headers
    )

    assert created.status_code == status.HTTP_200_OK
    assert created.json()["conversation_id"] == conversation_id_for(ALICE, BOB)
    assert again.json()["conversation_id"] == created.json()["conversation_id"]
    assert again.json()["other_user_id"] == ALICE


def test_open_conversation_with_self_is_rejected(client, alice_headers) -> None:
    response = client.post(
        "/api/v1/messages/conversations", json={"other_user_id": ALICE}, headers=alice_headers
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"detail": "Cannot start a conversation with yourself"}


def test_unread_count(client, store, alice_headers) -> None:
    seed(store, BOB, ALICE, 2)
    seed(store, CAROL, ALICE, 3)

    response = client.get("/api/v1/messages/unread-count", headers=alice_headers)

    assert response.json() == {"unread_count": 5, "count": 5}


def test_history_pagination(client, store, bob_headers) -> None:
    conversation_id = seed(store, ALICE, BOB, 5)

    page = client.get(
        f"/api/v1/messages/{conversation_id}", params={"limit": 3}, headers=bob_headers
    ).json()
    assert [m["message"] for m in page] == ["m2", "m3", "m4"]
    assert [m["sequence"] for m in page] == [3, 4, 5]

    older = client.get(
        f"/api/v1/messages/{conversation_id}",
        params={"limit": 3, "before": page[0]["sequence"]},
        headers=bob_headers,
    ).json()
    assert [m["message"] for m in older] == ["m0", "m1"]


def test_history_limit_is_capped(client, store, bob_headers) -> None:
    conversation_id = seed(store, ALICE, BOB)

    response = client.get(
        f"/api/v1/messages/{conversation_id}", params={"limit": 101}, headers=bob_headers
    )

    assert response.status_code == 422


def test_history_for_outsider_is_not_found(client, store, headers_for) -> None:
    conversation_id = seed(store, ALICE, BOB)

    response = client.get(f"/api/v1/messages/{conversation_id}", headers=headers_for(CAROL))

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"detail": "Conversation not found"}


def test_history_read_flags(client, store, alice_headers, bob_headers) -> None:
    conversation_id = seed(store, ALICE, BOB, 2)
    client.post(f"/api/v1/messages/{conversation_id}/read", headers=bob_headers)

    history = client.get(f"/api/v1/messages/{conversation_id}", headers=alice_headers).json()

    assert all(m["is_read_by_recipient"] for m in history)
    assert not any(m["is_read"] for m in history)


def test_mark_read_resets_unread(client, store, bob_headers) -> None:
    conversation_id = seed(store, ALICE, BOB, 3)

    response = client.post(f"/api/v1/messages/{conversation_id}/read", headers=bob_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "success": True,
        "conversation_id": conversation_id,
        "sender_id": ALICE,
    }
    assert store.unread_count(BOB, conversation_id) == 0


def test_mark_read_notifies_sender_socket(client, store, bob_headers) -> None:
    conversation_id = seed(store, ALICE, BOB)

    with client.websocket_connect(settings.ws_path) as alice_ws:
        alice_ws.send_json({"event": "userId", "data": {"userId": ALICE}, "ack": "1"})
        assert alice_ws.receive_json()["event"] == "ack"

        client.post(f"/api/v1/messages/{conversation_id}/read", headers=bob_headers)

        assert alice_ws.receive_json() == {
            "event": "messages_read",
            "data": {"conversationId": conversation_id, "readerId": BOB},
        }


def test_mark_read_unknown_conversation(client, bob_headers) -> None:
    response = client.post("/api/v1/messages/nope/read", headers=bob_headers)

    assert response.status_code == status.HTTP_404_NOT_FOUND
