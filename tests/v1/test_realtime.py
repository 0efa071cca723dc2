# tests/v1/test_realtime.py
"""End-to-end WebSocket scenarios through the FastAPI app."""

from __future__ import annotations

from typing import Any

from athlinked.core.settings import settings
from athlinked.services.message_store import conversation_id_for

ALICE = "user-alice"
BOB = "user-bob"


def announce(ws: Any, user_id: str) -> None:
    ws.send_json({"event": "userId", "data": {"userId": user_id}, "ack": f"hello-{user_id}"})
    assert ws.receive_json() == {
        "event": "ack",
        "data": {"ack": f"hello-{user_id}", "success": True, "userId": user_id},
    }


def send(ws: Any, receiver_id: str, body: str, ack: str = "s") -> None:
    ws.send_json(
        {"event": "send_message", "data": {"receiverId": receiver_id, "message": body}, "ack": ack}
    )


def receive_events(ws: Any, count: int) -> list[dict[str, Any]]:
    return [ws.receive_json() for _ in range(count)]


def test_message_to_online_receiver(client) -> None:
    with client.websocket_connect(settings.ws_path) as alice, client.websocket_connect(
        settings.ws_path
    ) as bob:
        announce(alice, ALICE)
        announce(bob, BOB)

        send(alice, BOB, "hi bob")

        alice_frames = receive_events(alice, 5)
        assert [f["event"] for f in alice_frames] == [
            "receive_message",
            "conversation_updated",
            "message_count_update",
            "message_delivered",
            "ack",
        ]
        assert alice_frames[0]["data"]["is_delivered"] is True
        assert alice_frames[4]["data"]["success"] is True

        bob_frames = receive_events(bob, 3)
        assert [f["event"] for f in bob_frames] == [
            "receive_message",
            "conversation_updated",
            "message_count_update",
        ]
        assert bob_frames[0]["data"]["message"] == "hi bob"
        assert bob_frames[0]["data"]["conversation_id"] == conversation_id_for(ALICE, BOB)
        assert bob_frames[2]["data"] == {"count": 1}


def test_offline_receiver_then_announce(client, headers_for) -> None:
    with client.websocket_connect(settings.ws_path) as alice:
        announce(alice, ALICE)

        send(alice, BOB, "are you there?", ack="first")
        frames = receive_events(alice, 4)
        assert [f["event"] for f in frames] == [
            "receive_message",
            "conversation_updated",
            "message_count_update",
            "ack",
        ]
        assert frames[0]["data"]["is_delivered"] is False

        unread = client.get("/api/v1/messages/unread-count", headers=headers_for(BOB))
        assert unread.json()["count"] == 1

        with client.websocket_connect(settings.ws_path) as bob:
            announce(bob, BOB)
            send(alice, BOB, "now?", ack="second")

            frames = receive_events(alice, 5)
            assert frames[3]["event"] == "message_delivered"
            bob_frames = receive_events(bob, 3)
            assert bob_frames[2]["data"] == {"count": 2}


def test_multi_tab_receiver(client) -> None:
    with client.websocket_connect(settings.ws_path) as alice, client.websocket_connect(
        settings.ws_path
    ) as bob_laptop, client.websocket_connect(settings.ws_path) as bob_phone:
        announce(alice, ALICE)
        announce(bob_laptop, BOB)
        announce(bob_phone, BOB)

        send(alice, BOB, "both of you")
        receive_events(alice, 5)

        for tab in (bob_laptop, bob_phone):
            events = [f["event"] for f in receive_events(tab, 3)]
            assert events == ["receive_message", "conversation_updated", "message_count_update"]


def test_send_before_announce_is_rejected(client) -> None:
    with client.websocket_connect(settings.ws_path) as ws:
        send(ws, BOB, "who am I", ack="x")

        assert ws.receive_json() == {
            "event": "error",
            "data": {"message": "Connection has not announced a user id"},
        }
        ack = ws.receive_json()
        assert ack["event"] == "ack"
        assert ack["data"]["success"] is False


def test_invalid_payload_is_rejected(client) -> None:
    with client.websocket_connect(settings.ws_path) as ws:
        announce(ws, ALICE)
        ws.send_json({"event": "send_message", "data": {"receiverId": BOB}})

        assert ws.receive_json() == {
            "event": "error",
            "data": {"message": "Missing required fields"},
        }


def test_non_json_frame_is_rejected(client) -> None:
    with client.websocket_connect(settings.ws_path) as ws:
        ws.send_text("not json")

        assert ws.receive_json() == {"event": "error", "data": {"message": "Malformed frame"}}

        # The connection stays usable.
        announce(ws, ALICE)


def test_binary_frame_is_rejected(client) -> None:
    with client.websocket_connect(settings.ws_path) as ws:
        ws.send_bytes(b"\x00\x01")

        assert ws.receive_json() == {"event": "error", "data": {"message": "Malformed frame"}}
        announce(ws, ALICE)


def test_disconnect_takes_user_offline(client, app) -> None:
    with client.websocket_connect(settings.ws_path) as ws:
        announce(ws, ALICE)
        assert app.state.hub.registry.is_online(ALICE)

    with client.websocket_connect(settings.ws_path) as bob:
        announce(bob, BOB)
        assert not app.state.hub.registry.is_online(ALICE)

        send(bob, ALICE, "gone?")
        events = [f["event"] for f in receive_events(bob, 4)]
        assert "message_delivered" not in events


def test_mark_read_over_socket(client) -> None:
    with client.websocket_connect(settings.ws_path) as alice, client.websocket_connect(
        settings.ws_path
    ) as bob:
        announce(alice, ALICE)
        announce(bob, BOB)
        send(alice, BOB, "read me")
        receive_events(alice, 5)
        receive_events(bob, 3)

        conversation_id = conversation_id_for(ALICE, BOB)
        bob.send_json(
            {"event": "mark_read", "data": {"conversationId": conversation_id}, "ack": "r"}
        )

        bob_frames = receive_events(bob, 3)
        assert [f["event"] for f in bob_frames] == [
            "conversation_updated",
            "message_count_update",
            "ack",
        ]
        assert bob_frames[0]["data"]["conversation"]["unread_count"] == 0
        assert bob_frames[1]["data"] == {"count": 0}

        assert alice.receive_json() == {
            "event": "messages_read",
            "data": {"conversationId": conversation_id, "readerId": BOB},
        }
