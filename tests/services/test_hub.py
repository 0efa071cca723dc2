# tests/services/test_hub.py
"""Tests for frame routing, acknowledgements and connection lifecycle."""

from __future__ import annotations

import pytest

ALICE = "user-alice"
BOB = "user-bob"


@pytest.mark.asyncio
async def test_connect_assigns_unique_ids(hub, transport_factory) -> None:
    first = hub.connect(transport_factory())
    second = hub.connect(transport_factory())

    assert first != second
    assert len(hub.registry) == 2


@pytest.mark.asyncio
async def test_malformed_frame_yields_error(hub, connect) -> None:
    connection_id, transport = await connect()

    await hub.dispatch(connection_id, ["not", "an", "envelope"])

    assert transport.of("error") == [{"message": "Malformed frame"}]


@pytest.mark.asyncio
async def test_unknown_event_yields_error_and_failed_ack(hub, connect) -> None:
    connection_id, transport = await connect(ALICE)

    await hub.dispatch(connection_id, {"event": "typing", "data": {}, "ack": "t1"})

    assert transport.frames == [
        {"event": "error", "data": {"message": "Unknown event: typing"}},
        {"event": "ack", "data": {"ack": "t1", "success": False, "error": "Unknown event: typing"}},
    ]


@pytest.mark.asyncio
async def test_send_ack_follows_delivery_events(hub, connect) -> None:
    connection_id, transport = await connect(ALICE)

    await hub.dispatch(
        connection_id,
        {"event": "send_message", "data": {"receiverId": BOB, "message": "hi"}, "ack": "s1"},
    )

    assert transport.events[-1] == "ack"
    ack = transport.of("ack")[0]
    assert ack["ack"] == "s1"
    assert ack["success"] is True
    assert ack["message_id"] == transport.of("receive_message")[0]["message_id"]


@pytest.mark.asyncio
async def test_disconnect_takes_user_offline(hub, connect) -> None:
    connection_id, _ = await connect(ALICE)

    hub.disconnect(connection_id)

    assert not hub.registry.is_online(ALICE)
    assert connection_id not in hub.registry


@pytest.mark.asyncio
async def test_disconnect_unknown_connection_is_noop(hub) -> None:
    hub.disconnect("never-seen")

    assert len(hub.registry) == 0


@pytest.mark.asyncio
async def test_close_drops_all_connections(hub, connect) -> None:
    await connect(ALICE)
    await connect(BOB)

    await hub.close()

    assert len(hub.registry) == 0
    assert hub.registry.online_users() == frozenset()
