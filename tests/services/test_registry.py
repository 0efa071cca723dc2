# tests/services/test_registry.py
"""Tests for the in-memory connection registry."""

from athlinked.services.registry import ConnectionRegistry


def test_unannounced_connection_is_not_online() -> None:
    registry = ConnectionRegistry()
    connection = registry.connect("c1")

    assert connection.user_id is None
    assert "c1" in registry
    assert registry.user_for("c1") is None
    assert registry.online_users() == frozenset()


def test_bind_makes_user_online() -> None:
    registry = ConnectionRegistry()
    registry.connect("c1")

    assert registry.bind("c1", "alice") is None
    assert registry.is_online("alice")
    assert registry.connections_for("alice") == frozenset({"c1"})
    assert registry.user_for("c1") == "alice"


def test_bind_is_idempotent_for_same_pair() -> None:
    registry = ConnectionRegistry()
    registry.bind("c1", "alice")

    assert registry.bind("c1", "alice") == "alice"
    assert registry.connections_for("alice") == frozenset({"c1"})


def test_bind_unknown_connection_registers_it() -> None:
    registry = ConnectionRegistry()
    registry.bind("c9", "alice")

    assert "c9" in registry
    assert len(registry) == 1


def test_user_may_hold_several_connections() -> None:
    registry = ConnectionRegistry()
    registry.bind("tab-1", "alice")
    registry.bind("tab-2", "alice")
    registry.bind("phone", "alice")

    assert registry.connections_for("alice") == frozenset({"tab-1", "tab-2", "phone"})

    registry.unbind("tab-2")
    assert registry.connections_for("alice") == frozenset({"tab-1", "phone"})
    assert registry.is_online("alice")


def test_rebind_moves_connection_to_new_user() -> None:
    registry = ConnectionRegistry()
    registry.bind("c1", "alice")

    previous = registry.bind("c1", "bob")

    assert previous == "alice"
    assert not registry.is_online("alice")
    assert registry.connections_for("alice") == frozenset()
    assert registry.connections_for("bob") == frozenset({"c1"})
    assert registry.user_for("c1") == "bob"


def test_last_connection_closing_takes_user_offline() -> None:
    registry = ConnectionRegistry()
    registry.bind("c1", "alice")

    removed = registry.unbind("c1")

    assert removed is not None and removed.user_id == "alice"
    assert not registry.is_online("alice")
    assert "c1" not in registry


def test_unbind_unknown_connection_is_noop() -> None:
    registry = ConnectionRegistry()
    registry.bind("c1", "alice")

    assert registry.unbind("missing") is None
    assert registry.connections_for("alice") == frozenset({"c1"})


def test_unbind_unannounced_connection() -> None:
    registry = ConnectionRegistry()
    registry.connect("c1")

    removed = registry.unbind("c1")

    assert removed is not None and removed.user_id is None
    assert len(registry) == 0


def test_connections_for_returns_snapshot() -> None:
    registry = ConnectionRegistry()
    registry.bind("c1", "alice")
    snapshot = registry.connections_for("alice")

    registry.bind("c2", "alice")

    assert snapshot == frozenset({"c1"})


def test_clear_forgets_everything() -> None:
    registry = ConnectionRegistry()
    registry.bind("c1", "alice")
    registry.connect("c2")

    registry.clear()

    assert len(registry) == 0
    assert registry.connection_ids() == frozenset()
    assert not registry.is_online("alice")
