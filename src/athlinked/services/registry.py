# src/athlinked/services/registry.py
"""In-memory mapping of user identities to live transport connections.

A user may hold several connections at once (tabs, devices). The registry is
process state only: after a restart every user is offline until their client
reconnects and announces again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from athlinked.db.time import utcnow

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """A live transport session, bound to a user once it announces."""

    connection_id: str
    user_id: str | None = None
    joined_at: datetime = field(default_factory=utcnow)


class ConnectionRegistry:
    """Tracks which live connections speak for which user.

    All mutation happens from connection lifecycle handlers running on the
    event loop, so no locking is needed within one process.
    """

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._by_user: dict[str, set[str]] = {}

    def connect(self, connection_id: str) -> Connection:
        """Register a freshly accepted, not yet announced connection."""
        connection = self._connections.get(connection_id)
        if connection is None:
            connection = Connection(connection_id=connection_id)
            self._connections[connection_id] = connection
        return connection

    def bind(self, connection_id: str, user_id: str) -> str | None:
        """Bind ``connection_id`` to ``user_id`` and return the previous owner.

        Binding the same pair again is a no-op. Binding to a different user
        moves the connection: the last announcement wins.
        """
        connection = self.connect(connection_id)
        previous = connection.user_id
        if previous == user_id:
            return previous

        if previous is not None:
            self._discard(previous, connection_id)

        connection.user_id = user_id
        self._by_user.setdefault(user_id, set()).add(connection_id)
        return previous

    def unbind(self, connection_id: str) -> Connection | None:
        """Forget ``connection_id`` entirely. Unknown ids are ignored."""
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return None
        if connection.user_id is not None:
            self._discard(connection.user_id, connection_id)
        return connection

    def connections_for(self, user_id: str) -> frozenset[str]:
        """Return the live connection ids of ``user_id``; empty when offline."""
        return frozenset(self._by_user.get(user_id, ()))

    def is_online(self, user_id: str) -> bool:
        return bool(self._by_user.get(user_id))

    def user_for(self, connection_id: str) -> str | None:
        """Return the user a connection announced as, if any."""
        connection = self._connections.get(connection_id)
        return connection.user_id if connection else None

    def online_users(self) -> frozenset[str]:
        return frozenset(self._by_user)

    def connection_ids(self) -> frozenset[str]:
        return frozenset(self._connections)

    def clear(self) -> None:
        self._connections.clear()
        self._by_user.clear()

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def _discard(self, user_id: str, connection_id: str) -> None:
        connections = self._by_user.get(user_id)
        if connections is None:
            return
        connections.discard(connection_id)
        if not connections:
            del self._by_user[user_id]
