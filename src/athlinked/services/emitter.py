# src/athlinked/services/emitter.py
"""Event fan-out to live connections.

Emission is at-most-once per connection. A connection that fails to accept a
frame (typically one mid-teardown) is skipped; its disconnect handler will
remove it from the registry.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any, Protocol

from athlinked.core.errors import TransportFailureError
from athlinked.schemas.events import Event, WsOutbound

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Anything that can push a JSON frame to one client."""

    async def send(self, frame: dict[str, Any]) -> None: ...


class EventEmitter:
    """Holds the transport handle of every live connection and emits frames."""

    def __init__(self) -> None:
        self._transports: dict[str, Transport] = {}

    def attach(self, connection_id: str, transport: Transport) -> None:
        self._transports[connection_id] = transport

    def detach(self, connection_id: str) -> None:
        self._transports.pop(connection_id, None)

    def clear(self) -> None:
        self._transports.clear()

    async def emit(self, connection_id: str, event: Event | str, data: dict[str, Any]) -> bool:
        """Send one event to one connection; return False if it was dropped."""
        frame = WsOutbound(event=_event_name(event), data=data).model_dump(mode="json")
        try:
            await self._send(connection_id, frame)
        except TransportFailureError as exc:
            logger.debug("Dropped %s for connection %s: %s", frame["event"], connection_id, exc)
            return False
        return True

    async def emit_to_connections(
        self,
        connection_ids: Iterable[str],
        event: Event | str,
        data: dict[str, Any],
    ) -> int:
        """Send one event to every connection concurrently.

        Returns:
            The number of connections the frame was handed to.
        """
        targets = list(connection_ids)
        if not targets:
            return 0

        results = await asyncio.gather(
            *[self.emit(connection_id, event, data) for connection_id in targets],
            return_exceptions=True,
        )
        return sum(1 for result in results if result is True)

    async def _send(self, connection_id: str, frame: dict[str, Any]) -> None:
        transport = self._transports.get(connection_id)
        if transport is None:
            raise TransportFailureError("Connection is not attached")
        try:
            await transport.send(frame)
        except Exception as exc:
            raise TransportFailureError(str(exc) or type(exc).__name__) from exc


def _event_name(event: Event | str) -> str:
    return event.value if isinstance(event, Event) else event
