"""Live push channel: registry of open WebSocket connections per user.

The registry is ephemeral and rebuilt as clients reconnect. Only the
notification service pushes through it; the WebSocket endpoint only registers
and unregisters sockets.
"""

import asyncio
import logging
from typing import Any, Protocol


logger = logging.getLogger(__name__)

PUSH_TIMEOUT_SECONDS = 5.0


class LiveSocket(Protocol):
    async def send_json(self, data: Any, mode: str = "text") -> None: ...  # noqa: ANN401


class ConnectionRegistry:
    """Open sockets keyed by user id. A user may be connected from several clients."""

    def __init__(self) -> None:
        self._connections: dict[str, set[LiveSocket]] = {}

    def register(self, user_id: str, socket: LiveSocket) -> None:
        self._connections.setdefault(user_id, set()).add(socket)
        logger.info("Live connection registered", extra={"user_id": user_id})

    def unregister(self, user_id: str, socket: LiveSocket) -> None:
        sockets = self._connections.get(user_id)
        if not sockets:
            return
        sockets.discard(socket)
        if not sockets:
            del self._connections[user_id]
        logger.info("Live connection unregistered", extra={"user_id": user_id})

    def is_connected(self, user_id: str) -> bool:
        return bool(self._connections.get(user_id))

    def connected_user_ids(self) -> list[str]:
        return list(self._connections)

    def clear(self) -> None:
        self._connections.clear()

    async def push_to_user(self, user_id: str, event_name: str, payload: dict[str, Any]) -> int:
        """Send an event to every socket of a user and return how many accepted it.

        Best-effort: failures are logged and the failing socket is dropped.
        Never raises.
        """
        sockets = list(self._connections.get(user_id, ()))
        delivered = 0
        for socket in sockets:
            try:
                await asyncio.wait_for(
                    socket.send_json({"event": event_name, "data": payload}),
                    timeout=PUSH_TIMEOUT_SECONDS,
                )
                delivered += 1
            except Exception as e:
                logger.warning(
                    "Live push failed, dropping socket",
                    extra={"user_id": user_id, "event": event_name, "error": str(e)},
                )
                self.unregister(user_id, socket)
        return delivered

    async def broadcast(self, event_name: str, payload: dict[str, Any]) -> int:
        """Push an event to every connected user."""
        delivered = 0
        for user_id in self.connected_user_ids():
            delivered += await self.push_to_user(user_id, event_name, payload)
        return delivered


# Global registry, owned by the notification service
connection_registry = ConnectionRegistry()
