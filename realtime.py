"""Live connection tracking for the realtime notification core.

Phase 1: In-process only. The registry maps each user id to exactly one live
connection (last writer wins). For multi-process scale-out the registry would
need to move behind Redis pub/sub; that is not attempted here.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Tuple
import logging
import threading

from fastapi import WebSocket, status
from fastapi.encoders import jsonable_encoder
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


class ConnectionHandle(Protocol):
    """Transport-side reference. The registry only checks liveness, emits and closes."""

    @property
    def is_live(self) -> bool: ...
    async def send(self, event: str, data: Dict[str, Any]) -> None: ...
    async def close(self, code: int = status.WS_1000_NORMAL_CLOSURE, reason: str = "") -> None: ...


class WebSocketHandle:
    """ConnectionHandle over a FastAPI WebSocket using the {event, data} envelope."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    @property
    def is_live(self) -> bool:
        return (
            self.websocket.application_state == WebSocketState.CONNECTED
            and self.websocket.client_state == WebSocketState.CONNECTED
        )

    async def send(self, event: str, data: Dict[str, Any]) -> None:
        await self.websocket.send_json({"event": event, "data": jsonable_encoder(data)})

    async def close(self, code: int = status.WS_1000_NORMAL_CLOSURE, reason: str = "") -> None:
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        await self.websocket.close(code=code, reason=reason)


@dataclass
class Connection:
    user_id: int
    handle: ConnectionHandle
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_live(self) -> bool:
        return bool(self.handle.is_live)


def parse_user_id(raw: Any) -> Optional[int]:
    """Parse a handshake user id; None unless it is a positive integer."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw > 0 else None
    text = str(raw).strip()
    if not text.isdigit():
        return None
    value = int(text)
    return value if value > 0 else None


class ConnectionRegistry:
    def __init__(self) -> None:
        # Map user_id -> the single live connection
        self._connections: Dict[int, Connection] = {}
        # Every accepted handle, replaced ones included; the broadcast audience
        self._group: Dict[ConnectionHandle, int] = {}
        self._lock = threading.Lock()

    def register(self, user_id: int, handle: ConnectionHandle) -> Connection:
        if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id <= 0:
            raise ValueError(f"user_id must be a positive integer, got {user_id!r}")
        if handle is None:
            raise ValueError("handle is required")
        connection = Connection(user_id=user_id, handle=handle)
        with self._lock:
            previous = self._connections.get(user_id)
            self._connections[user_id] = connection
            self._group[handle] = user_id
        if previous is not None and previous.handle is not handle:
            # The replaced connection is left open; the janitor evicts it once it drops
            logger.info("User %s reconnected; previous connection replaced", user_id)
        return connection

    def unregister(self, user_id: int, handle: Optional[ConnectionHandle] = None) -> Optional[Connection]:
        """Remove the entry for user_id.

        With a handle, the entry is removed only if it still belongs to that
        handle, so a replaced connection cannot evict its successor.
        Returns the removed connection, or None when nothing was removed.
        """
        with self._lock:
            current = self._connections.get(user_id)
            if current is None:
                return None
            if handle is not None and current.handle is not handle:
                return None
            removed = self._connections.pop(user_id)
            self._group.pop(removed.handle, None)
            return removed

    def release(self, handle: ConnectionHandle) -> None:
        """Drop a handle from the broadcast group once its transport is gone."""
        with self._lock:
            self._group.pop(handle, None)

    def group(self) -> List[Tuple[int, ConnectionHandle]]:
        """(user_id, handle) for every open handle, including replaced ones."""
        with self._lock:
            return [(user_id, handle) for handle, user_id in self._group.items()]

    def lookup(self, user_id: int) -> Optional[Connection]:
        with self._lock:
            return self._connections.get(user_id)

    def connections(self) -> List[Connection]:
        with self._lock:
            return list(self._connections.values())

    def snapshot(self) -> List[Tuple[int, bool]]:
        result: List[Tuple[int, bool]] = []
        for connection in self.connections():
            try:
                live = connection.is_live
            except Exception:
                logger.warning("Liveness check failed for user %s", connection.user_id, exc_info=True)
                live = False
            result.append((connection.user_id, live))
        return result

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, user_id: object) -> bool:
        with self._lock:
            return user_id in self._connections

    async def close_all(self, reason: str = "server shutdown") -> int:
        with self._lock:
            targets = list(self._group.items())
            self._connections.clear()
            self._group.clear()
        for handle, user_id in targets:
            try:
                await handle.close(code=status.WS_1001_GOING_AWAY, reason=reason)
            except Exception:
                logger.warning("Failed to close connection of user %s", user_id, exc_info=True)
        return len(targets)
