"""Simple in-process event bus.

Business code (message send, announcement creation, moderation) publishes
domain events here; the realtime hub subscribes and turns them into socket
notifications. Future: replace with Redis pub/sub for multi-process fan-out.
"""
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List
import logging
import threading

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], Awaitable[None]]


class EventBus:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: str, callback: Handler) -> None:
        with self._lock:
            self._subscribers[event_type].append(callback)

    def unsubscribe(self, event_type: str, callback: Handler) -> None:
        with self._lock:
            subs = self._subscribers.get(event_type, [])
            if callback in subs:
                subs.remove(callback)

    async def publish(self, event_type: str, payload: Dict[str, Any]) -> int:
        """Run every handler for event_type (and "*"); returns how many succeeded."""
        # Copy to avoid mutation while iterating
        with self._lock:
            subs = list(self._subscribers.get(event_type, []))
            subs_all = list(self._subscribers.get("*", []))
        succeeded = 0
        for cb in subs + subs_all:
            try:
                await cb({"type": event_type, **payload})
                succeeded += 1
            except Exception:
                logger.exception("Handler %r failed for event %s", cb, event_type)
        return succeeded
