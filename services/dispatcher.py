from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List
import logging
import time

from realtime import ConnectionRegistry
from services.dedup import DedupCache, Fingerprint

logger = logging.getLogger(__name__)


class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    DUPLICATE = "duplicate"
    OFFLINE = "offline"
    TRANSPORT_ERROR = "transport_error"
    STORAGE_ERROR = "storage_error"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class DispatchResult:
    user_id: int
    event: str
    status: DeliveryStatus

    @property
    def delivered(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED

    def __bool__(self) -> bool:
        return self.delivered


class NotificationDispatcher:
    """Single entry point for pushing an event to one user.

    Delivery is best-effort: an offline recipient, a duplicate, or a transport
    failure all yield a non-delivered result, never an exception. Nothing is
    queued for later delivery.
    """

    def __init__(self, registry: ConnectionRegistry, dedup: DedupCache, clock: Callable[[], float] = time.time) -> None:
        self.registry = registry
        self.dedup = dedup
        self._clock = clock

    async def notify(self, user_id: int, event: str, payload: Dict[str, Any]) -> DispatchResult:
        now = self._clock()
        try:
            fingerprint = Fingerprint.build(event, user_id, payload, now)
        except (TypeError, ValueError):
            logger.exception("Could not fingerprint %s for user %s", event, user_id)
            return DispatchResult(user_id, event, DeliveryStatus.TRANSPORT_ERROR)

        if not self.dedup.try_mark(fingerprint, now):
            logger.info("Duplicate %s for user %s skipped: %s", event, user_id, fingerprint)
            return DispatchResult(user_id, event, DeliveryStatus.DUPLICATE)

        result = await self._send(user_id, event, payload)
        if not result.delivered:
            self.dedup.release(fingerprint)
        return result

    async def emit(self, user_id: int, event: str, payload: Dict[str, Any]) -> DispatchResult:
        """Send without duplicate suppression."""
        return await self._send(user_id, event, payload)

    async def broadcast(self, user_ids: Iterable[int], event: str, payload: Dict[str, Any]) -> List[DispatchResult]:
        results = []
        for user_id in dict.fromkeys(user_ids):
            results.append(await self.emit(user_id, event, payload))
        delivered = sum(1 for r in results if r.delivered)
        logger.info("Broadcast %s reached %s/%s users", event, delivered, len(results))
        return results

    async def _send(self, user_id: int, event: str, payload: Dict[str, Any]) -> DispatchResult:
        connection = self.registry.lookup(user_id)
        try:
            if connection is None or not connection.is_live:
                logger.debug("Cannot send %s to user %s: no live connection", event, user_id)
                return DispatchResult(user_id, event, DeliveryStatus.OFFLINE)
            await connection.handle.send(event, payload)
        except Exception:
            logger.exception("Failed to send %s to user %s", event, user_id)
            return DispatchResult(user_id, event, DeliveryStatus.TRANSPORT_ERROR)
        logger.info("Sent %s to user %s", event, user_id)
        return DispatchResult(user_id, event, DeliveryStatus.DELIVERED)
