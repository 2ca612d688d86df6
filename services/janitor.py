from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
import asyncio
import contextlib
import logging

from realtime import ConnectionRegistry
from services.dedup import DedupCache

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0


@dataclass
class JanitorReport:
    dedup_evicted: int = 0
    connections_evicted: int = 0
    orphans_released: int = 0
    online: int = 0


class PresenceJanitor:
    """Periodically drops expired dedup records and dead connections."""

    def __init__(self, registry: ConnectionRegistry, dedup: DedupCache, interval: float = DEFAULT_INTERVAL_SECONDS):
        self.registry = registry
        self.dedup = dedup
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    def run_once(self, now: Optional[float] = None) -> JanitorReport:
        report = JanitorReport()
        report.dedup_evicted = self.dedup.sweep(now)
        for connection in self.registry.connections():
            try:
                live = connection.is_live
            except Exception:
                logger.warning("Liveness check failed for user %s; evicting", connection.user_id, exc_info=True)
                live = False
            if live:
                continue
            if self.registry.unregister(connection.user_id, connection.handle) is not None:
                logger.info("Evicted stale connection of user %s", connection.user_id)
                report.connections_evicted += 1
        for _, handle in self.registry.group():
            try:
                live = bool(handle.is_live)
            except Exception:
                live = False
            if not live:
                # replaced tabs that dropped without a disconnect
                self.registry.release(handle)
                report.orphans_released += 1
        report.online = len(self.registry)
        logger.info(
            "Presence sweep: %s users connected, %s stale connections, %s replaced handles and %s dedup records evicted",
            report.online, report.connections_evicted, report.orphans_released, report.dedup_evicted,
        )
        return report

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.run_once()
            except Exception:
                logger.exception("Presence sweep failed")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
