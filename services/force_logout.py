from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Set
import asyncio
import logging

from fastapi import status

from realtime import Connection, ConnectionRegistry
from schemas.realtime import FORCE_LOGOUT, GLOBAL_FORCE_LOGOUT, ForceLogoutNotice, GlobalForceLogoutNotice
from services.dispatcher import DeliveryStatus

logger = logging.getLogger(__name__)

DEFAULT_GRACE_SECONDS = 1.0
DEFAULT_REASON = "Your account has been locked"


@dataclass
class ForceLogoutResult:
    user_id: int
    status: DeliveryStatus
    reason: str
    teardown: Optional[asyncio.Task] = None

    @property
    def delivered(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED

    def __bool__(self) -> bool:
        return self.delivered


class ForceLogoutCoordinator:
    def __init__(
        self,
        registry: ConnectionRegistry,
        grace_seconds: float = DEFAULT_GRACE_SECONDS,
        default_reason: str = DEFAULT_REASON,
    ):
        self.registry = registry
        self.grace_seconds = grace_seconds
        self.default_reason = default_reason
        self._pending: Set[asyncio.Task] = set()

    async def force_logout(self, user_id: int, reason: Optional[str] = None) -> ForceLogoutResult:
        reason = reason or self.default_reason
        connection = self.registry.lookup(user_id)
        if connection is None:
            logger.info("Force logout for user %s skipped: not connected", user_id)
            return ForceLogoutResult(user_id, DeliveryStatus.OFFLINE, reason)

        logger.warning("Force logout for user %s: %s", user_id, reason)
        timestamp = datetime.now(timezone.utc)
        outcome = DeliveryStatus.DELIVERED
        try:
            notice = ForceLogoutNotice(user_id=user_id, reason=reason, timestamp=timestamp)
            await connection.handle.send(FORCE_LOGOUT, notice.model_dump())
        except Exception:
            logger.exception("Failed to send force_logout to user %s", user_id)
            outcome = DeliveryStatus.TRANSPORT_ERROR

        await self._broadcast_global(connection, reason, timestamp)

        task = asyncio.create_task(self._teardown(connection))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return ForceLogoutResult(user_id, outcome, reason, teardown=task)

    async def _broadcast_global(self, connection: Connection, reason: str, timestamp: datetime) -> None:
        # Every other handle on this server, replaced tabs of the same account included
        notice = GlobalForceLogoutNotice(
            target_user_id=connection.user_id, reason=reason, timestamp=timestamp,
        ).model_dump()
        for user_id, handle in self.registry.group():
            if handle is connection.handle:
                continue
            try:
                await handle.send(GLOBAL_FORCE_LOGOUT, notice)
            except Exception:
                logger.warning("Failed to send global_force_logout to user %s", user_id, exc_info=True)

    async def _teardown(self, connection: Connection) -> None:
        await asyncio.sleep(self.grace_seconds)
        try:
            removed = self.registry.unregister(connection.user_id, connection.handle)
            await connection.handle.close(code=status.WS_1008_POLICY_VIOLATION, reason="force_logout")
            self.registry.release(connection.handle)
            if removed is not None:
                logger.info("Disconnected user %s after force logout", connection.user_id)
        except Exception:
            logger.exception("Failed to close connection of user %s after force logout", connection.user_id)

    async def wait_pending(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def cancel_pending(self) -> None:
        tasks = list(self._pending)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
