from __future__ import annotations
from datetime import datetime, timezone
import logging

from schemas.realtime import UNREAD_COUNT_UPDATE, UnreadCountUpdate
from services.dispatcher import DeliveryStatus, DispatchResult, NotificationDispatcher
from services.store import NotificationStore

logger = logging.getLogger(__name__)


class UnreadAggregator:
    def __init__(self, store: NotificationStore, dispatcher: NotificationDispatcher):
        self.store = store
        self.dispatcher = dispatcher

    async def push_unread_update(self, user_id: int) -> DispatchResult:
        """
        Push the user's unread totals and conversation previews.
        Storage failures are logged and reported as STORAGE_ERROR so the
        calling business operation is never affected.
        """
        try:
            snapshot = await self.store.fetch_unread_summary(user_id)
        except Exception:
            logger.exception("Failed to load unread summary for user %s", user_id)
            return DispatchResult(user_id, UNREAD_COUNT_UPDATE, DeliveryStatus.STORAGE_ERROR)

        update = UnreadCountUpdate(
            user_id=user_id,
            total_unread=snapshot.total_unread,
            conversations=snapshot.conversations,
            timestamp=datetime.now(timezone.utc),
        )
        return await self.dispatcher.notify(user_id, UNREAD_COUNT_UPDATE, update.model_dump())
