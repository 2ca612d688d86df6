"""Assembly of the realtime notification core.

Every component is owned by one NotificationHub instance; the FastAPI app
keeps it on app.state.hub and handlers reach it through get_hub().
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
import logging
import time

from starlette.requests import HTTPConnection

from config import Settings, settings as default_settings
from event_bus import EventBus
from realtime import ConnectionRegistry
from schemas.realtime import ANNOUNCEMENT_CREATED, NEW_MESSAGE, AnnouncementCreated, MessageSent
from services.dedup import DedupCache
from services.dispatcher import DispatchResult, NotificationDispatcher
from services.force_logout import ForceLogoutCoordinator
from services.janitor import PresenceJanitor
from services.read_receipts import ReadReceiptFanout
from services.store import NotificationStore
from services.unread import UnreadAggregator

logger = logging.getLogger(__name__)

ANNOUNCEMENT_EVENT = "announcement.created"
MESSAGE_SENT_EVENT = "message.sent"


@dataclass
class NotificationHub:
    store: NotificationStore
    registry: ConnectionRegistry
    dedup: DedupCache
    dispatcher: NotificationDispatcher
    receipts: ReadReceiptFanout
    unread: UnreadAggregator
    force_logout: ForceLogoutCoordinator
    janitor: PresenceJanitor
    bus: EventBus

    async def start(self) -> None:
        self.janitor.start()
        logger.info("Realtime hub started")

    async def shutdown(self) -> None:
        # Janitor first, so it never sweeps a registry that is being torn down
        await self.janitor.stop()
        await self.force_logout.cancel_pending()
        closed = await self.registry.close_all()
        logger.info("Realtime hub stopped; closed %s connections", closed)

    async def announce(self, announcement: AnnouncementCreated) -> List[DispatchResult]:
        data = announcement.model_dump(exclude={"user_ids"})
        return await self.dispatcher.broadcast(announcement.user_ids, ANNOUNCEMENT_CREATED, data)

    async def on_announcement(self, event: Dict[str, Any]) -> None:
        await self.announce(AnnouncementCreated.model_validate(event))

    async def on_message_sent(self, event: Dict[str, Any]) -> None:
        message = MessageSent.model_validate(event)
        recipients = await self.store.fetch_conversation_member_ids(message.conversation_id, message.sender_id)
        data = message.model_dump()
        for user_id in recipients:
            await self.dispatcher.notify(user_id, NEW_MESSAGE, data)
            await self.unread.push_unread_update(user_id)


def build_hub(
    store: NotificationStore,
    app_settings: Optional[Settings] = None,
    clock: Callable[[], float] = time.time,
) -> NotificationHub:
    app_settings = app_settings or default_settings
    registry = ConnectionRegistry()
    dedup = DedupCache(retention_seconds=app_settings.DEDUP_RETENTION_SECONDS, clock=clock)
    dispatcher = NotificationDispatcher(registry, dedup, clock=clock)
    hub = NotificationHub(
        store=store,
        registry=registry,
        dedup=dedup,
        dispatcher=dispatcher,
        receipts=ReadReceiptFanout(store, dispatcher),
        unread=UnreadAggregator(store, dispatcher),
        force_logout=ForceLogoutCoordinator(
            registry,
            grace_seconds=app_settings.FORCE_LOGOUT_GRACE_SECONDS,
            default_reason=app_settings.DEFAULT_FORCE_LOGOUT_REASON,
        ),
        janitor=PresenceJanitor(registry, dedup, interval=app_settings.JANITOR_INTERVAL_SECONDS),
        bus=EventBus(),
    )
    hub.bus.subscribe(ANNOUNCEMENT_EVENT, hub.on_announcement)
    hub.bus.subscribe(MESSAGE_SENT_EVENT, hub.on_message_sent)
    return hub


def get_hub(conn: HTTPConnection) -> NotificationHub:
    return conn.app.state.hub
