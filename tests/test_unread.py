import asyncio
from datetime import datetime

from fakes import FakeHandle, FakeStore
from schemas.realtime import UNREAD_COUNT_UPDATE, ConversationSummary, UnreadSnapshot
from services.dispatcher import DeliveryStatus
from services.unread import UnreadAggregator


def _snapshot():
    return UnreadSnapshot(total_unread=4, conversations=[
        ConversationSummary(conversation_id=12, conversation_type="group", unread_count=3,
                            last_message_id=90, last_message_content="see you",
                            last_message_time=datetime(2026, 5, 1, 10, 5)),
        ConversationSummary(conversation_id=11, conversation_type="personal", unread_count=1,
                            last_message_id=71, last_message_content="hi",
                            last_message_time=datetime(2026, 5, 1, 9, 0)),
    ])


def test_push_sends_single_snapshot(registry, dispatcher):
    store = FakeStore(snapshots={3: _snapshot()})
    handle = FakeHandle()
    registry.register(3, handle)

    result = asyncio.run(UnreadAggregator(store, dispatcher).push_unread_update(3))

    assert result.delivered
    updates = handle.events(UNREAD_COUNT_UPDATE)
    assert len(updates) == 1
    update = updates[0]
    assert update["user_id"] == 3
    assert update["total_unread"] == 4
    assert [c["conversation_id"] for c in update["conversations"]] == [12, 11]
    assert update["conversations"][0]["last_message_content"] == "see you"
    assert isinstance(update["timestamp"], datetime)


def test_storage_error_is_absorbed(registry, dispatcher):
    store = FakeStore()
    store.fail_on.add("fetch_unread_summary")
    handle = FakeHandle()
    registry.register(3, handle)

    result = asyncio.run(UnreadAggregator(store, dispatcher).push_unread_update(3))

    assert result.status is DeliveryStatus.STORAGE_ERROR
    assert not result
    assert handle.sent == []


def test_offline_user_returns_not_delivered(dispatcher):
    store = FakeStore(snapshots={3: _snapshot()})
    result = asyncio.run(UnreadAggregator(store, dispatcher).push_unread_update(3))
    assert result.status is DeliveryStatus.OFFLINE
