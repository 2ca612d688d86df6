import asyncio

from fakes import FakeHandle
from services.dispatcher import DeliveryStatus


def test_notify_delivers_to_live_connection(registry, dispatcher, dedup):
    handle = FakeHandle()
    registry.register(4, handle)
    result = asyncio.run(dispatcher.notify(4, "new_message", {"id": 1}))
    assert result
    assert result.status is DeliveryStatus.DELIVERED
    assert handle.sent == [("new_message", {"id": 1})]
    assert len(dedup) == 1


def test_notify_offline_user(dispatcher, dedup):
    result = asyncio.run(dispatcher.notify(99, "new_message", {}))
    assert not result
    assert result.status is DeliveryStatus.OFFLINE
    # no record is kept for undelivered notifications
    assert len(dedup) == 0


def test_notify_dead_connection_counts_as_offline(registry, dispatcher):
    handle = FakeHandle(live=False)
    registry.register(4, handle)
    result = asyncio.run(dispatcher.notify(4, "new_message", {}))
    assert result.status is DeliveryStatus.OFFLINE
    assert handle.sent == []


def test_transport_failure_is_absorbed(registry, dispatcher, dedup):
    registry.register(4, FakeHandle(fail=True))
    result = asyncio.run(dispatcher.notify(4, "new_message", {}))
    assert result.status is DeliveryStatus.TRANSPORT_ERROR
    assert not result.delivered
    assert len(dedup) == 0


def test_same_millisecond_repeat_delivered_once(registry, dispatcher):
    handle = FakeHandle()
    registry.register(4, handle)

    async def _run():
        first = await dispatcher.notify(4, "new_message", {"id": 1})
        second = await dispatcher.notify(4, "new_message", {"id": 1})
        return first, second

    first, second = asyncio.run(_run())
    assert first.delivered
    assert second.status is DeliveryStatus.DUPLICATE
    assert len(handle.sent) == 1


def test_repeats_across_milliseconds_are_both_delivered(registry, dispatcher, clock):
    handle = FakeHandle()
    registry.register(4, handle)

    async def _run():
        await dispatcher.notify(4, "new_message", {"id": 1})
        clock.advance(0.005)
        await dispatcher.notify(4, "new_message", {"id": 1})
        clock.advance(301)
        await dispatcher.notify(4, "new_message", {"id": 1})

    asyncio.run(_run())
    assert len(handle.sent) == 3


def test_emit_bypasses_dedup(registry, dispatcher, dedup):
    handle = FakeHandle()
    registry.register(4, handle)

    async def _run():
        await dispatcher.emit(4, "announcement_created", {"id": 1})
        await dispatcher.emit(4, "announcement_created", {"id": 1})

    asyncio.run(_run())
    assert len(handle.sent) == 2
    assert len(dedup) == 0


def test_broadcast_reports_per_user(registry, dispatcher):
    online = FakeHandle()
    registry.register(1, online)
    registry.register(2, FakeHandle(fail=True))
    results = asyncio.run(dispatcher.broadcast([1, 2, 3, 1], "announcement_created", {"id": 5}))
    assert [(r.user_id, r.status) for r in results] == [
        (1, DeliveryStatus.DELIVERED),
        (2, DeliveryStatus.TRANSPORT_ERROR),
        (3, DeliveryStatus.OFFLINE),
    ]
    assert online.events("announcement_created") == [{"id": 5}]
