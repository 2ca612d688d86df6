import asyncio

import pytest

from fakes import FakeHandle
from realtime import ConnectionRegistry, parse_user_id


def test_last_registration_wins():
    registry = ConnectionRegistry()
    first, second, third = FakeHandle(), FakeHandle(), FakeHandle()
    for handle in (first, second, third):
        registry.register(7, handle)
    conn = registry.lookup(7)
    assert conn is not None and conn.handle is third
    assert len(registry) == 1
    # replaced connections are not closed by the registry
    assert not first.closed and not second.closed


def test_unregister_is_idempotent(registry):
    registry.register(3, FakeHandle())
    assert registry.unregister(3) is not None
    assert registry.unregister(3) is None
    assert registry.lookup(3) is None
    assert registry.snapshot() == []


def test_unregister_with_stale_handle_keeps_newer_connection(registry):
    old, new = FakeHandle(), FakeHandle()
    registry.register(9, old)
    registry.register(9, new)
    assert registry.unregister(9, old) is None
    assert registry.lookup(9).handle is new
    assert registry.unregister(9, new).handle is new
    assert 9 not in registry


@pytest.mark.parametrize("user_id", [0, -4, "5", None, True, 2.5])
def test_register_rejects_bad_user_id(registry, user_id):
    with pytest.raises(ValueError):
        registry.register(user_id, FakeHandle())
    assert len(registry) == 0


def test_register_rejects_missing_handle(registry):
    with pytest.raises(ValueError):
        registry.register(1, None)


def test_snapshot_reports_liveness(registry):
    registry.register(1, FakeHandle())
    registry.register(2, FakeHandle(live=False))
    registry.register(3, FakeHandle(broken=True))
    assert sorted(registry.snapshot()) == [(1, True), (2, False), (3, False)]


def test_close_all_empties_registry(registry):
    handles = [FakeHandle(), FakeHandle()]
    registry.register(1, handles[0])
    registry.register(2, handles[1])
    closed = asyncio.run(registry.close_all())
    assert closed == 2
    assert len(registry) == 0
    assert all(h.closed for h in handles)


@pytest.mark.parametrize("raw,expected", [
    ("42", 42),
    (" 8 ", 8),
    (5, 5),
    ("0", None),
    ("-3", None),
    ("abc", None),
    ("", None),
    (None, None),
    ("4.5", None),
])
def test_parse_user_id(raw, expected):
    assert parse_user_id(raw) == expected


def test_group_keeps_replaced_handles_until_released(registry):
    old, new = FakeHandle(), FakeHandle()
    registry.register(1, old)
    registry.register(1, new)
    assert registry.group() == [(1, old), (1, new)]
    # a replaced handle cannot unregister its successor but can leave the group
    assert registry.unregister(1, old) is None
    registry.release(old)
    assert registry.group() == [(1, new)]
    registry.unregister(1, new)
    assert registry.group() == []


def test_close_all_also_closes_replaced_handles(registry):
    old, new = FakeHandle(), FakeHandle()
    registry.register(1, old)
    registry.register(1, new)
    assert asyncio.run(registry.close_all()) == 2
    assert old.closed and new.closed
    assert registry.group() == []
