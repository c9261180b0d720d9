import threading
from datetime import UTC, datetime, timedelta

import pytest

from chanproxy.messages import ChannelType, Message, MessageCache

BASE = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _msg(msg_id: str, t: int, channel: ChannelType = ChannelType.DISCORD) -> Message:
    return Message(
        id=msg_id,
        sender="alice",
        recipient="general",
        content=f"message {msg_id}",
        timestamp=BASE + timedelta(seconds=t),
        is_unread=True,
        channel=channel,
    )


def test_capacity_three_keeps_last_inserted_and_sorts_newest_first() -> None:
    cache = MessageCache(capacity=3)
    for msg_id, t in [("A", 1), ("B", 2), ("C", 3), ("D", 4)]:
        cache.add(_msg(msg_id, t))

    assert [m.id for m in cache.get_all()] == ["B", "C", "D"]
    assert [m.id for m in cache.get()] == ["D", "C", "B"]
    assert cache.evicted == 1


def test_eviction_is_by_insertion_order_not_timestamp() -> None:
    cache = MessageCache(capacity=2)
    cache.add(_msg("newest", 100))
    cache.add(_msg("old", 1))
    cache.add(_msg("older", 0))

    assert [m.id for m in cache.get_all()] == ["old", "older"]


def test_default_capacity_is_one_hundred() -> None:
    cache = MessageCache()
    for i in range(150):
        cache.add(_msg(str(i), i))

    stored = cache.get_all()
    assert len(stored) == 100
    assert [m.id for m in stored] == [str(i) for i in range(50, 150)]


def test_get_since_is_inclusive_and_sorted_descending() -> None:
    cache = MessageCache()
    for msg_id, t in [("a", 5), ("b", 1), ("c", 3), ("d", 4)]:
        cache.add(_msg(msg_id, t))

    result = cache.get(since=BASE + timedelta(seconds=3))

    assert [m.id for m in result] == ["a", "d", "c"]
    assert all(m.timestamp >= BASE + timedelta(seconds=3) for m in result)


def test_get_treats_naive_since_as_utc() -> None:
    cache = MessageCache()
    cache.add(_msg("early", 1))
    cache.add(_msg("late", 10))

    result = cache.get(since=datetime(2026, 3, 1, 12, 0, 5))

    assert [m.id for m in result] == ["late"]


def test_get_filters_by_channel_enum_or_string() -> None:
    cache = MessageCache()
    cache.add(_msg("d1", 1, ChannelType.DISCORD))
    cache.add(_msg("g1", 2, ChannelType.GMAIL))
    cache.add(_msg("l1", 3, ChannelType.LINE))
    cache.add(_msg("g2", 4, ChannelType.GMAIL))

    assert [m.id for m in cache.get(channel=ChannelType.GMAIL)] == ["g2", "g1"]
    assert [m.id for m in cache.get(channel="line")] == ["l1"]
    assert cache.get(channel="telegram") == []


def test_get_combines_since_and_channel() -> None:
    cache = MessageCache()
    cache.add(_msg("g1", 1, ChannelType.GMAIL))
    cache.add(_msg("d1", 5, ChannelType.DISCORD))
    cache.add(_msg("g2", 6, ChannelType.GMAIL))

    result = cache.get(since=BASE + timedelta(seconds=2), channel=ChannelType.GMAIL)

    assert [m.id for m in result] == ["g2"]


def test_get_does_not_mutate_insertion_order() -> None:
    cache = MessageCache()
    cache.add(_msg("late", 9))
    cache.add(_msg("early", 1))

    cache.get()

    assert [m.id for m in cache.get_all()] == ["late", "early"]


def test_get_all_returns_a_copy() -> None:
    cache = MessageCache()
    cache.add(_msg("a", 1))

    snapshot = cache.get_all()
    snapshot.clear()

    assert len(cache) == 1


def test_clear_empties_every_view() -> None:
    cache = MessageCache()
    cache.add(_msg("a", 1, ChannelType.LINE))
    cache.add(_msg("b", 2, ChannelType.GMAIL))

    cache.clear()

    assert cache.get_all() == []
    assert cache.get() == []
    assert cache.get(channel=ChannelType.LINE) == []
    assert len(cache) == 0


def test_rejects_non_positive_capacity() -> None:
    with pytest.raises(ValueError):
        MessageCache(capacity=0)


def test_message_to_dict_uses_wire_names() -> None:
    message = _msg("x", 0, ChannelType.GMAIL)
    message.thread_id = "t-1"
    message.raw = {"id": "x"}

    data = message.to_dict()

    assert data["from"] == "alice"
    assert data["to"] == "general"
    assert data["isUnread"] is True
    assert data["channel"] == "gmail"
    assert data["threadId"] == "t-1"
    assert data["timestamp"] == "2026-03-01T12:00:00+00:00"
    assert "raw" not in data
    assert message.to_dict(include_raw=True)["raw"] == {"id": "x"}


def test_concurrent_writers_and_readers_never_exceed_capacity() -> None:
    cache = MessageCache(capacity=10)
    oversized: list[int] = []

    def writer(worker: int) -> None:
        for i in range(500):
            cache.add(_msg(f"{worker}-{i}", i))

    def reader() -> None:
        for _ in range(500):
            size = len(cache.get_all())
            if size > 10:
                oversized.append(size)
            cache.get(channel=ChannelType.DISCORD)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    threads += [threading.Thread(target=reader) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert oversized == []
    assert len(cache.get_all()) == 10
    assert cache.evicted == 4 * 500 - 10
