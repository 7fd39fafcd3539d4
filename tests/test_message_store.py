from __future__ import annotations

import random

from wasession.store import MessageStore, RawPayloadCache, StoredMessage, raw_key


def _msg(chat_id: str, msg_id: str, ts: int) -> StoredMessage:
    return StoredMessage(
        id=msg_id,
        chat_id=chat_id,
        sender=chat_id,
        sender_name="x",
        timestamp=ts,
        text=f"m{msg_id}",
        is_from_me=False,
        is_group=False,
        type="text",
    )


def _assert_raw_subset(store: MessageStore, raw: RawPayloadCache) -> None:
    live = {raw_key(c, m) for c, m in store.keys()}
    assert set(raw.keys()) <= live


def test_per_chat_cap_drops_oldest_by_timestamp() -> None:
    store = MessageStore(max_per_chat=200, max_total=10_000)
    timestamps = list(range(1, 251))
    random.Random(7).shuffle(timestamps)
    for ts in timestamps:
        store.append(_msg("A", str(ts), ts))

    assert store.count("A") == 200
    kept = {m.timestamp for m in store.list("A", 1000)}
    assert kept == set(range(51, 251))


def test_global_cap_keeps_newest_across_chats() -> None:
    store = MessageStore(max_per_chat=10, max_total=5)
    store.append(_msg("A", "a1", 1))
    store.append(_msg("B", "b1", 2))
    store.append(_msg("A", "a2", 3))
    store.append(_msg("C", "c1", 4))
    store.append(_msg("B", "b2", 5))
    store.append(_msg("C", "c2", 6))
    store.append(_msg("A", "a3", 7))

    assert len(store) == 5
    assert [m.id for m in store.list(None, 100)] == ["a2", "c1", "b2", "c2", "a3"]
    assert store.count("A") == 2
    assert store.get("A", "a1") is None


def test_per_chat_pass_runs_before_global_pass() -> None:
    store = MessageStore(max_per_chat=2, max_total=3)
    store.append(_msg("B", "b1", 1))
    store.append(_msg("A", "a1", 2))
    store.append(_msg("A", "a2", 3))
    # A exceeds its cap first (a1 dropped), then the total is back under the global cap.
    store.append(_msg("A", "a3", 4))

    assert [m.id for m in store.list("A", 10)] == ["a2", "a3"]
    assert [m.id for m in store.list("B", 10)] == ["b1"]


def test_list_returns_latest_entries_in_ascending_order() -> None:
    store = MessageStore(max_per_chat=100, max_total=100)
    for msg_id, ts in [("m3", 30), ("m1", 10), ("m4", 40), ("m2", 20)]:
        store.append(_msg("A", msg_id, ts))
    store.append(_msg("B", "x", 25))

    assert [m.id for m in store.list("A", 2)] == ["m3", "m4"]
    assert [m.id for m in store.list(None, 3)] == ["x", "m3", "m4"]
    assert store.list("A", 0) == []
    assert store.list("missing", 5) == []


def test_equal_timestamps_keep_insertion_order() -> None:
    store = MessageStore(max_per_chat=2, max_total=100)
    store.append(_msg("A", "first", 5))
    store.append(_msg("A", "second", 5))
    store.append(_msg("A", "third", 5))

    assert [m.id for m in store.list("A", 10)] == ["second", "third"]


def test_redelivery_is_ignored() -> None:
    store = MessageStore(max_per_chat=10, max_total=10)
    assert store.append(_msg("A", "1", 1)) is True
    assert store.append(_msg("A", "1", 99)) is False
    assert len(store) == 1
    assert store.get("A", "1").timestamp == 1  # type: ignore[union-attr]


def test_random_appends_respect_caps_and_raw_subset() -> None:
    rng = random.Random(1234)
    raw = RawPayloadCache()
    store = MessageStore(max_per_chat=15, max_total=40, raw=raw)
    chats = [f"c{i}@s.whatsapp.net" for i in range(6)]

    for n in range(500):
        chat = rng.choice(chats)
        msg_id = f"id{n}"
        store.append(_msg(chat, msg_id, rng.randint(1, 200)), raw={"key": {"id": msg_id}})

        assert all(store.count(c) <= 15 for c in chats)
        assert len(store) <= 40
        _assert_raw_subset(store, raw)

    assert len(raw) == len(store)
    for chat in chats:
        retained = sorted((m.timestamp for m in store.list(chat, 1000)))
        top = store.list(chat, 5)
        assert [m.timestamp for m in top] == retained[-5:]


def test_load_groups_by_chat_and_self_trims() -> None:
    records = [_msg("A", str(i), i).to_dict() for i in range(10)]
    records += [_msg("B", f"b{i}", 100 + i).to_dict() for i in range(3)]
    records.append({"chatId": ""})
    records.append("garbage")

    raw = RawPayloadCache()
    store = MessageStore(max_per_chat=4, max_total=6, raw=raw)
    kept = store.load(records)  # type: ignore[arg-type]

    assert kept == 6
    assert [m.id for m in store.list("A", 10)] == ["7", "8", "9"]
    assert store.count("B") == 3
    assert len(raw) == 6
    _assert_raw_subset(store, raw)
