"""Unit tests for the in-memory entry store."""

import threading

import pytest

from bootkv.services.entry_store import EntryStore, PutOutcome


def test_put_then_get_returns_value(fake_clock) -> None:
    store = EntryStore(max_num_kv=10, clock=fake_clock)

    assert store.put("k", b"v") is PutOutcome.OK

    entry = store.get("k")
    assert entry is not None
    assert entry.value == b"v"
    assert entry.owner_secret is None
    assert entry.last_update == fake_clock.current


def test_get_missing_key_returns_none() -> None:
    store = EntryStore(max_num_kv=10)

    assert store.get("missing") is None


def test_get_returns_copy() -> None:
    store = EntryStore(max_num_kv=10)
    store.put("k", b"v")

    entry = store.get("k")
    entry.value = b"tampered"

    assert store.get("k").value == b"v"


def test_capacity_scenario() -> None:
    store = EntryStore(max_num_kv=2)

    assert store.put("a", b"x", "") is PutOutcome.OK
    assert store.put("b", b"y", "") is PutOutcome.OK
    assert store.put("c", b"z", "") is PutOutcome.CAPACITY_EXCEEDED
    assert store.put("a", b"x2", "") is PutOutcome.OK

    assert store.get("a").value == b"x2"
    assert store.get("c") is None
    assert store.size() == 2


def test_secret_scenario() -> None:
    store = EntryStore(max_num_kv=10)

    assert store.put("k", b"v1", "s1") is PutOutcome.OK
    assert store.put("k", b"v2", "s1") is PutOutcome.OK
    assert store.get("k").value == b"v2"

    assert store.put("k", b"v3", "wrong") is PutOutcome.SECRET_MISMATCH
    assert store.get("k").value == b"v2"
    assert store.get("k").owner_secret == "s1"


def test_claimed_key_rejects_write_without_secret() -> None:
    store = EntryStore(max_num_kv=10)
    store.put("k", b"v1", "s1")

    assert store.put("k", b"v2") is PutOutcome.SECRET_MISMATCH
    assert store.get("k").value == b"v1"


def test_unclaimed_key_adopts_first_secret() -> None:
    store = EntryStore(max_num_kv=10)
    store.put("k", b"v1")

    assert store.put("k", b"v2", "s1") is PutOutcome.OK
    assert store.get("k").owner_secret == "s1"
    assert store.put("k", b"v3", "s2") is PutOutcome.SECRET_MISMATCH
    assert store.get("k").value == b"v2"


def test_secret_mismatch_does_not_refresh_timestamp(fake_clock) -> None:
    store = EntryStore(max_num_kv=10, clock=fake_clock)
    store.put("k", b"v", "s1")
    written_at = fake_clock.current

    fake_clock.advance(30)
    store.put("k", b"other", "nope")

    assert store.get("k").last_update == written_at


def test_update_refreshes_timestamp(fake_clock) -> None:
    store = EntryStore(max_num_kv=10, clock=fake_clock)
    store.put("k", b"v1")

    fake_clock.advance(30)
    store.put("k", b"v2")

    assert store.get("k").last_update == fake_clock.current


def test_sweep_removes_exactly_expired_entries(fake_clock) -> None:
    store = EntryStore(max_num_kv=10, clock=fake_clock)
    store.put("old", b"1", "s-old")
    fake_clock.advance(50)
    store.put("edge", b"2")
    fake_clock.advance(50)
    store.put("fresh", b"3", "s-fresh")

    # old: 100s, edge: 50s (not strictly greater than ttl), fresh: 0s
    removed = store.sweep_expired(fake_clock.current, ttl=50)

    assert removed == 1
    assert store.get("old") is None
    assert store.get("edge").value == b"2"
    fresh = store.get("fresh")
    assert fresh.value == b"3"
    assert fresh.owner_secret == "s-fresh"


def test_sweep_defaults_to_store_clock(fake_clock) -> None:
    store = EntryStore(max_num_kv=10, clock=fake_clock)
    store.put("k", b"v")
    fake_clock.advance(11)

    assert store.sweep_expired(ttl=10) == 1
    assert store.size() == 0


def test_sweep_frees_capacity() -> None:
    store = EntryStore(max_num_kv=1, clock=lambda: 0.0)
    store.put("a", b"x")

    assert store.put("b", b"y") is PutOutcome.CAPACITY_EXCEEDED
    store.sweep_expired(100.0, ttl=10)
    assert store.put("b", b"y") is PutOutcome.OK


def test_range_all_visits_every_entry_and_can_stop() -> None:
    store = EntryStore(max_num_kv=10)
    for i in range(5):
        store.put(f"k{i}", str(i).encode())

    seen: dict[str, bytes] = {}
    store.range_all(lambda key, entry: seen.__setitem__(key, entry.value))
    assert seen == {f"k{i}": str(i).encode() for i in range(5)}

    visited: list[str] = []

    def _stop_after_two(key, entry):
        visited.append(key)
        return len(visited) < 2

    store.range_all(_stop_after_two)
    assert len(visited) == 2


def test_range_all_visitor_may_write_back() -> None:
    store = EntryStore(max_num_kv=10)
    store.put("a", b"1")

    store.range_all(lambda key, entry: store.put(key, entry.value + b"!"))

    assert store.get("a").value == b"1!"


def test_snapshot_is_a_detached_copy() -> None:
    store = EntryStore(max_num_kv=10)
    store.put("a", b"1", "s")
    store.put("b", b"2")

    snap = store.snapshot()
    store.put("c", b"3")

    assert snap == {"a": (b"1", "s"), "b": (b"2", None)}


def test_restore_respects_capacity() -> None:
    store = EntryStore(max_num_kv=1)

    assert store.restore("a", b"1", None, now=5.0) is True
    assert store.restore("b", b"2", None, now=5.0) is False
    assert store.get("a").last_update == 5.0


def test_invalid_capacity() -> None:
    with pytest.raises(ValueError):
        EntryStore(max_num_kv=0)


def test_concurrent_writers_to_same_key_end_with_one_value() -> None:
    store = EntryStore(max_num_kv=10)
    values = [f"v{i}".encode() for i in range(50)]

    threads = [threading.Thread(target=store.put, args=("k", v)) for v in values]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.size() == 1
    assert store.get("k").value in values


def test_concurrent_inserts_never_exceed_capacity() -> None:
    store = EntryStore(max_num_kv=20)
    outcomes: list[PutOutcome] = []
    lock = threading.Lock()

    def _writer(idx: int) -> None:
        outcome = store.put(f"k-{idx}", b"v")
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=_writer, args=(i,)) for i in range(60)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.size() == 20
    assert outcomes.count(PutOutcome.OK) == 20
    assert outcomes.count(PutOutcome.CAPACITY_EXCEEDED) == 40


def test_sweep_requires_ttl(fake_clock) -> None:
    store = EntryStore(max_num_kv=10, clock=fake_clock)
    store.put("k", b"v")
    fake_clock.advance(1)

    with pytest.raises(TypeError):
        store.sweep_expired()
    assert store.get("k").value == b"v"
