"""Tests for the session store and eviction policy."""

import threading
from datetime import datetime, timedelta, timezone

from turnlog.store import EvictionPolicy, SessionStore

T0 = datetime(2026, 1, 28, 9, 0, 0, tzinfo=timezone.utc)


def test_get_or_create_is_lazy():
    store = SessionStore()
    assert store.get("s1") is None
    acc = store.get_or_create("s1", T0)
    assert store.get("s1") is acc
    assert store.get_or_create("s1", T0) is acc
    assert len(store) == 1
    assert "s1" in store


def test_last_seen_only_moves_forward():
    store = SessionStore()
    store.get_or_create("s1", T0)
    store.get_or_create("s1", T0 + timedelta(seconds=5))
    acc = store.get_or_create("s1", T0 + timedelta(seconds=2))
    assert acc.created_at == T0
    assert acc.last_seen_at == T0 + timedelta(seconds=5)


def test_idle_policy():
    store = SessionStore(EvictionPolicy(max_idle=timedelta(seconds=60)))
    store.get_or_create("old", T0)
    store.get_or_create("fresh", T0 + timedelta(seconds=50))
    assert store.expired(T0 + timedelta(seconds=70)) == ["old"]


def test_age_policy_ignores_activity():
    store = SessionStore(EvictionPolicy(max_age=timedelta(minutes=10)))
    store.get_or_create("s1", T0)
    store.get_or_create("s1", T0 + timedelta(minutes=9, seconds=59))
    assert store.expired(T0 + timedelta(minutes=10)) == ["s1"]


def test_default_policy_never_expires():
    store = SessionStore()
    store.get_or_create("s1", T0)
    assert store.expired(T0 + timedelta(days=365)) == []


def test_remove_and_clear():
    store = SessionStore()
    store.get_or_create("s1", T0)
    store.get_or_create("s2", T0)
    assert store.remove("s1").session_id == "s1"
    assert store.remove("s1") is None
    assert store.session_ids() == ["s2"]
    assert store.clear() == 1
    assert len(store) == 0


def test_lock_is_per_session_and_reentrant():
    store = SessionStore()
    lock = store.lock("s1")
    assert store.lock("s1") is lock
    assert store.lock("s2") is not lock
    with lock:
        with store.lock("s1"):
            pass


def test_concurrent_sessions():
    store = SessionStore()

    def work(sid: str) -> None:
        for i in range(200):
            with store.lock(sid):
                store.get_or_create(sid, T0 + timedelta(seconds=i))

    threads = [threading.Thread(target=work, args=(f"s{i}",)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(store) == 8
    assert all(
        store.get(f"s{i}").last_seen_at == T0 + timedelta(seconds=199) for i in range(8)
    )


def test_naive_times_compare_as_utc():
    store = SessionStore(EvictionPolicy(max_idle=timedelta(seconds=60)))
    acc = store.get_or_create("s1", datetime(2026, 1, 28, 9, 0, 0))
    assert acc.created_at == T0
    store.get_or_create("s1", T0 + timedelta(seconds=30))
    assert store.expired(datetime(2026, 1, 28, 9, 1, 0)) == []
    assert store.expired(datetime(2026, 1, 28, 9, 1, 30)) == ["s1"]
