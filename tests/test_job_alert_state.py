# tests/test_job_alert_state.py
import os
import sqlite3

import pytest

from modules.job_alert.lib.models import CONTENT_HASH, IDENTITY_SET, SeenState
from modules.job_alert.lib.state import PersistenceError, StateStore


def test_missing_file_loads_empty_state(db_path):
    store = StateStore(db_path)
    state = store.load(CONTENT_HASH)
    assert state.is_empty() and state.mode == CONTENT_HASH
    assert not os.path.exists(db_path)


def test_hash_state_round_trip(db_path, make_record):
    store = StateStore(db_path)
    store.save(SeenState(mode=CONTENT_HASH, digest="abc123"), [make_record(1)])

    assert store.load(CONTENT_HASH) == SeenState(mode=CONTENT_HASH, digest="abc123")
    assert store.latest_jobs() == [make_record(1)]


def test_identity_state_round_trip_replaces_links(db_path):
    store = StateStore(db_path)
    store.save(SeenState(mode=IDENTITY_SET, links=frozenset({"a", "b"})))
    store.save(SeenState(mode=IDENTITY_SET, links=frozenset({"b", "c"})))

    assert store.load(IDENTITY_SET).links == frozenset({"b", "c"})


def test_surviving_links_keep_first_seen(db_path):
    store = StateStore(db_path)
    store.save(SeenState(mode=IDENTITY_SET, links=frozenset({"a"})))
    with sqlite3.connect(db_path) as conn:
        conn.execute("UPDATE seen_links SET first_seen_utc = '2000-01-01T00:00:00Z' WHERE link = 'a'")
    store.save(SeenState(mode=IDENTITY_SET, links=frozenset({"a", "b"})))

    with sqlite3.connect(db_path) as conn:
        (first_seen,) = conn.execute("SELECT first_seen_utc FROM seen_links WHERE link = 'a'").fetchone()
    assert first_seen == "2000-01-01T00:00:00Z"


def test_state_under_other_strategy_loads_empty(db_path):
    store = StateStore(db_path)
    store.save(SeenState(mode=IDENTITY_SET, links=frozenset({"a"})))
    assert store.load(CONTENT_HASH).is_empty()

    store.save(SeenState(mode=CONTENT_HASH, digest="d1"))
    assert store.load(IDENTITY_SET).is_empty()
    assert store.load(CONTENT_HASH).digest == "d1"


def test_save_without_records_keeps_previous_snapshot(db_path, make_record):
    store = StateStore(db_path)
    store.save(SeenState(mode=CONTENT_HASH, digest="d1"), [make_record(1), make_record(2)])
    store.save(SeenState(mode=CONTENT_HASH, digest="d2"))
    assert len(store.latest_jobs()) == 2


def test_snapshot_reports_stored_state(db_path, make_record):
    store = StateStore(db_path)
    assert store.snapshot() == {"exists": False, "path": db_path}

    store.save(SeenState(mode=IDENTITY_SET, links=frozenset({"a", "b"})), [make_record(1)])
    snap = store.snapshot()
    assert snap["exists"] is True
    assert snap["mode"] == IDENTITY_SET
    assert snap["links"] == 2
    assert snap["latest_jobs"] == 1
    assert snap["digest"] is None
    assert snap["updated_utc"]


def test_unreadable_database_raises_persistence_error(db_path):
    os.makedirs(os.path.dirname(db_path), exist_ok=True)
    with open(db_path, "wb") as f:
        f.write(b"this is not a sqlite database" * 100)

    store = StateStore(db_path)
    with pytest.raises(PersistenceError):
        store.load(CONTENT_HASH)
    with pytest.raises(PersistenceError):
        store.save(SeenState(mode=CONTENT_HASH, digest="x"))


def test_reset_removes_file(db_path):
    store = StateStore(db_path)
    store.save(SeenState(mode=CONTENT_HASH, digest="x"))
    store.reset()
    assert not os.path.exists(db_path)
    store.reset()  # idempotent
