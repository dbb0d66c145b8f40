from __future__ import annotations

import contextlib
import json
import os
import sqlite3
from collections.abc import Sequence
from typing import Any

from .logging_bridge import error as log_error
from .models import IDENTITY_SET, JobRecord, SeenState
from .utils import now_iso


class PersistenceError(Exception):
    """State could not be read from or written to the SQLite file."""


class StateStore:
    """
    SQLite-backed SeenState persistence.

    Schema:
      seen_links(link PK, first_seen_utc)   identity_set mode
      kv(key PK, value, updated_utc)        mode, digest, latest snapshot
    """

    def __init__(self, sqlite_path: str) -> None:
        self.sqlite_path = sqlite_path

    # ---- Public API ---------------------------------------------------------

    def load(self, mode: str) -> SeenState:
        """
        Return the stored state for `mode`.
        Missing file/rows (first run) or a state recorded under another mode
        yield an empty SeenState; I/O or decode problems raise PersistenceError.
        """
        if not os.path.exists(self.sqlite_path):
            return SeenState.empty(mode)
        try:
            with contextlib.closing(_connect(self.sqlite_path)) as conn:
                _apply_pragmas(conn)
                _ensure_schema(conn)
                stored_mode = _get_kv(conn, "mode")
                if stored_mode != mode:
                    return SeenState.empty(mode)
                if mode == IDENTITY_SET:
                    rows = conn.execute("SELECT link FROM seen_links").fetchall()
                    return SeenState(mode=mode, links=frozenset(r[0] for r in rows))
                return SeenState(mode=mode, digest=_get_kv(conn, "digest") or None)
        except sqlite3.Error as e:
            self._log_failure("load", e)
            raise PersistenceError(f"load failed for {self.sqlite_path}: {e}") from e

    def save(self, state: SeenState, records: Sequence[JobRecord] | None = None) -> None:
        """
        Replace the stored state in one transaction. Links no longer present
        are dropped; surviving links keep their first_seen_utc.
        """
        ts = now_iso()
        try:
            _ensure_dir(self.sqlite_path)
            with contextlib.closing(_connect(self.sqlite_path)) as conn:
                _apply_pragmas(conn)
                _ensure_schema(conn)
                cur = conn.cursor()
                cur.execute("BEGIN IMMEDIATE")
                try:
                    if state.mode == IDENTITY_SET:
                        cur.execute("CREATE TEMP TABLE IF NOT EXISTS _keep (link TEXT PRIMARY KEY)")
                        cur.execute("DELETE FROM _keep")
                        cur.executemany("INSERT OR IGNORE INTO _keep (link) VALUES (?)", [(x,) for x in state.links])
                        cur.execute("DELETE FROM seen_links WHERE link NOT IN (SELECT link FROM _keep)")
                        cur.executemany(
                            "INSERT OR IGNORE INTO seen_links (link, first_seen_utc) VALUES (?, ?)",
                            [(x, ts) for x in sorted(state.links)],
                        )
                        _del_kv(cur, "digest")
                    else:
                        cur.execute("DELETE FROM seen_links")
                        _put_kv(cur, "digest", state.digest or "", ts)
                    _put_kv(cur, "mode", state.mode, ts)
                    if records is not None:
                        _put_kv(cur, "latest_jobs", json.dumps([r.to_dict() for r in records], ensure_ascii=False), ts)
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise
        except (sqlite3.Error, OSError) as e:
            self._log_failure("save", e)
            raise PersistenceError(f"save failed for {self.sqlite_path}: {e}") from e

    def snapshot(self) -> dict[str, Any]:
        """Status view: mode, digest, link count, latest snapshot size, update time."""
        if not os.path.exists(self.sqlite_path):
            return {"exists": False, "path": self.sqlite_path}
        try:
            with contextlib.closing(_connect(self.sqlite_path)) as conn:
                _ensure_schema(conn)
                (n_links,) = conn.execute("SELECT COUNT(*) FROM seen_links").fetchone()
                latest_raw = _get_kv(conn, "latest_jobs")
                row = conn.execute("SELECT MAX(updated_utc) FROM kv").fetchone()
                return {
                    "exists": True,
                    "path": self.sqlite_path,
                    "mode": _get_kv(conn, "mode"),
                    "digest": _get_kv(conn, "digest") or None,
                    "links": int(n_links or 0),
                    "latest_jobs": len(json.loads(latest_raw)) if latest_raw else 0,
                    "updated_utc": row[0] if row else None,
                }
        except (sqlite3.Error, ValueError) as e:
            raise PersistenceError(f"snapshot failed for {self.sqlite_path}: {e}") from e

    def latest_jobs(self) -> list[JobRecord]:
        if not os.path.exists(self.sqlite_path):
            return []
        try:
            with contextlib.closing(_connect(self.sqlite_path)) as conn:
                _ensure_schema(conn)
                raw = _get_kv(conn, "latest_jobs")
            return [JobRecord.from_dict(d) for d in json.loads(raw)] if raw else []
        except (sqlite3.Error, ValueError) as e:
            raise PersistenceError(f"latest_jobs failed for {self.sqlite_path}: {e}") from e

    def reset(self) -> None:
        """Remove the DB file entirely (tests, manual re-baselining)."""
        with contextlib.suppress(FileNotFoundError):
            os.remove(self.sqlite_path)

    def _log_failure(self, op: str, e: BaseException) -> None:
        log_error({
            "component": "job_alert.state",
            "op": op,
            "sqlite_path": self.sqlite_path,
            "error": repr(e),
        })


# ---- Internal utilities -----------------------------------------------------


def _ensure_dir(sqlite_path: str) -> None:
    d = os.path.dirname(os.path.abspath(sqlite_path)) or "."
    os.makedirs(d, exist_ok=True)


def _connect(sqlite_path: str) -> sqlite3.Connection:
    # isolation_level=None gives autocommit mode; transactions are explicit.
    return sqlite3.connect(sqlite_path, timeout=30.0, isolation_level=None)


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS seen_links (
          link TEXT PRIMARY KEY,
          first_seen_utc TEXT NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS kv (
          key TEXT PRIMARY KEY,
          value TEXT NOT NULL,
          updated_utc TEXT NOT NULL
        );
        """
    )


def _get_kv(conn: sqlite3.Connection, key: str) -> str | None:
    row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
    return row[0] if row else None


def _put_kv(cur: sqlite3.Cursor, key: str, value: str, ts: str) -> None:
    cur.execute(
        """
        INSERT INTO kv (key, value, updated_utc) VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_utc = excluded.updated_utc
        """,
        (key, value, ts),
    )


def _del_kv(cur: sqlite3.Cursor, key: str) -> None:
    cur.execute("DELETE FROM kv WHERE key = ?", (key,))


