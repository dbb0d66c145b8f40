# service/logging_utils.py
"""
Structured JSONL logs shared by the service and its modules.

Two streams, one file per stream per day:
    $LOG_DIR/<ACTIVITY_LOG_PREFIX>-YYYY-MM-DD.jsonl
    $LOG_DIR/<ERROR_LOG_PREFIX>-YYYY-MM-DD.jsonl

Every line is one JSON object with secrets scrubbed and a `_meta` block
(host, pid, UTC timestamp) appended.
"""

from __future__ import annotations

import datetime as _dt
import glob
import json
import os
import re
import socket
from collections import deque
from typing import Any

DEFAULT_LOG_DIR = "/app/local/logs"
REDACTED = "***REDACTED***"

# A key containing any of these (case-insensitive) has its value replaced.
SECRET_KEY_PARTS = (
    "password",
    "token",
    "apikey",
    "api_key",
    "secret",
    "smtp_",
    "webhook_url",
    "authorization",
    "cookie",
)

# Credentials that also show up inside ordinary strings (URLs, error messages).
_SECRET_PATTERNS = (
    # Discord webhook: /api/webhooks/<id>/<token>
    (re.compile(r"(/api/webhooks/\d+/)[\w-]+"), r"\1" + REDACTED),
    # Telegram Bot API: /bot<id>:<token>/
    (re.compile(r"(/bot)\d+:[\w-]+"), r"\1" + REDACTED),
    # Authorization: Bearer <token>
    (re.compile(r"(?i)(bearer\s+)\S+"), r"\1" + REDACTED),
)

_HOST = socket.gethostname()
_PID = os.getpid()


def log_dir() -> str:
    return os.getenv("LOG_DIR") or DEFAULT_LOG_DIR


def _prefix(kind: str) -> str:
    # Read per call so tests can redirect the streams after import.
    if kind == "error":
        return os.getenv("ERROR_LOG_PREFIX", "error")
    return os.getenv("ACTIVITY_LOG_PREFIX", "activity")


def _max_bytes() -> int:
    try:
        return int(os.getenv("ACTIVITY_LOG_MAX_BYTES", "0"))
    except ValueError:
        return 0


# ---- Writing ----------------------------------------------------------------


def write_activity_log(record: dict[str, Any]) -> None:
    """
    Append one activity record. Never mutates `record`.
    Raises OSError/TypeError/ValueError when the line cannot be written.
    """
    _append(_today_path("activity"), record)


def write_error_log(record: dict[str, Any]) -> None:
    """Append one error record (same format as activity)."""
    _append(_today_path("error"), record)


def scrub(value: Any) -> Any:
    """Deep copy of `value` with secret-looking keys and embedded credentials masked."""
    if isinstance(value, dict):
        return {
            k: REDACTED if isinstance(k, str) and _is_secret_key(k) else scrub(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [scrub(v) for v in value]
    if isinstance(value, str):
        for pattern, repl in _SECRET_PATTERNS:
            value = pattern.sub(repl, value)
        return value
    return value


def _is_secret_key(key: str) -> bool:
    k = key.lower()
    return any(part in k for part in SECRET_KEY_PARTS)


def _today_path(kind: str) -> str:
    return os.path.join(log_dir(), f"{_prefix(kind)}-{_dt.date.today().isoformat()}.jsonl")


def _append(path: str, record: dict[str, Any]) -> None:
    line = dict(scrub(record))
    line["_meta"] = {
        "host": _HOST,
        "pid": _PID,
        "ts": _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="seconds"),
    }
    # Serialize before touching the file so a bad record leaves no partial line.
    data = (json.dumps(line, ensure_ascii=False, separators=(",", ":"), default=str) + "\n").encode("utf-8")

    os.makedirs(os.path.dirname(path), exist_ok=True)
    _rotate_if_large(path)
    # O_APPEND makes a single write() atomic with respect to other appenders.
    fd = os.open(path, os.O_CREAT | os.O_APPEND | os.O_WRONLY, 0o644)
    try:
        os.write(fd, data)
    finally:
        os.close(fd)


def _rotate_if_large(path: str) -> None:
    limit = _max_bytes()
    if limit <= 0:
        return
    try:
        if os.path.getsize(path) < limit:
            return
    except FileNotFoundError:
        return
    stamp = _dt.datetime.now().strftime("%Y%m%d-%H%M%S")
    try:
        os.replace(path, f"{path}.{stamp}")
    except FileNotFoundError:
        pass  # another writer rotated it first


# ---- Reading ----------------------------------------------------------------


def read_recent(n: int = 20, *, prefix: str | None = None) -> list[dict[str, Any]]:
    """
    Last `n` records (oldest first) across all daily files of one stream.
    `prefix` defaults to the activity stream; malformed lines are skipped.
    """
    if n <= 0:
        return []
    tail: deque[dict[str, Any]] = deque(maxlen=n)
    # YYYY-MM-DD file names sort chronologically.
    for path in sorted(glob.glob(os.path.join(log_dir(), f"{prefix or _prefix('activity')}-*.jsonl"))):
        with open(path, encoding="utf-8") as f:
            for raw in f:
                raw = raw.strip()
                if not raw:
                    continue
                try:
                    rec = json.loads(raw)
                except ValueError:
                    continue
                if isinstance(rec, dict):
                    tail.append(rec)
    return list(tail)
