from __future__ import annotations

import html
import os
from datetime import datetime, timezone
from typing import Any

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on", "y", "t"})


def esc(s: str | None) -> str:
    """HTML-escape text (quotes included, so it is safe inside attributes)."""
    return "" if s is None else html.escape(str(s), quote=True)


def truthy(v: Any) -> bool:
    """bool from kwargs/env values: True, 1, "1", "true", "yes", "on", ..."""
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return v != 0
    return v is not None and str(v).strip().lower() in _TRUE_STRINGS


def now_iso() -> str:
    """Current UTC time as ISO-8601 with a 'Z' suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def getenv_str(name: str, default: str | None = None) -> str | None:
    # An empty variable counts as unset.
    return os.getenv(name) or default


def split_csv(value: Any) -> list[str]:
    """["a", " b"] or "a, b,," -> ["a", "b"]."""
    if value is None:
        return []
    if isinstance(value, str):
        parts = value.split(",")
    elif isinstance(value, (list, tuple, set, frozenset)):
        parts = [str(v) for v in value]
    else:
        parts = [str(value)]
    return [p.strip() for p in parts if p.strip()]


def short_digest(digest: str | None, n: int = 12) -> str:
    return f"{digest[:n]}..." if digest else "None"
