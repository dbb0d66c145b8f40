"""
Change detection over scraped job records.

Two interchangeable strategies:
  - content_hash (default): one SHA-256 digest over the canonical, link-sorted
    record set. Any difference re-reports every (keyword-matching) record.
  - identity_set: remember the set of links; report only links not seen before.

Neither strategy mutates its inputs. The caller persists `new_state` from a
Changed / ChangedNoMatch result and leaves state alone on Unchanged.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Sequence

from .models import (
    CONTENT_HASH,
    IDENTITY_SET,
    Changed,
    ChangedNoMatch,
    DetectionResult,
    JobRecord,
    SeenState,
    Unchanged,
    unique_by_link,
)


# =============================================================================
# KEYWORDS
# =============================================================================
def _normalize_keywords(keywords: Iterable[str] | None) -> list[str]:
    return [k.strip().lower() for k in (keywords or []) if k and k.strip()]


def matched_keywords(record: JobRecord, keywords: Iterable[str] | None) -> list[str]:
    """Return the keywords (original spelling) found in title + department."""
    haystack = f"{record.title} {record.department}".lower()
    return [k for k in (keywords or []) if k and k.strip() and k.strip().lower() in haystack]


def filter_by_keywords(records: Sequence[JobRecord], keywords: Iterable[str] | None) -> list[JobRecord]:
    """
    Keep records where any keyword occurs (case-insensitive substring) in
    title + department. No keywords means everything matches.
    """
    needles = _normalize_keywords(keywords)
    if not needles:
        return list(records)
    out: list[JobRecord] = []
    for r in records:
        haystack = f"{r.title} {r.department}".lower()
        if any(n in haystack for n in needles):
            out.append(r)
    return out


# =============================================================================
# DIGEST
# =============================================================================
def _sort_key(row: dict[str, str]) -> tuple[str, str, str, str]:
    return (row["link"], row["title"], row["department"], row["location"])


def canonical_payload(records: Iterable[JobRecord]) -> str:
    """
    Deterministic serialization: canonical dicts sorted by link (code-point
    order), ties broken by the remaining fields, compact JSON, non-ASCII kept
    as-is.
    """
    rows = sorted((r.canonical() for r in records), key=_sort_key)
    return json.dumps(rows, ensure_ascii=False, separators=(",", ":"))


def content_digest(records: Iterable[JobRecord]) -> str:
    return hashlib.sha256(canonical_payload(records).encode("utf-8")).hexdigest()


# =============================================================================
# STRATEGIES
# =============================================================================
def _detect_identity(
    current: Sequence[JobRecord],
    previous: SeenState,
    keywords: Iterable[str] | None,
) -> DetectionResult:
    seen = previous.links if previous.mode == IDENTITY_SET else frozenset()
    new_records = unique_by_link(r for r in current if r.link not in seen)
    if not new_records:
        return Unchanged()

    # Full replacement: links that disappeared are forgotten.
    new_state = SeenState(mode=IDENTITY_SET, links=frozenset(r.link for r in current))
    to_notify = filter_by_keywords(new_records, keywords)
    if not to_notify:
        return ChangedNoMatch(new_state=new_state)
    return Changed(to_notify=tuple(to_notify), new_state=new_state)


def _detect_hash(
    current: Sequence[JobRecord],
    previous: SeenState,
    keywords: Iterable[str] | None,
) -> DetectionResult:
    digest = content_digest(current)
    previous_digest = previous.digest if previous.mode == CONTENT_HASH else None
    if digest == previous_digest:
        return Unchanged()

    new_state = SeenState(mode=CONTENT_HASH, digest=digest)
    # The digest covers every row; each link is reported once.
    to_notify = filter_by_keywords(unique_by_link(current), keywords)
    if not to_notify:
        return ChangedNoMatch(new_state=new_state)
    return Changed(to_notify=tuple(to_notify), new_state=new_state)


_STRATEGIES = {
    IDENTITY_SET: _detect_identity,
    CONTENT_HASH: _detect_hash,
}


def detect(
    current: Sequence[JobRecord],
    previous: SeenState,
    keywords: Iterable[str] | None = None,
    *,
    strategy: str | None = None,
) -> DetectionResult:
    """
    Decide whether `current` differs from `previous` and what to report.

    The strategy defaults to the one `previous` was recorded under. A previous
    state recorded under a different strategy counts as empty.

    An empty `current` is never treated as "everything was removed": the
    result is Unchanged and the caller keeps its state.
    """
    mode = strategy or previous.mode
    try:
        impl = _STRATEGIES[mode]
    except KeyError:
        raise ValueError(f"Unknown detection strategy {mode!r}") from None

    if not current:
        return Unchanged()
    return impl(current, previous, keywords)
