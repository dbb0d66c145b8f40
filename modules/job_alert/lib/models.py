from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from typing import Any, Union

PLACEHOLDER = "N/A"

IDENTITY_SET = "identity_set"
CONTENT_HASH = "content_hash"
STRATEGIES = (CONTENT_HASH, IDENTITY_SET)


@dataclass(frozen=True)
class JobRecord:
    """
    One posting observed during a scrape.

    `link` is the identity key across scrapes. `scraped_at` is informational
    only and never takes part in identity or hashing.
    """

    title: str
    link: str
    department: str = PLACEHOLDER
    location: str = PLACEHOLDER
    scraped_at: str | None = None

    def canonical(self) -> dict[str, str]:
        # Key order matters: it is part of the serialized digest input.
        return {
            "title": self.title,
            "link": self.link,
            "department": self.department,
            "location": self.location,
        }

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> JobRecord:
        return cls(
            title=str(raw.get("title") or "").strip() or "(no title)",
            link=str(raw.get("link") or raw.get("url") or "").strip(),
            department=str(raw.get("department") or "").strip() or PLACEHOLDER,
            location=str(raw.get("location") or "").strip() or PLACEHOLDER,
            scraped_at=raw.get("scraped_at"),
        )


def valid_records(records: Iterable[JobRecord]) -> list[JobRecord]:
    """Drop records without a link; they cannot be tracked across scrapes."""
    return [r for r in records if r is not None and (r.link or "").strip()]


def unique_by_link(records: Iterable[JobRecord]) -> list[JobRecord]:
    """First record per link, input order kept."""
    seen: set[str] = set()
    out: list[JobRecord] = []
    for r in records:
        if r.link not in seen:
            seen.add(r.link)
            out.append(r)
    return out


@dataclass(frozen=True)
class SeenState:
    """
    Persisted summary of previously observed records.

    identity_set mode uses `links`; content_hash mode uses `digest`.
    """

    mode: str
    links: frozenset[str] = field(default_factory=frozenset)
    digest: str | None = None

    @classmethod
    def empty(cls, mode: str) -> SeenState:
        return cls(mode=mode)

    def is_empty(self) -> bool:
        return not self.links and not self.digest


# ---- Detection results ------------------------------------------------------


@dataclass(frozen=True)
class Unchanged:
    pass


@dataclass(frozen=True)
class Changed:
    to_notify: tuple[JobRecord, ...]
    new_state: SeenState


@dataclass(frozen=True)
class ChangedNoMatch:
    new_state: SeenState


DetectionResult = Union[Unchanged, Changed, ChangedNoMatch]


# ---- Notification ------------------------------------------------------------


@dataclass(frozen=True)
class NotifyContext:
    keywords: tuple[str, ...] = ()
    timestamp: str = ""
    source_url: str | None = None
    total_scraped: int = 0


@dataclass(frozen=True)
class Delivered:
    sink: str
    details: dict[str, Any] = field(default_factory=dict)

    ok = True


@dataclass(frozen=True)
class Failed:
    sink: str
    reason: str

    ok = False


SinkResult = Union[Delivered, Failed]


def result_to_dict(result: SinkResult) -> dict[str, Any]:
    if isinstance(result, Delivered):
        return {"sink": result.sink, "ok": True, "details": dict(result.details)}
    return {"sink": result.sink, "ok": False, "reason": result.reason}
