from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..models import JobRecord


class ScrapeError(Exception):
    """The source was unreachable or its structure could not be parsed."""


class BaseScraper(ABC):
    """
    Abstract listing scraper.

    Contract:
      - scrape() returns every record currently listed, in page order.
        Records without a link may be returned; the engine drops them.
      - Raise ScrapeError (never return []) when the page cannot be fetched
        or does not look like a listing page at all.
      - Do NOT notify, print, or touch persisted state.
    """

    # Concrete subclasses MUST set this to a stable string, e.g. "careers_page", "stub"
    kind: str = ""

    def __init__(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        *,
        timeout_sec: float = 30.0,
        skip_network: bool = False,
    ) -> None:
        self.url = url
        self.params: dict[str, Any] = dict(params or {})
        self.timeout_sec = float(timeout_sec)
        self.skip_network = skip_network

    @abstractmethod
    def scrape(self) -> list[JobRecord]:
        raise NotImplementedError
