from __future__ import annotations

from ..models import JobRecord
from ..utils import now_iso
from .base import BaseScraper, ScrapeError
from .registry import register


@register
class StubScraper(BaseScraper):
    """
    A zero-network scraper used for tests and dry-runs.

    params:
      items: list[{title, link|url, department?, location?}]
      error: str  # OPTIONAL, raise ScrapeError with this message
    """

    kind = "stub"

    def scrape(self) -> list[JobRecord]:
        if self.params.get("error"):
            raise ScrapeError(str(self.params["error"]))

        raw_items = self.params.get("items") or []
        if not isinstance(raw_items, list):
            raw_items = []

        ts = now_iso()
        records: list[JobRecord] = []
        for item in raw_items:
            if not isinstance(item, dict):
                continue
            rec = JobRecord.from_dict(item)
            records.append(JobRecord(rec.title, rec.link, rec.department, rec.location, scraped_at=ts))
        return records
