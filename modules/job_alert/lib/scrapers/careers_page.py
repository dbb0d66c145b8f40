# modules/job_alert/lib/scrapers/careers_page.py
from __future__ import annotations

import logging
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup  # pip install beautifulsoup4 html5lib

from ..http_client import BROWSER_UA, HttpClient
from ..models import PLACEHOLDER, JobRecord
from ..utils import now_iso
from .base import BaseScraper, ScrapeError
from .registry import register

log = logging.getLogger(__name__)

DEFAULT_SELECTORS = {
    "container": ".job-list",
    "item": 'li[role="listitem"]',
    "title": "h3 a",
    "department": ".text-gray-48",
    "location": ".col-span-4.lg\\:col-span-3 span",
}

_HEADERS = {"Accept-Language": "en-US,en;q=0.9"}


@register
class CareersPageScraper(BaseScraper):
    """
    Server-rendered careers listing (Airbnb-style markup).

    params (all optional; override DEFAULT_SELECTORS):
      container, item, title, department, location: CSS selectors

    Behavior:
      - Items are looked up inside the container; when the container is
        missing, any item on the page is accepted.
      - No container and no items: ScrapeError (the page changed or we got a
        block page). A container with zero items is an empty, successful scrape.
      - Missing department/location become "N/A"; relative links are resolved
        against the page URL.
    """

    kind = "careers_page"

    def selectors(self) -> dict[str, str]:
        sel = dict(DEFAULT_SELECTORS)
        for k in sel:
            v = self.params.get(k)
            if isinstance(v, str) and v.strip():
                sel[k] = v.strip()
        return sel

    def scrape(self) -> list[JobRecord]:
        if self.skip_network:
            log.info("careers_page: skip_network set; returning no records")
            return []

        try:
            with HttpClient(self.timeout_sec, user_agent=BROWSER_UA, headers=_HEADERS) as client:
                html = client.fetch_html(self.url)
        except requests.RequestException as e:
            raise ScrapeError(f"fetch failed for {self.url}: {e}") from e

        return self.parse(html)

    def parse(self, html: str) -> list[JobRecord]:
        sel = self.selectors()
        soup = BeautifulSoup(html, "html5lib")

        container = soup.select_one(sel["container"])
        items = (container or soup).select(sel["item"])
        if container is None and not items:
            raise ScrapeError(f"no listing container ({sel['container']!r}) or items found at {self.url}")

        ts = now_iso()
        out: list[JobRecord] = []
        for li in items:
            a = li.select_one(sel["title"])
            if a is None:
                continue
            href = (a.get("href") or "").strip()
            if not href:
                continue
            out.append(
                JobRecord(
                    title=a.get_text(" ", strip=True) or "(no title)",
                    link=urljoin(self.url, href),
                    department=_text(li, sel["department"]),
                    location=_text(li, sel["location"]),
                    scraped_at=ts,
                )
            )

        log.debug("careers_page: %d items, %d records from %s", len(items), len(out), self.url)
        return out


def _text(node, selector: str) -> str:
    el = node.select_one(selector)
    if el is None:
        return PLACEHOLDER
    return el.get_text(" ", strip=True) or PLACEHOLDER
