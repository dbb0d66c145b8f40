# tests/test_job_alert_scraper.py
import pytest
import requests

from modules.job_alert.lib import config as ja_config
from modules.job_alert.lib.config import ConfigError
from modules.job_alert.lib.models import PLACEHOLDER
from modules.job_alert.lib.scrapers import ScrapeError, build_scraper
from modules.job_alert.lib.scrapers.careers_page import CareersPageScraper
from modules.job_alert.lib.scrapers.stub import StubScraper

PAGE_URL = "https://careers.example.com/positions/?_departments=engineering"

LISTING_HTML = """
<html><body>
  <ul class="job-list">
    <li role="listitem">
      <h3><a href="/positions/101">Senior Software Engineer, Payments</a></h3>
      <div class="text-gray-48">Engineering</div>
      <div class="col-span-4 lg:col-span-3"><span>Bangalore, India</span></div>
    </li>
    <li role="listitem">
      <h3><a href="https://careers.example.com/positions/102">  Staff Data Engineer </a></h3>
    </li>
    <li role="listitem">
      <h3>Closed role without a link</h3>
    </li>
  </ul>
  <ul><li role="listitem"><h3><a href="/elsewhere/1">Outside the listing</a></h3></li></ul>
</body></html>
"""


def test_parse_extracts_records_in_page_order():
    records = CareersPageScraper(PAGE_URL).parse(LISTING_HTML)

    assert [r.title for r in records] == ["Senior Software Engineer, Payments", "Staff Data Engineer"]
    first, second = records
    assert first.link == "https://careers.example.com/positions/101"
    assert first.department == "Engineering"
    assert first.location == "Bangalore, India"
    assert first.scraped_at
    assert second.link == "https://careers.example.com/positions/102"
    assert second.department == PLACEHOLDER and second.location == PLACEHOLDER


def test_parse_without_container_falls_back_to_page_items():
    html = '<ul><li role="listitem"><h3><a href="/p/1">Backend Engineer</a></h3></li></ul>'
    records = CareersPageScraper(PAGE_URL).parse(html)
    assert [r.link for r in records] == ["https://careers.example.com/p/1"]


def test_parse_empty_container_is_an_empty_scrape():
    assert CareersPageScraper(PAGE_URL).parse('<ul class="job-list"></ul>') == []


def test_parse_unrecognized_page_raises():
    with pytest.raises(ScrapeError):
        CareersPageScraper(PAGE_URL).parse("<html><body><p>Access denied</p></body></html>")


def test_selectors_can_be_overridden():
    html = '<div id="jobs"><div class="job"><a class="t" href="/j/9">SRE</a><em>Remote</em></div></div>'
    scraper = CareersPageScraper(
        PAGE_URL,
        {"container": "#jobs", "item": ".job", "title": "a.t", "location": "em"},
    )
    (record,) = scraper.parse(html)
    assert record.title == "SRE"
    assert record.location == "Remote"
    assert record.department == PLACEHOLDER


def test_scrape_wraps_network_errors(monkeypatch):
    def fail(self, *args, **kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(requests.Session, "get", fail)
    with pytest.raises(ScrapeError) as ei:
        CareersPageScraper(PAGE_URL, timeout_sec=1).scrape()
    assert "connection refused" in str(ei.value)


def test_scrape_skip_network_returns_nothing(monkeypatch):
    def fail(self, *args, **kwargs):
        raise AssertionError("network used")

    monkeypatch.setattr(requests.Session, "get", fail)
    assert CareersPageScraper(PAGE_URL, skip_network=True).scrape() == []


def test_stub_scraper_returns_items_and_raises_on_error():
    items = [{"title": "Engineer", "url": "https://x/1"}, "junk"]
    (record,) = StubScraper("https://x", {"items": items}).scrape()
    assert record.link == "https://x/1" and record.scraped_at

    with pytest.raises(ScrapeError):
        StubScraper("https://x", {"error": "boom"}).scrape()


def test_build_scraper_uses_settings(db_path):
    settings = ja_config.Settings.from_env_and_kwargs({
        "url": PAGE_URL,
        "sqlite_path": db_path,
        "request_timeout_sec": 12,
    })
    scraper = build_scraper(settings)
    assert isinstance(scraper, CareersPageScraper)
    assert scraper.url == PAGE_URL and scraper.timeout_sec == 12.0


def test_build_scraper_unknown_kind(db_path):
    settings = ja_config.Settings.from_env_and_kwargs({"sqlite_path": db_path, "scraper": "nope"})
    with pytest.raises(ConfigError):
        build_scraper(settings)
