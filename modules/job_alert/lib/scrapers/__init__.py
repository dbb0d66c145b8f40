# job_alert/scrapers/__init__.py
from __future__ import annotations

from ..config import ConfigError, Settings
from . import careers_page, stub  # noqa: F401  (register built-in scrapers)
from .base import BaseScraper, ScrapeError
from .registry import get


def build_scraper(settings: Settings) -> BaseScraper:
    """Instantiate the configured scraper kind; unknown kinds are a ConfigError."""
    try:
        cls = get(settings.scraper)
    except KeyError as e:
        raise ConfigError(str(e)) from e
    return cls(
        settings.url,
        settings.scraper_params,
        timeout_sec=settings.request_timeout_sec,
        skip_network=settings.skip_network,
    )


__all__ = ["BaseScraper", "ScrapeError", "build_scraper"]
