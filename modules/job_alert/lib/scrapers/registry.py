from __future__ import annotations

from ..registry import Registry
from .base import BaseScraper

SCRAPERS: Registry[type[BaseScraper]] = Registry("scraper")

register = SCRAPERS.register
get = SCRAPERS.get
