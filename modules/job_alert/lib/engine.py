"""
One watcher per configured listing: scrape -> detect -> notify -> persist.

Features:
  - SeenState loaded once at construction and carried between cycles
  - Empty-scrape guard (a zero-record scrape never touches state)
  - Overlapping triggers are skipped, not queued
  - Shutdown abandons pending sink calls and persists the computed state
  - Dependency injection for testability (scraper, store, sinks)
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from . import fanout, logging_bridge
from .config import Settings
from .detector import detect
from .models import (
    Changed,
    JobRecord,
    NotifyContext,
    SeenState,
    SinkResult,
    Unchanged,
    result_to_dict,
    valid_records,
)
from .scrapers import BaseScraper, ScrapeError, build_scraper
from .sinks import BaseSink, build_sinks
from .state import PersistenceError, StateStore
from .utils import now_iso, short_digest

LOG = logging.getLogger(__name__)

# CycleReport.status values
SKIPPED_BUSY = "skipped_busy"
SKIPPED_SHUTDOWN = "skipped_shutdown"
SCRAPE_FAILED = "scrape_failed"
EMPTY_SCRAPE = "empty_scrape"
UNCHANGED = "unchanged"
CHANGED_NO_MATCH = "changed_no_match"
NOTIFIED = "notified"

# How long shutdown() waits for an in-flight cycle before persisting anyway.
_SHUTDOWN_WAIT_SEC = 30.0


@dataclass
class CycleReport:
    status: str
    scraped: int = 0
    dropped: int = 0
    notified: int = 0
    results: list[SinkResult] = field(default_factory=list)
    saved: bool = False
    error: str | None = None
    duration_ms: int = 0

    @property
    def delivered(self) -> int:
        return sum(1 for r in self.results if r.ok)

    def message(self) -> str:
        if self.status == NOTIFIED:
            return (
                f"{self.notified} job(s) sent to {self.delivered}/{len(self.results)} sink(s) "
                f"({self.scraped} scraped)"
            )
        if self.status == CHANGED_NO_MATCH:
            return f"listing changed, no keyword matches ({self.scraped} scraped)"
        if self.status == UNCHANGED:
            return f"no changes ({self.scraped} scraped)"
        if self.status == EMPTY_SCRAPE:
            return "scrape returned no jobs; cycle skipped"
        if self.status == SCRAPE_FAILED:
            return f"scrape failed: {self.error}"
        if self.status == SKIPPED_BUSY:
            return "previous cycle still running; skipped"
        return "shutting down; skipped"

    def to_meta(self) -> dict[str, Any]:
        return {
            "message": self.message(),
            "ok": self.status != SCRAPE_FAILED,
            "status": self.status,
            "scraped": self.scraped,
            "dropped": self.dropped,
            "notified": self.notified,
            "results": [result_to_dict(r) for r in self.results],
            "saved": self.saved,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


class Watcher:
    """
    Owns the SeenState for one listing.

    Only run_cycle() and shutdown() change `state`; both do so under the cycle
    lock, so at most one detect/save sequence runs at a time.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        scraper: BaseScraper | None = None,
        store: StateStore | None = None,
        sinks: Sequence[BaseSink] | None = None,
    ) -> None:
        self.settings = settings
        self.scraper = scraper or build_scraper(settings)
        self.store = store or StateStore(settings.sqlite_path)
        self.sinks: list[BaseSink] = list(sinks) if sinks is not None else build_sinks(settings)
        self.stop_event = threading.Event()
        self._cycle_lock = threading.Lock()
        # True while `state` holds a value the store has not accepted yet.
        self._unsaved = False
        self.state = self._load_state()

    # ---- lifecycle ----------------------------------------------------------

    def _load_state(self) -> SeenState:
        try:
            state = self.store.load(self.settings.strategy)
        except PersistenceError as e:
            LOG.warning("State load failed, starting fresh: %s", e)
            return SeenState.empty(self.settings.strategy)
        logging_bridge.activity({
            "component": "job_alert.engine",
            "op": "state_loaded",
            "strategy": state.mode,
            "links": len(state.links),
            "digest": short_digest(state.digest),
        })
        return state

    def shutdown(self) -> None:
        """
        Abandon pending sink calls, wait briefly for an in-flight cycle, then
        persist any state that has not been saved yet.
        """
        self.stop_event.set()
        acquired = self._cycle_lock.acquire(timeout=_SHUTDOWN_WAIT_SEC)
        try:
            if self._unsaved:
                self._save(self.state, None)
        finally:
            if acquired:
                self._cycle_lock.release()
        logging_bridge.activity({
            "component": "job_alert.engine",
            "op": "shutdown",
            "unsaved": self._unsaved,
        })

    # ---- one cycle ----------------------------------------------------------

    def run_cycle(self) -> CycleReport:
        """Run one scrape/detect/notify/persist cycle. Never raises."""
        if self.stop_event.is_set():
            return CycleReport(status=SKIPPED_SHUTDOWN)
        if not self._cycle_lock.acquire(blocking=False):
            LOG.warning("job_alert: cycle already running for %s; skipping trigger", self.settings.url)
            logging_bridge.activity({"component": "job_alert.engine", "op": "skipped_busy", "url": self.settings.url})
            return CycleReport(status=SKIPPED_BUSY)

        start_ns = time.perf_counter_ns()
        try:
            report = self._cycle()
        finally:
            self._cycle_lock.release()
        report.duration_ms = int((time.perf_counter_ns() - start_ns) // 1_000_000)

        logging_bridge.activity({
            "component": "job_alert.engine",
            "op": "cycle",
            "url": self.settings.url,
            "strategy": self.settings.strategy,
            **report.to_meta(),
        })
        return report

    def _cycle(self) -> CycleReport:
        s = self.settings

        # -------------------------------------------------------------------------
        # SCRAPE
        # -------------------------------------------------------------------------
        try:
            raw = self.scraper.scrape()
        except ScrapeError as e:
            return self._scrape_failed(e)
        except Exception as e:
            LOG.exception("Scraper %s crashed", self.scraper.kind)
            return self._scrape_failed(e)

        current = valid_records(raw)
        dropped = len(raw) - len(current)
        if dropped:
            LOG.warning("Dropped %d record(s) without a link", dropped)

        # -------------------------------------------------------------------------
        # EMPTY-SCRAPE GUARD
        # -------------------------------------------------------------------------
        if not current:
            LOG.warning("No jobs found at %s; keeping previous state", s.url)
            return CycleReport(status=EMPTY_SCRAPE, dropped=dropped)

        # -------------------------------------------------------------------------
        # DETECT
        # -------------------------------------------------------------------------
        result = detect(current, self.state, s.keywords, strategy=s.strategy)
        if isinstance(result, Unchanged):
            saved = self._save(self.state, current) if self._unsaved else False
            return CycleReport(status=UNCHANGED, scraped=len(current), dropped=dropped, saved=saved)

        self.state = result.new_state
        self._unsaved = True

        if not isinstance(result, Changed):
            saved = self._save(result.new_state, current)
            return CycleReport(status=CHANGED_NO_MATCH, scraped=len(current), dropped=dropped, saved=saved)

        # -------------------------------------------------------------------------
        # NOTIFY, THEN PERSIST
        # -------------------------------------------------------------------------
        results = fanout.notify(
            result.to_notify,
            self.sinks,
            context=self._context(len(current)),
            stop_event=self.stop_event,
        )
        saved = self._save(result.new_state, current)
        return CycleReport(
            status=NOTIFIED,
            scraped=len(current),
            dropped=dropped,
            notified=len(result.to_notify),
            results=results,
            saved=saved,
        )

    def test_notify(self) -> list[SinkResult]:
        """Send one sample record through every enabled sink; state is untouched."""
        sample = JobRecord(
            title="Test Job - Software Engineer",
            link=f"{self.settings.url}#job-alert-test",
            department="Engineering",
            location="Test Location",
            scraped_at=now_iso(),
        )
        return fanout.notify([sample], self.sinks, context=self._context(1), stop_event=self.stop_event)

    # ---- helpers ------------------------------------------------------------

    def _context(self, total_scraped: int) -> NotifyContext:
        return NotifyContext(
            keywords=self.settings.keywords,
            timestamp=now_iso(),
            source_url=self.settings.url,
            total_scraped=total_scraped,
        )

    def _save(self, state: SeenState, records: Sequence[JobRecord] | None) -> bool:
        try:
            self.store.save(state, records)
        except PersistenceError as e:
            # Next cycle compares against the in-memory state and retries the save.
            LOG.error("State save failed: %s", e)
            return False
        self._unsaved = False
        return True

    def _scrape_failed(self, e: Exception) -> CycleReport:
        LOG.warning("Scrape failed for %s: %s", self.settings.url, e)
        logging_bridge.error({
            "component": "job_alert.engine",
            "op": "scrape",
            "scraper": self.scraper.kind,
            "url": self.settings.url,
            "error": repr(e),
        })
        return CycleReport(status=SCRAPE_FAILED, error=str(e))
