from __future__ import annotations

import json
import threading
from typing import Any

from .lib.config import Settings
from .lib.engine import Watcher
from .lib.logging_bridge import activity as log_activity
from .lib.models import result_to_dict

# One long-lived watcher per distinct kwargs set (i.e. per scheduled job).
_WATCHERS: dict[str, Watcher] = {}
_WATCHERS_LOCK = threading.Lock()


def _key(kwargs: dict[str, Any]) -> str:
    return json.dumps(kwargs, sort_keys=True, default=str)


def get_watcher(kwargs: dict[str, Any]) -> Watcher:
    """
    Return the cached watcher for these kwargs, building it on first use.
    Building validates settings and sinks and loads the persisted state.
    """
    key = _key(kwargs)
    with _WATCHERS_LOCK:
        watcher = _WATCHERS.get(key)
        if watcher is None:
            settings = Settings.from_env_and_kwargs(kwargs)
            watcher = Watcher(settings)
            _WATCHERS[key] = watcher
            log_activity({
                "component": "job_alert.main",
                "op": "watcher_created",
                "url": settings.url,
                "strategy": settings.strategy,
                "scraper": settings.scraper,
                "keywords": list(settings.keywords),
                "sinks": settings.enabled_kinds(),
                "dry_run": settings.dry_run,
            })
    return watcher


def run(**kwargs: Any) -> dict[str, Any]:
    """
    Entry point for the 'job_alert' module: run one cycle.

    Accepts kwargs (from scheduler/runner), including:
      url: str                       # careers listing page
      keywords: list[str] | str
      strategy: "content_hash" | "identity_set"
      sqlite_path: str
      scraper: str = "careers_page"; scraper_params: dict
      notifications: {kind: {...}}   # console/file/email/discord/telegram/webhook
      dry_run: bool                  # disables outbound sinks

    Returns a meta dict (message, status, per-sink results); the runner logs it.
    Raises ConfigError when the settings themselves are invalid.
    """
    return get_watcher(kwargs).run_cycle().to_meta()


def test_notify(**kwargs: Any) -> dict[str, Any]:
    """Send one sample record through every enabled sink."""
    watcher = get_watcher(kwargs)
    results = watcher.test_notify()
    ok = sum(1 for r in results if r.ok)
    return {
        "message": f"test notification delivered by {ok}/{len(results)} sink(s)",
        "results": [result_to_dict(r) for r in results],
    }


def shutdown() -> None:
    """Stop every watcher (persisting unsaved state) and forget them."""
    with _WATCHERS_LOCK:
        watchers = list(_WATCHERS.values())
        _WATCHERS.clear()
    for w in watchers:
        w.shutdown()
