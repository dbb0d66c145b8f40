# modules/job_alert/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience
from .config import ConfigError, Settings, SinkConfig
from .detector import content_digest, detect, filter_by_keywords
from .engine import CycleReport, Watcher
from .fanout import notify
from .models import (
    Changed,
    ChangedNoMatch,
    Delivered,
    Failed,
    JobRecord,
    NotifyContext,
    SeenState,
    Unchanged,
)
from .scrapers import ScrapeError
from .sinks import SinkError
from .state import PersistenceError, StateStore

__all__ = [
    "Changed",
    "ChangedNoMatch",
    "ConfigError",
    "CycleReport",
    "Delivered",
    "Failed",
    "JobRecord",
    "NotifyContext",
    "PersistenceError",
    "ScrapeError",
    "SeenState",
    "Settings",
    "SinkConfig",
    "SinkError",
    "StateStore",
    "Unchanged",
    "Watcher",
    "content_digest",
    "detect",
    "filter_by_keywords",
    "notify",
]
