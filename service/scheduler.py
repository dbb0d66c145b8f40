# service/scheduler.py
"""
APScheduler wiring: config jobs -> triggers -> runner.run_module_once().

Trigger shapes accepted by build_trigger():

    {"interval":   {"minutes": 30}}                       # weeks/days/hours/minutes/seconds, jitter, start/end
    {"cron":       "*/30 * * * *"}                        # 5-field crontab
    {"cron":       "0 */30 * * * *"}                      # 6-field, leading seconds
    {"cron":       {"minute": "0,30", "hour": "9-18"}}    # CronTrigger fields
    {"date":       "2099-01-01T09:00:00+05:30"}           # or {"run_at": ISO | epoch}
    {"daily_time": {"time": ["09:00", "18:30"], "day_of_week": "mon-fri"}}

A block may carry its own "timezone"; otherwise the scheduler's applies.
"""

from __future__ import annotations

import logging
import os
import threading
import time as _time
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from datetime import tzinfo as _dt_tzinfo
from typing import Any
from zoneinfo import ZoneInfo

import pytz
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from . import config_schema, runner
from .logging_utils import write_activity_log

LOG = logging.getLogger(__name__)

TRIGGER_KINDS = ("interval", "cron", "date", "daily_time")

_INTERVAL_UNITS = ("weeks", "days", "hours", "minutes", "seconds")
_INTERVAL_FIELDS = frozenset(_INTERVAL_UNITS + ("jitter", "timezone", "start_date", "end_date"))
_CRON_FIELDS = frozenset(
    {"second", "minute", "hour", "day", "day_of_week", "month", "timezone", "start_date", "end_date", "jitter"}
)
_DAILY_FIELDS = frozenset({"time", "day_of_week", "timezone"})

_JOB_DEFAULTS = {"coalesce": True, "max_instances": 1}


@dataclass(frozen=True, slots=True)
class JobSpec:
    id: str
    trigger: Any
    module: str
    kwargs: dict[str, Any]
    timeout_sec: int | None
    max_instances: int
    coalesce: bool
    misfire_grace_time: int | None
    summary: str | None


class SchedulerController:
    """Handle returned by start(); lets the CLI stop and wait for the service."""

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped = threading.Event()

    def stop(self) -> None:
        """Stop firing jobs, then give every loaded module a chance to persist its state."""
        if self._scheduler.running:
            LOG.info("Shutting down scheduler...")
            # In-flight cycles are told to wind down by shutdown_modules().
            self._scheduler.shutdown(wait=False)
        runner.shutdown_modules()
        self._stopped.set()
        LOG.info("Scheduler stopped.")

    def join(self, timeout: float | None = None) -> bool:
        """True once stop() has completed, False on timeout."""
        return self._stopped.wait(timeout=timeout)

    def get_job_ids(self) -> Iterable[str]:
        return (job.id for job in self._scheduler.get_jobs())


def start(config_path: str | None = None) -> SchedulerController:
    """
    Load the config, register every job that builds and start a BackgroundScheduler.
    Broken job definitions are logged and skipped.
    """
    cfg = config_schema.load_config(config_path)
    tz = _resolve_timezone(cfg)

    scheduler = BackgroundScheduler(
        timezone=tz,
        job_defaults=dict(_JOB_DEFAULTS),
        executors={"default": ThreadPoolExecutor(_int_or(cfg.get("executor_workers"), 10))},
        jobstores={"default": MemoryJobStore()},
    )
    for raw in cfg.get("jobs") or []:
        try:
            spec = make_job_spec(raw, tz)
        except (KeyError, TypeError, ValueError):
            LOG.exception("Skipping job due to config error: %r", raw)
            continue
        _add_job(scheduler, spec)

    scheduler.start()
    LOG.info("Scheduler started with %d job(s).", len(scheduler.get_jobs()))
    return SchedulerController(scheduler)


def _resolve_timezone(cfg: dict[str, Any]):
    # APScheduler 3.x wants a pytz zone for the scheduler itself.
    name = cfg.get("timezone") or os.getenv("TZ") or "UTC"
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        LOG.warning("Unknown timezone %r; using UTC", name)
        return pytz.UTC


def make_job_spec(raw: dict[str, Any], tz) -> JobSpec:
    module = _require(raw, "module")
    jid = str(raw.get("id") or raw.get("name") or module)
    trigger = build_trigger(_require(raw, "trigger"), tz)
    if os.getenv("SCHEDULER_PREVIEW") == "1":
        LOG.info("PARSED[%s]: %s", jid, trigger)
    return JobSpec(
        id=jid,
        trigger=trigger,
        module=module,
        kwargs=dict(raw.get("kwargs") or {}),
        timeout_sec=_int_or(raw.get("timeout_sec"), None),
        max_instances=_int_or(raw.get("max_instances"), _JOB_DEFAULTS["max_instances"]),
        coalesce=bool(raw.get("coalesce", _JOB_DEFAULTS["coalesce"])),
        misfire_grace_time=_int_or(raw.get("misfire_grace_time"), None),
        summary=raw.get("summary") or raw.get("description"),
    )


def preview_trigger(trigger, tz, count: int = 6, start=None) -> list[datetime]:
    """Next `count` fire times after `start` (default: now in `tz`)."""
    cursor = start or datetime.now(tz=tz)
    prev = cursor
    out: list[datetime] = []
    while len(out) < count:
        nxt = trigger.get_next_fire_time(prev, cursor)
        if nxt is None:
            break
        out.append(nxt)
        prev = nxt
        cursor = nxt + timedelta(microseconds=1)
    return out


# ---- Triggers ---------------------------------------------------------------


def build_trigger(trig_def: dict[str, Any], tz) -> Any:
    """Build an APScheduler trigger; ValueError on anything malformed."""
    if not isinstance(trig_def, dict):
        raise ValueError("trigger spec must be a dict")
    kinds = [k for k in TRIGGER_KINDS if trig_def.get(k) is not None]
    if len(kinds) != 1:
        raise ValueError(f"exactly one of {list(TRIGGER_KINDS)} must be provided")
    builder = {
        "interval": _interval_trigger,
        "cron": _cron_trigger,
        "date": _date_trigger,
        "daily_time": _daily_time_trigger,
    }[kinds[0]]
    return builder(trig_def[kinds[0]], _as_tzinfo(tz))


def _as_tzinfo(z):
    if not z:
        return None
    if isinstance(z, _dt_tzinfo):
        return z
    return ZoneInfo(str(z))


def _check_fields(kind: str, spec: dict[str, Any], allowed: frozenset) -> None:
    unknown = set(spec) - allowed
    if unknown:
        raise ValueError(f"{kind} has unknown field(s): {sorted(unknown)}")


def _non_negative(spec: dict[str, Any], name: str) -> int:
    try:
        v = int(spec.get(name, 0))
    except (TypeError, ValueError) as err:
        raise ValueError(f"interval.{name} must be an integer") from err
    if v < 0:
        raise ValueError(f"interval.{name} must be >= 0")
    return v


def _interval_trigger(spec: Any, default_tz) -> IntervalTrigger:
    if not isinstance(spec, dict):
        raise ValueError("interval must be an object with time fields")
    _check_fields("interval", spec, _INTERVAL_FIELDS)

    kwargs: dict[str, Any] = {}
    for unit in _INTERVAL_UNITS:
        n = _non_negative(spec, unit)
        if n:
            kwargs[unit] = n
    if not kwargs:
        raise ValueError("interval must be greater than 0 (provide at least one nonzero time field)")
    jitter = _non_negative(spec, "jitter")
    if jitter:
        kwargs["jitter"] = jitter
    kwargs.update({k: spec[k] for k in ("start_date", "end_date") if k in spec})
    return IntervalTrigger(timezone=_as_tzinfo(spec.get("timezone")) or default_tz, **kwargs)


def _cron_trigger(spec: Any, default_tz) -> CronTrigger:
    if isinstance(spec, str):
        fields = spec.split()
        if len(fields) == 5:
            return CronTrigger.from_crontab(spec, timezone=default_tz)
        if len(fields) == 6:
            second, minute, hour, day, month, dow = fields
            return CronTrigger(
                second=second, minute=minute, hour=hour, day=day, month=month, day_of_week=dow, timezone=default_tz
            )
        raise ValueError(f"cron string must have 5 or 6 fields (got {len(fields)}): {spec!r}")

    if not isinstance(spec, dict):
        raise ValueError("cron must be a crontab string or an object")
    _check_fields("cron", spec, _CRON_FIELDS)
    fields = {k: v for k, v in spec.items() if k != "timezone"}
    # Unset second/minute/hour mean 0, not "every": {"hour": 3} fires once a day.
    for unit in ("second", "minute", "hour"):
        fields.setdefault(unit, 0)
    return CronTrigger(timezone=_as_tzinfo(spec.get("timezone")) or default_tz, **fields)


def _date_trigger(spec: Any, default_tz) -> DateTrigger:
    if isinstance(spec, dict):
        run_at = spec.get("run_at")
        tzinfo = _as_tzinfo(spec.get("timezone")) or default_tz
    else:
        run_at, tzinfo = spec, default_tz
    if run_at is None:
        raise ValueError("date trigger requires 'run_at' (or non-empty scalar value)")

    if isinstance(run_at, (int, float)):
        when = datetime.fromtimestamp(run_at, tz=tzinfo or timezone.utc)
    elif isinstance(run_at, datetime):
        when = run_at
    else:
        try:
            when = datetime.fromisoformat(str(run_at))
        except ValueError as e:
            raise ValueError(f"Invalid date.run_at: {run_at!r}") from e
    if when.tzinfo is None:
        when = _localize(when, tzinfo)
    return DateTrigger(run_date=when, timezone=when.tzinfo or tzinfo)


def _localize(dt: datetime, tzinfo) -> datetime:
    if tzinfo is None:
        return dt
    # pytz zones need localize(); replace() would pick the LMT offset.
    localize = getattr(tzinfo, "localize", None)
    return localize(dt) if callable(localize) else dt.replace(tzinfo=tzinfo)


def _daily_time_trigger(spec: Any, default_tz):
    if not isinstance(spec, dict):
        raise ValueError("daily_time must be an object")
    _check_fields("daily_time", spec, _DAILY_FIELDS)
    times = spec.get("time")
    if times is None:
        raise ValueError("daily_time requires 'time'")
    if isinstance(times, str):
        times = [times]
    if not isinstance(times, (list, tuple)):
        raise ValueError("daily_time.time must be a string or list of strings")

    tzinfo = _as_tzinfo(spec.get("timezone")) or default_tz
    # One CronTrigger per exact time; hour/minute lists in a single trigger would cross-multiply.
    triggers = [
        CronTrigger(hour=h, minute=m, second=s, day_of_week=spec.get("day_of_week"), timezone=tzinfo)
        for h, m, s in sorted({parse_hms(str(t)) for t in times})
    ]
    return triggers[0] if len(triggers) == 1 else OrTrigger(triggers)


def parse_hms(s: str) -> tuple[int, int, int]:
    """'HH:MM' or 'HH:MM:SS' -> (h, m, s); ValueError when malformed or out of range."""
    parts = s.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"daily_time.time must be 'HH:MM' or 'HH:MM:SS', got {s!r}")
    try:
        hh, mm, ss = (int(p) for p in parts + ["0"] * (3 - len(parts)))
    except ValueError as err:
        raise ValueError(f"daily_time.time must contain integers: {s!r}") from err
    time(hh, mm, ss)  # range check
    return hh, mm, ss


# ---- Jobs -------------------------------------------------------------------


def _add_job(scheduler: BackgroundScheduler, spec: JobSpec) -> None:
    """Register `spec`; the wrapped callable never lets an exception reach APScheduler."""

    def _job_wrapper():
        started = _time.monotonic()
        LOG.info("Job[%s] starting (module=%s)", spec.id, spec.module)
        try:
            meta, _run_id = runner.run_module_once(
                spec.module,
                dict(spec.kwargs),
                trigger_type="scheduled",
                job_context={
                    "job_id": spec.id,
                    "module": spec.module,
                    "now_iso": datetime.now(timezone.utc).isoformat(),
                },
                timeout_sec=spec.timeout_sec,
            )
        except Exception:
            LOG.exception("Job[%s] raised an exception.", spec.id)
            _record_run(spec, "error", _time.monotonic() - started)
            return
        elapsed = _time.monotonic() - started
        LOG.info("Job[%s] finished in %.3fs: %s", spec.id, elapsed, (meta or {}).get("message", "OK"))
        _record_run(spec, "ok", elapsed, meta)

    scheduler.add_job(
        func=_job_wrapper,
        trigger=spec.trigger,
        id=spec.id,
        max_instances=spec.max_instances,
        coalesce=spec.coalesce,
        misfire_grace_time=spec.misfire_grace_time,
        replace_existing=True,
    )

    if os.getenv("SCHEDULER_PREVIEW") == "1":
        upcoming = preview_trigger(spec.trigger, scheduler.timezone, count=int(os.getenv("SCHEDULER_PREVIEW_COUNT", "6")))
        LOG.info("PREVIEW[%s]: %s", spec.id, ", ".join(t.isoformat() for t in upcoming) or "(none)")
    next_run = getattr(scheduler.get_job(spec.id), "next_run_time", None)
    LOG.info(
        "Registered job[%s] (module=%s, trigger=%s) next_run_time=%s",
        spec.id,
        spec.module,
        spec.trigger,
        next_run.isoformat() if next_run else "-",
    )


def _record_run(spec: JobSpec, status: str, elapsed_s: float, meta: dict[str, Any] | None = None) -> None:
    try:
        write_activity_log({
            "ts": datetime.now().astimezone().isoformat(timespec="seconds"),
            "source": "scheduler",
            "event": "job_run",
            "fields": {
                "job_id": spec.id,
                "module": spec.module,
                "status": status,
                "duration_ms": int(elapsed_s * 1000),
                "summary": spec.summary,
                "message": (meta or {}).get("message"),
                "cycle_status": (meta or {}).get("status"),
            },
        })
    except (OSError, TypeError, ValueError):
        LOG.debug("activity log write failed for job[%s]", spec.id, exc_info=True)


def _require(d: dict[str, Any], key: str) -> Any:
    if d.get(key) in (None, ""):
        raise ValueError(f"Missing required key: {key}")
    return d[key]


def _int_or(v: Any, default: int | None) -> int | None:
    try:
        return int(v) if v is not None else default
    except (TypeError, ValueError):
        return default
