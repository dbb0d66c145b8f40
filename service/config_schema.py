# service/config_schema.py
"""
Loading and validation of the scheduler config (JSON or YAML).

    {
      "timezone": "Asia/Kolkata",            # optional; env TZ, then UTC
      "jobs": [
        {
          "id": "airbnb-bangalore",          # optional; falls back to name, then module
          "module": "modules.job_alert",
          "trigger": {"cron": "*/30 * * * *"},   # or top-level "cron": ...
          "kwargs": {...},
          "timeout_sec": 300, "max_instances": 1, "coalesce": true, "misfire_grace_time": 60
        }
      ]
    }
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

import yaml

logger = logging.getLogger(__name__)

TRIGGER_FIELDS = ("cron", "interval", "date", "daily_time")

# field -> minimum accepted value
_INT_FIELDS = {"timeout_sec": 0, "max_instances": 1, "misfire_grace_time": 0}
_BOOL_FIELDS = ("coalesce",)
_TEXT_FIELDS = ("summary", "description")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class ConfigError(ValueError):
    """Raised when the config is invalid."""


# ---- Loading ----------------------------------------------------------------


def load_config(path: str | None = None) -> dict[str, Any]:
    """
    Read the config from `path`, else $CONFIG_PATH, else return an empty one.

    The result is normalized: every job has an "id" and a nested "trigger",
    numeric/boolean fields are coerced, and "timezone" is always set.
    """
    source = path or os.environ.get("CONFIG_PATH")
    if not source:
        logger.info("CONFIG_PATH not provided; using empty default config.")
        raw: Any = {}
    else:
        raw = _parse_file(source)
        if not isinstance(raw, dict):
            raise ConfigError(f"Top-level config in {source} must be an object.")

    cfg = dict(raw)
    tz = cfg.get("timezone")
    if not isinstance(tz, str) or not tz.strip():
        cfg["timezone"] = os.environ.get("TZ", "UTC")
    jobs = cfg.get("jobs")
    cfg["jobs"] = [_normalize_job(job, idx) for idx, job in enumerate(jobs if isinstance(jobs, list) else [])]
    return cfg


def _parse_file(path: str) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {path}: {e}") from e

    if path.lower().endswith((".yml", ".yaml")):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        return {} if data is None else data

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        if path.lower().endswith(".json"):
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e
        raise ConfigError(f"Unsupported config format for {path}. Use .json or .yml/.yaml.") from e


def _normalize_job(job: Any, idx: int) -> dict[str, Any]:
    if not isinstance(job, dict):
        raise ConfigError(f"Job at index {idx} must be an object/dict.")
    out = dict(job)
    out["id"] = job_id(out, idx)

    # Top-level trigger keys are sugar for a nested "trigger" object.
    sugar = {k: out.pop(k) for k in TRIGGER_FIELDS if k in out}
    if sugar:
        if "trigger" in out:
            raise ConfigError(
                f"Job '{out['id']}': do not mix top-level triggers {sorted(sugar)} with nested 'trigger'."
            )
        out["trigger"] = sugar

    for name in _BOOL_FIELDS:
        if name in out:
            out[name] = _as_bool(out[name], name, out["id"])
    for name, minimum in _INT_FIELDS.items():
        if name in out:
            out[name] = _as_int(out[name], name, out["id"], minimum)
    return out


def job_id(job: dict[str, Any], idx: int) -> str:
    """id | name | module | job_<idx>"""
    for key in ("id", "name", "module"):
        v = job.get(key)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return f"job_{idx}"


# ---- Validation -------------------------------------------------------------


def validate(cfg: dict[str, Any]) -> None:
    """
    Raise ConfigError on the first problem found.
    Triggers are validated by building them, so a config that passes here
    also schedules.
    """
    if not isinstance(cfg, dict):
        raise ConfigError("Config must be a dict.")
    jobs = cfg.get("jobs")
    if not isinstance(jobs, list):
        raise ConfigError("Missing required top-level 'jobs' list." if jobs is None else "'jobs' must be a list.")
    tz = cfg.get("timezone")
    if tz is not None and not isinstance(tz, str):
        raise ConfigError("'timezone' must be a string if provided.")

    seen: set[str] = set()
    for idx, job in enumerate(jobs):
        jid = _validate_job(job, idx, tz or "UTC")
        if jid in seen:
            raise ConfigError(f"Duplicate job id '{jid}'.")
        seen.add(jid)


def _validate_job(job: Any, idx: int, tz: str) -> str:
    from service.scheduler import build_trigger  # scheduler imports this module

    if not isinstance(job, dict):
        raise ConfigError(f"Job at index {idx} must be an object/dict.")
    module = job.get("module")
    if not isinstance(module, str) or not module.strip():
        raise ConfigError(f"Job {idx}: 'module' is required and must be a non-empty string.")
    jid = job_id(job, idx)

    trigger = job.get("trigger")
    if not isinstance(trigger, dict):
        raise ConfigError(f"Job '{jid}': 'trigger' must be an object.")
    kinds = [k for k in TRIGGER_FIELDS if k in trigger]
    if len(kinds) != 1:
        raise ConfigError(f"Job '{jid}': exactly one trigger required among {', '.join(TRIGGER_FIELDS)}.")
    try:
        build_trigger(trigger, tz)
    except (TypeError, ValueError, KeyError) as e:
        raise ConfigError(f"Job '{jid}': invalid {kinds[0]} trigger: {e}") from e

    for name in _BOOL_FIELDS:
        if name in job:
            _as_bool(job[name], name, jid)
    for name, minimum in _INT_FIELDS.items():
        if name in job:
            _as_int(job[name], name, jid, minimum)
    if "kwargs" in job and not isinstance(job["kwargs"], dict):
        raise ConfigError(f"Job '{jid}': 'kwargs' must be a dict if provided.")
    for name in _TEXT_FIELDS:
        if name in job and not isinstance(job[name], str):
            raise ConfigError(f"Job '{jid}': '{name}' must be a string if provided.")
    return jid


# ---- Coercion ---------------------------------------------------------------


def _as_bool(value: Any, field: str, jid: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower() if isinstance(value, str) else None
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigError(f"Job '{jid}': '{field}' must be a boolean (or boolean-like string).")


def _as_int(value: Any, field: str, jid: str, minimum: int) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Job '{jid}': '{field}' must be an integer.") from e
    if n < minimum:
        raise ConfigError(f"Job '{jid}': '{field}' must be >= {minimum} (got {n}).")
    return n
