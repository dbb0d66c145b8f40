# service/runner.py
from __future__ import annotations

import importlib
import json
import logging
import os
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from service import logging_utils

log = logging.getLogger(__name__)

# Modules whose run() has been called in this process; shutdown_modules() visits them.
_LOADED: dict[str, Any] = {}
_LOADED_LOCK = threading.Lock()


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def now_iso() -> str:
    return datetime.now(timezone.utc).astimezone().isoformat(timespec="seconds")


def _maybe_bool(v: Any) -> Any:
    if isinstance(v, str):
        low = v.strip().lower()
        if low in ("true", "t", "yes", "y"):
            return True
        if low in ("false", "f", "no", "n"):
            return False
    return v


def _maybe_number(v: Any) -> Any:
    if isinstance(v, str):
        s = v.strip()
        if s and (s.isdigit() or (s.startswith("-") and s[1:].isdigit())):
            return int(s)
        try:
            return float(s)
        except ValueError:
            pass
    return v


def _normalize_kwargs_types(kwargs: dict[str, object] | None) -> dict[str, object]:
    """
    Normalize job kwargs:

      • For top-level keys ending with "_env":
          - Treat the string value as an ENV VAR NAME and replace it with
            os.getenv(<name>, ""), uncoerced. The key name is kept.
          - Nested blocks (e.g. notifications.discord.webhook_url_env) are
            left alone; the module resolves those itself.

      • For all other keys:
          - If a string looks like JSON ({...} or [...]), parse it.
          - Else coerce common bool/number string forms.
          - Leave non-strings unchanged.
    """
    if not kwargs:
        return {}

    normalized: dict[str, object] = {}
    for k, v in kwargs.items():
        if isinstance(k, str) and k.endswith("_env") and isinstance(v, str):
            normalized[k] = os.getenv(v.strip(), "")
            continue

        if isinstance(v, str):
            s = v.strip()
            if (s.startswith("{") and s.endswith("}")) or (s.startswith("[") and s.endswith("]")):
                try:
                    normalized[k] = json.loads(s)
                    continue
                except ValueError:
                    pass  # fall through to bool/number coercion
            normalized[k] = _maybe_number(_maybe_bool(s))
        else:
            normalized[k] = v

    return normalized


def _module_path(module: str) -> str:
    """Accept 'job_alert' as shorthand for 'modules.job_alert'."""
    module = module.strip()
    return module if "." in module else f"modules.{module}"


def _resolve_hook(module: str, hook: str) -> Callable[..., Any]:
    """Import `module` and return its callable `hook` (run, test_notify, ...)."""
    path = _module_path(module)
    mod = importlib.import_module(path)
    fn = getattr(mod, hook, None)
    if not callable(fn):
        raise AttributeError(f"Module {path!r} does not define a callable `{hook}(**kwargs)`.")
    with _LOADED_LOCK:
        _LOADED[path] = mod
    return fn


def _emit_activity(record: dict[str, Any]) -> None:
    try:
        logging_utils.write_activity_log(record)
    except (OSError, TypeError, ValueError) as e:
        log.warning("write_activity_log failed: %s", e)


@dataclass
class RunResult:
    ok: bool
    message: str
    meta: dict[str, Any] | None = None


def _coerce_result(value: Any) -> RunResult:
    """
    Normalize a module return into a RunResult.

    Acceptable shapes:
      - dict  -> meta (may include 'message' and 'ok')
      - None  -> no output
      - str   -> message
    """
    if isinstance(value, dict):
        return RunResult(ok=bool(value.get("ok", True)), message=str(value.get("message", "OK")), meta=value)
    if value is None:
        return RunResult(ok=True, message="OK")
    if isinstance(value, str):
        return RunResult(ok=True, message=value)
    raise TypeError("Module return must be one of: dict, None, or str")


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------
def run_module_hook(
    module: str,
    hook: str,
    kwargs: dict[str, object] | None = None,
    *,
    trigger_type: str = "scheduled",
    job_context: dict[str, object] | None = None,  # e.g., {"job_id": "...", "module": "...", "now_iso": "..."}
    timeout_sec: int | None = None,
) -> tuple[dict[str, Any] | None, str]:
    """
    Execute `module.<hook>(**kwargs)` once in a worker thread.

    Returns:
        (meta_or_none, run_id)
    Raises:
        Propagates exceptions from module execution (caller/CLI will catch and log).
    """
    run_id = uuid.uuid4().hex
    context: dict[str, Any] = {
        "run_id": run_id,
        "module": module,
        "hook": hook,
        "trigger_type": trigger_type,
        "started_at": now_iso(),
    }
    if job_context:
        context.update({k: v for k, v in job_context.items() if k not in context})

    kw = _normalize_kwargs_types(kwargs)
    fn = _resolve_hook(module, hook)

    exc: BaseException | None = None
    t0 = datetime.now()
    # No context manager: a timed-out module keeps its thread, and we must not wait on it.
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="runner")
    try:
        fut = pool.submit(fn, **kw)
        value = fut.result(timeout=timeout_sec) if timeout_sec else fut.result()
        result = _coerce_result(value)
    except FutureTimeout:
        exc = TimeoutError(f"Module run timed out after {timeout_sec}s")
        result = RunResult(ok=False, message=str(exc), meta={"timeout_sec": timeout_sec})
    except Exception as e:
        exc = e
        result = RunResult(ok=False, message=str(e), meta={"exception_type": type(e).__name__})
    finally:
        pool.shutdown(wait=False)
    duration_ms = int((datetime.now() - t0).total_seconds() * 1000)

    _emit_activity({
        "ts": now_iso(),
        "run_id": run_id,
        "module": module,
        "hook": hook,
        "trigger_type": trigger_type,
        "ok": result.ok,
        "message": result.message,
        "duration_ms": duration_ms,
        "context": context,
        "kwargs": kw,
        "meta": result.meta or {},
    })

    if exc:
        raise exc
    return result.meta, run_id


def run_module_once(
    module: str,
    kwargs: dict[str, object] | None = None,
    *,
    trigger_type: str = "scheduled",
    job_context: dict[str, object] | None = None,
    timeout_sec: int | None = None,
) -> tuple[dict[str, Any] | None, str]:
    """Execute a module's run(**kwargs) once; see run_module_hook()."""
    return run_module_hook(
        module,
        "run",
        kwargs,
        trigger_type=trigger_type,
        job_context=job_context,
        timeout_sec=timeout_sec,
    )


def shutdown_modules() -> None:
    """Call shutdown() on every module this process has run, if it defines one."""
    with _LOADED_LOCK:
        mods = list(_LOADED.items())
        _LOADED.clear()
    for path, mod in mods:
        fn = getattr(mod, "shutdown", None)
        if not callable(fn):
            continue
        try:
            fn()
        except Exception:
            log.exception("shutdown() failed for %s", path)
