# service/cli.py
"""
Command-line entrypoints.

    serve                               run the scheduler until SIGINT/SIGTERM
    run MODULE [--kwargs k=v ...]       one cycle now; --no-notify keeps outbound sinks quiet
    test-notify MODULE [--kwargs ...]   push a sample job through every enabled sink
    status [--db PATH]                  stored detection state, latest snapshot, recent activity
    list-jobs                           jobs from the config file
    validate-config                     exit 1 when the config does not load or validate

--config PATH applies to every command (default: $CONFIG_PATH).
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from service import config_schema as _config_schema
from service import logging_utils as L
from service import runner as _runner
from service import scheduler as _scheduler

LOG = logging.getLogger("service.cli")

DEFAULT_DB = "/app/local/state/job_alert.db"


def _ensure_logging() -> None:
    if logging.getLogger().handlers:
        return
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _parse_kwargs(items: Iterable[str]) -> dict[str, Any]:
    """
    ["limit=5", "keywords=[\"Engineer\"]", "url=https://x"] -> dict.
    A value is decoded as JSON when it parses, otherwise kept as the raw string.
    """
    parsed: dict[str, Any] = {}
    for item in items:
        key, sep, value = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"--kwargs item must be key=value (got {item!r})")
        value = value.strip()
        try:
            parsed[key] = json.loads(value)
        except ValueError:
            parsed[key] = value
    return parsed


@contextmanager
def _temp_env(overrides: dict[str, str]) -> Iterator[None]:
    saved = {k: os.environ.get(k) for k in overrides}
    os.environ.update(overrides)
    try:
        yield
    finally:
        for k, v in saved.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


def _print_table(rows: list[tuple[str, str]], headers: tuple[str, str]) -> None:
    widths = [max([len(headers[i])] + [len(r[i]) for r in rows]) for i in (0, 1)]
    rule = "+" + "+".join("-" * (w + 2) for w in widths) + "+"
    print(rule)
    print(f"| {headers[0].ljust(widths[0])} | {headers[1].ljust(widths[1])} |")
    print(rule)
    for left, right in rows:
        print(f"| {left.ljust(widths[0])} | {right.ljust(widths[1])} |")
    print(rule)


def _describe_trigger(trigger: Any) -> str:
    if not isinstance(trigger, dict):
        return repr(trigger)
    for kind in _scheduler.TRIGGER_KINDS:
        if kind in trigger:
            value = trigger[kind]
            return f"{kind} {value if isinstance(value, str) else json.dumps(value, default=str)}"
    return json.dumps(trigger, default=str)


def _job_rows(cfg: dict[str, Any]) -> list[tuple[str, str]]:
    rows = []
    for idx, job in enumerate(cfg.get("jobs") or []):
        parts = [str(job.get("module")), _describe_trigger(job.get("trigger"))]
        note = job.get("summary") or job.get("description")
        if note:
            parts.append(note)
        rows.append((_config_schema.job_id(job, idx), " | ".join(parts)))
    return rows


def _stamp() -> str:
    return datetime.now().astimezone().isoformat()


def _print_results(results: list[dict[str, Any]]) -> None:
    for r in results:
        if r.get("ok"):
            print(f"  [ok]   {r['sink']}: {json.dumps(r.get('details') or {}, default=str)}")
        else:
            print(f"  [fail] {r['sink']}: {r.get('reason')}")


# ---- Commands ---------------------------------------------------------------


def cmd_validate_config(args: argparse.Namespace) -> int:
    try:
        _config_schema.validate(_config_schema.load_config(args.config))
    except _config_schema.ConfigError as e:
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1
    print("OK: configuration is valid.")
    return 0


def cmd_list_jobs(args: argparse.Namespace) -> int:
    try:
        cfg = _config_schema.load_config(args.config)
    except _config_schema.ConfigError as e:
        print(f"ERROR: failed to list jobs: {e}", file=sys.stderr)
        return 1
    rows = _job_rows(cfg)
    if rows:
        _print_table(rows, headers=("JOB", "DETAILS"))
    else:
        print("No jobs found in config.")
    return 0


def _invoke(args: argparse.Namespace, hook: str, trigger_type: str, env: dict[str, str] | None = None) -> int:
    """Call `hook` on the module once and print what it reports; 1 when it fails."""
    started = time.monotonic()
    kwargs = _parse_kwargs(args.kwargs or [])
    try:
        with _temp_env(env or {}):
            try:
                meta, run_id = _runner.run_module_hook(args.module, hook, kwargs, trigger_type=trigger_type)
            finally:
                # Watchers built under a temporary env must not outlive it.
                _runner.shutdown_modules()
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        print(f"FAILURE: {e}", file=sys.stderr)
        L.write_error_log({
            "ts": _stamp(),
            "where": f"cli.{hook}",
            "module": args.module,
            "kwargs": kwargs,
            "error": repr(e),
            "duration_ms": int((time.monotonic() - started) * 1000),
        })
        return 1

    meta = meta or {}
    print(f"DONE [{run_id[:8]}]: {meta.get('message', 'OK')}")
    _print_results(meta.get("results") or [])
    return 0 if meta.get("ok", True) else 1


def cmd_run(args: argparse.Namespace) -> int:
    return _invoke(args, "run", "adhoc", {"JOB_ALERT_DRY_RUN": "1"} if args.no_notify else None)


def cmd_test_notify(args: argparse.Namespace) -> int:
    return _invoke(args, "test_notify", "test")


def cmd_status(args: argparse.Namespace) -> int:
    from modules.job_alert.lib.state import PersistenceError, StateStore
    from modules.job_alert.lib.utils import short_digest

    store = StateStore(args.db)
    try:
        snap = store.snapshot()
        latest = store.latest_jobs()[: args.jobs] if args.jobs else []
    except PersistenceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if snap.get("exists"):
        _print_table(
            [
                ("Database", str(snap["path"])),
                ("Strategy", str(snap.get("mode") or "-")),
                ("Digest", short_digest(snap.get("digest"))),
                ("Tracked links", str(snap.get("links", 0))),
                ("Latest snapshot", f"{snap.get('latest_jobs', 0)} job(s)"),
                ("Last update", str(snap.get("updated_utc") or "-")),
            ],
            headers=("FIELD", "VALUE"),
        )
    else:
        print(f"No state database at {args.db} (no cycle has completed yet).")

    for job in latest:
        print(f"- {job.title} | {job.department} | {job.location}\n  {job.link}")

    if args.recent:
        print(f"\nRecent activity (last {args.recent}):")
        for rec in L.read_recent(args.recent):
            ts = rec.get("ts") or (rec.get("_meta") or {}).get("ts", "")
            who = rec.get("component") or rec.get("module") or rec.get("source") or ""
            what = rec.get("op") or rec.get("event") or rec.get("hook") or "?"
            note = rec.get("message") or rec.get("status") or ""
            print(f"  {ts} {who} {what} {note}".rstrip())
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the scheduler until SIGINT/SIGTERM, then stop it and let modules persist."""
    L.write_activity_log({"ts": _stamp(), "event": "serve_start"})
    stop = threading.Event()

    def _on_signal(signum, _frame):
        LOG.info("Signal %s received; shutting down...", signum)
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _on_signal)

    controller = None
    rc = 0
    try:
        controller = _scheduler.start(config_path=args.config)
        LOG.info("Serving %d job(s)", len(list(controller.get_job_ids())))
        while not stop.wait(0.3):
            pass
    except KeyboardInterrupt:
        rc = 130
    except Exception:
        LOG.exception("Fatal error in serve")
        rc = 1
    finally:
        if controller is not None:
            controller.stop()
            controller.join(timeout=10.0)
    if rc == 0:
        L.write_activity_log({"ts": _stamp(), "event": "serve_stop"})
    return rc


# ---- Parser -----------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="job-alert", description="Job alert service command-line tools")
    p.add_argument("--config", help="Config file (default: $CONFIG_PATH, else an empty config).")
    sub = p.add_subparsers(dest="cmd", required=True)

    def module_command(name: str, help_text: str, func) -> argparse.ArgumentParser:
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("module", help="Module name, e.g. job_alert or modules.job_alert.")
        sp.add_argument("--kwargs", metavar="k=v", nargs="*", help="Module keyword arguments; JSON values allowed.")
        sp.set_defaults(func=func)
        return sp

    sub.add_parser("serve", help="Run the scheduler loop.").set_defaults(func=cmd_serve)

    run = module_command("run", "Run one cycle of a module now.", cmd_run)
    run.add_argument(
        "--no-notify",
        action="store_true",
        help="Scrape, detect and persist, but only notify console/file sinks.",
    )
    module_command("test-notify", "Send a sample job through every enabled sink.", cmd_test_notify)

    sp = sub.add_parser("status", help="Show stored detection state and recent activity.")
    sp.add_argument("--db", default=os.getenv("JOB_ALERT_DB", DEFAULT_DB), help="SQLite state file ($JOB_ALERT_DB).")
    sp.add_argument("--recent", type=int, default=10, help="Recent activity records to show.")
    sp.add_argument("--jobs", type=int, default=0, help="Also list up to N jobs from the latest snapshot.")
    sp.set_defaults(func=cmd_status)

    sub.add_parser("list-jobs", help="Print the configured jobs.").set_defaults(func=cmd_list_jobs)
    sub.add_parser("validate-config", help="Check the config file.").set_defaults(func=cmd_validate_config)
    return p


def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    args = _build_parser().parse_args(list(argv) if argv is not None else None)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
