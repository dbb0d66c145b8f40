import json
import os
import re

import pytest

from service import logging_utils, runner


def _stub_kwargs(tmp_path, items, **extra):
    kw = {
        "scraper": "stub",
        "scraper_params": {"items": items},
        "sqlite_path": str(tmp_path / "job_alert.db"),
        "notifications": {"console": {"enabled": False}, "file": {"enabled": True, "path": str(tmp_path / "alerts.log")}},
    }
    kw.update(extra)
    return kw


def test_runner_runs_job_alert_cycle_and_returns_meta(tmp_path, stub_items):
    meta, run_id = runner.run_module_once("modules.job_alert", _stub_kwargs(tmp_path, stub_items))

    assert re.match(r"^[a-f0-9]+$", run_id)
    assert meta["status"] == "notified"
    assert meta["notified"] == 3
    assert meta["results"] == [
        {"sink": "file", "ok": True, "details": {"path": str(tmp_path / "alerts.log"), "count": 3}}
    ]
    assert (tmp_path / "alerts.log").read_text(encoding="utf-8").count("\n") == 1


def test_runner_reuses_watcher_between_runs(tmp_path, stub_items):
    kw = _stub_kwargs(tmp_path, stub_items)
    first, _ = runner.run_module_once("job_alert", kw)
    second, _ = runner.run_module_once("job_alert", kw)
    assert first["status"] == "notified"
    assert second["status"] == "unchanged"


def test_runner_writes_activity_record(tmp_path, stub_items):
    _, run_id = runner.run_module_once("job_alert", _stub_kwargs(tmp_path, stub_items), trigger_type="adhoc")

    records = logging_utils.read_recent(50)
    mine = [r for r in records if r.get("run_id") == run_id]
    assert mine, "runner activity record missing"
    assert mine[-1]["trigger_type"] == "adhoc"
    assert mine[-1]["ok"] is True


def test_runner_propagates_config_errors(tmp_path, stub_items):
    from modules.job_alert.lib.config import ConfigError

    with pytest.raises(ConfigError):
        runner.run_module_once("job_alert", _stub_kwargs(tmp_path, stub_items, strategy="fuzzy"))


def test_runner_missing_hook_raises():
    with pytest.raises(AttributeError):
        runner.run_module_hook("job_alert", "no_such_hook")


def test_test_notify_hook_reports_per_sink(tmp_path, stub_items):
    meta, _ = runner.run_module_hook("job_alert", "test_notify", _stub_kwargs(tmp_path, stub_items))
    assert meta["message"] == "test notification delivered by 1/1 sink(s)"
    entry = json.loads((tmp_path / "alerts.log").read_text(encoding="utf-8"))
    assert entry["jobs"][0]["title"] == "Test Job - Software Engineer"
    assert not os.path.exists(tmp_path / "job_alert.db")


def test_shutdown_modules_stops_cached_watchers(tmp_path, stub_items):
    from modules.job_alert import main as ja_main

    runner.run_module_once("job_alert", _stub_kwargs(tmp_path, stub_items))
    assert ja_main._WATCHERS
    runner.shutdown_modules()
    assert ja_main._WATCHERS == {}


def test_normalize_kwargs_resolves_env_and_json(monkeypatch):
    monkeypatch.setenv("MY_URL", "https://jobs.example.com")
    out = runner._normalize_kwargs_types({
        "url_env": "MY_URL",
        "keywords": '["Go", "Rust"]',
        "skip_network": "true",
        "sink_timeout_sec": "7.5",
        "url": "https://x",
    })
    assert out == {
        "url_env": "https://jobs.example.com",
        "keywords": ["Go", "Rust"],
        "skip_network": True,
        "sink_timeout_sec": 7.5,
        "url": "https://x",
    }
