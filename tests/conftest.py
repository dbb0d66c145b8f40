# tests/conftest.py
import json
import os
import tempfile
import threading
import types

import pytest
from freezegun import freeze_time

from modules.job_alert.lib import config as ja_config
from modules.job_alert.lib.models import Delivered, Failed, JobRecord
from modules.job_alert.lib.sinks.base import BaseSink, SinkError

# Env vars that would otherwise leak a developer's real sinks/listing into tests.
_SINK_ENV = (
    "CONSOLE_ENABLED",
    "FILE_LOG_ENABLED",
    "LOG_FILE_PATH",
    "EMAIL_ENABLED",
    "EMAIL_TO",
    "EMAIL_RECEIVER",
    "EMAIL_SERVICE",
    "EMAIL_USER",
    "EMAIL_PASS",
    "DISCORD_ENABLED",
    "DISCORD_WEBHOOK_URL",
    "TELEGRAM_ENABLED",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
    "WEBHOOK_ENABLED",
    "WEBHOOK_URL",
    "SMTP_HOST",
    "SMTP_PORT",
    "SMTP_USERNAME",
    "SMTP_PASSWORD",
    "SMTP_FROM",
    "SMTP_FROM_NAME",
    "SMTP_USE_SSL",
    "SMTP_STARTTLS",
    "SMTP_INSECURE_TLS",
    "JOBS_URL",
    "JOB_KEYWORDS",
    "DETECTION_STRATEGY",
    "JOB_ALERT_DB",
    "JOB_ALERT_DRY_RUN",
)


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls or external services).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls or hit external services (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="ja-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    monkeypatch.setenv("CONFIG_PATH", "/app/local/config.json")
    for name in _SINK_ENV:
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
def _forget_watchers():
    """Cached watchers must not carry state from one test into the next."""
    yield
    from modules.job_alert import main as ja_main
    from service import runner

    ja_main.shutdown()
    runner._LOADED.clear()


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


@pytest.fixture
def make_record():
    def _make(n: int, **overrides) -> JobRecord:
        fields = {
            "title": f"Software Engineer {n}",
            "link": f"https://careers.example.com/jobs/{n}",
            "department": "Engineering",
            "location": "Bangalore, India",
        }
        fields.update(overrides)
        return JobRecord(**fields)

    return _make


@pytest.fixture
def stub_items():
    """Raw items in the shape the stub scraper accepts."""
    return [
        {"title": "Senior Software Engineer", "link": "https://careers.example.com/jobs/1", "department": "Engineering"},
        {"title": "Data Analyst", "link": "https://careers.example.com/jobs/2", "department": "Data"},
        {"title": "Recruiter", "link": "https://careers.example.com/jobs/3", "department": "People"},
    ]


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "state" / "job_alert.db")


@pytest.fixture
def stub_settings(db_path, stub_items):
    """Factory for Settings that scrape the stub listing into a per-test DB."""

    def _make(**overrides):
        kw = {
            "scraper": "stub",
            "scraper_params": {"items": stub_items},
            "sqlite_path": db_path,
            "notifications": {"console": {"enabled": False}},
        }
        kw.update(overrides)
        return ja_config.Settings.from_env_and_kwargs(kw)

    return _make


@pytest.fixture
def write_min_config(tmp_path, monkeypatch, stub_items):
    cfg = {
        "timezone": "UTC",
        "jobs": [
            {
                "id": "job-alert-never",
                "module": "modules.job_alert",
                "trigger": {"date": "2099-01-01T00:00:00Z"},
                "kwargs": {
                    "scraper": "stub",
                    "scraper_params": {"items": stub_items},
                    "sqlite_path": str(tmp_path / "job_alert.db"),
                },
                "summary": "pytest config",
            }
        ],
    }
    p = tmp_path / "config.json"
    p.write_text(json.dumps(cfg), encoding="utf-8")
    monkeypatch.setenv("CONFIG_PATH", str(p))
    return p


@pytest.fixture
def stub_emailer(monkeypatch):
    sent = {"messages": []}

    def send_html(**kwargs):
        sent["messages"].append(kwargs)
        return "<fake-message-id@example>"

    ns = types.SimpleNamespace(send_html=send_html, sent=sent)
    monkeypatch.setattr("service.emailer.send_html", ns.send_html, raising=True)
    return ns


class FakeSink(BaseSink):
    """
    Scriptable sink for fanout/engine tests.

    mode: "ok" | "fail" | "raise" | "bad" | "hang"
    Every call is recorded in `calls` as (records, context).
    """

    kind = "fake"

    def __init__(self, name="fake", mode="ok", *, delay=0.0, timeout_sec=2.0, enabled=True):
        super().__init__({}, enabled=enabled, timeout_sec=timeout_sec)
        self._name = name
        self.mode = mode
        self.delay = delay
        self.calls = []
        self.release = threading.Event()

    @property
    def name(self):
        return self._name

    def send(self, records, context):
        self.calls.append((records, context))
        if self.delay:
            self.release.wait(self.delay)
        if self.mode == "hang":
            self.release.wait(30)
        if self.mode == "raise":
            raise SinkError(f"{self._name} exploded")
        if self.mode == "fail":
            return Failed(sink=self.name, reason="rejected")
        if self.mode == "bad":
            return "not a result"
        return Delivered(sink=self.name, details={"count": len(records)})


@pytest.fixture
def fake_sink():
    return FakeSink
