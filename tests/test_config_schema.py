import json

import pytest

from service import config_schema
from service.config_schema import ConfigError


def _write(tmp_path, name, text):
    p = tmp_path / name
    p.write_text(text, encoding="utf-8")
    return str(p)


def test_load_and_validate_min_config(write_min_config):
    cfg = config_schema.load_config()  # CONFIG_PATH set by fixture
    jobs = cfg["jobs"]
    assert isinstance(jobs, list) and jobs, "expected at least one job"
    assert jobs[0]["id"] == "job-alert-never"
    config_schema.validate(cfg)


def test_no_config_path_gives_empty_config(monkeypatch):
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    monkeypatch.setenv("TZ", "Asia/Kolkata")
    cfg = config_schema.load_config()
    assert cfg == {"jobs": [], "timezone": "Asia/Kolkata"}
    config_schema.validate(cfg)


def test_yaml_config_with_top_level_trigger_keys(tmp_path):
    path = _write(
        tmp_path,
        "config.yaml",
        """
timezone: Asia/Kolkata
jobs:
  - module: modules.job_alert
    cron: "*/30 * * * *"
    timeout_sec: "300"
    coalesce: "yes"
    kwargs:
      keywords: [Backend, Frontend]
""",
    )
    cfg = config_schema.load_config(path)
    job = cfg["jobs"][0]
    assert job["id"] == "modules.job_alert"
    assert job["trigger"] == {"cron": "*/30 * * * *"}
    assert job["timeout_sec"] == 300
    assert job["coalesce"] is True
    config_schema.validate(cfg)


def test_example_config_is_valid():
    import pathlib

    example = pathlib.Path(__file__).resolve().parent.parent / "config.example.json"
    cfg = config_schema.load_config(str(example))
    config_schema.validate(cfg)


def test_mixing_top_level_and_nested_trigger_is_rejected(tmp_path):
    path = _write(
        tmp_path,
        "c.json",
        json.dumps({"jobs": [{"module": "m", "cron": "* * * * *", "trigger": {"interval": {"minutes": 1}}}]}),
    )
    with pytest.raises(ConfigError):
        config_schema.load_config(path)


@pytest.mark.parametrize(
    "job, fragment",
    [
        ({"trigger": {"cron": "* * * * *"}}, "module"),
        ({"module": "m"}, "trigger"),
        ({"module": "m", "trigger": {}}, "exactly one"),
        ({"module": "m", "trigger": {"cron": "61 * * * *"}}, "cron"),
        ({"module": "m", "trigger": {"daily_time": {"time": "25:00"}}}, "daily_time"),
        ({"module": "m", "trigger": {"cron": "* * * * *"}, "kwargs": []}, "kwargs"),
    ],
)
def test_validate_rejects_bad_jobs(job, fragment):
    with pytest.raises(ConfigError) as ei:
        config_schema.validate({"jobs": [job]})
    assert fragment in str(ei.value)


def test_validate_rejects_duplicate_ids():
    job = {"id": "same", "module": "m", "trigger": {"interval": {"minutes": 5}}}
    with pytest.raises(ConfigError, match="Duplicate"):
        config_schema.validate({"jobs": [job, dict(job)]})


@pytest.mark.parametrize("value", ["0", "-3", "many"])
def test_bad_max_instances_is_rejected(tmp_path, value):
    path = _write(
        tmp_path,
        "c.json",
        json.dumps({"jobs": [{"module": "m", "trigger": {"cron": "* * * * *"}, "max_instances": value}]}),
    )
    with pytest.raises(ConfigError):
        config_schema.load_config(path)


@pytest.mark.parametrize(
    "name, text",
    [("c.json", "{not json"), ("c.yaml", "jobs: [unclosed"), ("c.toml", "jobs = []")],
)
def test_unreadable_formats_raise(tmp_path, name, text):
    with pytest.raises(ConfigError):
        config_schema.load_config(_write(tmp_path, name, text))


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        config_schema.load_config(str(tmp_path / "nope.json"))
