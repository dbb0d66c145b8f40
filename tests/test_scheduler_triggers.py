from datetime import datetime, timedelta, timezone

import pytest

from service.scheduler import build_trigger, parse_hms, preview_trigger

# Helpers ----------------------------------------------------------------------


def _next_times(trigger, count=5, start=None):
    """Next `count` fire times strictly after `start` (UTC)."""
    return preview_trigger(trigger, timezone.utc, count=count, start=start)


# Tests ------------------------------------------------------------------------


def test_interval_minutes():
    trig = build_trigger({"interval": {"minutes": 30}}, "UTC")
    assert trig.interval.total_seconds() == 1800

    ts = datetime(2099, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
    times = _next_times(trig, count=3, start=ts)
    assert times == [ts + timedelta(minutes=30 * i) for i in (1, 2, 3)]


def test_cron_five_field_string_every_thirty_minutes():
    trig = build_trigger({"cron": "*/30 * * * *"}, "UTC")

    start = datetime(2099, 1, 5, 10, 1, 0, tzinfo=timezone.utc)
    times = _next_times(trig, count=3, start=start)
    assert times == [
        datetime(2099, 1, 5, 10, 30, 0, tzinfo=timezone.utc),
        datetime(2099, 1, 5, 11, 0, 0, tzinfo=timezone.utc),
        datetime(2099, 1, 5, 11, 30, 0, tzinfo=timezone.utc),
    ]


def test_cron_six_field_string_has_leading_seconds():
    trig = build_trigger({"cron": "15 0 */6 * * *"}, "UTC")

    start = datetime(2099, 1, 5, 0, 0, 0, tzinfo=timezone.utc)
    times = _next_times(trig, count=2, start=start)
    assert times == [
        datetime(2099, 1, 5, 0, 0, 15, tzinfo=timezone.utc),
        datetime(2099, 1, 5, 6, 0, 15, tzinfo=timezone.utc),
    ]


def test_cron_object_fields():
    trig = build_trigger({"cron": {"minute": "0,45", "hour": "5-6", "day_of_week": "mon-sat"}}, "UTC")

    # 2099-01-05 is a Monday
    start = datetime(2099, 1, 5, 4, 59, 0, tzinfo=timezone.utc)
    hm = [(t.hour, t.minute) for t in _next_times(trig, count=4, start=start)]
    assert hm == [(5, 0), (5, 45), (6, 0), (6, 45)]


def test_cron_string_uses_scheduler_timezone():
    trig = build_trigger({"cron": "0 9 * * *"}, "Asia/Kolkata")
    start = datetime(2099, 1, 5, 0, 0, 0, tzinfo=timezone.utc)
    (first,) = _next_times(trig, count=1, start=start)
    # 09:00 IST is 03:30 UTC
    assert first.astimezone(timezone.utc) == datetime(2099, 1, 5, 3, 30, tzinfo=timezone.utc)


def test_date_iso_with_tz():
    trig = build_trigger({"date": "2099-01-01T00:00:00Z"}, "UTC")
    assert trig.run_date.year == 2099
    assert trig.run_date.tzinfo is not None


def test_date_epoch_seconds():
    ts = int(datetime(2099, 1, 1, 0, 0, 0, tzinfo=timezone.utc).timestamp())
    trig = build_trigger({"date": {"run_at": ts}}, "UTC")
    assert trig.run_date == datetime(2099, 1, 1, tzinfo=timezone.utc)


def test_date_without_tz_uses_scheduler_tz():
    trig = build_trigger({"date": {"run_at": "2099-07-01T09:00:00"}}, "Asia/Kolkata")
    assert trig.run_date.utcoffset() == timedelta(hours=5, minutes=30)


def test_daily_time_multiple_times_are_exact_pairs():
    from apscheduler.triggers.combining import OrTrigger

    trig = build_trigger({"daily_time": {"time": ["09:00", "13:30", "18:00"], "day_of_week": "mon-fri"}}, "UTC")
    assert isinstance(trig, OrTrigger)

    start = datetime(2099, 1, 5, 8, 0, 0, tzinfo=timezone.utc)  # Monday
    hm = [(t.hour, t.minute) for t in _next_times(trig, count=3, start=start)]
    assert hm == [(9, 0), (13, 30), (18, 0)]


def test_daily_time_dedups_repeated_entries():
    trig = build_trigger({"daily_time": {"time": ["12:00:10", "12:00:10", "12:00:20"]}}, "UTC")
    start = datetime(2099, 1, 4, 11, 59, 59, tzinfo=timezone.utc)
    times = _next_times(trig, count=2, start=start)
    assert [t.second for t in times] == [10, 20]


@pytest.mark.parametrize(
    "text, expected",
    [("7:05", (7, 5, 0)), ("23:59:59", (23, 59, 59)), (" 00:00 ", (0, 0, 0))],
)
def test_parse_hms(text, expected):
    assert parse_hms(text) == expected


@pytest.mark.parametrize(
    "payload",
    [
        {"date": {}},
        {"daily_time": {}},
        {"daily_time": {"time": "99:99"}},
        {"cron": "*/15 * *"},
        {"cron": "* * * * * * *"},
        {"interval": {"minutes": -5}},
        {"interval": {"hours": 0}},
        {"interval": {"fortnights": 1}},
        {"cron": "*/5 * * * *", "interval": {"minutes": 5}},
        {},
    ],
)
def test_invalid_inputs_raise(payload):
    with pytest.raises(ValueError):
        build_trigger(payload, "UTC")
