from datetime import datetime, timezone

import pytest

from oasis_terminal.jobs import JOBS
from oasis_terminal.scheduler import SCHEDULE, build_scheduler, describe_schedule


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def sched(ctx):
    return build_scheduler(ctx, blocking=False)


def _next(sched, job_id, now):
    job = sched.get_job(job_id)
    return job.trigger.get_next_fire_time(None, now)


def test_every_job_is_scheduled_once(sched):
    ids = sorted(j.id for j in sched.get_jobs())
    assert ids == sorted(JOBS)
    assert set(SCHEDULE) == set(JOBS)


def test_jobs_never_overlap_themselves(sched):
    for job in sched.get_jobs():
        assert job.max_instances == 1
        assert job.coalesce is True


def test_job_arguments_bind_context(sched, ctx):
    job = sched.get_job("ingest")
    assert job.args == (ctx, "ingest")


@pytest.mark.parametrize(
    "job_id,now,expected",
    [
        # Monday 2025-01-06
        ("ingest", _utc(2025, 1, 6, 10, 2), _utc(2025, 1, 6, 10, 5)),
        ("price_watchdog", _utc(2025, 1, 6, 10, 2), _utc(2025, 1, 6, 10, 15)),
        ("forex_watchdog", _utc(2025, 1, 6, 10, 31), _utc(2025, 1, 6, 11, 0)),
        ("whale_movement", _utc(2025, 1, 6, 11, 0, 1), _utc(2025, 1, 6, 12, 0)),
        ("liquidation_watch", _utc(2025, 1, 6, 5, 0), _utc(2025, 1, 6, 8, 0)),
        ("knowledge_drop", _utc(2025, 1, 6, 1, 0), _utc(2025, 1, 6, 12, 0)),
        ("fear_greed", _utc(2025, 1, 6, 7, 0), _utc(2025, 1, 7, 6, 0)),
        ("london_handover", _utc(2025, 1, 6, 9, 0), _utc(2025, 1, 6, 12, 0)),
        ("morning_brief", _utc(2025, 1, 6, 9, 0), _utc(2025, 1, 6, 13, 30)),
        ("market_open", _utc(2025, 1, 6, 9, 0), _utc(2025, 1, 6, 14, 30)),
        ("market_close", _utc(2025, 1, 6, 9, 0), _utc(2025, 1, 6, 21, 0)),
        ("weekly_wrap", _utc(2025, 1, 6, 9, 0), _utc(2025, 1, 12, 19, 0)),
        ("forex_weekly", _utc(2025, 1, 6, 9, 0), _utc(2025, 1, 12, 20, 0)),
        # Saturday: weekday jobs wait for Monday
        ("market_open", _utc(2025, 1, 11, 9, 0), _utc(2025, 1, 13, 14, 30)),
        ("morning_brief", _utc(2025, 1, 11, 9, 0), _utc(2025, 1, 13, 13, 30)),
    ],
)
def test_cron_table(sched, job_id, now, expected):
    assert _next(sched, job_id, now) == expected


def test_only_subset(ctx):
    s = build_scheduler(ctx, blocking=False, only=["ingest", "fear_greed"])
    assert sorted(j.id for j in s.get_jobs()) == ["fear_greed", "ingest"]


def test_unknown_job_name(ctx):
    with pytest.raises(KeyError):
        build_scheduler(ctx, blocking=False, only=["nope"])


def test_describe_schedule():
    lines = describe_schedule()
    assert len(lines) == len(SCHEDULE)
    assert any(line.startswith("ingest") and "*/5 * * * *" in line for line in lines)
