from __future__ import annotations

from datetime import datetime, timedelta

from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from lotscout.config import ScheduleConfig, ScheduleType
from lotscout.scheduler import APSchedulerAdapter
from lotscout.scheduler.apsched_adapter import CRAWL_ALL_JOB_ID, build_trigger, source_job_id


class StubScheduler:
    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.jobs: dict[str, object] = {}

    def add_job(self, callback, trigger, id, replace_existing, max_instances, coalesce, args=None, **kwargs):  # noqa: A002
        self.calls.append({"id": id, "args": args, "trigger": trigger, "kwargs": kwargs})
        self.jobs[id] = trigger

    def get_job(self, job_id):
        return self.jobs.get(job_id)

    def get_jobs(self):
        return []

    def remove_job(self, job_id):
        self.calls.append({"event": "remove", "id": job_id})
        del self.jobs[job_id]

    def start(self):
        self.calls.append({"event": "started"})

    def shutdown(self, wait=False):  # noqa: ARG002
        self.calls.append({"event": "shutdown"})


def test_build_triggers(sample_source_config) -> None:
    source_cron = sample_source_config(
        schedule=ScheduleConfig(type=ScheduleType.CRON, value="*/5 * * * *")
    )
    assert isinstance(build_trigger(source_cron.schedule, 60), CronTrigger)

    source_interval = sample_source_config(
        schedule=ScheduleConfig(type=ScheduleType.INTERVAL, value=30)
    )
    interval_trigger = build_trigger(source_interval.schedule, 60)
    assert isinstance(interval_trigger, IntervalTrigger)
    assert interval_trigger.interval.total_seconds() == 30 * 60

    future = (datetime.now() + timedelta(minutes=5)).isoformat()
    source_once = sample_source_config(
        schedule=ScheduleConfig(type=ScheduleType.ONCE, value=future)
    )
    assert isinstance(build_trigger(source_once.schedule, 60), DateTrigger)


def test_interval_without_value_uses_default(sample_source_config) -> None:
    trigger = build_trigger(sample_source_config().schedule, 45)

    assert trigger.interval.total_seconds() == 45 * 60

    kwargs_source = sample_source_config(
        schedule=ScheduleConfig(type=ScheduleType.INTERVAL, value={"hours": 2})
    )
    assert build_trigger(kwargs_source.schedule, 45).interval.total_seconds() == 7200


def test_schedule_source_uses_scheduler(sample_source_config) -> None:
    stub = StubScheduler()
    adapter = APSchedulerAdapter(stub)
    source = sample_source_config(source_name="AdapterCase")

    adapter.schedule_source(source, lambda s: s, default_interval_minutes=60)
    adapter.start()
    adapter.remove_source(source.source_name)
    adapter.remove_source("never-scheduled")
    adapter.shutdown()

    assert stub.calls[0]["id"] == source_job_id("AdapterCase") == "source::AdapterCase"
    assert stub.calls[0]["args"] == [source]
    assert [call.get("event") for call in stub.calls[1:]] == ["started", "remove", "shutdown"]


def test_schedule_crawl_all(sample_source_config) -> None:
    stub = StubScheduler()
    adapter = APSchedulerAdapter(stub)

    adapter.schedule_crawl_all(lambda: None, interval_minutes=15, run_now=True)

    call = stub.calls[0]
    assert call["id"] == CRAWL_ALL_JOB_ID
    assert call["trigger"].interval.total_seconds() == 15 * 60
    assert "next_run_time" in call["kwargs"]
