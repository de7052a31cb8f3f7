"""Periodic crawling on top of an APScheduler background scheduler."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Sequence

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..config import ScheduleConfig, ScheduleType, SourceConfig
from ..logging_conf import configure_logging

CRAWL_ALL_JOB_ID = "crawl::all"


def source_job_id(source_name: str) -> str:
    return f"source::{source_name}"


def _interval_trigger(value: Any, default_minutes: int) -> IntervalTrigger:
    if value is None:
        return IntervalTrigger(minutes=default_minutes)
    if isinstance(value, dict):
        return IntervalTrigger(**value)
    if isinstance(value, (int, float)):
        return IntervalTrigger(minutes=float(value))
    raise ValueError("Interval schedule requires minutes or kwargs dict")


def build_trigger(schedule: ScheduleConfig, default_interval_minutes: int) -> BaseTrigger:
    """Translate a source schedule into an APScheduler trigger.

    Numeric intervals are minutes; an interval without value uses
    ``default_interval_minutes``. A ``once`` schedule without date runs now.
    """

    if schedule.type is ScheduleType.CRON:
        return CronTrigger.from_crontab(str(schedule.value))
    if schedule.type is ScheduleType.INTERVAL:
        return _interval_trigger(schedule.value, default_interval_minutes)
    if schedule.type is ScheduleType.ONCE:
        run_date = datetime.fromisoformat(str(schedule.value)) if schedule.value else datetime.now()
        return DateTrigger(run_date=run_date)
    raise ValueError(f"Unknown schedule type: {schedule.type}")


class APSchedulerAdapter:
    """Own the background scheduler and the crawl jobs registered on it.

    Jobs never overlap with themselves: a run still in progress makes the
    next firing be skipped, and missed firings collapse into one.
    """

    def __init__(self, scheduler: BackgroundScheduler | None = None) -> None:
        self.scheduler = scheduler or BackgroundScheduler()
        self.logger = configure_logging().bind(component="scheduler")
        self.started = False

    def start(self) -> None:
        if self.started:
            return
        self.scheduler.start()
        self.started = True
        self.logger.info("scheduler_started", jobs=len(self.list_jobs()))

    def shutdown(self) -> None:
        if not self.started:
            return
        self.scheduler.shutdown(wait=False)
        self.started = False
        self.logger.info("scheduler_stopped")

    def schedule_crawl_all(
        self, callback: Callable[[], object], interval_minutes: int, run_now: bool = False
    ) -> None:
        extra = {"next_run_time": datetime.now()} if run_now else {}
        self._add_job(CRAWL_ALL_JOB_ID, callback, IntervalTrigger(minutes=interval_minutes), **extra)
        self.logger.info("crawl_all_scheduled", interval_minutes=interval_minutes, run_now=run_now)

    def schedule_source(
        self,
        source: SourceConfig,
        callback: Callable[[SourceConfig], object],
        default_interval_minutes: int,
    ) -> None:
        trigger = build_trigger(source.schedule, default_interval_minutes)
        self._add_job(source_job_id(source.source_name), callback, trigger, args=[source])
        self.logger.info(
            "source_scheduled",
            source=source.source_name,
            schedule=source.schedule.model_dump(mode="json"),
        )

    def remove_source(self, source_name: str) -> None:
        job_id = source_job_id(source_name)
        if self.scheduler.get_job(job_id) is None:
            self.logger.warning("job_not_found", job=job_id)
            return
        self.scheduler.remove_job(job_id)
        self.logger.info("job_removed", job=job_id)

    def list_jobs(self) -> list[dict]:
        return [
            {
                "id": job.id,
                "next_run_time": getattr(job, "next_run_time", None),
                "trigger": str(job.trigger),
            }
            for job in self.scheduler.get_jobs()
        ]

    def _add_job(
        self,
        job_id: str,
        callback: Callable[..., object],
        trigger: BaseTrigger,
        args: Sequence[Any] | None = None,
        **extra: Any,
    ) -> None:
        self.scheduler.add_job(
            callback,
            trigger=trigger,
            id=job_id,
            args=args,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **extra,
        )


__all__ = ["APSchedulerAdapter", "CRAWL_ALL_JOB_ID", "build_trigger", "source_job_id"]
