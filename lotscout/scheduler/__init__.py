"""Periodic crawl scheduling."""

from .apsched_adapter import CRAWL_ALL_JOB_ID, APSchedulerAdapter

__all__ = ["APSchedulerAdapter", "CRAWL_ALL_JOB_ID"]
