"""Batch-wise concurrent crawling of many sources."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Sequence, TypeVar

import structlog

from ..config import SourceConfig

T = TypeVar("T")


@dataclass
class SourceOutcome(Generic[T]):
    source: SourceConfig
    result: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def batched(items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    if size < 1:
        raise ValueError("batch size must be >= 1")
    for start in range(0, len(items), size):
        yield items[start : start + size]


class SourceScheduler(Generic[T]):
    """Run ``crawl`` for each source, ``max_concurrent`` at a time.

    A batch is fully awaited before the next one starts. Failures of one
    source are recorded on its outcome and never stop the others.
    """

    def __init__(
        self,
        crawl: Callable[[SourceConfig], T],
        max_concurrent: int = 5,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.crawl = crawl
        self.max_concurrent = max_concurrent
        self.logger = logger or structlog.get_logger("lotscout.scheduler")

    def run(self, sources: Sequence[SourceConfig]) -> list[SourceOutcome[T]]:
        outcomes: list[SourceOutcome[T]] = []
        for index, batch in enumerate(batched(list(sources), self.max_concurrent), start=1):
            self.logger.info("source_batch_started", batch=index, size=len(batch))
            with ThreadPoolExecutor(
                max_workers=len(batch), thread_name_prefix="lotscout-source"
            ) as executor:
                futures = [executor.submit(self.crawl, source) for source in batch]
                wait(futures)
            for source, future in zip(batch, futures):
                exc = future.exception()
                if exc is not None:
                    self.logger.error(
                        "source_crawl_failed", source=source.source_name, error=str(exc)
                    )
                    outcomes.append(SourceOutcome(source=source, error=exc))
                else:
                    outcomes.append(SourceOutcome(source=source, result=future.result()))
        return outcomes


__all__ = ["SourceOutcome", "SourceScheduler", "batched"]
