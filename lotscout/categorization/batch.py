"""Chunked, rate-limited classification of many lots."""

from __future__ import annotations

import time
from typing import Callable, Iterator, Sequence

import structlog

from ..models import CategorizationResult, Category, StoredLot
from . import prompts
from .aggregator import CategoryAggregator
from .classifier import ClassifierClient

BULK_CHUNK_SIZE = 10
LEGACY_CHUNK_SIZE = 5
CHUNK_DELAY_SECONDS = 0.5


def chunked(lots: Sequence[StoredLot], size: int) -> Iterator[Sequence[StoredLot]]:
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    for start in range(0, len(lots), size):
        yield lots[start : start + size]


class BatchScheduler:
    """Send lots to the classifier in sequential chunks.

    Chunks never overlap in time: each call completes before the next
    starts, and ``delay`` seconds pass between consecutive chunks. A failing
    chunk yields empty probabilities for its lots and does not stop the run.
    Results always come back one per lot, in input order.
    """

    def __init__(
        self,
        classifier: ClassifierClient,
        aggregator: CategoryAggregator | None = None,
        bulk_chunk_size: int = BULK_CHUNK_SIZE,
        legacy_chunk_size: int = LEGACY_CHUNK_SIZE,
        delay: float = CHUNK_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.classifier = classifier
        self.aggregator = aggregator or CategoryAggregator()
        self.bulk_chunk_size = bulk_chunk_size
        self.legacy_chunk_size = legacy_chunk_size
        self.delay = delay
        self._sleep = sleep
        self.logger = logger or structlog.get_logger("lotscout.batch")

    def categorize_lots(
        self, lots: Sequence[StoredLot], categories: Sequence[Category]
    ) -> list[CategorizationResult]:
        """Legacy mode: one classifier call per lot."""

        if not lots or not categories:
            return [CategorizationResult(lot_id=lot.id) for lot in lots]
        system = prompts.system_prompt(categories)
        results: list[CategorizationResult] = []
        for index, chunk in enumerate(chunked(lots, self.legacy_chunk_size)):
            if index:
                self._sleep(self.delay)
            for lot in chunk:
                results.append(self._categorize_one(lot, system, categories))
        return results

    def categorize_lots_bulk(
        self,
        lots: Sequence[StoredLot],
        categories: Sequence[Category],
        chunk_size: int | None = None,
    ) -> list[CategorizationResult]:
        """Bulk mode: one classifier call per chunk of lots."""

        if not lots or not categories:
            return [CategorizationResult(lot_id=lot.id) for lot in lots]
        size = chunk_size or self.bulk_chunk_size
        system = prompts.bulk_system_prompt(categories)
        results: list[CategorizationResult] = []
        for index, chunk in enumerate(chunked(lots, size)):
            if index:
                self._sleep(self.delay)
            results.extend(self._categorize_chunk(chunk, system, categories, index))
        return results

    # ------------------------------------------------------------------
    def _categorize_one(
        self, lot: StoredLot, system: str, categories: Sequence[Category]
    ) -> CategorizationResult:
        try:
            raw = self.classifier.classify(system, prompts.user_prompt(lot))
        except Exception as exc:  # noqa: BLE001
            self.logger.error("classifier_call_failed", lot_id=lot.id, error=str(exc))
            return CategorizationResult(lot_id=lot.id, error=str(exc))
        if not raw:
            self.logger.warning("classifier_empty_result", lot_id=lot.id)
            return CategorizationResult(lot_id=lot.id, error="empty classifier response")
        return CategorizationResult(
            lot_id=lot.id, probabilities=self.aggregator.aggregate(raw, categories)
        )

    def _categorize_chunk(
        self,
        chunk: Sequence[StoredLot],
        system: str,
        categories: Sequence[Category],
        index: int,
    ) -> list[CategorizationResult]:
        lot_ids = [lot.id for lot in chunk]
        try:
            raw = self.classifier.classify_bulk(system, prompts.bulk_user_prompt(chunk))
        except Exception as exc:  # noqa: BLE001
            self.logger.error("classifier_call_failed", chunk=index, lot_ids=lot_ids, error=str(exc))
            return [CategorizationResult(lot_id=lot_id, error=str(exc)) for lot_id in lot_ids]
        if not raw:
            self.logger.warning("classifier_empty_result", chunk=index, lot_ids=lot_ids)
            return [
                CategorizationResult(lot_id=lot_id, error="empty classifier response")
                for lot_id in lot_ids
            ]
        aggregated = self.aggregator.aggregate_bulk(raw, lot_ids, categories)
        self.logger.info("chunk_categorized", chunk=index, size=len(chunk))
        return [
            CategorizationResult(lot_id=lot_id, probabilities=aggregated[lot_id])
            for lot_id in lot_ids
        ]


__all__ = [
    "BULK_CHUNK_SIZE",
    "BatchScheduler",
    "CHUNK_DELAY_SECONDS",
    "LEGACY_CHUNK_SIZE",
    "chunked",
]
