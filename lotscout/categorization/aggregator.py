"""Turn name-keyed classifier output into id-keyed category probabilities."""

from __future__ import annotations

import math
from typing import Any, Iterable, Mapping, Sequence

import structlog

from ..models import Category, CategoryProbability

MIN_PROBABILITY = 0.01
FALLBACK_CATEGORY_NAME = "Other"
_EPSILON = 1e-9


def _key(name: str) -> str:
    return name.strip().casefold()


def _clip(value: float) -> float:
    return min(1.0, max(0.0, value))


def _as_probability(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    if not math.isfinite(value):
        return None
    return value


def fallback_category(categories: Iterable[Category]) -> Category | None:
    """The system category absorbing unmatched probability mass."""

    system = [category for category in categories if category.is_system]
    for category in system:
        if _key(category.name) == _key(FALLBACK_CATEGORY_NAME):
            return category
    return system[0] if system else None


class CategoryAggregator:
    """Normalize raw ``{name: probability}`` maps against the canonical categories.

    Every returned id refers to a real category, probabilities lie in
    ``[0, 1]`` and their sum never exceeds 1. Names the classifier invented
    are folded into the system fallback category when one exists.
    """

    def __init__(
        self,
        min_probability: float = MIN_PROBABILITY,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.min_probability = min_probability
        self.logger = logger or structlog.get_logger("lotscout.aggregator")

    def aggregate(
        self, raw: Mapping[str, Any] | None, categories: Sequence[Category]
    ) -> list[CategoryProbability]:
        if not raw or not isinstance(raw, Mapping):
            return []
        by_name = {}
        for category in categories:
            by_name.setdefault(_key(category.name), category)

        totals: dict[int, float] = {}
        overflow_mass = 0.0
        unmatched: list[str] = []
        for name, value in raw.items():
            probability = _as_probability(value)
            if probability is None:
                self.logger.warning("invalid_probability_ignored", category=name, value=repr(value))
                continue
            category = by_name.get(_key(str(name)))
            if category is None:
                unmatched.append(str(name))
                overflow_mass += _clip(probability)
                continue
            totals[category.id] = min(1.0, totals.get(category.id, 0.0) + _clip(probability))

        if unmatched:
            self.logger.info(
                "unmatched_categories", names=unmatched, overflow_mass=round(overflow_mass, 4)
            )
        fallback = fallback_category(categories)
        if fallback is not None and overflow_mass > 0:
            totals[fallback.id] = min(1.0, totals.get(fallback.id, 0.0) + overflow_mass)

        total = sum(totals.values())
        if total > 1.0 + _EPSILON:
            totals = {category_id: value / total for category_id, value in totals.items()}

        results = [
            CategoryProbability(category_id=category_id, probability=value)
            for category_id, value in totals.items()
            if value > self.min_probability
        ]
        results.sort(key=lambda entry: entry.probability, reverse=True)
        return results

    def aggregate_bulk(
        self,
        raw_by_lot: Mapping[str, Any] | None,
        lot_ids: Sequence[int],
        categories: Sequence[Category],
    ) -> dict[int, list[CategoryProbability]]:
        raw_by_lot = raw_by_lot if isinstance(raw_by_lot, Mapping) else {}
        results: dict[int, list[CategoryProbability]] = {}
        for lot_id in lot_ids:
            raw = raw_by_lot.get(str(lot_id), raw_by_lot.get(lot_id))  # type: ignore[call-overload]
            if not isinstance(raw, Mapping):
                if raw is not None:
                    self.logger.warning("malformed_lot_entry", lot_id=lot_id)
                results[lot_id] = []
                continue
            results[lot_id] = self.aggregate(raw, categories)
        return results


__all__ = [
    "CategoryAggregator",
    "FALLBACK_CATEGORY_NAME",
    "MIN_PROBABILITY",
    "fallback_category",
]
