"""Main category decision for a lot."""

from __future__ import annotations

from typing import Sequence

from ..models import CategoryProbability

MAIN_CATEGORY_THRESHOLD = 0.5


class MainCategoryAssigner:
    """Pick the top category when it is confident enough, otherwise clear it."""

    def __init__(self, threshold: float = MAIN_CATEGORY_THRESHOLD) -> None:
        self.threshold = threshold

    def assign(self, probabilities: Sequence[CategoryProbability]) -> int | None:
        if not probabilities:
            return None
        top = probabilities[0]
        for entry in probabilities[1:]:
            if entry.probability > top.probability:
                top = entry
        return top.category_id if top.probability >= self.threshold else None


__all__ = ["MAIN_CATEGORY_THRESHOLD", "MainCategoryAssigner"]
