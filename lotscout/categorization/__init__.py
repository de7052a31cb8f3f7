"""Category probability pipeline: prompts, classifier, aggregation, assignment."""

from .aggregator import CategoryAggregator, fallback_category
from .assigner import MAIN_CATEGORY_THRESHOLD, MainCategoryAssigner
from .batch import BatchScheduler
from .classifier import ClassifierClient, OpenAIClassifier

__all__ = [
    "BatchScheduler",
    "CategoryAggregator",
    "ClassifierClient",
    "MAIN_CATEGORY_THRESHOLD",
    "MainCategoryAssigner",
    "OpenAIClassifier",
    "fallback_category",
]
