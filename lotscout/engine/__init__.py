"""Crawl engine: fetching, extraction, pagination and source batching."""

from .dedup import DedupIndex, normalize_url
from .extractor import ContainerStrategy, LotLinkStrategy, PageExtractor, parse_bid_count, parse_price
from .fetcher import FetchRequest, FetchResponse, Fetcher
from .pagination import CrawlAccumulator, PaginationWalker, WalkResult
from .source_scheduler import SourceOutcome, SourceScheduler

__all__ = [
    "ContainerStrategy",
    "CrawlAccumulator",
    "DedupIndex",
    "FetchRequest",
    "FetchResponse",
    "Fetcher",
    "LotLinkStrategy",
    "PageExtractor",
    "PaginationWalker",
    "SourceOutcome",
    "SourceScheduler",
    "WalkResult",
    "normalize_url",
    "parse_bid_count",
    "parse_price",
]
