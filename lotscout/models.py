"""Domain records flowing through the crawl and categorization pipelines."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Lot:
    """One item within an auction listing, identified by its URL."""

    url: str
    title: str
    description: str | None = None
    image_url: str | None = None
    current_price: float | None = None
    # None means unknown; 0 only when the page confirms no bids
    bid_count: int | None = None


@dataclass
class Listing:
    """One auction/sale event and the lots crawled from it."""

    url: str
    title: str
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    lots: list[Lot] = field(default_factory=list)


@dataclass(frozen=True)
class Category:
    id: int
    name: str
    description: str | None = None
    is_system: bool = False


@dataclass(frozen=True)
class CategoryProbability:
    category_id: int
    probability: float


@dataclass
class StoredLot:
    """Persisted lot as returned by the store."""

    id: int
    listing_id: int
    url: str
    title: str
    description: str | None = None
    image_url: str | None = None
    current_price: float | None = None
    bid_count: int | None = None
    main_category_id: int | None = None


@dataclass
class StoredListing:
    id: int
    url: str
    title: str
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    lot_count: int = 0
    source_name: str | None = None


@dataclass
class CrawlResult:
    """Outcome of crawling one source URL.

    ``partial`` is set whenever a page or listing fetch failed after the
    entry page succeeded; the listings gathered up to that point are kept.
    """

    source_url: str
    listings: list[Listing] = field(default_factory=list)
    partial: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def lots(self) -> list[Lot]:
        return [lot for listing in self.listings for lot in listing.lots]


@dataclass
class CategorizationResult:
    lot_id: int
    probabilities: list[CategoryProbability] = field(default_factory=list)
    error: str | None = None


__all__ = [
    "CategorizationResult",
    "Category",
    "CategoryProbability",
    "CrawlResult",
    "Listing",
    "Lot",
    "StoredListing",
    "StoredLot",
]
