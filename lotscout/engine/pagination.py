"""Walk the pages of one auction listing."""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import parse_qs, urlencode, urljoin, urlsplit, urlunsplit

import structlog
from selectolax.lexbor import LexborHTMLParser

from ..config import SiteProfile, SourceConfig
from ..errors import FetchError
from ..models import CrawlResult, Listing, Lot
from .dedup import DedupIndex, normalize_url
from .extractor import PageExtractor, node_text
from .fetcher import FetchRequest, Fetcher


def with_query_param(url: str, name: str, value: object) -> str:
    """Return ``url`` with query parameter ``name`` set to ``value``."""

    parts = urlsplit(url)
    query = parse_qs(parts.query, keep_blank_values=True)
    query[name] = [str(value)]
    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, urlencode(query, doseq=True), parts.fragment)
    )


def page_count(document: LexborHTMLParser, profile: SiteProfile) -> int:
    """Read the last page number from the pagination control.

    The second-to-last link of the control points at the last page (the last
    one is the "next" arrow). Defaults to 1 when the control is missing or
    the link carries no usable page number.
    """

    if not profile.pagination_selector:
        return 1
    links = document.css(profile.pagination_selector)
    if len(links) < 2:
        return 1
    href = links[-2].attributes.get("href") or ""
    values = parse_qs(urlsplit(href).query).get(profile.page_param)
    if not values:
        return 1
    try:
        count = int(values[0])
    except ValueError:
        return 1
    return max(count, 1)


def find_next_link(document: LexborHTMLParser, base_url: str, profile: SiteProfile) -> str | None:
    for selector in profile.next_link_selectors:
        node = document.css_first(selector)
        href = node.attributes.get("href") if node is not None else None
        if href and href.strip() and not href.strip().startswith("#"):
            return urljoin(base_url, href.strip())
    labels = {label.lower() for label in profile.next_link_texts}
    for node in document.css("a[href]"):
        text = node_text(node).lower()
        href = (node.attributes.get("href") or "").strip()
        if text in labels and href and not href.startswith("#"):
            return urljoin(base_url, href)
    return None


class CrawlAccumulator:
    """Collect listings for one crawl while filtering duplicate lot URLs."""

    def __init__(self, source_url: str) -> None:
        self.dedup = DedupIndex()
        self.result = CrawlResult(source_url=source_url)

    def accept(self, lots: list[Lot]) -> list[Lot]:
        return [lot for lot in lots if self.dedup.add(lot.url)]

    def add_listing(self, listing: Listing) -> None:
        self.result.listings.append(listing)

    def mark_partial(self, error: str) -> None:
        self.result.partial = True
        self.result.errors.append(error)


@dataclass
class WalkResult:
    lots: list[Lot] = field(default_factory=list)
    pages: int = 0
    partial: bool = False
    error: str | None = None


class PaginationWalker:
    """Drive the extractor over every page of a listing, strictly in order."""

    def __init__(
        self,
        fetcher: Fetcher,
        source: SourceConfig,
        extractor: PageExtractor,
        accumulator: CrawlAccumulator,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.source = source
        self.extractor = extractor
        self.profile = extractor.profile
        self.accumulator = accumulator
        self.logger = logger or structlog.get_logger("lotscout.pagination")

    def walk(self, first_page: LexborHTMLParser, listing_url: str) -> WalkResult:
        """Extract page 1 from ``first_page`` and fetch the remaining pages.

        A failed page fetch stops the walk; lots gathered so far are kept and
        the result is flagged partial.
        """

        result = WalkResult()
        self._collect(result, first_page, listing_url)
        if self.profile.pagination_selector:
            self._walk_numbered(result, first_page, listing_url)
        else:
            self._walk_next_links(result, first_page, listing_url)
        self.logger.info(
            "listing_walked",
            url=listing_url,
            pages=result.pages,
            lots=len(result.lots),
            partial=result.partial,
        )
        return result

    def _walk_numbered(self, result: WalkResult, first_page: LexborHTMLParser, listing_url: str) -> None:
        last_page = min(page_count(first_page, self.profile), self.profile.max_pages)
        for number in range(2, last_page + 1):
            page_url = with_query_param(listing_url, self.profile.page_param, number)
            document = self._fetch(result, page_url, number)
            if document is None:
                return
            self._collect(result, document, page_url)

    def _walk_next_links(self, result: WalkResult, first_page: LexborHTMLParser, listing_url: str) -> None:
        visited = {normalize_url(listing_url)}
        document, current_url = first_page, listing_url
        while True:
            next_url = find_next_link(document, current_url, self.profile)
            if next_url is None or normalize_url(next_url) in visited:
                return
            if result.pages >= self.profile.max_pages:
                self.logger.warning(
                    "next_link_cap_reached", url=listing_url, max_pages=self.profile.max_pages
                )
                return
            visited.add(normalize_url(next_url))
            fetched = self._fetch(result, next_url, result.pages + 1)
            if fetched is None:
                return
            document, current_url = fetched, next_url
            self._collect(result, document, current_url)

    def _fetch(self, result: WalkResult, page_url: str, number: int) -> LexborHTMLParser | None:
        try:
            response = self.fetcher.fetch(self.source, FetchRequest(url=page_url))
        except FetchError as exc:
            self.logger.warning("page_fetch_failed", url=page_url, page=number, error=str(exc))
            result.partial = True
            result.error = f"page {number} of {page_url}: {exc}"
            return None
        return LexborHTMLParser(response.text)

    def _collect(self, result: WalkResult, document: LexborHTMLParser, page_url: str) -> None:
        lots = self.extractor.extract(document, page_url)
        fresh = self.accumulator.accept(lots)
        result.pages += 1
        result.lots.extend(fresh)
        if len(fresh) != len(lots):
            self.logger.debug("duplicate_lots_skipped", url=page_url, count=len(lots) - len(fresh))


__all__ = [
    "CrawlAccumulator",
    "PaginationWalker",
    "WalkResult",
    "find_next_link",
    "page_count",
    "with_query_param",
]
