"""Services wiring the crawl and categorization pipelines to config and storage."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Callable, Sequence
from urllib.parse import urljoin, urlsplit

import structlog
from selectolax.lexbor import LexborHTMLParser

from .categorization import BatchScheduler, CategoryAggregator, MainCategoryAssigner, OpenAIClassifier
from .categorization.classifier import ClassifierClient
from .config import ConfigRepository, GlobalConfig, SiteProfile, SourceConfig
from .engine import CrawlAccumulator, FetchRequest, Fetcher, PageExtractor, PaginationWalker
from .engine.dedup import normalize_url
from .engine.extractor import clean_text, node_text
from .engine.source_scheduler import SourceScheduler
from .errors import FetchError
from .infra import LotStore
from .logging_conf import configure_logging, source_logger
from .models import CategorizationResult, CrawlResult, Listing, StoredLot

_DATE = r"(\d{1,2})-(\d{1,2})-(\d{4}).*?(\d{1,2}):(\d{2})"
_OPENS_RE = re.compile(r"(?:Opent|Opens|Ouvre)\b.*?" + _DATE, re.IGNORECASE | re.DOTALL)
_CLOSES_RE = re.compile(r"(?:Sluit|Closes|Ferme)\b.*?" + _DATE, re.IGNORECASE | re.DOTALL)


def _match_datetime(pattern: re.Pattern[str], text: str) -> datetime | None:
    match = pattern.search(text)
    if not match:
        return None
    day, month, year, hour, minute = (int(part) for part in match.groups())
    try:
        return datetime(year, month, day, hour, minute)
    except ValueError:
        return None


def parse_schedule(text: str) -> tuple[datetime | None, datetime | None]:
    """Read "Opent ... dd-mm-yyyy ... HH:MM" / "Sluit ..." phrases."""

    return _match_datetime(_OPENS_RE, text), _match_datetime(_CLOSES_RE, text)


def discover_listing_urls(document: LexborHTMLParser, base_url: str, profile: SiteProfile) -> list[str]:
    urls: list[str] = []
    seen: set[str] = set()
    for node in document.css(profile.listing_link_selector):
        href = (node.attributes.get("href") or "").strip()
        if not href or href.startswith(("javascript:", "#")):
            continue
        url = urljoin(base_url, href)
        if profile.listing_url_marker and profile.listing_url_marker not in url:
            continue
        key = normalize_url(url)
        if key not in seen:
            seen.add(key)
            urls.append(url)
    return urls


def listing_from_page(document: LexborHTMLParser, url: str, profile: SiteProfile) -> Listing:
    title = node_text(document.css_first(profile.listing_title_selector))
    if not title:
        title = node_text(document.css_first("title")) or url
    description = None
    if profile.listing_description_selector:
        description = node_text(document.css_first(profile.listing_description_selector)) or None
    start_time = end_time = None
    if profile.listing_schedule_selector:
        text = " ".join(
            clean_text(node.text(separator=" "))
            for node in document.css(profile.listing_schedule_selector)
        )
        start_time, end_time = parse_schedule(text)
    return Listing(
        url=url,
        title=title,
        description=description,
        start_time=start_time,
        end_time=end_time,
    )


class SourceCrawler:
    """Crawl one source: discover its listings and walk each of them."""

    def __init__(
        self,
        source: SourceConfig,
        fetcher: Fetcher,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.source = source
        self.fetcher = fetcher
        self.profile = source.site_profile()
        self.logger = logger or structlog.get_logger("lotscout.crawl").bind(
            source=source.source_name
        )

    def crawl_source(self, source_url: str | None = None) -> CrawlResult:
        """Return every listing reachable from ``source_url``.

        The entry page must be fetched successfully, otherwise ``FetchError``
        propagates. Failures further down (a listing or one of its pages)
        only mark the result partial.
        """

        source_url = source_url or self.source.target_url
        entry = self.fetcher.fetch(self.source, FetchRequest(url=source_url))
        entry_document = LexborHTMLParser(entry.text)
        accumulator = CrawlAccumulator(source_url)
        extractor = PageExtractor(self.profile, logger=self.logger)
        walker = PaginationWalker(
            self.fetcher, self.source, extractor, accumulator, logger=self.logger
        )

        listing_urls = discover_listing_urls(entry_document, entry.url, self.profile)
        if not listing_urls:
            self.logger.info("no_listing_links", url=source_url)
            listing_urls = [entry.url]
        self.logger.info("listings_discovered", url=source_url, count=len(listing_urls))

        entry_key = normalize_url(entry.url)
        for listing_url in listing_urls:
            if normalize_url(listing_url) == entry_key:
                document = entry_document
            else:
                try:
                    response = self.fetcher.fetch(self.source, FetchRequest(url=listing_url))
                except FetchError as exc:
                    self.logger.warning("listing_fetch_failed", url=listing_url, error=str(exc))
                    accumulator.mark_partial(f"listing {listing_url}: {exc}")
                    continue
                document = LexborHTMLParser(response.text)

            listing = listing_from_page(document, listing_url, self.profile)
            walk = walker.walk(document, listing_url)
            listing.lots = walk.lots
            if walk.partial:
                accumulator.mark_partial(walk.error or f"listing {listing_url} incomplete")
            accumulator.add_listing(listing)

        result = accumulator.result
        self.logger.info(
            "source_crawled",
            url=source_url,
            listings=len(result.listings),
            lots=len(result.lots),
            partial=result.partial,
        )
        return result


def crawl_source(
    source_url: str,
    global_config: GlobalConfig | None = None,
    source: SourceConfig | None = None,
) -> CrawlResult:
    """Crawl ``source_url`` with a throwaway fetcher."""

    global_config = global_config or GlobalConfig()
    if source is None:
        host = urlsplit(source_url).hostname or "adhoc"
        source = SourceConfig(source_name=host, target_url=source_url)
    with Fetcher(global_config) as fetcher:
        return SourceCrawler(source, fetcher).crawl_source(source_url)


class CrawlService:
    """Run configured sources and persist what they yield."""

    def __init__(
        self,
        config_repository: ConfigRepository,
        store: LotStore,
        fetcher_factory: Callable[[GlobalConfig, structlog.BoundLogger], Fetcher] | None = None,
    ) -> None:
        self.config_repository = config_repository
        self.global_config: GlobalConfig = config_repository.load_global_config()
        self.store = store
        self.fetcher_factory = fetcher_factory or (
            lambda config, logger: Fetcher(config, logger=logger)
        )
        self.logger = configure_logging().bind(component="crawl")

    def run_source(self, source_name: str) -> dict:
        source = self.config_repository.load_source(source_name)
        return self._run(source)

    def run_all(self) -> list[dict]:
        sources = self.config_repository.list_sources(enabled_only=True)
        if not sources:
            self.logger.info("no_enabled_sources")
            return []
        scheduler = SourceScheduler(
            self._run, max_concurrent=self.global_config.scraping.max_concurrent, logger=self.logger
        )
        summaries: list[dict] = []
        for outcome in scheduler.run(sources):
            if outcome.ok:
                summaries.append(outcome.result)
            else:
                summaries.append(
                    {
                        "source": outcome.source.source_name,
                        "failed": True,
                        "error": str(outcome.error),
                        "listings_found": 0,
                        "listings_created": 0,
                        "lots_found": 0,
                        "lots_created": 0,
                        "partial": False,
                    }
                )
        return summaries

    def _run(self, source: SourceConfig) -> dict:
        log = source_logger(source.source_name)
        fetcher = self.fetcher_factory(self.global_config, log)
        try:
            result = SourceCrawler(source, fetcher, logger=log).crawl_source()
        except FetchError as exc:
            log.error("entry_fetch_failed", url=source.target_url, error=str(exc))
            raise
        finally:
            fetcher.close()
        summary = self._persist(source, result)
        log.info("source_run_completed", **summary)
        return summary

    def _persist(self, source: SourceConfig, result: CrawlResult) -> dict:
        source_id = self.store.ensure_source(source.source_name, source.target_url)
        summary = {
            "source": source.source_name,
            "failed": False,
            "listings_found": len(result.listings),
            "listings_created": 0,
            "lots_found": len(result.lots),
            "lots_created": 0,
            "partial": result.partial,
            "errors": list(result.errors),
        }
        for listing in result.listings:
            listing_id, created = self.store.upsert_listing_by_url(listing, source_id)
            summary["listings_created"] += int(created)
            for lot in listing.lots:
                _, lot_created = self.store.upsert_lot_by_url(lot, listing_id)
                summary["lots_created"] += int(lot_created)
        return summary


class CategorizationService:
    """Classify stored lots and persist probabilities and main categories."""

    def __init__(
        self,
        store: LotStore,
        global_config: GlobalConfig,
        classifier: ClassifierClient | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.store = store
        self.global_config = global_config
        self.logger = configure_logging().bind(component="categorization")
        settings = global_config.categorization
        batch_kwargs = {"sleep": sleep} if sleep is not None else {}
        self.batch = BatchScheduler(
            classifier or OpenAIClassifier(global_config.ai, logger=self.logger),
            CategoryAggregator(logger=self.logger),
            bulk_chunk_size=settings.bulk_chunk_size,
            legacy_chunk_size=settings.legacy_chunk_size,
            delay=settings.chunk_delay_seconds,
            logger=self.logger,
            **batch_kwargs,
        )
        self.assigner = MainCategoryAssigner(settings.main_category_threshold)

    def categorize_listing(
        self, listing_id: int, bulk: bool | None = None, save: bool = True
    ) -> list[CategorizationResult]:
        listing = self.store.get_listing(listing_id)
        lots = self.store.list_lots(listing.id)
        self.logger.info("categorize_listing", listing_id=listing.id, lots=len(lots))
        return self.categorize(lots, bulk=bulk, save=save)

    def categorize_lot_ids(
        self, lot_ids: Sequence[int], bulk: bool | None = None, save: bool = True
    ) -> list[CategorizationResult]:
        lots = [self.store.get_lot(lot_id) for lot_id in lot_ids]
        return self.categorize(lots, bulk=bulk, save=save)

    def categorize(
        self, lots: Sequence[StoredLot], bulk: bool | None = None, save: bool = True
    ) -> list[CategorizationResult]:
        if bulk is None:
            bulk = self.global_config.categorization.use_bulk
        categories = self.store.list_categories()
        if bulk:
            results = self.batch.categorize_lots_bulk(lots, categories)
        else:
            results = self.batch.categorize_lots(lots, categories)
        if save:
            for result in results:
                self.store.replace_lot_probabilities(result.lot_id, result.probabilities)
                self.store.set_main_category(result.lot_id, self.assigner.assign(result.probabilities))
        self.logger.info(
            "categorization_completed",
            lots=len(results),
            categorized=sum(1 for result in results if result.probabilities),
            saved=save,
        )
        return results

    def set_main_category(self, lot_id: int, category_id: int | None) -> None:
        self.store.set_main_category(lot_id, category_id)
        self.logger.info("main_category_overridden", lot_id=lot_id, category_id=category_id)


__all__ = [
    "CategorizationService",
    "CrawlService",
    "SourceCrawler",
    "crawl_source",
    "discover_listing_urls",
    "listing_from_page",
    "parse_schedule",
]
