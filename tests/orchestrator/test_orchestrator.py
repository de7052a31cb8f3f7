from __future__ import annotations

import re
from datetime import datetime

import pytest
from selectolax.lexbor import LexborHTMLParser

from lotscout import orchestrator
from lotscout.config import BOPA_PROFILE, GlobalConfig
from lotscout.errors import FetchError
from lotscout.orchestrator import (
    CategorizationService,
    CrawlService,
    SourceCrawler,
    discover_listing_urls,
    parse_schedule,
)

ENTRY = "https://www.bopa.be/"
SCHEDULE = (
    '<div class="auction-info-content"><p>Opent op 01-03-2024 om 10:00</p>'
    "<p>Sluit op 10-03-2024 om 20:00</p></div>"
)


def entry_page() -> str:
    return """
    <html><body>
      <a href="/auction/42/lots">Sale 42</a>
      <a href="/auction/43/lots">Sale 43</a>
      <a href="/auction/42/lots#top">Sale 42 again</a>
      <a href="/auction/44/info">Info only</a>
    </body></html>
    """


def bopa_site(bopa_html, fail_listing: bool = False) -> tuple[dict[str, str], list[str]]:
    page, lot = bopa_html["page"], bopa_html["lot"]
    pages = {
        ENTRY: entry_page(),
        "https://www.bopa.be/auction/42/lots": page([lot(1), lot(2)], last_page=2, extra=SCHEDULE),
        "https://www.bopa.be/auction/42/lots?page=2": page([lot(3)], last_page=2),
        "https://www.bopa.be/auction/43/lots": page([lot(2), lot(4)]),
    }
    failures = ["https://www.bopa.be/auction/43/lots"] if fail_listing else []
    return pages, failures


def test_parse_schedule_reads_open_and_close() -> None:
    start, end = parse_schedule("Opent op 01-03-2024 om 10:00 Sluit op 10-03-2024 om 20:00")

    assert start == datetime(2024, 3, 1, 10, 0)
    assert end == datetime(2024, 3, 10, 20, 0)
    assert parse_schedule("Sluit op 31-02-2024 om 10:00") == (None, None)


def test_discover_listing_urls_filters_and_dedups() -> None:
    urls = discover_listing_urls(LexborHTMLParser(entry_page()), ENTRY, BOPA_PROFILE)

    assert urls == ["https://www.bopa.be/auction/42/lots", "https://www.bopa.be/auction/43/lots"]


def test_crawl_source_walks_every_listing(fake_fetcher, sample_source_config, bopa_html) -> None:
    pages, _ = bopa_site(bopa_html)
    source = sample_source_config(source_name="Bopa", target_url=ENTRY)

    result = SourceCrawler(source, fake_fetcher(pages)).crawl_source()

    assert result.partial is False
    assert [listing.url for listing in result.listings] == [
        "https://www.bopa.be/auction/42/lots",
        "https://www.bopa.be/auction/43/lots",
    ]
    first, second = result.listings
    assert first.title == "Sale"
    assert first.start_time == datetime(2024, 3, 1, 10, 0)
    assert first.end_time == datetime(2024, 3, 10, 20, 0)
    assert [lot.url.rsplit("/", 1)[-1] for lot in first.lots] == ["1", "2", "3"]
    assert [lot.url.rsplit("/", 1)[-1] for lot in second.lots] == ["4"]
    assert len({lot.url for lot in result.lots}) == len(result.lots)


def test_failed_listing_marks_result_partial(fake_fetcher, sample_source_config, bopa_html) -> None:
    pages, failures = bopa_site(bopa_html, fail_listing=True)
    source = sample_source_config(source_name="Bopa", target_url=ENTRY)

    result = SourceCrawler(source, fake_fetcher(pages, failures)).crawl_source()

    assert result.partial is True
    assert [listing.url for listing in result.listings] == ["https://www.bopa.be/auction/42/lots"]
    assert "auction/43" in result.errors[0]


def test_entry_page_failure_propagates(fake_fetcher, sample_source_config) -> None:
    source = sample_source_config(source_name="Bopa", target_url=ENTRY)

    with pytest.raises(FetchError):
        SourceCrawler(source, fake_fetcher({})).crawl_source()


def test_entry_page_without_listing_links_is_the_listing(fake_fetcher, sample_source_config, bopa_html) -> None:
    page, lot = bopa_html["page"], bopa_html["lot"]
    listing_url = "https://www.bopa.be/auction/42/lots"
    fetcher = fake_fetcher(
        {
            listing_url: page([lot(1)], last_page=2),
            f"{listing_url}?page=2": page([lot(2)], last_page=2),
        }
    )
    source = sample_source_config(source_name="Bopa", target_url=listing_url)

    result = SourceCrawler(source, fetcher).crawl_source()

    assert len(result.listings) == 1
    assert len(result.lots) == 2
    assert fetcher.requested == [listing_url, f"{listing_url}?page=2"]


def test_module_level_crawl_source(monkeypatch, fake_fetcher, bopa_html) -> None:
    pages, _ = bopa_site(bopa_html)
    monkeypatch.setattr(orchestrator, "Fetcher", lambda config: fake_fetcher(pages))

    result = orchestrator.crawl_source(ENTRY, GlobalConfig())

    assert result.source_url == ENTRY
    assert len(result.lots) == 4


def _crawl_service(repository, store, fake_fetcher, pages, failures=()):
    fetchers = []

    def factory(config, logger):
        fetcher = fake_fetcher(pages, failures)
        fetchers.append(fetcher)
        return fetcher

    return CrawlService(repository, store, fetcher_factory=factory), fetchers


def test_run_source_persists_and_reports(
    temp_config_repository, store, fake_fetcher, sample_source_config, bopa_html
) -> None:
    temp_config_repository.save_source(sample_source_config(source_name="Bopa", target_url=ENTRY))
    pages, _ = bopa_site(bopa_html)
    service, fetchers = _crawl_service(temp_config_repository, store, fake_fetcher, pages)

    first = service.run_source("Bopa")
    second = service.run_source("Bopa")

    assert first["listings_found"] == 2
    assert first["listings_created"] == 2
    assert first["lots_created"] == 4
    assert second["lots_found"] == 4
    assert second["lots_created"] == 0
    assert all(fetcher.closed for fetcher in fetchers)
    listings = store.list_listings()
    assert [listing.source_name for listing in listings] == ["Bopa", "Bopa"]
    assert listings[0].lot_count == 3
    assert len(store.list_lots()) == 4


def test_run_all_continues_past_failed_source(
    temp_config_repository, store, fake_fetcher, sample_source_config, bopa_html
) -> None:
    temp_config_repository.save_source(sample_source_config(source_name="Bopa", target_url=ENTRY))
    temp_config_repository.save_source(
        sample_source_config(source_name="Down", target_url="https://down.example.com/")
    )
    temp_config_repository.save_source(
        sample_source_config(source_name="Paused", target_url="https://paused.example.com/", enabled=False)
    )
    pages, _ = bopa_site(bopa_html)
    service, _ = _crawl_service(temp_config_repository, store, fake_fetcher, pages)

    summaries = {summary["source"]: summary for summary in service.run_all()}

    assert set(summaries) == {"Bopa", "Down"}
    assert summaries["Bopa"]["failed"] is False
    assert summaries["Bopa"]["lots_created"] == 4
    assert summaries["Down"]["failed"] is True
    assert "down.example.com" in summaries["Down"]["error"]


class ScriptedClassifier:
    """Bulk classifier answering the same raw mapping for every lot."""

    def __init__(self, raw: dict) -> None:
        self.raw = raw
        self.calls = 0

    def classify(self, system_prompt: str, user_prompt: str) -> dict:
        self.calls += 1
        return dict(self.raw)

    def classify_bulk(self, system_prompt: str, user_prompt: str) -> dict:
        self.calls += 1
        if not self.raw:
            return {}
        ids = re.findall(r"\(ID: (\d+)\)\nTitle", user_prompt)
        return {lot_id: dict(self.raw) for lot_id in ids}


def test_categorize_listing_persists_probabilities(store, stored_listing) -> None:
    listing_id, lot_ids = stored_listing(3)
    cpus = store.create_category("CPUs")
    other = store.list_categories()[0]
    classifier = ScriptedClassifier({"Other": 0.1, "UnknownX": 0.3, "CPUs": 0.6})
    service = CategorizationService(store, GlobalConfig(), classifier=classifier, sleep=lambda _: None)

    results = service.categorize_listing(listing_id)

    assert [result.lot_id for result in results] == lot_ids
    assert classifier.calls == 1
    for lot_id in lot_ids:
        stored = store.get_lot_probabilities(lot_id)
        assert [entry.category_id for entry in stored] == [cpus.id, other.id]
        assert stored[1].probability == pytest.approx(0.4)
        assert store.get_lot(lot_id).main_category_id == cpus.id


def test_low_confidence_clears_main_category(store, stored_listing) -> None:
    _, lot_ids = stored_listing(1)
    cpus = store.create_category("CPUs")
    store.create_category("GPUs")
    store.set_main_category(lot_ids[0], cpus.id)
    classifier = ScriptedClassifier({"CPUs": 0.49, "GPUs": 0.41})
    service = CategorizationService(store, GlobalConfig(), classifier=classifier, sleep=lambda _: None)

    service.categorize_lot_ids(lot_ids, bulk=False)

    assert classifier.calls == 1
    assert store.get_lot(lot_ids[0]).main_category_id is None
    assert [entry.probability for entry in store.get_lot_probabilities(lot_ids[0])] == [0.49, 0.41]


def test_empty_classifier_answer_clears_previous_results(store, stored_listing) -> None:
    _, lot_ids = stored_listing(1)
    cpus = store.create_category("CPUs")
    service = CategorizationService(store, GlobalConfig(), classifier=ScriptedClassifier({"CPUs": 0.9}), sleep=lambda _: None)
    service.categorize_lot_ids(lot_ids)
    assert store.get_lot(lot_ids[0]).main_category_id == cpus.id

    service.batch.classifier = ScriptedClassifier({})
    results = service.categorize_lot_ids(lot_ids)

    assert results[0].error == "empty classifier response"
    assert store.get_lot_probabilities(lot_ids[0]) == []
    assert store.get_lot(lot_ids[0]).main_category_id is None


def test_dry_run_leaves_store_untouched(store, stored_listing) -> None:
    listing_id, lot_ids = stored_listing(2)
    store.create_category("CPUs")
    service = CategorizationService(store, GlobalConfig(), classifier=ScriptedClassifier({"CPUs": 0.9}), sleep=lambda _: None)

    results = service.categorize_listing(listing_id, save=False)

    assert all(result.probabilities for result in results)
    assert all(store.get_lot_probabilities(lot_id) == [] for lot_id in lot_ids)


def test_manual_main_category_override(store, stored_listing) -> None:
    _, (lot_id,) = stored_listing(1)
    cpus = store.create_category("CPUs")
    service = CategorizationService(store, GlobalConfig(), classifier=ScriptedClassifier({}))

    service.set_main_category(lot_id, cpus.id)

    assert store.get_lot(lot_id).main_category_id == cpus.id
