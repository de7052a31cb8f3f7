"""Shared fixtures for the lotscout test-suite."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Iterable

import pytest

from lotscout.config import (
    AntiScrapingStrategies,
    ConfigLocator,
    ConfigRepository,
    GlobalConfig,
    ScheduleConfig,
    SourceConfig,
)
from lotscout.engine.fetcher import FetchRequest, FetchResponse
from lotscout.errors import FetchError
from lotscout.infra import SQLiteLotStore
from lotscout.models import Listing, Lot


@pytest.fixture(autouse=True)
def lotscout_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("LOTSCOUT_HOME", str(tmp_path))
    for key in ("AI_API_KEY", "AI_MODEL", "AI_BASE_URL", "AI_AZURE_ENDPOINT", "AI_AZURE_DEPLOYMENT"):
        monkeypatch.delenv(key, raising=False)
    return tmp_path


@pytest.fixture
def sample_global_config() -> GlobalConfig:
    return GlobalConfig.model_validate(
        {"scraping": {"default_delay_range": [0.0, 0.0], "max_concurrent": 2}}
    )


@pytest.fixture
def sample_source_config() -> Callable[..., SourceConfig]:
    def _builder(**overrides: Any) -> SourceConfig:
        base: dict[str, Any] = {
            "source_name": "Example",
            "target_url": "https://auctions.example.com/",
            "schedule": ScheduleConfig(),
            "anti_scraping_strategies": AntiScrapingStrategies(
                delay_range=(0.0, 0.0),
                retry_on_fail=1,
            ),
        }
        base.update(overrides)
        return SourceConfig(**base)

    return _builder


@pytest.fixture
def temp_config_repository(tmp_path: Path) -> Iterable[ConfigRepository]:
    locator = ConfigLocator.discover(tmp_path)
    yield ConfigRepository(locator)


@pytest.fixture
def store(tmp_path: Path) -> Iterable[SQLiteLotStore]:
    lot_store = SQLiteLotStore(tmp_path / "data" / "test.db")
    yield lot_store
    lot_store.close()


@pytest.fixture
def stored_listing(store: SQLiteLotStore) -> Callable[[int], tuple[int, list[int]]]:
    """Persist a listing with ``count`` lots and return their ids."""

    def _builder(count: int, url: str = "https://auctions.example.com/auction/1/lots") -> tuple[int, list[int]]:
        listing = Listing(url=url, title="Test sale")
        listing_id, _ = store.upsert_listing_by_url(listing, None)
        lot_ids = []
        for index in range(count):
            lot_id, _ = store.upsert_lot_by_url(
                Lot(url=f"{url}/lot/{index}", title=f"Lot {index}", description=f"Item {index}"),
                listing_id,
            )
            lot_ids.append(lot_id)
        return listing_id, lot_ids

    return _builder


class FakeFetcher:
    """Serve canned pages by URL; unknown URLs or configured failures raise ``FetchError``."""

    def __init__(self, pages: dict[str, str], failures: Iterable[str] = ()) -> None:
        self.pages = pages
        self.failures = set(failures)
        self.requested: list[str] = []
        self.closed = False

    def fetch(self, source: SourceConfig, request: FetchRequest) -> FetchResponse:
        self.requested.append(request.url)
        if request.url in self.failures or request.url not in self.pages:
            raise FetchError(request.url, f"Unexpected status 500 for {request.url}", status_code=500)
        return FetchResponse(url=request.url, status_code=200, text=self.pages[request.url], headers={})

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeFetcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


@pytest.fixture
def fake_fetcher() -> Callable[..., FakeFetcher]:
    return FakeFetcher


def bopa_lot(number: int, price: str = "€ 10,00", bids: str = "2 bod", base: str = "https://www.bopa.be") -> str:
    return f"""
    <div class="auction-item data-1-lot">
      <a class="meer-info-link" href="{base}/lot/{number}"><img class="img-lot-listitem" src="/img/{number}.jpg"></a>
      <h5><a class="meer-info-link" href="{base}/lot/{number}">Lot {number} title</a></h5>
      <span class="bid-amount">{price}</span>
      <div class="auction-info">{bids}</div>
    </div>
    """


def bopa_page(lots: Iterable[str], last_page: int | None = None, extra: str = "") -> str:
    pagination = ""
    if last_page is not None:
        links = "".join(
            f'<a href="?page={number}">{number}</a>' for number in range(1, last_page + 1)
        )
        pagination = (
            f'<nav aria-label="Pagination Navigation">{links}'
            f'<a href="?page=2">&rsaquo;</a></nav>'
        )
    return f"<html><body><h1>Sale</h1>{''.join(lots)}{extra}{pagination}</body></html>"


@pytest.fixture
def bopa_html() -> dict[str, Callable[..., str]]:
    return {"lot": bopa_lot, "page": bopa_page}
