"""Pydantic models used across the lotscout configuration flow."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; AuctionScraper/1.0)"


class ScheduleType(str, Enum):
    """Scheduler modes available for periodic crawling."""

    CRON = "cron"
    INTERVAL = "interval"
    ONCE = "once"


class ScheduleConfig(BaseModel):
    """Configuration describing when a source should be crawled."""

    type: ScheduleType = Field(default=ScheduleType.INTERVAL)
    value: Any = Field(
        default=None,
        description=(
            "Cron expression, interval minutes/kwargs or ISO datetime, depending on type. "
            "An interval without value falls back to scraping.interval_minutes."
        ),
    )

    @model_validator(mode="after")
    def _validate_value(self) -> "ScheduleConfig":
        if self.type is ScheduleType.CRON and not isinstance(self.value, str):
            raise ValueError("Cron schedule requires string expression")
        if self.type is ScheduleType.INTERVAL and not isinstance(
            self.value, (int, float, dict, type(None))
        ):
            raise ValueError("Interval schedule requires minutes (int/float) or kwargs dict")
        if (
            self.type is ScheduleType.ONCE
            and self.value is not None
            and not isinstance(self.value, str)
        ):
            raise ValueError("Once schedule expects ISO datetime string or null")
        return self


class AntiScrapingStrategies(BaseModel):
    """Feature flags and parameters governing the request strategy chain."""

    user_agent_rotation: bool = False
    delay_range: tuple[float, float] = (0.0, 0.0)
    retry_on_fail: int = 0
    extra_headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("delay_range", mode="before")
    @classmethod
    def _coerce_delay(cls, value: Any) -> tuple[float, float]:
        if value in (None, ""):
            return (0.0, 0.0)
        if isinstance(value, (list, tuple)) and len(value) == 2:
            low, high = float(value[0]), float(value[1])
            if low < 0 or high < 0:
                raise ValueError("Delay range values must be non-negative")
            if high < low:
                raise ValueError("Delay range upper bound must be >= lower bound")
            return (low, high)
        raise ValueError("Delay range expects a two-item list or tuple")

    @field_validator("retry_on_fail")
    @classmethod
    def _non_negative_retries(cls, value: int) -> int:
        if value < 0:
            raise ValueError("retry_on_fail must be >= 0")
        return value


class SiteProfile(BaseModel):
    """Selectors describing how one family of auction sites lays out its pages.

    ``container_selector`` drives the structural extraction strategy and
    ``lot_link_selector`` the link heuristic used when no container matches.
    When ``pagination_selector`` is empty the walker falls back to the
    next-link heuristic built from ``next_link_selectors`` and
    ``next_link_texts``.
    """

    name: str
    host_markers: list[str] = Field(default_factory=list)

    listing_link_selector: str = "a[href*='/auction/']"
    listing_url_marker: str | None = None
    listing_title_selector: str = "h1"
    listing_description_selector: str | None = None
    listing_schedule_selector: str | None = None

    container_selector: str | None = None
    container_link_selector: str = "a[href]"
    heading_link_selector: str | None = None
    image_selector: str = "img[src]"
    price_selector: str | None = None
    bid_selector: str | None = None

    lot_link_selector: str = "a[href*='/lot/']"
    link_context_selector: str = "figure, div, li"
    link_caption_selector: str = "figcaption, .title, h3, h4"
    link_image_selector: str = "img[src]"

    exclusion_selector: str | None = None

    pagination_selector: str | None = None
    page_param: str = "page"
    next_link_selectors: list[str] = Field(
        default_factory=lambda: ["a[rel='next']", ".pagination .next a", "a.next", "li.next a"]
    )
    next_link_texts: list[str] = Field(
        default_factory=lambda: ["next", "volgende", "suivant", "weiter", "›", "»"]
    )
    max_pages: int = 100

    @field_validator("max_pages")
    @classmethod
    def _positive_cap(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_pages must be >= 1")
        return value

    def handles(self, url: str) -> bool:
        hostname = (urlparse(url).hostname or "").lower()
        return any(marker.lower() in hostname for marker in self.host_markers)


BOPA_PROFILE = SiteProfile(
    name="bopa",
    host_markers=["bopa.be"],
    listing_link_selector="a[href*='/auction/']",
    listing_url_marker="lots",
    listing_description_selector="#auction-info-container > div > p",
    listing_schedule_selector=".auction-info-content > p",
    container_selector=".auction-item.data-1-lot",
    container_link_selector="a.meer-info-link[href*='/lot/']",
    heading_link_selector="h5 a.meer-info-link, h4 a.meer-info-link",
    image_selector="img.auction-image, img.img-lot-listitem",
    price_selector=".bid-amount, [class*='bid-amount']",
    bid_selector=".auction-info",
    lot_link_selector="a[href*='/lot/']",
    exclusion_selector=(
        ".aanbevolen, [class*='aanbevolen'], section[class*='advised'], "
        "figure.data-1-advised-lot"
    ),
    pagination_selector="[aria-label*='Pagination Navigation'] a",
)

GENERIC_PROFILE = SiteProfile(
    name="generic",
    listing_link_selector="a[href*='/auction/'], a[href*='/sale/']",
    container_selector=".lot-card, .auction-item, .lot-item",
    heading_link_selector="h2 a, h3 a, h4 a, h5 a",
    price_selector=".price, .current-bid, [class*='bid-amount']",
    bid_selector=".bids, .bid-count, [class*='bid-count']",
    exclusion_selector=".recommended, [class*='recommended'], .related, [class*='advised']",
)

BUILTIN_PROFILES: dict[str, SiteProfile] = {
    BOPA_PROFILE.name: BOPA_PROFILE,
    GENERIC_PROFILE.name: GENERIC_PROFILE,
}


def resolve_profile(url: str, name: str | None = None) -> SiteProfile:
    """Pick a profile by explicit name or by host match, generic otherwise."""

    if name and name != "auto":
        try:
            return BUILTIN_PROFILES[name]
        except KeyError as exc:
            raise ValueError(f"Unknown site profile: {name}") from exc
    for profile in BUILTIN_PROFILES.values():
        if profile.handles(url):
            return profile
    return GENERIC_PROFILE


class SourceConfig(BaseModel):
    """Definition of one monitored auction source."""

    source_name: str
    target_url: str
    image_url: str | None = None
    enabled: bool = True
    profile: str = "auto"
    profile_overrides: dict[str, Any] = Field(default_factory=dict)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    anti_scraping_strategies: AntiScrapingStrategies = Field(
        default_factory=AntiScrapingStrategies
    )

    @field_validator("target_url")
    @classmethod
    def _require_http_url(cls, value: str) -> str:
        value = value.strip()
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError("target_url must be an http(s) URL")
        return value

    @model_validator(mode="after")
    def _validate_profile(self) -> "SourceConfig":
        if not self.source_name.strip():
            raise ValueError("source_name cannot be empty")
        if self.profile != "auto" and self.profile not in BUILTIN_PROFILES:
            raise ValueError(
                f"Unknown profile {self.profile!r}, expected one of "
                f"{['auto', *BUILTIN_PROFILES]}"
            )
        return self

    def site_profile(self) -> SiteProfile:
        """Return the effective profile with per-source overrides applied."""

        base = resolve_profile(self.target_url, self.profile)
        if not self.profile_overrides:
            return base
        return base.model_validate({**base.model_dump(), **self.profile_overrides})


class ClassifierConfig(BaseModel):
    """Connection settings for the LLM classification service."""

    model: str = "gpt-4o"
    api_key: str = ""
    base_url: str = ""
    azure_endpoint: str = ""
    azure_api_version: str = "2025-01-01-preview"
    azure_deployment: str = ""
    temperature: float = 0.3
    timeout_seconds: float = 60.0

    @property
    def uses_azure(self) -> bool:
        return bool(self.azure_endpoint and self.azure_deployment)

    @property
    def configured(self) -> bool:
        return self.uses_azure or bool(self.api_key)


class ScrapingConfig(BaseModel):
    """Crawl cadence and concurrency limits."""

    interval_minutes: int = 60
    timeout_seconds: float = 30.0
    max_concurrent: int = 5
    user_agent: str = DEFAULT_USER_AGENT
    user_agent_list: list[str] = Field(default_factory=list)
    default_delay_range: tuple[float, float] = (0.0, 0.0)

    @field_validator("default_delay_range", mode="before")
    @classmethod
    def _coerce_default_delay(cls, value: Any) -> tuple[float, float]:
        if isinstance(value, (list, tuple)) and len(value) == 2:
            low, high = float(value[0]), float(value[1])
            if high < low:
                raise ValueError("default_delay_range upper bound must be >= lower bound")
            return (low, high)
        raise ValueError("default_delay_range expects two items [low, high]")

    @field_validator("max_concurrent", "interval_minutes")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("value must be >= 1")
        return value


class CategorizationConfig(BaseModel):
    """Chunking and pacing of classifier calls."""

    bulk_chunk_size: int = 10
    legacy_chunk_size: int = 5
    chunk_delay_seconds: float = 0.5
    main_category_threshold: float = 0.5
    use_bulk: bool = True

    @field_validator("bulk_chunk_size", "legacy_chunk_size")
    @classmethod
    def _positive_chunk(cls, value: int) -> int:
        if value < 1:
            raise ValueError("chunk size must be >= 1")
        return value


class StorageConfig(BaseModel):
    """Location of the SQLite database."""

    path: Path = Field(default=Path("data/lotscout.db"))

    @field_validator("path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    def resolved_path(self, base_dir: Path) -> Path:
        if not self.path.is_absolute():
            return (base_dir / self.path).resolve()
        return self.path


class GlobalConfig(BaseModel):
    """Global controls shared across sources."""

    ai: ClassifierConfig = Field(default_factory=ClassifierConfig)
    scraping: ScrapingConfig = Field(default_factory=ScrapingConfig)
    categorization: CategorizationConfig = Field(default_factory=CategorizationConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


__all__ = [
    "AntiScrapingStrategies",
    "BOPA_PROFILE",
    "BUILTIN_PROFILES",
    "CategorizationConfig",
    "ClassifierConfig",
    "DEFAULT_USER_AGENT",
    "GENERIC_PROFILE",
    "GlobalConfig",
    "ScheduleConfig",
    "ScheduleType",
    "ScrapingConfig",
    "SiteProfile",
    "SourceConfig",
    "StorageConfig",
    "resolve_profile",
]
