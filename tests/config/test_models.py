from __future__ import annotations

from pathlib import Path

import pytest

from lotscout.config import (
    BOPA_PROFILE,
    GENERIC_PROFILE,
    AntiScrapingStrategies,
    ScheduleConfig,
    ScheduleType,
    SourceConfig,
    StorageConfig,
    resolve_profile,
)


def test_schedule_config_interval_accepts_default() -> None:
    assert ScheduleConfig(type=ScheduleType.INTERVAL).value is None
    with pytest.raises(ValueError):
        ScheduleConfig(type=ScheduleType.INTERVAL, value="every minute")
    cfg = ScheduleConfig(type=ScheduleType.INTERVAL, value={"minutes": 2})
    assert cfg.value == {"minutes": 2}


def test_schedule_config_cron_requires_string() -> None:
    with pytest.raises(ValueError):
        ScheduleConfig(type=ScheduleType.CRON, value=5)


def test_anti_scraping_delay_validation() -> None:
    strategies = AntiScrapingStrategies(delay_range=(1, 3))
    assert strategies.delay_range == (1.0, 3.0)
    with pytest.raises(ValueError):
        AntiScrapingStrategies(delay_range=(-1, 2))
    with pytest.raises(ValueError):
        AntiScrapingStrategies(delay_range=(3, 1))
    with pytest.raises(ValueError):
        AntiScrapingStrategies(retry_on_fail=-1)


def test_profile_resolution_by_host_and_name() -> None:
    assert resolve_profile("https://www.bopa.be/veilingen") is BOPA_PROFILE
    assert resolve_profile("https://auctions.example.com/") is GENERIC_PROFILE
    assert resolve_profile("https://www.bopa.be/", "generic") is GENERIC_PROFILE
    with pytest.raises(ValueError):
        resolve_profile("https://www.bopa.be/", "unknown")


def test_source_config_validation() -> None:
    with pytest.raises(ValueError):
        SourceConfig(source_name="Bad", target_url="www.bopa.be")
    with pytest.raises(ValueError):
        SourceConfig(source_name="  ", target_url="https://www.bopa.be/")
    with pytest.raises(ValueError):
        SourceConfig(source_name="Bad", target_url="https://www.bopa.be/", profile="missing")


def test_profile_overrides_are_applied() -> None:
    source = SourceConfig(
        source_name="Bopa",
        target_url="https://www.bopa.be/",
        profile_overrides={"max_pages": 3, "bid_selector": ".bids"},
    )

    profile = source.site_profile()

    assert profile.max_pages == 3
    assert profile.bid_selector == ".bids"
    assert profile.container_selector == BOPA_PROFILE.container_selector
    assert BOPA_PROFILE.max_pages == 100


def test_storage_path_resolution(tmp_path: Path) -> None:
    assert StorageConfig().resolved_path(tmp_path) == (tmp_path / "data" / "lotscout.db").resolve()
    absolute = tmp_path / "elsewhere.db"
    assert StorageConfig(path=absolute).resolved_path(Path("/unused")) == absolute
