"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository, apply_env_overrides
from .models import (
    BOPA_PROFILE,
    BUILTIN_PROFILES,
    GENERIC_PROFILE,
    AntiScrapingStrategies,
    CategorizationConfig,
    ClassifierConfig,
    GlobalConfig,
    ScheduleConfig,
    ScheduleType,
    ScrapingConfig,
    SiteProfile,
    SourceConfig,
    StorageConfig,
    resolve_profile,
)

__all__ = [
    "AntiScrapingStrategies",
    "BOPA_PROFILE",
    "BUILTIN_PROFILES",
    "CategorizationConfig",
    "ClassifierConfig",
    "ConfigLocator",
    "ConfigRepository",
    "GENERIC_PROFILE",
    "GlobalConfig",
    "ScheduleConfig",
    "ScheduleType",
    "ScrapingConfig",
    "SiteProfile",
    "SourceConfig",
    "StorageConfig",
    "apply_env_overrides",
    "resolve_profile",
]
