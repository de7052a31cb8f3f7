"""Exception hierarchy shared by the crawl and categorization pipelines."""

from __future__ import annotations


class LotscoutError(Exception):
    """Base class for errors raised by lotscout."""


class ConfigError(LotscoutError):
    """Configuration file missing required structure or failing validation."""


class NotFoundError(LotscoutError):
    """A referenced source, listing, lot or category does not exist."""


class CategoryError(LotscoutError):
    """Category management request violates a category invariant."""


class FetchError(LotscoutError):
    """A document could not be retrieved (network failure or non-success status)."""

    def __init__(self, url: str, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


__all__ = [
    "CategoryError",
    "ConfigError",
    "FetchError",
    "LotscoutError",
    "NotFoundError",
]
