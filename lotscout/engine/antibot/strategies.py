"""Request strategies: what each hook may change before and after an attempt."""

from __future__ import annotations

import random
from dataclasses import dataclass, field

import httpx

from ...config import GlobalConfig, SourceConfig

RETRYABLE_STATUS = frozenset({401, 403, 429})


@dataclass
class RequestDirective:
    """Headers, timeout and delay requested for the next attempt."""

    headers: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None
    delay: float | None = None


@dataclass
class AntiBotContext:
    """Fetch state for one URL, visible to every strategy."""

    source: SourceConfig
    global_config: GlobalConfig
    attempt: int = 1
    max_attempts: int = 1
    retryable: bool = True
    last_status: int | None = None
    last_error: Exception | None = None

    @property
    def exhausted(self) -> bool:
        return self.attempt > self.max_attempts


class Strategy:
    """No-op hooks; concrete strategies override the ones they use."""

    def before_request(self, context: AntiBotContext, directive: RequestDirective) -> None:
        return

    def after_success(self, context: AntiBotContext, response: httpx.Response) -> None:
        return

    def after_failure(
        self, context: AntiBotContext, status_code: int | None, error: Exception | None
    ) -> None:
        """``status_code`` is None when no answer arrived."""


def is_retryable_status(status_code: int | None) -> bool:
    """Transport failures (no status) and 5xx answers are worth another try."""

    if status_code is None:
        return True
    return status_code >= 500 or status_code in RETRYABLE_STATUS


class HeaderStrategy(Strategy):
    """Apply the per-source extra headers."""

    def before_request(self, context: AntiBotContext, directive: RequestDirective) -> None:
        directive.headers.update(context.source.anti_scraping_strategies.extra_headers)


class UserAgentStrategy(Strategy):
    """Rotate through ``scraping.user_agent_list`` when the source asks for it."""

    def before_request(self, context: AntiBotContext, directive: RequestDirective) -> None:
        if not context.source.anti_scraping_strategies.user_agent_rotation:
            return
        candidates = context.global_config.scraping.user_agent_list
        if candidates:
            directive.headers.setdefault("User-Agent", random.choice(candidates))


class DelayStrategy(Strategy):
    """Randomized politeness delay, per source or from the global default."""

    def before_request(self, context: AntiBotContext, directive: RequestDirective) -> None:
        low, high = context.source.anti_scraping_strategies.delay_range
        if (low, high) == (0.0, 0.0):
            low, high = context.global_config.scraping.default_delay_range
        if high > 0:
            directive.delay = random.uniform(low, high)


class RetryStrategy(Strategy):
    """Budget ``retry_on_fail`` extra attempts for transient failures."""

    def before_request(self, context: AntiBotContext, directive: RequestDirective) -> None:
        context.max_attempts = context.source.anti_scraping_strategies.retry_on_fail + 1

    def after_success(self, context: AntiBotContext, response: httpx.Response) -> None:
        context.attempt = 1
        context.retryable = True

    def after_failure(
        self,
        context: AntiBotContext,
        status_code: int | None,
        error: Exception | None,
    ) -> None:
        context.attempt += 1
        context.retryable = is_retryable_status(status_code)


class TimeoutStrategy(Strategy):
    def before_request(self, context: AntiBotContext, directive: RequestDirective) -> None:
        directive.timeout = context.global_config.scraping.timeout_seconds


def default_strategies() -> list[Strategy]:
    return [RetryStrategy(), TimeoutStrategy(), HeaderStrategy(), UserAgentStrategy(), DelayStrategy()]


__all__ = [
    "AntiBotContext",
    "DelayStrategy",
    "HeaderStrategy",
    "RETRYABLE_STATUS",
    "RequestDirective",
    "RetryStrategy",
    "Strategy",
    "TimeoutStrategy",
    "UserAgentStrategy",
    "default_strategies",
    "is_retryable_status",
]
