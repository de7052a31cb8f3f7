"""The strategy chain a fetcher consults around every attempt."""

from __future__ import annotations

from typing import Iterable

import httpx

from ...config import GlobalConfig, SourceConfig
from .strategies import AntiBotContext, RequestDirective, Strategy, default_strategies


class AntiBotChain:
    """Fold the strategies over one fetch.

    ``prepare`` merges what every strategy wants for the next attempt; the
    ``notify_*`` hooks record the outcome on the context first, so strategies
    and :meth:`should_retry` see the same state.
    """

    def __init__(self, strategies: Iterable[Strategy] = ()) -> None:
        self.strategies = tuple(strategies)

    @classmethod
    def for_source(
        cls, source: SourceConfig, global_config: GlobalConfig
    ) -> tuple[AntiBotContext, "AntiBotChain"]:
        context = AntiBotContext(source=source, global_config=global_config)
        return context, cls(default_strategies())

    def prepare(self, context: AntiBotContext) -> RequestDirective:
        directive = RequestDirective()
        for hook in self.strategies:
            hook.before_request(context, directive)
        return directive

    def notify_success(self, context: AntiBotContext, response: httpx.Response) -> None:
        context.last_status, context.last_error = response.status_code, None
        for hook in self.strategies:
            hook.after_success(context, response)

    def notify_failure(
        self, context: AntiBotContext, status_code: int | None, error: Exception | None
    ) -> None:
        context.last_status, context.last_error = status_code, error
        for hook in self.strategies:
            hook.after_failure(context, status_code, error)

    def should_retry(self, context: AntiBotContext) -> bool:
        return context.retryable and not context.exhausted


def build_chain(
    source: SourceConfig, global_config: GlobalConfig
) -> tuple[AntiBotContext, AntiBotChain]:
    """Fresh context and default chain for one fetch of ``source``."""

    return AntiBotChain.for_source(source, global_config)


__all__ = ["AntiBotChain", "build_chain"]
