"""HTTP fetching driven by the per-source request policy chain."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from ..config import GlobalConfig, SourceConfig
from ..errors import FetchError
from .antibot.chain import AntiBotChain, build_chain
from .antibot.strategies import AntiBotContext

DEFAULT_TIMEOUT_SECONDS = 20.0
MAX_DELAY_SECONDS = 5.0


@dataclass(slots=True)
class FetchRequest:
    url: str
    method: str = "GET"
    params: dict[str, Any] | None = None
    headers: dict[str, str] | None = None
    timeout: float | None = None


@dataclass(slots=True)
class FetchResponse:
    """A successful (2xx) answer."""

    url: str
    status_code: int
    text: str
    headers: dict[str, str]
    raw: httpx.Response | None = field(repr=False, default=None)


class Fetcher:
    """Retrieve documents for the crawl engine.

    Only a 2xx answer produces a :class:`FetchResponse`. Anything else ends in
    :class:`FetchError` once the chain stops retrying, so an error page or an
    empty body is never mistaken for a listing without lots.
    """

    def __init__(
        self,
        global_config: GlobalConfig,
        logger: structlog.BoundLogger | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.global_config = global_config
        self.logger = logger or structlog.get_logger("lotscout.fetcher")
        self._owns_client = client is None
        self._client = client or httpx.Client(
            follow_redirects=True,
            timeout=global_config.scraping.timeout_seconds,
            headers={"User-Agent": global_config.scraping.user_agent},
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def fetch(self, source: SourceConfig, request: FetchRequest) -> FetchResponse:
        context, chain = self._build_chain(source)
        attempts = 0
        last_status: int | None = None
        last_error: httpx.HTTPError | None = None
        while True:
            directive = chain.prepare(context)
            if directive.delay:
                time.sleep(min(directive.delay, MAX_DELAY_SECONDS))
            attempts += 1
            try:
                response = self._client.request(
                    method=request.method,
                    url=request.url,
                    params=request.params,
                    headers={**(request.headers or {}), **directive.headers},
                    timeout=request.timeout or directive.timeout or DEFAULT_TIMEOUT_SECONDS,
                )
            except httpx.HTTPError as exc:
                self.logger.warning("fetch_error", url=request.url, attempt=attempts, error=str(exc))
                last_status, last_error = None, exc
                chain.notify_failure(context, None, exc)
            else:
                if 200 <= response.status_code < 300:
                    chain.notify_success(context, response)
                    return FetchResponse(
                        url=str(response.url),
                        status_code=response.status_code,
                        text=response.text,
                        headers=dict(response.headers),
                        raw=response,
                    )
                self.logger.warning(
                    "fetch_bad_status", url=request.url, attempt=attempts, status=response.status_code
                )
                last_status, last_error = response.status_code, None
                chain.notify_failure(context, response.status_code, None)
            if not chain.should_retry(context):
                break

        if last_error is not None:
            raise FetchError(
                request.url, f"Fetch failed after {attempts} attempt(s): {request.url}"
            ) from last_error
        raise FetchError(
            request.url, f"Unexpected status {last_status} for {request.url}", status_code=last_status
        )

    def _build_chain(self, source: SourceConfig) -> tuple[AntiBotContext, AntiBotChain]:
        return build_chain(source, self.global_config)


__all__ = ["FetchRequest", "FetchResponse", "Fetcher"]
