"""Lot extraction from listing pages.

Extraction runs an ordered chain of strategies over one parsed page. The first
strategy that yields at least one lot wins and its result is returned as is;
results of different strategies are never merged.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Iterator, Protocol, Sequence
from urllib.parse import urljoin

import structlog
from selectolax.lexbor import LexborHTMLParser, LexborNode

from ..config import SiteProfile
from ..models import Lot
from .dedup import normalize_url

MAX_TITLE_LENGTH = 500
MAX_FALLBACK_TEXT_LENGTH = 200
FALLBACK_TITLE = "Lot"

_NUMBER_RE = re.compile(r"\d[\d.,]*")
_BID_PATTERNS = (
    re.compile(
        r"(\d+)\s*(?:bod|biedingen|bieding|bids?|ench[eè]res?|offres?|gebote?)\b",
        re.IGNORECASE,
    ),
    re.compile(r"(?:bids?|biedingen|ench[eè]res?|gebote?)\s*:\s*(\d+)", re.IGNORECASE),
)


def clean_text(value: str | None) -> str:
    if not value:
        return ""
    return " ".join(value.split())


def node_text(node: LexborNode | None) -> str:
    if node is None:
        return ""
    return clean_text(node.text(separator=" ", strip=True))


def truncate(value: str, limit: int) -> str:
    return value if len(value) <= limit else value[:limit].rstrip()


def parse_price(text: str | None) -> float | None:
    """Return the first numeric token of ``text`` as a float.

    Both ``1.250,50`` and ``1,250.50`` read as 1250.5; a lone comma is a
    decimal comma. Anything unparsable yields ``None``.
    """

    if not text:
        return None
    match = _NUMBER_RE.search(text)
    if not match:
        return None
    token = match.group(0).rstrip(".,")
    if "," in token and "." in token:
        if token.rfind(",") > token.rfind("."):
            token = token.replace(".", "").replace(",", ".")
        else:
            token = token.replace(",", "")
    elif "," in token:
        if token.count(",") > 1:
            token = token.replace(",", "")
        else:
            token = token.replace(",", ".")
    elif token.count(".") > 1:
        token = token.replace(".", "")
    try:
        value = float(token)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def parse_bid_count(text: str | None) -> int | None:
    """Return the bid count stated in ``text`` or ``None`` when absent."""

    if not text:
        return None
    for pattern in _BID_PATTERNS:
        match = pattern.search(text)
        if match:
            return int(match.group(1))
    return None


def _is_http_href(href: str | None) -> bool:
    if not href:
        return False
    href = href.strip()
    return bool(href) and not href.lower().startswith(("javascript:", "mailto:", "tel:", "#"))


def own_text(node: LexborNode) -> str:
    """Text of ``node``'s direct text children, without any child element."""

    return clean_text(node.text(deep=False, separator=" ", strip=True))


def ancestors(node: LexborNode | None) -> Iterator[LexborNode]:
    """Yield ``node`` and its element ancestors up to, not including, ``<body>``."""

    while node is not None:
        tag = node.tag or ""
        if not tag or tag in ("html", "body") or tag.startswith("-"):
            return
        yield node
        node = node.parent


@dataclass
class ExtractionContext:
    """One page being extracted."""

    document: LexborHTMLParser
    base_url: str
    profile: SiteProfile
    excluded_urls: set[str] = field(default_factory=set)
    _matches: dict[str, set[int]] = field(default_factory=dict, repr=False)

    def absolute(self, href: str) -> str:
        return urljoin(self.base_url, href.strip())

    def matching_ids(self, selector: str) -> set[int]:
        if selector not in self._matches:
            self._matches[selector] = {node.mem_id for node in self.document.css(selector)}
        return self._matches[selector]

    def is_excluded(self, node: LexborNode) -> bool:
        selector = self.profile.exclusion_selector
        if not selector:
            return False
        excluded = self.matching_ids(selector)
        return any(current.mem_id in excluded for current in ancestors(node))

    def closest(self, node: LexborNode, selector: str) -> LexborNode | None:
        wanted = self.matching_ids(selector)
        for current in ancestors(node.parent):
            if current.mem_id in wanted:
                return current
        return None

    def image_url(self, scope: LexborNode, selector: str) -> str | None:
        image = scope.css_first(selector)
        if image is None:
            return None
        src = (image.attributes.get("src") or "").strip()
        # broken markup sometimes leaks the handler into src
        if not src or "onerror=" in src:
            return None
        return self.absolute(src)


class ExtractionStrategy(Protocol):
    name: str

    def extract(self, context: ExtractionContext) -> list[Lot]:
        """Return lots found on the page, or an empty list."""


class ContainerStrategy:
    """Read lots from well-known per-lot container markup."""

    name = "container"

    def extract(self, context: ExtractionContext) -> list[Lot]:
        profile = context.profile
        if not profile.container_selector:
            return []
        lots: list[Lot] = []
        for container in context.document.css(profile.container_selector):
            if context.is_excluded(container):
                continue
            link = container.css_first(profile.container_link_selector)
            href = link.attributes.get("href") if link is not None else None
            if not _is_http_href(href):
                continue
            title = self._title(container, link, profile)
            if not title:
                continue
            lots.append(
                Lot(
                    url=context.absolute(href),
                    title=title,
                    image_url=context.image_url(container, profile.image_selector),
                    current_price=self._price(container, profile),
                    bid_count=self._bids(container, profile),
                )
            )
        return lots

    @staticmethod
    def _title(container: LexborNode, link: LexborNode, profile: SiteProfile) -> str:
        # heading link, then link text, then the block's own text
        heading = None
        if profile.heading_link_selector:
            heading = container.css_first(profile.heading_link_selector)
        title = node_text(heading) or node_text(link)
        if not title:
            title = truncate(own_text(container), MAX_FALLBACK_TEXT_LENGTH)
        return truncate(title, MAX_TITLE_LENGTH)

    @staticmethod
    def _price(container: LexborNode, profile: SiteProfile) -> float | None:
        if not profile.price_selector:
            return None
        return parse_price(node_text(container.css_first(profile.price_selector)))

    @staticmethod
    def _bids(container: LexborNode, profile: SiteProfile) -> int | None:
        if not profile.bid_selector:
            return parse_bid_count(node_text(container))
        node = container.css_first(profile.bid_selector)
        return parse_bid_count(node_text(node)) if node is not None else None


class LotLinkStrategy:
    """Fall back to any link that looks like a lot detail URL."""

    name = "lot_link"

    def extract(self, context: ExtractionContext) -> list[Lot]:
        profile = context.profile
        lots: list[Lot] = []
        positions: dict[str, int] = {}
        for link in context.document.css(profile.lot_link_selector):
            href = link.attributes.get("href")
            if not _is_http_href(href):
                continue
            url = context.absolute(href)
            key = normalize_url(url)
            if key in context.excluded_urls or context.is_excluded(link):
                continue
            text = truncate(node_text(link), MAX_TITLE_LENGTH)
            if key in positions:
                existing = lots[positions[key]]
                if existing.title == FALLBACK_TITLE and text:
                    existing.title = text
                continue
            positions[key] = len(lots)
            holder = context.closest(link, profile.link_context_selector)
            lots.append(
                Lot(
                    url=url,
                    title=text or self._caption(holder, profile),
                    image_url=context.image_url(holder, profile.link_image_selector)
                    if holder is not None
                    else None,
                )
            )
        return lots

    @staticmethod
    def _caption(holder: LexborNode | None, profile: SiteProfile) -> str:
        if holder is not None:
            caption = node_text(holder.css_first(profile.link_caption_selector))
            if caption:
                return truncate(caption, MAX_TITLE_LENGTH)
        return FALLBACK_TITLE


class PageExtractor:
    """Run the strategy chain for one page of a listing."""

    def __init__(
        self,
        profile: SiteProfile,
        strategies: Sequence[ExtractionStrategy] | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.profile = profile
        self.strategies: list[ExtractionStrategy] = list(
            strategies if strategies is not None else (ContainerStrategy(), LotLinkStrategy())
        )
        self.logger = logger or structlog.get_logger("lotscout.extractor")

    def extract(self, document: LexborHTMLParser | str, base_url: str) -> list[Lot]:
        if isinstance(document, str):
            document = LexborHTMLParser(document)
        context = ExtractionContext(
            document=document,
            base_url=base_url,
            profile=self.profile,
            excluded_urls=self._excluded_urls(document, base_url),
        )
        for strategy in self.strategies:
            lots = strategy.extract(context)
            if lots:
                self.logger.debug(
                    "lots_extracted", url=base_url, strategy=strategy.name, count=len(lots)
                )
                return lots
        self.logger.info("no_lots_extracted", url=base_url)
        return []

    def _excluded_urls(self, document: LexborHTMLParser, base_url: str) -> set[str]:
        selector = self.profile.exclusion_selector
        if not selector:
            return set()
        urls: set[str] = set()
        for region in document.css(selector):
            for link in region.css("a[href]"):
                href = link.attributes.get("href")
                if _is_http_href(href):
                    urls.add(normalize_url(urljoin(base_url, href.strip())))
        return urls


__all__ = [
    "ContainerStrategy",
    "ExtractionContext",
    "ExtractionStrategy",
    "LotLinkStrategy",
    "PageExtractor",
    "ancestors",
    "clean_text",
    "node_text",
    "parse_bid_count",
    "parse_price",
]
