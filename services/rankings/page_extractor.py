# services/rankings/page_extractor.py
"""
Scrapes the Binance "trading data rankings" page into raw entries.

Each rankings panel is a container holding repeated item blocks; every block
yields an index label, an image URL and a display name. Blocks without a
display name are placeholders and are skipped.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup, Tag

from services.rankings.failures import (
    DisallowedDomainError,
    FailureKind,
    FailureRecorder,
    FailureSource,
    PageExtractionError,
)
from services.rankings.models import RawEntry

logger = logging.getLogger(__name__)

USER_AGENTS: Sequence[str] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_5) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.5 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:128.0) Gecko/20100101 Firefox/128.0",
    "Mozilla/5.0 (X11; Ubuntu; Linux x86_64; rv:127.0) Gecko/20100101 Firefox/127.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36 Edg/127.0.0.0",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_5 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.5 Mobile/15E148 Safari/604.1",
)


def random_user_agent() -> str:
    return random.choice(USER_AGENTS)


@dataclass(frozen=True)
class PageSelectors:
    container: str = "div.rounded-xl.border.border-line.p-m"
    item: str = "div.css-1qyk0y6"
    index: str = "div.css-1ycllpv"
    image: str = "div.subtitle4.line-clamp-1.truncate.css-whts0r img"
    name: str = "div.css-lzd0h4"


def _child_text(block: Tag, selector: str) -> str:
    return "".join(node.get_text() for node in block.select(selector)).strip()


def _child_attr(block: Tag, selector: str, attr: str) -> str:
    node = block.select_one(selector)
    if node is None:
        return ""
    value = node.get(attr)
    if isinstance(value, list):
        value = " ".join(value)
    return (value or "").strip()


def _absolute(src: str, base_url: Optional[str]) -> str:
    if not src or not base_url:
        return src
    return urljoin(base_url, src)


def parse_rankings_html(
    html: str,
    selectors: PageSelectors = PageSelectors(),
    base_url: Optional[str] = None,
) -> List[RawEntry]:
    """Relative and protocol-relative image sources are resolved against ``base_url``."""
    soup = BeautifulSoup(html, "html.parser")
    out: List[RawEntry] = []
    for container in soup.select(selectors.container):
        for block in container.select(selectors.item):
            name = _child_text(block, selectors.name)
            if not name:
                continue
            out.append(
                RawEntry(
                    index=_child_text(block, selectors.index),
                    image_url=_absolute(_child_attr(block, selectors.image, "src"), base_url),
                    display_name=name,
                )
            )
    return out


class PageExtractor:
    def __init__(
        self,
        page_url: str,
        *,
        allowed_domains: Iterable[str],
        recorder: FailureRecorder,
        selectors: PageSelectors = PageSelectors(),
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.page_url = page_url
        self.allowed_domains = frozenset(d.strip().lower() for d in allowed_domains if d.strip())
        self.recorder = recorder
        self.selectors = selectors
        self.timeout = timeout
        self._transport = transport

    async def _guard_domain(self, request: httpx.Request) -> None:
        host = (request.url.host or "").lower()
        if self.allowed_domains and host not in self.allowed_domains:
            raise DisallowedDomainError(f"refusing to visit {host!r}")

    async def fetch_html(self) -> str:
        headers = {
            "User-Agent": random_user_agent(),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        }
        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers=headers,
            follow_redirects=True,
            event_hooks={"request": [self._guard_domain]},
        ) as client:
            r = await client.get(self.page_url)
            r.raise_for_status()
            return r.text

    async def extract(self) -> List[RawEntry]:
        try:
            html = await self.fetch_html()
        except (httpx.HTTPError, PageExtractionError) as e:
            self.recorder.record(FailureKind.TRANSPORT, FailureSource.PAGE, f"{type(e).__name__}: {e}")
            return []

        try:
            entries = parse_rankings_html(html, self.selectors, base_url=self.page_url)
        except Exception as e:
            self.recorder.record(FailureKind.DECODE, FailureSource.PAGE, f"{type(e).__name__}: {e}")
            return []

        logger.info("page_extracted url=%s entries=%d", self.page_url, len(entries))
        return entries
