# services/rankings/categorizer.py
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from config.settings import OVERFLOW_EXTRA, OVERFLOW_TRUNCATE
from services.rankings.models import CategoryBucket, RankingEntry, RawEntry

logger = logging.getLogger(__name__)

# remote image url, display name -> public url to publish
ImageResolver = Callable[[str, str], Awaitable[str]]


def derive_symbol(display_name: str, suffix: str = "USDT") -> str:
    return display_name.upper() + suffix


async def join_entries(
    raw_entries: Sequence[RawEntry],
    prices: Mapping[str, str],
    changes: Mapping[str, str],
    *,
    resolve_image: Optional[ImageResolver] = None,
    symbol_suffix: str = "USDT",
    max_concurrency: int = 8,
) -> List[RankingEntry]:
    """
    Merge page entries with ticker data, keeping extraction order.

    A symbol missing from either map leaves the corresponding field empty.
    Images are only resolved for entries that came with a remote URL; an
    entry whose resolution blows up keeps that remote URL.
    """
    sem = asyncio.Semaphore(max(1, max_concurrency))

    async def _one(raw: RawEntry) -> RankingEntry:
        symbol = derive_symbol(raw.display_name, symbol_suffix)
        image = raw.image_url
        if image and resolve_image is not None:
            async with sem:
                try:
                    image = await resolve_image(raw.image_url, raw.display_name)
                except Exception:
                    logger.exception("image_resolve_failed name=%s url=%s", raw.display_name, raw.image_url)
                    image = raw.image_url
        return RankingEntry(
            index=raw.index,
            image=image,
            name=raw.display_name,
            price=prices.get(symbol, ""),
            change_24h=changes.get(symbol, ""),
        )

    named = [raw for raw in raw_entries if raw.display_name]
    return list(await asyncio.gather(*[_one(raw) for raw in named]))


def chunk_entries(entries: Sequence[RankingEntry], size: int = 10) -> List[CategoryBucket]:
    if size <= 0:
        raise ValueError("bucket size must be positive")
    return [tuple(entries[i:i + size]) for i in range(0, len(entries), size)]


def categorize(
    entries: Sequence[RankingEntry],
    labels: Sequence[str],
    *,
    size: int = 10,
    overflow: str = OVERFLOW_TRUNCATE,
    overflow_label: str = "Otros",
) -> Dict[str, CategoryBucket]:
    """
    Label consecutive buckets in order.

    Labels without a bucket get an empty one. Entries past the last labelled
    bucket are dropped ("truncate") or collected under ``overflow_label``
    ("extra").
    """
    if overflow not in (OVERFLOW_TRUNCATE, OVERFLOW_EXTRA):
        raise ValueError(f"unknown overflow policy: {overflow!r}")
    if len(set(labels)) != len(labels):
        raise ValueError("category labels must be unique")

    buckets = chunk_entries(entries, size)
    out: Dict[str, CategoryBucket] = {}
    for i, label in enumerate(labels):
        out[label] = buckets[i] if i < len(buckets) else ()

    if len(buckets) < len(labels):
        logger.warning(
            "categorize_underflow entries=%d buckets=%d labels=%d",
            len(entries), len(buckets), len(labels),
        )

    labelled = len(labels) * size
    if len(entries) > labelled:
        if overflow == OVERFLOW_EXTRA:
            if overflow_label in out:
                raise ValueError(f"overflow label {overflow_label!r} clashes with a category label")
            out[overflow_label] = tuple(entries[labelled:])
        else:
            logger.info("categorize_truncated dropped=%d", len(entries) - labelled)

    return out
