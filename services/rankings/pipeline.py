# services/rankings/pipeline.py
"""
One refresh cycle: scrape + tickers -> join -> categorize -> publish.

The new Snapshot is assembled locally and only handed to the store once it
is complete. A cycle that produced nothing usable leaves the previous
Snapshot in place.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional, Protocol, Tuple

from config.settings import Settings
from services.rankings.categorizer import categorize, join_entries
from services.rankings.failures import FailureKind, FailureRecorder, FailureSource
from services.rankings.image_cache import ImageCache, image_filename
from services.rankings.models import RawEntry, Snapshot
from services.rankings.page_extractor import PageExtractor
from services.rankings.price_source import BinancePriceSource, ChangeMap, PriceMap
from services.rankings.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


class Extractor(Protocol):
    async def extract(self) -> List[RawEntry]: ...


class PriceSource(Protocol):
    async def fetch(self) -> Tuple[PriceMap, ChangeMap]: ...


class RefreshPipeline:
    def __init__(
        self,
        *,
        settings: Settings,
        store: SnapshotStore,
        extractor: Extractor,
        price_source: PriceSource,
        image_cache: Optional[ImageCache],
        recorder: FailureRecorder,
    ):
        self.settings = settings
        self.store = store
        self.extractor = extractor
        self.price_source = price_source
        self.image_cache = image_cache
        self.recorder = recorder
        self._writer_lock = asyncio.Lock()
        self._cycle = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        store: Optional[SnapshotStore] = None,
        recorder: Optional[FailureRecorder] = None,
    ) -> "RefreshPipeline":
        recorder = recorder or FailureRecorder()
        return cls(
            settings=settings,
            store=store or SnapshotStore(),
            extractor=PageExtractor(
                settings.page_url,
                allowed_domains=settings.allowed_domains,
                recorder=recorder,
                timeout=settings.http_timeout_sec,
            ),
            price_source=BinancePriceSource(
                settings.prices_url,
                settings.changes_url,
                recorder=recorder,
                timeout=settings.http_timeout_sec,
            ),
            image_cache=ImageCache(
                settings.images_dir,
                public_base_url=settings.public_base_url,
                route=settings.images_route,
                recorder=recorder,
                timeout=settings.http_timeout_sec,
            ),
            recorder=recorder,
        )

    @property
    def cycles_completed(self) -> int:
        return self._cycle

    async def _resolve_image(self, remote_url: str, display_name: str) -> str:
        if self.image_cache is None:
            return remote_url
        filename = image_filename(display_name)
        local = await self.image_cache.ensure(remote_url, filename)
        if local is None:
            return remote_url
        return self.image_cache.public_url(filename)

    async def refresh(self) -> Optional[Snapshot]:
        """Run one cycle. Returns the published Snapshot, or None if the old one was kept."""
        async with self._writer_lock:
            return await self._run_cycle()

    async def _run_cycle(self) -> Optional[Snapshot]:
        started = time.perf_counter()
        s = self.settings

        raw_entries, (prices, changes) = await asyncio.gather(
            self.extractor.extract(),
            self.price_source.fetch(),
        )
        if not raw_entries:
            logger.warning("refresh_skipped reason=no_entries keeping_previous=%s", not self.store.is_empty)
            return None

        entries = await join_entries(
            raw_entries,
            prices,
            changes,
            resolve_image=self._resolve_image,
            symbol_suffix=s.symbol_suffix,
            max_concurrency=s.image_concurrency,
        )

        try:
            buckets = categorize(
                entries,
                s.category_labels,
                size=s.bucket_size,
                overflow=s.overflow_policy,
                overflow_label=s.overflow_label,
            )
        except (ValueError, IndexError) as e:
            self.recorder.record(FailureKind.CATEGORIZATION, FailureSource.PIPELINE, e, level=logging.ERROR)
            return None

        snapshot = Snapshot(buckets=buckets, cycle=self._cycle + 1, entry_count=len(entries))
        self.store.replace(snapshot)
        self._cycle = snapshot.cycle

        logger.info(
            "refresh_completed cycle=%d entries=%d prices=%d changes=%d duration_ms=%.1f",
            snapshot.cycle, len(entries), len(prices), len(changes),
            (time.perf_counter() - started) * 1000,
        )
        return snapshot
