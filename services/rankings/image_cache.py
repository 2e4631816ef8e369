# services/rankings/image_cache.py
from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import Dict, Optional, Tuple

import httpx

from services.rankings.failures import FailureKind, FailureRecorder, FailureSource

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[\s/\\]")


def image_filename(display_name: str) -> str:
    """Deterministic asset filename for a coin, e.g. "Shiba Inu" -> "Shiba_Inu.jpg"."""
    return _UNSAFE_FILENAME_CHARS.sub("_", display_name.strip()) + ".jpg"


class ImageCache:
    """
    Local copies of remote coin images.

    A file that already exists is a cache hit, full stop: it is never
    re-downloaded or validated. Calls for the same filename are serialized so
    concurrent resolutions trigger a single download.
    """

    def __init__(
        self,
        directory: str | Path,
        *,
        public_base_url: str,
        route: str = "/images",
        recorder: FailureRecorder,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.directory = Path(directory)
        self.public_base_url = public_base_url.rstrip("/")
        self.route = "/" + route.strip("/")
        self.recorder = recorder
        self.timeout = timeout
        self._transport = transport
        # filename -> (lock, number of callers holding or awaiting it);
        # dropped once the last caller for that filename is done
        self._inflight: Dict[str, Tuple[asyncio.Lock, int]] = {}

    def path_for(self, filename: str) -> Path:
        return self.directory / filename

    def public_url(self, filename: str) -> str:
        return f"{self.public_base_url}{self.route}/{filename}"

    def exists(self, filename: str) -> bool:
        return self.path_for(filename).is_file()

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    async def ensure(self, remote_url: str, filename: str) -> Optional[Path]:
        if self.exists(filename):
            return self.path_for(filename)

        lock, users = self._inflight.get(filename, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._inflight[filename] = (lock, users + 1)
        try:
            async with lock:
                if self.exists(filename):
                    return self.path_for(filename)
                return await self._download(remote_url, filename)
        finally:
            lock, users = self._inflight[filename]
            if users <= 1:
                del self._inflight[filename]
            else:
                self._inflight[filename] = (lock, users - 1)

    async def _download(self, remote_url: str, filename: str) -> Optional[Path]:
        target = self.path_for(filename)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                async with client.stream("GET", remote_url) as r:
                    r.raise_for_status()
                    await self._write_stream(r, target)
        except httpx.HTTPError as e:
            self.recorder.record(
                FailureKind.TRANSPORT,
                FailureSource.IMAGE,
                f"{filename}: {type(e).__name__}: {e}",
            )
            return None
        except OSError as e:
            self.recorder.record(FailureKind.FILESYSTEM, FailureSource.IMAGE, f"{filename}: {e}")
            return None
        except (httpx.InvalidURL, ValueError) as e:
            # malformed src scraped off the page; httpx rejects it before any I/O
            self.recorder.record(
                FailureKind.TRANSPORT,
                FailureSource.IMAGE,
                f"{filename}: invalid url {remote_url!r}: {type(e).__name__}: {e}",
            )
            return None

        logger.info("image_cached filename=%s", filename)
        return target

    async def _write_stream(self, r: httpx.Response, target: Path) -> None:
        # The file is only created once the response is known to be good;
        # a failure mid-stream can leave a truncated file behind.
        await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
        fh = await asyncio.to_thread(open, target, "wb")
        try:
            async for chunk in r.aiter_bytes():
                await asyncio.to_thread(fh.write, chunk)
        finally:
            await asyncio.to_thread(fh.close)
