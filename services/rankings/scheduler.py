# services/rankings/scheduler.py
from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from services.rankings.failures import FailureKind, FailureRecorder, FailureSource
from services.rankings.models import Snapshot
from services.rankings.pipeline import RefreshPipeline

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """
    Background loop that runs the refresh pipeline every ``interval`` seconds
    (start to start). Each cycle is bounded by ``cycle_timeout``; errors are
    logged and the loop keeps going until ``stop()``.
    """

    def __init__(
        self,
        pipeline: RefreshPipeline,
        *,
        interval: float,
        cycle_timeout: float,
        recorder: FailureRecorder,
        run_immediately: bool = True,
    ):
        self.pipeline = pipeline
        self.interval = interval
        self.cycle_timeout = cycle_timeout
        self.recorder = recorder
        self.run_immediately = run_immediately
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="rankings-refresh")
        logger.info("refresh_scheduler_started interval_sec=%s", self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("refresh_scheduler_stopped")

    async def run_once(self) -> Optional[Snapshot]:
        try:
            return await asyncio.wait_for(self.pipeline.refresh(), timeout=self.cycle_timeout)
        except asyncio.TimeoutError:
            self.recorder.record(
                FailureKind.TRANSPORT,
                FailureSource.PIPELINE,
                f"refresh cycle exceeded {self.cycle_timeout}s",
                level=logging.ERROR,
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("refresh_cycle_failed")
        return None

    async def _loop(self) -> None:
        if not self.run_immediately:
            await asyncio.sleep(self.interval)
        while True:
            started = time.monotonic()
            await self.run_once()
            elapsed = time.monotonic() - started
            await asyncio.sleep(max(0.0, self.interval - elapsed))
