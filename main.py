# main.py
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from config.logging_config import configure_logging
from config.settings import Settings
from middleware.request_logging import RequestLoggingMiddleware
from routers.rankings_routes import router as rankings_router
from services.rankings.failures import FailureRecorder
from services.rankings.pipeline import RefreshPipeline
from services.rankings.scheduler import RefreshScheduler
from services.rankings.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    pipeline: Optional[RefreshPipeline] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()

    if pipeline is None:
        recorder = FailureRecorder()
        pipeline = RefreshPipeline.from_settings(settings, store=SnapshotStore(), recorder=recorder)
    scheduler = RefreshScheduler(
        pipeline,
        interval=settings.refresh_interval_sec,
        cycle_timeout=settings.refresh_timeout_sec,
        recorder=pipeline.recorder,
        run_immediately=settings.refresh_on_startup,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler.start()
        try:
            yield
        finally:
            await scheduler.stop()

    app = FastAPI(title="Market Rankings", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = pipeline.store
    app.state.pipeline = pipeline
    app.state.scheduler = scheduler
    app.state.recorder = pipeline.recorder

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Content-Length", "Content-Type"],
    )
    app.add_middleware(RequestLoggingMiddleware, quiet_prefixes=(settings.images_route,))

    app.include_router(rankings_router)

    # Cached coin images
    Path(settings.images_dir).mkdir(parents=True, exist_ok=True)
    app.mount(settings.images_route, StaticFiles(directory=settings.images_dir), name="images")

    return app


def run() -> None:
    configure_logging()
    settings = Settings.from_env()
    logger.info("Server listening on http://%s:%d", settings.host, settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
