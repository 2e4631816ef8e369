# routers/rankings_routes.py
from typing import Dict, List

from fastapi import APIRouter, Depends, Request

from config.settings import Settings
from schemas.rankings import RankingEntryOut, RefreshOut, StatusOut
from services.rankings.failures import FailureRecorder
from services.rankings.pipeline import RefreshPipeline
from services.rankings.scheduler import RefreshScheduler
from services.rankings.snapshot_store import SnapshotStore

router = APIRouter()

STATUS_FAILURES_LIMIT = 10


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> SnapshotStore:
    return request.app.state.store


def get_pipeline(request: Request) -> RefreshPipeline:
    return request.app.state.pipeline


def get_scheduler(request: Request) -> RefreshScheduler:
    return request.app.state.scheduler


def get_recorder(request: Request) -> FailureRecorder:
    return request.app.state.recorder


@router.get("/", response_model=Dict[str, List[RankingEntryOut]])
def get_rankings(
    store: SnapshotStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """
    Latest categorized rankings. Before the first successful refresh every
    category is present and empty.
    """
    snapshot = store.current()
    if snapshot is None:
        return {label: [] for label in settings.category_labels}
    return snapshot.to_dict()


@router.get("/status", response_model=StatusOut)
def get_status(
    store: SnapshotStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    scheduler: RefreshScheduler = Depends(get_scheduler),
    recorder: FailureRecorder = Depends(get_recorder),
):
    snapshot = store.current()
    failures = [f.to_dict() for f in recorder.recent()[-STATUS_FAILURES_LIMIT:]]
    base = {
        "refresh_interval_sec": settings.refresh_interval_sec,
        "scheduler_running": scheduler.running,
        "recent_failures": failures,
    }
    if snapshot is None:
        return {"state": "empty", **base}
    return {"state": "populated", **snapshot.meta(), **base}


@router.post("/refresh", response_model=RefreshOut)
async def post_refresh(
    pipeline: RefreshPipeline = Depends(get_pipeline),
    scheduler: RefreshScheduler = Depends(get_scheduler),
    store: SnapshotStore = Depends(get_store),
):
    """Run one refresh cycle now; serialized with the background loop."""
    snapshot = await scheduler.run_once()
    current = store.current()
    return {
        "ok": snapshot is not None,
        "cycle": pipeline.cycles_completed,
        "entry_count": current.entry_count if current is not None else 0,
    }
