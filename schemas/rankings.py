from typing import List, Optional

from pydantic import BaseModel


class RankingEntryOut(BaseModel):
    index: str
    image: str
    name: str
    price: str
    change_24h: str


class FailureOut(BaseModel):
    kind: str
    source: str
    detail: str
    at: str


class StatusOut(BaseModel):
    state: str  # "empty" | "populated"
    cycle: int = 0
    refreshed_at: Optional[str] = None
    entry_count: int = 0
    refresh_interval_sec: float
    scheduler_running: bool
    recent_failures: List[FailureOut] = []


class RefreshOut(BaseModel):
    ok: bool
    cycle: int
    entry_count: int
