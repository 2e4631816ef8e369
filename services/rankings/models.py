# services/rankings/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Tuple


@dataclass(frozen=True)
class RawEntry:
    """One item block as read off the rankings page."""

    index: str
    image_url: str
    display_name: str


@dataclass(frozen=True)
class RankingEntry:
    index: str
    image: str
    name: str
    price: str = ""
    change_24h: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "index": self.index,
            "image": self.image,
            "name": self.name,
            "price": self.price,
            "change_24h": self.change_24h,
        }


CategoryBucket = Tuple[RankingEntry, ...]


@dataclass(frozen=True)
class Snapshot:
    """
    Result of one completed refresh cycle.

    Built completely before it is published and never mutated afterwards;
    ``buckets`` is a read-only mapping of label -> bucket in label order.
    """

    buckets: Mapping[str, CategoryBucket]
    cycle: int = 0
    entry_count: int = 0
    refreshed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        frozen = {label: tuple(bucket) for label, bucket in self.buckets.items()}
        object.__setattr__(self, "buckets", MappingProxyType(frozen))

    @property
    def labels(self) -> List[str]:
        return list(self.buckets.keys())

    def to_dict(self) -> Dict[str, List[Dict[str, str]]]:
        return {
            label: [entry.to_dict() for entry in bucket]
            for label, bucket in self.buckets.items()
        }

    def meta(self) -> Dict[str, Any]:
        return {
            "cycle": self.cycle,
            "entry_count": self.entry_count,
            "refreshed_at": self.refreshed_at.isoformat().replace("+00:00", "Z"),
        }
