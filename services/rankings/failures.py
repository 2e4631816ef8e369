# services/rankings/failures.py
"""
Structured failure reporting for the refresh pipeline.

Every degraded source is logged once with ``failure_kind`` / ``failure_source``
fields and kept in a small ring buffer so /status and the tests can see what
went wrong without parsing log text.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

RECENT_FAILURES_MAX = 50


class FailureKind(str, Enum):
    TRANSPORT = "transport"
    DECODE = "decode"
    FILESYSTEM = "filesystem"
    PARSE = "parse"
    CATEGORIZATION = "categorization"


class FailureSource(str, Enum):
    PAGE = "page"
    PRICES = "prices"
    CHANGES = "changes"
    IMAGE = "image"
    PIPELINE = "pipeline"


class PageExtractionError(Exception):
    """The ranking page could not be fetched or parsed as a whole."""


class DisallowedDomainError(PageExtractionError):
    """A request (usually a redirect) left the allowed domains."""


@dataclass(frozen=True)
class SourceFailure:
    kind: FailureKind
    source: FailureSource
    detail: str
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "source": self.source.value,
            "detail": self.detail,
            "at": self.at.isoformat().replace("+00:00", "Z"),
        }


class FailureRecorder:
    def __init__(self, max_items: int = RECENT_FAILURES_MAX):
        self._items: Deque[SourceFailure] = deque(maxlen=max_items)
        self._lock = Lock()

    def record(
        self,
        kind: FailureKind,
        source: FailureSource,
        detail: Any,
        *,
        level: int = logging.WARNING,
    ) -> SourceFailure:
        failure = SourceFailure(kind=kind, source=source, detail=str(detail))
        with self._lock:
            self._items.append(failure)
        logger.log(
            level,
            "source_failure kind=%s source=%s detail=%s",
            kind.value,
            source.value,
            failure.detail,
            extra={"extra": {"failure_kind": kind.value, "failure_source": source.value}},
        )
        return failure

    def recent(
        self,
        *,
        kind: Optional[FailureKind] = None,
        source: Optional[FailureSource] = None,
    ) -> List[SourceFailure]:
        with self._lock:
            items = list(self._items)
        return [
            f for f in items
            if (kind is None or f.kind == kind) and (source is None or f.source == source)
        ]

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
