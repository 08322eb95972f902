from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class PrefetchStatus(StrEnum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    FETCHING = "fetching"
    READY = "ready"
    STALE = "stale"


@dataclass
class PrefetchState:
    """Scheduler state for the page currently being tracked."""

    url: str | None = None
    status: PrefetchStatus = PrefetchStatus.IDLE
    summary: str | None = None
