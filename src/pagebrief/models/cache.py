from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class PageSummaryCacheEntry(BaseModel):
    """Cached summary for a single page url."""

    url: str
    summary: str
    timestamp: datetime  # When the summary was written, not when it expires

    def is_expired(self, now: datetime, ttl_hours: int) -> bool:
        return (now - self.timestamp).total_seconds() > ttl_hours * 3600
