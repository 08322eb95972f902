"""SQLite summary cache with TTL and lazy eviction.

All cache operations catch ``aiosqlite.Error`` internally and degrade
gracefully: read failures and unparseable rows return ``None`` (treated as a
cache miss by callers), write failures are logged and ignored. Infrastructure
errors never cross the SummaryCache class boundary.

Expired rows are not swept. An expired row is deleted only when that exact
url is read again.
"""

from __future__ import annotations

from datetime import UTC, datetime

import aiosqlite
import structlog
from pydantic import ValidationError

from pagebrief.errors import ErrorCode
from pagebrief.models.cache import PageSummaryCacheEntry

log = structlog.get_logger()

_CREATE_SUMMARY_TABLE = """
CREATE TABLE IF NOT EXISTS page_summaries (
    url       TEXT PRIMARY KEY,
    summary   TEXT NOT NULL,
    timestamp TEXT NOT NULL
)
"""


class SummaryCache:
    """SQLite-backed url -> summary cache implementing SummaryCacheProtocol."""

    def __init__(self, db: aiosqlite.Connection, ttl_hours: int = 24) -> None:
        self._db = db
        self._ttl_hours = ttl_hours
        # Entries whose durable write failed; usable for the rest of the session
        self._session: dict[str, PageSummaryCacheEntry] = {}

    async def init_db(self) -> None:
        """Create the table and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_SUMMARY_TABLE)
        await self._db.commit()

    async def get(self, url: str) -> str | None:
        """Return the cached summary for ``url``, or ``None`` on miss.

        Misses include: no row, an expired row (deleted as a side effect),
        a corrupt row, and any database read failure.
        """
        entry = await self._read_entry(url)
        if entry is None:
            entry = self._session.get(url)
            if entry is None:
                return None

        if entry.is_expired(datetime.now(UTC), self._ttl_hours):
            log.debug("cache_entry_expired", url=url, timestamp=entry.timestamp.isoformat())
            self._session.pop(url, None)
            await self._evict(url)
            return None

        return entry.summary

    async def put(self, url: str, summary: str) -> None:
        """Write or overwrite the summary for ``url``. Non-fatal on failure."""
        entry = PageSummaryCacheEntry(url=url, summary=summary, timestamp=datetime.now(UTC))
        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO page_summaries (url, summary, timestamp) "
                "VALUES (?, ?, ?)",
                (entry.url, entry.summary, entry.timestamp.isoformat()),
            )
            await self._db.commit()
            self._session.pop(url, None)
        except aiosqlite.Error:
            log.warning(
                "cache_write_error",
                code=ErrorCode.CACHE_WRITE_FAILED,
                url=url,
                exc_info=True,
            )
            self._session[url] = entry

    async def _read_entry(self, url: str) -> PageSummaryCacheEntry | None:
        try:
            cursor = await self._db.execute(
                "SELECT url, summary, timestamp FROM page_summaries WHERE url = ?",
                (url,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error:
            log.warning("cache_read_error", url=url, exc_info=True)
            return None

        if row is None:
            return None

        try:
            timestamp = datetime.fromisoformat(row[2])
            if timestamp.tzinfo is None:
                timestamp = timestamp.replace(tzinfo=UTC)
            return PageSummaryCacheEntry(url=row[0], summary=row[1], timestamp=timestamp)
        except (TypeError, ValueError, ValidationError):
            log.warning("cache_read_error", code=ErrorCode.CACHE_READ_CORRUPT, url=url)
            return None

    async def _evict(self, url: str) -> None:
        try:
            await self._db.execute("DELETE FROM page_summaries WHERE url = ?", (url,))
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_evict_error", url=url, exc_info=True)
