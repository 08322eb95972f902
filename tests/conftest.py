"""Shared test fixtures for the pagebrief test suite."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import aiosqlite
import pytest

from pagebrief.cache import SummaryCache
from pagebrief.config import Settings
from pagebrief.errors import PageBriefError
from pagebrief.models.outcomes import Failure, SummaryResult

ARTICLE_URL = "https://news.example.com/2024/05/city-council-votes"

_PARAGRAPH = (
    "The city council met on Tuesday evening to debate the long delayed proposal for a "
    "new public library branch in the northern district. Residents filled the chamber "
    "and many spoke about the need for quiet study space, after school programs and "
    "reliable internet access for families who cannot afford it at home."
)


def article_html(paragraphs: int = 4, *, title: str = "City council approves new library") -> str:
    """A small but eligible article page."""
    body = "\n".join(f"<p>{_PARAGRAPH}</p>" for _ in range(paragraphs))
    return (
        "<html><head>"
        f"<title>{title}</title>"
        '<meta name="description" content="Local news">'
        "</head><body>"
        '<nav><a href="/">Home</a> <a href="/news">News</a></nav>'
        "<article>"
        f"<h1>{title}</h1>"
        f"{body}"
        '<p>Read the <a href="/minutes">meeting minutes</a>.</p>'
        "</article>"
        "<script>var tracking = 1;</script>"
        "</body></html>"
    )


class FakePage:
    """PageContextProtocol double whose url can be changed mid-test."""

    def __init__(self, url: str = ARTICLE_URL, text: str = _PARAGRAPH * 3) -> None:
        self.url = url
        self.text = text
        self.extract_error: PageBriefError | None = None

    def current_url(self) -> str:
        return self.url

    def extract_text(self) -> str:
        if self.extract_error is not None:
            raise self.extract_error
        return self.text


class InMemoryCache:
    """SummaryCacheProtocol double backed by a dict."""

    def __init__(self) -> None:
        self.entries: dict[str, str] = {}
        self.puts: list[tuple[str, str]] = []

    async def get(self, url: str) -> str | None:
        return self.entries.get(url)

    async def put(self, url: str, summary: str) -> None:
        self.puts.append((url, summary))
        self.entries[url] = summary


class FakeSummarizer:
    """SummarizerProtocol double that counts calls and can be held open."""

    def __init__(self, summary: str = "A short summary.") -> None:
        self.summary = summary
        self.calls: list[str] = []
        self.failure: Failure | None = None
        self.release = asyncio.Event()
        self.release.set()

    def hold(self) -> None:
        self.release.clear()

    async def summarize(self, text: str) -> SummaryResult | Failure:
        self.calls.append(text)
        await self.release.wait()
        if self.failure is not None:
            return self.failure
        return SummaryResult(summary=self.summary)


@pytest.fixture()
def settings() -> Settings:
    return Settings()


@pytest.fixture()
def make_article_html() -> Callable[..., str]:
    return article_html


@pytest.fixture()
async def cache() -> SummaryCache:
    """SummaryCache on an in-memory database."""
    async with aiosqlite.connect(":memory:") as db:
        summary_cache = SummaryCache(db, ttl_hours=24)
        await summary_cache.init_db()
        yield summary_cache


@pytest.fixture()
def fake_page() -> FakePage:
    return FakePage()


@pytest.fixture()
def memory_cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture()
def summarizer() -> FakeSummarizer:
    return FakeSummarizer()
