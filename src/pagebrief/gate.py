"""Content eligibility gate.

Decides whether a page looks like an article worth summarising before any
prefetch is scheduled. Pure apart from a single-slot memo: the verdict for the
current url is reused for the rest of the session and dropped as soon as a
different url is evaluated. In-page mutations do not trigger re-evaluation.
"""

from __future__ import annotations

import math
import re
from typing import TYPE_CHECKING

import structlog
from bs4 import BeautifulSoup, ParserRejectedMarkup

from pagebrief.errors import ErrorCode, PageBriefError
from pagebrief.models.content import ContentStats, PageContent

if TYPE_CHECKING:
    from bs4 import Tag

    from pagebrief.config import GateSettings

log = structlog.get_logger()

UNSUPPORTED_URL_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"^about:"),
    re.compile(r"^chrome:"),
    re.compile(r"^chrome-extension:"),
    re.compile(r"^moz-extension:"),
    re.compile(r"^file:"),
    re.compile(r"^view-source:"),
    re.compile(r"^https://([^/]+\.)?google\.[^/]+/search"),
]

_NOISE_TAGS = ["script", "style", "noscript", "template"]
_WORDS_PER_MINUTE = 200


def is_unsupported_url(url: str) -> bool:
    """Return True for browser-internal pages and search result pages."""
    return any(pattern.search(url) for pattern in UNSUPPORTED_URL_PATTERNS)


def estimate_read_time(word_count: int) -> int:
    return math.ceil(word_count / _WORDS_PER_MINUTE)


def parse_html(html: str) -> BeautifulSoup:
    """Parse markup and strip non-content tags.

    Raises PageBriefError(EXTRACTION_FAILED) if the parser rejects the markup.
    """
    try:
        soup = BeautifulSoup(html, "html.parser")
    except ParserRejectedMarkup as exc:
        raise PageBriefError(
            code=ErrorCode.EXTRACTION_FAILED,
            message=f"Could not parse page markup: {exc}",
        ) from exc

    for tag in soup(_NOISE_TAGS):
        tag.decompose()
    return soup


def main_region(soup: BeautifulSoup) -> Tag | BeautifulSoup:
    for selector in ("article", "main", '[role="main"]'):
        region = soup.select_one(selector)
        if region is not None:
            return region
    return soup.body or soup


def extract_main_text(html: str) -> str:
    """Return the readable text of the page's main content region."""
    text = main_region(parse_html(html)).get_text(" ", strip=True)
    if not text:
        raise PageBriefError(
            code=ErrorCode.EXTRACTION_FAILED,
            message="Page has no readable text",
        )
    return text


def measure(
    soup: BeautifulSoup,
    title: str | None = None,
    *,
    min_paragraph_count: int = 2,
    min_title_length: int = 10,
) -> ContentStats:
    """Compute the eligibility measurements for a parsed page.

    Raises PageBriefError(EXTRACTION_FAILED) when the page yields no text.
    """
    region = main_region(soup)
    text = region.get_text(" ", strip=True)
    if not text:
        raise PageBriefError(
            code=ErrorCode.EXTRACTION_FAILED,
            message="Page has no readable text",
        )

    word_count = len(text.split())
    paragraph_count = len(region.find_all("p"))
    heading_count = len(region.find_all(re.compile(r"^h[1-6]$")))

    total_text = len(region.get_text())
    link_text = sum(len(anchor.get_text()) for anchor in region.find_all("a"))
    link_density = link_text / total_text if total_text else 1.0

    has_heading = soup.find(["h1", "h2"]) is not None
    has_structure = soup.find("article") is not None or (
        has_heading and len(soup.find_all("p")) >= min_paragraph_count
    )

    if title is None:
        title = soup.title.get_text(strip=True) if soup.title else ""
    has_description = soup.find("meta", attrs={"name": "description"}) is not None
    has_metadata = len(title) > min_title_length and (has_description or has_heading)

    content_score = len(text) / 100 + paragraph_count * 5 + heading_count * 10

    return ContentStats(
        word_count=word_count,
        paragraph_count=paragraph_count,
        link_density=round(link_density, 4),
        has_structure=has_structure,
        has_metadata=has_metadata,
        heading_count=heading_count,
        content_score=round(content_score, 2),
        read_time_minutes=estimate_read_time(word_count),
    )


class ContentGate:
    """Eligibility evaluator with a per-session memo keyed by url."""

    def __init__(self, settings: GateSettings) -> None:
        self._settings = settings
        self._memo_url: str | None = None
        self._memo_result = False

    def evaluate(self, page: PageContent) -> bool:
        if self._memo_url == page.url:
            return self._memo_result

        result = self._evaluate_uncached(page)
        self._memo_url = page.url
        self._memo_result = result
        return result

    def invalidate(self) -> None:
        self._memo_url = None
        self._memo_result = False

    def is_eligible(self, stats: ContentStats) -> bool:
        s = self._settings
        return (
            stats.word_count >= s.min_word_count
            and stats.paragraph_count >= s.min_paragraph_count
            and stats.link_density <= s.max_link_density
            and stats.has_structure
            and stats.has_metadata
        )

    def _evaluate_uncached(self, page: PageContent) -> bool:
        gate_log = log.bind(url=page.url)

        if is_unsupported_url(page.url):
            gate_log.debug("gate_rejected", reason="unsupported_url")
            return False

        try:
            soup = parse_html(page.html)
            if soup.select_one('form[role="search"]') is not None:
                gate_log.debug("gate_rejected", reason="search_form")
                return False
            stats = measure(
                soup,
                page.title,
                min_paragraph_count=self._settings.min_paragraph_count,
                min_title_length=self._settings.min_title_length,
            )
        except PageBriefError as exc:
            gate_log.info("gate_extraction_failed", code=exc.code, message=exc.message)
            return False

        eligible = self.is_eligible(stats)
        gate_log.info("gate_evaluated", eligible=eligible, **stats.model_dump())
        return eligible
