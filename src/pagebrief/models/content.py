from __future__ import annotations

from pydantic import BaseModel


class PageContent(BaseModel):
    """Raw page snapshot handed over by the page-text collaborator."""

    url: str
    html: str
    title: str | None = None  # Falls back to <title> when not supplied


class ContentStats(BaseModel):
    """Measurements taken from a page to decide summarisation eligibility."""

    word_count: int
    paragraph_count: int
    link_density: float  # anchor text length / main region text length
    has_structure: bool
    has_metadata: bool
    heading_count: int = 0
    content_score: float = 0.0
    read_time_minutes: int = 0
