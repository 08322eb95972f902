from __future__ import annotations

from pagebrief.models.api import (
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    SummarizeRequest,
    SummarizeResponse,
)
from pagebrief.models.cache import PageSummaryCacheEntry
from pagebrief.models.content import ContentStats, PageContent
from pagebrief.models.conversation import ConversationState, Turn
from pagebrief.models.outcomes import ChatResult, Failure, SummaryResult
from pagebrief.models.prefetch import PrefetchState, PrefetchStatus

__all__ = [
    # cache
    "PageSummaryCacheEntry",
    # content
    "PageContent",
    "ContentStats",
    # conversation
    "Turn",
    "ConversationState",
    # outcomes
    "SummaryResult",
    "ChatResult",
    "Failure",
    # prefetch
    "PrefetchStatus",
    "PrefetchState",
    # http
    "SummarizeRequest",
    "SummarizeResponse",
    "ChatRequest",
    "ChatResponse",
    "ErrorResponse",
]
