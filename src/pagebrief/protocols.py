"""Protocol interfaces for swappable components.

The scheduler, gateways and server reference these protocols, not the concrete
implementations. This allows:
- Tests to use lightweight in-memory fakes
- The same gateway to run against the remote model (server side) or the
  proxy endpoint (client side)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pagebrief.models.outcomes import Failure, SummaryResult


class SummaryCacheProtocol(Protocol):
    """Interface for the url-keyed summary cache."""

    async def get(self, url: str) -> str | None: ...

    async def put(self, url: str, summary: str) -> None: ...


class SummarizerProtocol(Protocol):
    """Anything that turns page text into a summary outcome without raising."""

    async def summarize(self, text: str) -> SummaryResult | Failure: ...


class ProviderProtocol(Protocol):
    """Interface for a remote chat-completion style model.

    Implementations raise ``PageBriefError`` on transport or provider failure.
    """

    async def complete(self, messages: list[dict[str, str]]) -> str: ...


class SummaryBackendProtocol(Protocol):
    """Turns already-truncated text into a summary, raising PageBriefError on failure."""

    async def summarize_text(self, text: str) -> str: ...


class PageContextProtocol(Protocol):
    """The page-text collaborator: reports the live url and extracts text."""

    def current_url(self) -> str: ...

    def extract_text(self) -> str: ...
