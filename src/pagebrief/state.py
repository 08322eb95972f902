"""Application state container.

AppState is created once at server startup (inside the Starlette lifespan)
and attached to ``app.state.pagebrief``. Every request handler reads its
collaborators from it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from pagebrief.config import Settings
    from pagebrief.conversation import ConversationStore
    from pagebrief.gateway import ChatGateway, SummarizationGateway


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every request handler."""

    settings: Settings
    summarizer: SummarizationGateway
    chat: ChatGateway
    conversations: ConversationStore
    http_client: httpx.AsyncClient | None = None
