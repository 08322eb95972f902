"""Client-side page session.

Wires the content gate, the summary cache and the prefetch scheduler around
one page, and forwards summarisation and chat to a pagebrief server. This is
the contract the (excluded) UI layer talks to: it gets plain dicts back, and
failures arrive as a generic ``{"error": ...}`` message without provider
details.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import httpx
import structlog

from pagebrief.cache import SummaryCache
from pagebrief.errors import GENERIC_FAILURE_MESSAGE, ErrorCode, PageBriefError
from pagebrief.gate import ContentGate, extract_main_text
from pagebrief.gateway import SummarizationGateway
from pagebrief.models.content import PageContent
from pagebrief.models.outcomes import Failure
from pagebrief.prefetch import PrefetchScheduler
from pagebrief.provider import ProxyProvider, build_http_client

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from pagebrief.config import Settings
    from pagebrief.protocols import SummaryCacheProtocol

log = structlog.get_logger()

SUMMARIZE_PAGE_ACTION = "summarizePage"
CONVERSATION_ID_HEADER = "x-conversation-id"


class HtmlPage:
    """A page snapshot that can be re-pointed on single-page-app navigation."""

    def __init__(self, url: str, html: str, title: str | None = None) -> None:
        self.url = url
        self.html = html
        self.title = title

    def navigate(self, url: str, html: str, title: str | None = None) -> None:
        self.url = url
        self.html = html
        self.title = title

    def current_url(self) -> str:
        return self.url

    def extract_text(self) -> str:
        return extract_main_text(self.html)

    def as_content(self) -> PageContent:
        return PageContent(url=self.url, html=self.html, title=self.title)


class ChatClient:
    """Posts questions to the server's ``/chat``, tracking the conversation id."""

    def __init__(self, client: httpx.AsyncClient, server_url: str) -> None:
        self._client = client
        self._endpoint = server_url.rstrip("/") + "/chat"
        self.conversation_id: str | None = None

    async def ask(self, question: str, context: str) -> str:
        headers = {}
        if self.conversation_id:
            headers[CONVERSATION_ID_HEADER] = self.conversation_id
        try:
            response = await self._client.post(
                self._endpoint,
                json={"question": question, "context": context},
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise PageBriefError(
                code=ErrorCode.PROVIDER_UNAVAILABLE,
                message=f"Network error calling chat server: {exc}",
            ) from exc

        if not response.is_success:
            raise PageBriefError(
                code=ErrorCode.PROVIDER_ERROR,
                message=f"HTTP {response.status_code} from chat server",
                status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise PageBriefError(
                code=ErrorCode.PROVIDER_ERROR,
                message="Chat server returned a non-JSON response",
                status=response.status_code,
            ) from exc
        if not isinstance(data, dict):
            raise PageBriefError(
                code=ErrorCode.PROVIDER_ERROR,
                message="Chat server returned an unexpected payload",
                status=response.status_code,
            )

        if data.get("conversationId"):
            self.conversation_id = data["conversationId"]
        return data.get("response") or "No response received."

    def reset(self) -> None:
        self.conversation_id = None


class PageSession:
    def __init__(
        self,
        settings: Settings,
        page: HtmlPage,
        cache: SummaryCacheProtocol,
        gateway: SummarizationGateway,
        chat: ChatClient,
        *,
        on_ready: Callable[[str, str], None] | None = None,
    ) -> None:
        self._page = page
        self._gateway = gateway
        self._chat = chat
        self.gate = ContentGate(settings.gate)
        self.scheduler = PrefetchScheduler(
            page,
            cache,
            gateway,
            debounce_seconds=settings.prefetch.debounce_ms / 1000,
            on_ready=on_ready,
        )

    @classmethod
    @asynccontextmanager
    async def open(
        cls,
        settings: Settings,
        page: HtmlPage,
        *,
        on_ready: Callable[[str, str], None] | None = None,
    ) -> AsyncIterator[PageSession]:
        """Open a session with its own http client and on-disk summary cache."""
        db_path = Path(settings.cache.db_path).expanduser()
        db_path.parent.mkdir(parents=True, exist_ok=True)

        async with (
            aiosqlite.connect(str(db_path)) as db,
            build_http_client(settings.provider.timeout_seconds) as http_client,
        ):
            cache = SummaryCache(db, ttl_hours=settings.cache.ttl_hours)
            await cache.init_db()
            gateway = SummarizationGateway(
                ProxyProvider(http_client, settings.client.server_url),
                settings.summarizer,
            )
            chat = ChatClient(http_client, settings.client.server_url)
            session = cls(settings, page, cache, gateway, chat, on_ready=on_ready)
            try:
                yield session
            finally:
                await session.aclose()

    async def on_page_load(self) -> bool:
        """Run the content gate and schedule a prefetch if the page qualifies."""
        eligible = self.gate.evaluate(self._page.as_content())
        if eligible:
            self.scheduler.on_eligible(self._page.current_url())
        return eligible

    async def navigate(self, url: str, html: str, title: str | None = None) -> bool:
        """Follow an in-page navigation to a new url."""
        if url != self._page.current_url():
            self._chat.reset()
        self._page.navigate(url, html, title)
        return await self.on_page_load()

    async def summarize_page(self) -> dict:
        outcome = await self.scheduler.trigger(self._page.current_url())
        if isinstance(outcome, Failure):
            log.info("summarize_page_failed", code=outcome.code)
            return {"error": GENERIC_FAILURE_MESSAGE}
        return {"summary": outcome.summary}

    async def summarize_selection(self, text: str) -> dict:
        """Summarise selected text directly; selections bypass cache and scheduler."""
        outcome = await self._gateway.summarize(text)
        if isinstance(outcome, Failure):
            log.info("summarize_selection_failed", code=outcome.code)
            return {"error": GENERIC_FAILURE_MESSAGE}
        return {"summary": outcome.summary}

    async def ask(self, question: str) -> dict:
        """Ask about the page, using its current summary as context."""
        context = self.scheduler.state.summary or ""
        try:
            answer = await self._chat.ask(question, context)
        except PageBriefError as exc:
            log.info("chat_failed", code=exc.code, status=exc.status)
            return {"error": "Error fetching AI response."}
        return {"response": answer, "conversationId": self._chat.conversation_id}

    async def handle_message(self, message: dict) -> dict:
        """Answer a ``{"action": "summarizePage", "text": ...}`` message."""
        if message.get("action") != SUMMARIZE_PAGE_ACTION:
            return {"error": f"Unknown action: {message.get('action')!r}"}
        text = message.get("text")
        if not isinstance(text, str):
            return {"error": GENERIC_FAILURE_MESSAGE}
        return await self.summarize_selection(text)

    async def aclose(self) -> None:
        await self.scheduler.aclose()
