"""Client-side prefetch scheduler.

One ``PrefetchScheduler`` tracks one page. It coalesces bursts of eligibility
signals behind a quiet-period timer, then looks the page up in the summary
cache and, on a miss, summarises it exactly once. User-initiated ``trigger``
calls skip the quiet period, reuse a ready summary, or join the fetch that is
already in flight.

States and the allowed moves between them::

    idle ──on_eligible──▶ debouncing ──timer──▶ fetching ──ok──▶ ready
      │                       │                    │ ╲
      └───────trigger─────────┴─────trigger───────▶│  ╲─url changed─▶ stale
                                                   └──failure──▶ idle

Staleness is detected after the fact. A fetch that is in flight when the page
url changes is NOT cancelled: the network call runs to completion and its
result is discarded on arrival if the page's url no longer matches the url the
fetch was started for.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from pagebrief.errors import GENERIC_FAILURE_MESSAGE, ErrorCode, PageBriefError
from pagebrief.models.outcomes import Failure, SummaryResult
from pagebrief.models.prefetch import PrefetchState, PrefetchStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from structlog.typing import FilteringBoundLogger

    from pagebrief.protocols import (
        PageContextProtocol,
        SummarizerProtocol,
        SummaryCacheProtocol,
    )

log = structlog.get_logger()

DEFAULT_DEBOUNCE_SECONDS = 0.5

_IDLE = PrefetchStatus.IDLE
_DEBOUNCING = PrefetchStatus.DEBOUNCING
_FETCHING = PrefetchStatus.FETCHING
_READY = PrefetchStatus.READY
_STALE = PrefetchStatus.STALE

TRANSITIONS: dict[PrefetchStatus, frozenset[PrefetchStatus]] = {
    _IDLE: frozenset({_DEBOUNCING, _FETCHING}),
    _DEBOUNCING: frozenset({_DEBOUNCING, _FETCHING, _STALE, _IDLE}),
    # A different url becoming eligible or triggered detaches the in-flight fetch
    _FETCHING: frozenset({_READY, _STALE, _IDLE, _DEBOUNCING, _FETCHING}),
    _READY: frozenset({_DEBOUNCING, _FETCHING, _STALE, _IDLE}),
    _STALE: frozenset({_DEBOUNCING, _FETCHING, _IDLE}),
}


class InvalidTransition(RuntimeError):
    pass


class PrefetchScheduler:
    def __init__(
        self,
        page: PageContextProtocol,
        cache: SummaryCacheProtocol,
        summarizer: SummarizerProtocol,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        on_ready: Callable[[str, str], None] | None = None,
    ) -> None:
        self._page = page
        self._cache = cache
        self._summarizer = summarizer
        self._debounce_seconds = debounce_seconds
        self._on_ready = on_ready

        self.state = PrefetchState()
        self._timer: asyncio.TimerHandle | None = None
        # Shared by every caller waiting on the current fetch
        self._pending: asyncio.Future[SummaryResult | Failure] | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def status(self) -> PrefetchStatus:
        return self.state.status

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def on_eligible(self, url: str | None = None) -> None:
        """Record that ``url`` passed the content gate; (re)arm the quiet-period timer."""
        url = url or self._page.current_url()
        self._observe_url()

        if self.state.url == url and self.state.status in (_FETCHING, _READY):
            return

        if self.state.status is not _DEBOUNCING or self.state.url != url:
            if self.state.status is _FETCHING:
                log.info("prefetch_fetch_detached", url=self.state.url, next_url=url)
                self._pending = None
            self.state.url = url
            self.state.summary = None
            self._transition(_DEBOUNCING)

        self._arm_timer()

    async def trigger(self, url: str | None = None) -> SummaryResult | Failure:
        """User-initiated request for the page summary.

        Returns the ready summary, joins the in-flight fetch, or starts a
        fetch immediately. Never starts a second fetch for a url whose fetch
        is still pending.
        """
        url = url or self._page.current_url()
        self._observe_url()

        if (
            self.state.status is _READY
            and self.state.url == url
            and self.state.summary is not None
        ):
            log.debug("prefetch_trigger_ready", url=url)
            return SummaryResult(summary=self.state.summary)

        if self._pending is not None and self.state.url == url:
            log.debug("prefetch_trigger_joined", url=url)
            return await asyncio.shield(self._pending)

        self._cancel_timer()
        return await asyncio.shield(self._start_fetch(url))

    def reset(self) -> None:
        """Drop all state. In-flight fetches still resolve their waiters."""
        self._cancel_timer()
        self._pending = None
        self.state.url = None
        self.state.summary = None
        if self.state.status is not _IDLE:
            self._transition(_IDLE)

    async def aclose(self) -> None:
        self.reset()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(self, new: PrefetchStatus) -> None:
        old = self.state.status
        if new not in TRANSITIONS[old]:
            raise InvalidTransition(f"{old} -> {new}")
        self.state.status = new
        log.debug("prefetch_transition", url=self.state.url, old=old, new=new)

    def _observe_url(self) -> None:
        """Mark a debouncing or ready state stale once the page has navigated away."""
        if self.state.url is None or self.state.status not in (_DEBOUNCING, _READY):
            return
        if self._page.current_url() != self.state.url:
            self._cancel_timer()
            self.state.summary = None
            self._transition(_STALE)

    def _arm_timer(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce_seconds, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        if self.state.status is _DEBOUNCING and self.state.url is not None:
            self._start_fetch(self.state.url)

    def _start_fetch(self, url: str) -> asyncio.Future[SummaryResult | Failure]:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[SummaryResult | Failure] = loop.create_future()
        self._pending = future
        self.state.url = url
        self.state.summary = None
        self._transition(_FETCHING)

        task = loop.create_task(self._run_fetch(url, future))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return future

    async def _run_fetch(self, url: str, future: asyncio.Future[SummaryResult | Failure]) -> None:
        fetch_log = log.bind(url=url)
        try:
            outcome = await self._fetch(url, fetch_log)
        except asyncio.CancelledError:
            if not future.done():
                future.cancel()
            raise
        except Exception:
            fetch_log.error("prefetch_unexpected_error", exc_info=True)
            outcome = Failure(code=ErrorCode.PROVIDER_ERROR, message=GENERIC_FAILURE_MESSAGE)

        owned = self._pending is future
        if owned:
            self._pending = None

        notify = False
        if isinstance(outcome, Failure):
            if owned:
                self._transition(_STALE if outcome.code is ErrorCode.STALE_RESULT else _IDLE)
        elif owned:
            self.state.summary = outcome.summary
            self._transition(_READY)
            notify = self._on_ready is not None

        # Waiters are resolved before the collaborator callback runs
        if not future.done():
            future.set_result(outcome)

        if notify:
            try:
                self._on_ready(url, outcome.summary)
            except Exception:
                fetch_log.error("prefetch_on_ready_failed", exc_info=True)

    async def _fetch(self, url: str, fetch_log: FilteringBoundLogger) -> SummaryResult | Failure:
        cached = await self._cache.get(url)
        if cached is not None:
            fetch_log.info("prefetch_cache_hit")
            return self._guard_stale(url, SummaryResult(summary=cached), fetch_log)

        try:
            text = self._page.extract_text()
        except PageBriefError as exc:
            fetch_log.info("prefetch_extraction_failed", code=exc.code, message=exc.message)
            return Failure.from_error(exc)

        fetch_log.info("prefetch_fetch_started", length=len(text))
        outcome = await self._summarizer.summarize(text)
        if isinstance(outcome, Failure):
            fetch_log.warning("prefetch_fetch_failed", code=outcome.code, status=outcome.status)
            return outcome

        # The call was not cancelled on navigation, so check now
        guarded = self._guard_stale(url, outcome, fetch_log)
        if isinstance(guarded, Failure):
            return guarded

        await self._cache.put(url, outcome.summary)
        fetch_log.info("prefetch_fetch_complete", truncated=outcome.truncated)
        return outcome

    def _guard_stale(
        self, url: str, outcome: SummaryResult, fetch_log: FilteringBoundLogger
    ) -> SummaryResult | Failure:
        """Discard ``outcome`` if the page has navigated away from ``url``."""
        current = self._page.current_url()
        if current != url:
            fetch_log.info("prefetch_result_discarded", current_url=current)
            return Failure(
                code=ErrorCode.STALE_RESULT,
                message="Page changed before the summary arrived",
            )
        return outcome
