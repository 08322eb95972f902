"""In-memory conversation history for the chat endpoint.

Each conversation keeps its question/answer turns, but prompts only ever see
the most recent ``history_turns`` of them. A conversation is deleted by a
one-shot timer armed when its first turn is stored. The timer is not renewed
by later activity, so a busy conversation still ends ``ttl`` after it began.

Mutations are serialised per conversation id through ``exclusive(id)``; distinct
ids never contend.
"""

from __future__ import annotations

import asyncio
import secrets
import time
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from pagebrief.models.conversation import ConversationState, Turn

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

log = structlog.get_logger()


class ConversationStore:
    def __init__(self, ttl_seconds: float = 30 * 60, history_turns: int = 2) -> None:
        self._ttl_seconds = ttl_seconds
        self._history_turns = history_turns
        self._conversations: dict[str, ConversationState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._expiry: dict[str, asyncio.TimerHandle] = {}

    def __len__(self) -> int:
        return len(self._conversations)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._conversations

    def get_or_create_id(self, conversation_id: str | None = None) -> str:
        """Return ``conversation_id`` unchanged, or allocate a fresh one."""
        if conversation_id:
            return conversation_id
        return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"

    def lock(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    @asynccontextmanager
    async def exclusive(self, conversation_id: str) -> AsyncIterator[None]:
        """Hold the conversation's lock.

        The lock is dropped on exit once nobody else holds or awaits it and
        the id has no stored conversation, so failed turns and unknown ids
        leave nothing behind.
        """
        self._lock_users[conversation_id] = self._lock_users.get(conversation_id, 0) + 1
        try:
            async with self.lock(conversation_id):
                yield
        finally:
            remaining = self._lock_users[conversation_id] - 1
            if remaining:
                self._lock_users[conversation_id] = remaining
            else:
                del self._lock_users[conversation_id]
                if conversation_id not in self._conversations:
                    self._locks.pop(conversation_id, None)

    def get_context(self, conversation_id: str) -> list[Turn]:
        """Return the most recent turns, oldest first. Older turns are dropped."""
        state = self._conversations.get(conversation_id)
        if state is None:
            return []
        if len(state.turns) > self._history_turns:
            state.turns = state.turns[-self._history_turns :]
        state.last_access = datetime.now(UTC)
        return list(state.turns)

    def append_turn(self, conversation_id: str, question: str, answer: str) -> None:
        now = datetime.now(UTC)
        state = self._conversations.get(conversation_id)
        if state is None:
            state = ConversationState(id=conversation_id, created_at=now, last_access=now)
            self._conversations[conversation_id] = state
            log.info("conversation_created", conversation_id=conversation_id)

        state.turns.append(Turn(question=question, answer=answer))
        state.last_access = now

        if conversation_id not in self._expiry:
            loop = asyncio.get_running_loop()
            self._expiry[conversation_id] = loop.call_later(
                self._ttl_seconds, self._expire, conversation_id
            )

    def _expire(self, conversation_id: str) -> None:
        self._expiry.pop(conversation_id, None)
        self._conversations.pop(conversation_id, None)
        if conversation_id not in self._lock_users:
            self._locks.pop(conversation_id, None)
        log.info("conversation_expired", conversation_id=conversation_id)

    def close(self) -> None:
        """Cancel all pending expiry timers. Called at shutdown."""
        for handle in self._expiry.values():
            handle.cancel()
        self._expiry.clear()
