"""Gateways between the coordination logic and the remote model.

Both gateways share one contract: they never raise for expected failures.
Transport and provider errors come back as ``Failure`` outcomes that the
caller must branch on.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from pagebrief.errors import ErrorCode, PageBriefError
from pagebrief.models.outcomes import ChatResult, Failure, SummaryResult
from pagebrief.truncation import truncate_text

if TYPE_CHECKING:
    from pagebrief.config import SummarizerSettings
    from pagebrief.conversation import ConversationStore
    from pagebrief.models.conversation import Turn
    from pagebrief.protocols import ProviderProtocol, SummaryBackendProtocol

log = structlog.get_logger()

SUMMARY_SYSTEM_PROMPT = (
    "You are a highly efficient summarizer. Create concise, informative summaries "
    "that capture the main points.\n"
    "Important: Wrap key phrases, important concepts, and critical points in <mark> tags. "
    'For example: "The study found that <mark>remote work increased productivity '
    'significantly</mark>."\n'
    "Use marks sparingly - only highlight the most important 3-4 pieces of information "
    "per paragraph."
)

CHAT_SYSTEM_PROMPT = (
    "You are a knowledgeable assistant. Answer questions directly and accurately based on "
    "both the article context and general knowledge when needed. Keep responses concise "
    "and informative."
)

CONTEXT_ACKNOWLEDGEMENT = "I'll keep the context in mind. What would you like to know?"


def build_summary_messages(text: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": f"Please summarize this text in 1-2 short paragraphs:\n\n{text}",
        },
    ]


def build_chat_messages(question: str, context: str, history: list[Turn]) -> list[dict[str, str]]:
    """Assemble the chat prompt.

    The page context is sent once, as a priming exchange, only when the
    conversation has no prior turns. Later prompts carry just the bounded
    history and the new question.
    """
    messages = [{"role": "system", "content": CHAT_SYSTEM_PROMPT}]
    if not history:
        messages.append(
            {
                "role": "user",
                "content": f"Context: {context}\nRemember this context for our conversation.",
            }
        )
        messages.append({"role": "assistant", "content": CONTEXT_ACKNOWLEDGEMENT})
    for turn in history:
        messages.append({"role": "user", "content": turn.question})
        messages.append({"role": "assistant", "content": turn.answer})
    messages.append({"role": "user", "content": question})
    return messages


class ModelSummaryBackend:
    """Summarises by prompting a chat-completion provider directly."""

    def __init__(self, provider: ProviderProtocol) -> None:
        self._provider = provider

    async def summarize_text(self, text: str) -> str:
        return await self._provider.complete(build_summary_messages(text))


class SummarizationGateway:
    """Length-checks and truncates text, then forwards it to a summary backend."""

    def __init__(self, backend: SummaryBackendProtocol, settings: SummarizerSettings) -> None:
        self._backend = backend
        self._settings = settings

    async def summarize(self, text: str) -> SummaryResult | Failure:
        if len(text) < self._settings.min_input_chars:
            log.info("summarize_rejected", reason="input_too_short", length=len(text))
            return Failure(
                code=ErrorCode.INPUT_TOO_SHORT,
                message="Text too short for summarization",
            )

        truncated = truncate_text(text, self._settings.max_input_chars)
        was_truncated = len(truncated) < len(text)
        if was_truncated:
            log.debug("summarize_input_truncated", original=len(text), sent=len(truncated))

        try:
            summary = await self._backend.summarize_text(truncated)
        except PageBriefError as exc:
            log.warning("summarize_failed", code=exc.code, status=exc.status, message=exc.message)
            return Failure.from_error(exc)

        return SummaryResult(summary=summary, truncated=was_truncated)


class ChatGateway:
    """Question answering over a page, with bounded per-conversation history."""

    def __init__(self, provider: ProviderProtocol, store: ConversationStore) -> None:
        self._provider = provider
        self._store = store

    async def ask(
        self, question: str, context: str, conversation_id: str | None = None
    ) -> ChatResult | Failure:
        conversation_id = self._store.get_or_create_id(conversation_id)
        chat_log = log.bind(conversation_id=conversation_id)

        # The whole read-modify-write runs under the conversation's lock so
        # concurrent turns for one id cannot lose each other's updates.
        async with self._store.exclusive(conversation_id):
            history = self._store.get_context(conversation_id)
            messages = build_chat_messages(question, context, history)
            chat_log.info("chat_prompt_built", prior_turns=len(history), primed=not history)

            try:
                answer = await self._provider.complete(messages)
            except PageBriefError as exc:
                chat_log.warning("chat_failed", code=exc.code, status=exc.status)
                return Failure.from_error(exc)

            self._store.append_turn(conversation_id, question, answer)

        return ChatResult(response=answer, conversation_id=conversation_id)
