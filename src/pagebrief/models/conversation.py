from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class Turn(BaseModel):
    question: str
    answer: str


class ConversationState(BaseModel):
    """Turn history for one conversation id.

    ``turns`` may briefly hold more than the context window between an append
    and the next read; ``ConversationStore.get_context`` truncates on read.
    """

    id: str
    turns: list[Turn] = Field(default_factory=list)
    created_at: datetime
    last_access: datetime
