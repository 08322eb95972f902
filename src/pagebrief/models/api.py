"""Request and response bodies for the HTTP endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class SummarizeRequest(BaseModel):
    text: str


class SummarizeResponse(BaseModel):
    summary: str


class ChatRequest(BaseModel):
    question: str = Field(min_length=1)
    context: str = ""


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response: str
    conversation_id: str = Field(serialization_alias="conversationId")


class ErrorResponse(BaseModel):
    error: str
    details: str | None = None
