"""Typed results returned across the gateway boundary.

Gateways never raise for expected failures; they return one of these and
callers branch on ``isinstance(result, Failure)``.
"""

from __future__ import annotations

from pydantic import BaseModel

from pagebrief.errors import ErrorCode, PageBriefError


class SummaryResult(BaseModel):
    summary: str
    truncated: bool = False


class ChatResult(BaseModel):
    response: str
    conversation_id: str


class Failure(BaseModel):
    code: ErrorCode
    message: str
    status: int | None = None  # Provider HTTP status, when one was received

    @classmethod
    def from_error(cls, error: PageBriefError) -> Failure:
        return cls(code=error.code, message=error.message, status=error.status)

    @property
    def is_client_error(self) -> bool:
        return self.code in (ErrorCode.INPUT_TOO_SHORT, ErrorCode.INVALID_INPUT)
