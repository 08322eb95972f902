from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    INPUT_TOO_SHORT = "INPUT_TOO_SHORT"
    INVALID_INPUT = "INVALID_INPUT"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    CACHE_READ_CORRUPT = "CACHE_READ_CORRUPT"
    CACHE_WRITE_FAILED = "CACHE_WRITE_FAILED"
    STALE_RESULT = "STALE_RESULT"


# Shown to the UI collaborator for user-triggered failures. Never carries
# provider details.
GENERIC_FAILURE_MESSAGE = "Summary unavailable. Please try again."


class PageBriefError(Exception):
    """Raised by providers and extraction for all expected failure conditions.

    Gateways catch it at their boundary and convert it into a ``Failure``
    outcome, so callers of ``summarize`` / ``ask`` never see it raised.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
