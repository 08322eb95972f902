"""Remote model providers.

All network I/O for model calls goes through a provider instance shared
across requests. Providers receive an ``httpx.AsyncClient`` via constructor
injection; the server lifespan (or client session) owns the client lifecycle.

Providers raise ``PageBriefError`` on failure. They never decide what the
caller sees; gateways translate errors into ``Failure`` outcomes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import structlog

from pagebrief.errors import ErrorCode, PageBriefError

if TYPE_CHECKING:
    from pagebrief.config import ProviderSettings

log = structlog.get_logger()

MOCK_SUMMARY = (
    "This is a mock summary for development. First paragraph with key points. "
    "Second paragraph with supporting details."
)
MOCK_CHAT_RESPONSE = "Mock response to: Using dev mode to test UI interactions without API calls."


def build_http_client(timeout_seconds: float = 30.0) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_seconds),
        headers={"User-Agent": "pagebrief/1.0"},
        limits=httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        ),
    )


def _error_from_response(response: httpx.Response, target: str) -> PageBriefError:
    return PageBriefError(
        code=ErrorCode.PROVIDER_ERROR,
        message=f"HTTP {response.status_code} from {target}: {response.text[:500]}",
        status=response.status_code,
    )


def _unavailable(exc: httpx.HTTPError, target: str) -> PageBriefError:
    return PageBriefError(
        code=ErrorCode.PROVIDER_UNAVAILABLE,
        message=f"Network error calling {target}: {exc}",
    )


class OpenAIProvider:
    """OpenAI-compatible chat completions provider."""

    def __init__(self, client: httpx.AsyncClient, settings: ProviderSettings) -> None:
        self._client = client
        self._settings = settings

    async def complete(self, messages: list[dict[str, str]]) -> str:
        s = self._settings
        log.info("provider_call_started", model=s.model, message_count=len(messages))
        try:
            response = await self._client.post(
                s.api_url,
                headers={"Authorization": f"Bearer {s.api_key}"},
                json={
                    "model": s.model,
                    "messages": messages,
                    "temperature": s.temperature,
                    "max_tokens": s.max_tokens,
                },
            )
        except httpx.HTTPError as exc:
            log.warning("provider_call_failed", reason="transport", error=str(exc))
            raise _unavailable(exc, "model provider") from exc

        if not response.is_success:
            log.warning(
                "provider_call_failed",
                reason="status",
                status_code=response.status_code,
            )
            raise _error_from_response(response, "model provider")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise PageBriefError(
                code=ErrorCode.PROVIDER_ERROR,
                message="Malformed completion payload from model provider",
                status=response.status_code,
            ) from exc

        log.info("provider_call_complete", content_length=len(content))
        return content


class DevModeProvider:
    """Canned responses for UI work without API calls.

    A conversation ends with a user turn, so that is answered as chat;
    anything else is treated as a summarisation request.
    """

    async def complete(self, messages: list[dict[str, str]]) -> str:
        log.info("provider_dev_mode_response", message_count=len(messages))
        if messages and messages[-1]["role"] == "user" and len(messages) > 2:
            return MOCK_CHAT_RESPONSE
        return MOCK_SUMMARY


class ProxyProvider:
    """Forwards summarisation text to a pagebrief server's ``/summarize``.

    Used on the client side, where the remote model sits behind the proxy.
    """

    def __init__(self, client: httpx.AsyncClient, server_url: str) -> None:
        self._client = client
        self._endpoint = server_url.rstrip("/") + "/summarize"

    async def summarize_text(self, text: str) -> str:
        try:
            response = await self._client.post(self._endpoint, json={"text": text})
        except httpx.HTTPError as exc:
            log.warning("proxy_call_failed", reason="transport", error=str(exc))
            raise _unavailable(exc, "summary server") from exc

        if not response.is_success:
            log.warning("proxy_call_failed", reason="status", status_code=response.status_code)
            raise _error_from_response(response, "summary server")

        try:
            summary = response.json()["summary"]
        except (ValueError, KeyError, TypeError) as exc:
            raise PageBriefError(
                code=ErrorCode.PROVIDER_ERROR,
                message="No summary found in the server response",
                status=response.status_code,
            ) from exc
        if not isinstance(summary, str):
            raise PageBriefError(
                code=ErrorCode.PROVIDER_ERROR,
                message="No summary found in the server response",
                status=response.status_code,
            )
        return summary


def build_provider(
    client: httpx.AsyncClient, settings: ProviderSettings
) -> OpenAIProvider | DevModeProvider:
    if settings.dev_mode:
        log.info("provider_dev_mode_enabled")
        return DevModeProvider()
    return OpenAIProvider(client, settings)
