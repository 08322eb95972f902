"""Unit tests for pagebrief.provider."""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from pagebrief.config import ProviderSettings
from pagebrief.errors import ErrorCode, PageBriefError
from pagebrief.gateway import build_chat_messages, build_summary_messages
from pagebrief.provider import (
    MOCK_CHAT_RESPONSE,
    MOCK_SUMMARY,
    DevModeProvider,
    OpenAIProvider,
    ProxyProvider,
    build_http_client,
    build_provider,
)

API_URL = "https://api.openai.com/v1/chat/completions"
SERVER_URL = "http://localhost:3000"
MESSAGES = [{"role": "user", "content": "Summarise this."}]


def _completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.fixture()
def provider_settings() -> ProviderSettings:
    return ProviderSettings(api_key="test-key", model="gpt-test", max_tokens=250)


# ---------------------------------------------------------------------------
# build_http_client
# ---------------------------------------------------------------------------


class TestBuildHttpClient:
    async def test_timeout_and_user_agent(self) -> None:
        async with build_http_client(12.5) as client:
            assert client.timeout.read == 12.5
            assert client.headers["User-Agent"].startswith("pagebrief/")


# ---------------------------------------------------------------------------
# OpenAIProvider
# ---------------------------------------------------------------------------


class TestOpenAIProvider:
    async def test_success_returns_content(self, provider_settings: ProviderSettings) -> None:
        with respx.mock:
            route = respx.post(API_URL).mock(
                return_value=httpx.Response(200, json=_completion("The gist."))
            )
            async with httpx.AsyncClient() as client:
                provider = OpenAIProvider(client, provider_settings)
                assert await provider.complete(MESSAGES) == "The gist."

            request = route.calls.last.request
            assert request.headers["Authorization"] == "Bearer test-key"
            body = json.loads(request.content)
            assert body["model"] == "gpt-test"
            assert body["max_tokens"] == 250
            assert body["messages"] == MESSAGES

    async def test_error_status_carries_status(self, provider_settings: ProviderSettings) -> None:
        with respx.mock:
            respx.post(API_URL).mock(return_value=httpx.Response(500, text="upstream broke"))
            async with httpx.AsyncClient() as client:
                provider = OpenAIProvider(client, provider_settings)
                with pytest.raises(PageBriefError) as exc_info:
                    await provider.complete(MESSAGES)
        assert exc_info.value.code == ErrorCode.PROVIDER_ERROR
        assert exc_info.value.status == 500
        assert "upstream broke" in exc_info.value.message

    async def test_rate_limit_is_provider_error(self, provider_settings: ProviderSettings) -> None:
        with respx.mock:
            respx.post(API_URL).mock(return_value=httpx.Response(429))
            async with httpx.AsyncClient() as client:
                provider = OpenAIProvider(client, provider_settings)
                with pytest.raises(PageBriefError) as exc_info:
                    await provider.complete(MESSAGES)
        assert exc_info.value.status == 429

    async def test_network_error_is_unavailable(self, provider_settings: ProviderSettings) -> None:
        with respx.mock:
            respx.post(API_URL).mock(side_effect=httpx.ConnectError("Connection refused"))
            async with httpx.AsyncClient() as client:
                provider = OpenAIProvider(client, provider_settings)
                with pytest.raises(PageBriefError) as exc_info:
                    await provider.complete(MESSAGES)
        assert exc_info.value.code == ErrorCode.PROVIDER_UNAVAILABLE
        assert exc_info.value.status is None

    async def test_malformed_payload(self, provider_settings: ProviderSettings) -> None:
        with respx.mock:
            respx.post(API_URL).mock(return_value=httpx.Response(200, json={"choices": []}))
            async with httpx.AsyncClient() as client:
                provider = OpenAIProvider(client, provider_settings)
                with pytest.raises(PageBriefError) as exc_info:
                    await provider.complete(MESSAGES)
        assert exc_info.value.code == ErrorCode.PROVIDER_ERROR


# ---------------------------------------------------------------------------
# DevModeProvider
# ---------------------------------------------------------------------------


class TestDevModeProvider:
    async def test_summary_prompt_gets_mock_summary(self) -> None:
        provider = DevModeProvider()
        assert await provider.complete(build_summary_messages("text")) == MOCK_SUMMARY

    async def test_chat_prompt_gets_mock_chat_response(self) -> None:
        provider = DevModeProvider()
        messages = build_chat_messages("What?", "Some context", [])
        assert await provider.complete(messages) == MOCK_CHAT_RESPONSE

    async def test_makes_no_network_calls(self) -> None:
        with respx.mock(assert_all_called=False) as router:
            await DevModeProvider().complete(build_summary_messages("text"))
        assert router.calls.call_count == 0


class TestBuildProvider:
    async def test_dev_mode_selects_mock(self) -> None:
        async with httpx.AsyncClient() as client:
            provider = build_provider(client, ProviderSettings(dev_mode=True))
        assert isinstance(provider, DevModeProvider)

    async def test_default_selects_openai(self) -> None:
        async with httpx.AsyncClient() as client:
            provider = build_provider(client, ProviderSettings(api_key="k"))
        assert isinstance(provider, OpenAIProvider)


# ---------------------------------------------------------------------------
# ProxyProvider
# ---------------------------------------------------------------------------


class TestProxyProvider:
    async def test_posts_text_and_returns_summary(self) -> None:
        with respx.mock:
            route = respx.post(f"{SERVER_URL}/summarize").mock(
                return_value=httpx.Response(200, json={"summary": "Proxied."})
            )
            async with httpx.AsyncClient() as client:
                provider = ProxyProvider(client, SERVER_URL + "/")
                assert await provider.summarize_text("Body text.") == "Proxied."

            assert json.loads(route.calls.last.request.content) == {"text": "Body text."}

    async def test_server_error_carries_status(self) -> None:
        with respx.mock:
            respx.post(f"{SERVER_URL}/summarize").mock(
                return_value=httpx.Response(500, json={"error": "Summarization failed"})
            )
            async with httpx.AsyncClient() as client:
                provider = ProxyProvider(client, SERVER_URL)
                with pytest.raises(PageBriefError) as exc_info:
                    await provider.summarize_text("Body text.")
        assert exc_info.value.code == ErrorCode.PROVIDER_ERROR
        assert exc_info.value.status == 500

    async def test_missing_summary_field(self) -> None:
        with respx.mock:
            respx.post(f"{SERVER_URL}/summarize").mock(
                return_value=httpx.Response(200, json={"result": "x"})
            )
            async with httpx.AsyncClient() as client:
                provider = ProxyProvider(client, SERVER_URL)
                with pytest.raises(PageBriefError) as exc_info:
                    await provider.summarize_text("Body text.")
        assert exc_info.value.code == ErrorCode.PROVIDER_ERROR

    async def test_server_down_is_unavailable(self) -> None:
        with respx.mock:
            respx.post(f"{SERVER_URL}/summarize").mock(
                side_effect=httpx.ConnectError("Connection refused")
            )
            async with httpx.AsyncClient() as client:
                provider = ProxyProvider(client, SERVER_URL)
                with pytest.raises(PageBriefError) as exc_info:
                    await provider.summarize_text("Body text.")
        assert exc_info.value.code == ErrorCode.PROVIDER_UNAVAILABLE
