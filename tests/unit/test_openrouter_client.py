"""Unit tests for the OpenRouter client error mapping."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from binding_lab.errors import ProviderError, ProviderTimeout, RateLimited
from binding_lab.services.openrouter_client import OpenRouterClient

URL = "https://openrouter.ai/api/v1/chat/completions"


def _request() -> httpx.Request:
    return httpx.Request("POST", URL)


def _status_error(cls, status: int, body):
    response = httpx.Response(status, request=_request())
    return cls("error", response=response, body=body)


def _completion(content):
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


@pytest.fixture
def client_with_sdk():
    client = OpenRouterClient(api_key="sk-or-test", timeout=30)
    sdk = MagicMock()
    sdk.chat.completions.create = AsyncMock()
    client._client = sdk
    return client, sdk.chat.completions.create


class TestComplete:
    """Tests for OpenRouterClient.complete."""

    @pytest.mark.asyncio
    async def test_returns_message_content(self, client_with_sdk):
        client, create = client_with_sdk
        create.return_value = _completion("¿Cómo estás?")

        result = await client.complete("openai/gpt-4o", "Translate.", "How are you?", temperature=0.3, max_tokens=99)

        assert result == "¿Cómo estás?"
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "openai/gpt-4o"
        assert kwargs["messages"] == [
            {"role": "system", "content": "Translate."},
            {"role": "user", "content": "How are you?"},
        ]
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 99
        assert kwargs["extra_body"] == {
            "provider": {"allow_fallbacks": False, "data_collection": "allow"}
        }

    @pytest.mark.asyncio
    async def test_system_prompt_omitted_when_empty(self, client_with_sdk):
        client, create = client_with_sdk
        create.return_value = _completion("ok")

        await client.complete("openai/gpt-4o", "", "Hi")

        assert create.call_args.kwargs["messages"] == [{"role": "user", "content": "Hi"}]

    @pytest.mark.asyncio
    async def test_rate_limit_mapped(self, client_with_sdk):
        client, create = client_with_sdk
        create.side_effect = _status_error(
            openai.RateLimitError, 429, {"code": 429, "message": "Rate limit exceeded"}
        )

        with pytest.raises(RateLimited) as exc_info:
            await client.complete("openai/gpt-4o", "", "Hi")

        assert exc_info.value.status_code == 429
        assert exc_info.value.message == "[429] Rate limit exceeded"
        assert exc_info.value.model_id == "openai/gpt-4o"

    @pytest.mark.asyncio
    async def test_status_error_message_includes_metadata(self, client_with_sdk):
        client, create = client_with_sdk
        create.side_effect = _status_error(
            openai.APIStatusError,
            502,
            {"error": {"code": 502, "message": "Provider down", "metadata": {"provider_name": "X"}}},
        )

        with pytest.raises(ProviderError) as exc_info:
            await client.complete("openai/gpt-4o", "", "Hi")

        error = exc_info.value
        assert not isinstance(error, RateLimited)
        assert error.status_code == 502
        assert error.message == "[502] Provider down | Details: {'provider_name': 'X'}"

    @pytest.mark.asyncio
    async def test_status_error_without_body(self, client_with_sdk):
        client, create = client_with_sdk
        create.side_effect = _status_error(openai.InternalServerError, 500, None)

        with pytest.raises(ProviderError) as exc_info:
            await client.complete("openai/gpt-4o", "", "Hi")

        assert exc_info.value.message.startswith("HTTP 500")

    @pytest.mark.asyncio
    async def test_timeout_mapped(self, client_with_sdk):
        client, create = client_with_sdk
        create.side_effect = openai.APITimeoutError(request=_request())

        with pytest.raises(ProviderTimeout, match="timed out after 30s"):
            await client.complete("openai/gpt-4o", "", "Hi")

    @pytest.mark.asyncio
    async def test_connection_error_mapped(self, client_with_sdk):
        client, create = client_with_sdk
        create.side_effect = openai.APIConnectionError(request=_request())

        with pytest.raises(ProviderError, match="Connection error"):
            await client.complete("openai/gpt-4o", "", "Hi")

    @pytest.mark.asyncio
    async def test_no_choices_is_provider_error(self, client_with_sdk):
        client, create = client_with_sdk
        create.return_value = SimpleNamespace(choices=[])

        with pytest.raises(ProviderError, match="no choices"):
            await client.complete("openai/gpt-4o", "", "Hi")

    @pytest.mark.asyncio
    async def test_null_content_is_provider_error(self, client_with_sdk):
        client, create = client_with_sdk
        create.return_value = _completion(None)

        with pytest.raises(ProviderError, match="empty message"):
            await client.complete("openai/gpt-4o", "", "Hi")


class TestClientConstruction:
    def test_sdk_client_built_lazily_without_retries(self):
        client = OpenRouterClient(api_key="sk-or-test", referer="https://example.com")
        sdk = client.client

        assert sdk.max_retries == 0
        assert client.client is sdk

    @pytest.mark.asyncio
    async def test_close_resets_client(self):
        client = OpenRouterClient(api_key="sk-or-test")
        sdk = MagicMock()
        sdk.close = AsyncMock()
        client._client = sdk

        await client.close()

        sdk.close.assert_awaited_once()
        assert client._client is None
