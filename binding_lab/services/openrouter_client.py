"""OpenRouter chat completion client built on the OpenAI SDK."""

from typing import Any, Optional

import openai
import structlog
from openai import AsyncOpenAI

from binding_lab.errors import ProviderError, ProviderTimeout, RateLimited

logger = structlog.get_logger(__name__)


def _error_message(error: openai.APIStatusError) -> str:
    """Build a readable message from an OpenRouter error body.

    OpenRouter errors look like ``{"error": {"code": 429, "message": "...",
    "metadata": {...}}}``; the SDK hands us either the inner object or the
    raw body.
    """
    body: Any = error.body
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        body = body["error"]

    if isinstance(body, dict) and body.get("message"):
        message = str(body["message"])
        if body.get("code") is not None:
            message = f"[{body['code']}] {message}"
        if body.get("metadata"):
            message += f" | Details: {body['metadata']}"
        return message

    return f"HTTP {error.status_code}: {error.message}"


class OpenRouterClient:
    """Thin async client for single chat completions against one model.

    The SDK's own retries are disabled: retrying and substitution are the
    caller's decision (fallback chains), and candidate tests must hit exactly
    one model exactly once.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://openrouter.ai/api/v1",
        timeout: float = 60.0,
        referer: Optional[str] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.referer = referer
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy-load the OpenAI SDK client."""
        if self._client is None:
            headers = {"HTTP-Referer": self.referer} if self.referer else None
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
                default_headers=headers,
            )
        return self._client

    async def complete(
        self,
        model_id: str,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> str:
        """Run one chat completion and return the assistant text.

        Raises:
            RateLimited: Provider answered 429.
            ProviderTimeout: The call exceeded the configured timeout.
            ProviderError: Any other non-success status or transport failure.
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        try:
            response = await self.client.chat.completions.create(
                model=model_id,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                # Never let OpenRouter silently route to a different model.
                extra_body={
                    "provider": {"allow_fallbacks": False, "data_collection": "allow"}
                },
            )
        except openai.RateLimitError as e:
            logger.warning("provider_rate_limited", model_id=model_id)
            raise RateLimited(model_id, _error_message(e), status_code=e.status_code) from e
        except openai.APITimeoutError as e:
            logger.warning("provider_timeout", model_id=model_id, timeout=self.timeout)
            raise ProviderTimeout(
                model_id, f"Request timed out after {self.timeout:g}s"
            ) from e
        except openai.APIStatusError as e:
            message = _error_message(e)
            logger.warning(
                "provider_call_failed",
                model_id=model_id,
                status_code=e.status_code,
                error=message,
            )
            raise ProviderError(model_id, message, status_code=e.status_code) from e
        except openai.APIConnectionError as e:
            logger.warning("provider_connection_failed", model_id=model_id, error=str(e))
            raise ProviderError(model_id, f"Connection error: {e}") from e

        if not response.choices:
            raise ProviderError(model_id, "Provider returned no choices")

        content = response.choices[0].message.content
        if content is None:
            raise ProviderError(model_id, "Provider returned an empty message")
        return content

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.close()
            self._client = None
