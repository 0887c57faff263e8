"""
Mistral chat-completions client implementing the DecisionProvider protocol.

Handles HTTP communication, retries and error normalisation. Every failure
leaves this module as ProviderError so callers only deal with one type.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
from loguru import logger

from nemesis.agents.provider import DEFAULT_MAX_OUTPUT, ProviderError
from nemesis.config import Settings, get_settings


class MistralProvider:
    """HTTP client for the Mistral chat-completions API."""

    def __init__(
        self,
        api_key: str | None,
        api_url: str = "https://api.mistral.ai/v1/chat/completions",
        model: str = "mistral-large-latest",
        timeout_ms: int = 60000,
        retry_attempts: int = 3,
        backoff_base: float = 1.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the provider.

        Args:
            api_key: Bearer token; a missing key fails each request, not construction
            api_url: Chat completions endpoint
            model: Model name sent with every request
            timeout_ms: Request timeout in milliseconds
            retry_attempts: Attempts on timeouts, 5xx and network errors
            backoff_base: First retry delay in seconds, doubled per attempt
            client: Pre-built client (tests inject one with a mock transport)
        """
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.retry_attempts = max(1, retry_attempts)
        self.backoff_base = backoff_base
        self.timeout_seconds = timeout_ms / 1000.0
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_seconds),
            follow_redirects=True,
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> MistralProvider:
        settings = settings or get_settings()
        return cls(
            api_key=settings.mistral_api_key,
            api_url=settings.mistral_api_url,
            model=settings.ai_model,
            timeout_ms=settings.request_timeout_ms,
            retry_attempts=settings.retry_attempts,
        )

    @property
    def is_available(self) -> bool:
        return bool(self.api_key)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    def _payload(self, role_instructions: str, context_text: str, max_output: int) -> dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": max_output,
            "messages": [
                {"role": "system", "content": role_instructions},
                {"role": "user", "content": context_text},
            ],
        }

    async def complete(
        self,
        role_instructions: str,
        context_text: str,
        max_output: int = DEFAULT_MAX_OUTPUT,
    ) -> str:
        """
        Send one chat completion with retry logic.

        Returns:
            The first choice's message content ("" when the body has none)

        Raises:
            ProviderError: Missing key, 4xx, error body, or retries exhausted
        """
        if not self.api_key:
            raise ProviderError("Missing Mistral API key (set NEMESIS_MISTRAL_API_KEY)")

        payload = self._payload(role_instructions, context_text, max_output)
        headers = {"Authorization": f"Bearer {self.api_key}"}
        last_error: Exception | None = None

        for attempt in range(self.retry_attempts):
            try:
                response = await self.client.post(self.api_url, json=payload, headers=headers)
                response.raise_for_status()
                return self._extract_content(response)

            except httpx.TimeoutException as e:
                last_error = e
                logger.warning(
                    f"Mistral timeout on attempt {attempt + 1}/{self.retry_attempts}"
                )

            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code < 500:
                    # Don't retry on 4xx client errors (bad key, bad request)
                    logger.error(f"Mistral client error: {e.response.status_code}")
                    raise ProviderError(f"Mistral rejected request: {e.response.status_code}") from e
                logger.warning(
                    f"Mistral server error {e.response.status_code} on attempt "
                    f"{attempt + 1}/{self.retry_attempts}"
                )

            except httpx.RequestError as e:
                last_error = e
                logger.warning(
                    f"Mistral request error on attempt {attempt + 1}/{self.retry_attempts}: {e}"
                )

            if attempt < self.retry_attempts - 1:
                await asyncio.sleep(self.backoff_base * 2 ** attempt)  # 1s, 2s, 4s

        error_msg = f"Mistral request failed after {self.retry_attempts} attempts"
        logger.error(f"{error_msg}: {last_error}")
        raise ProviderError(error_msg) from last_error

    @staticmethod
    def _extract_content(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError("Mistral returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise ProviderError("Mistral returned an unexpected body")
        if data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ProviderError(f"Mistral error: {message}")
        choices = data.get("choices") or []
        if not choices:
            return ""
        if not isinstance(choices, list) or not isinstance(choices[0], dict):
            raise ProviderError("Mistral returned malformed choices")
        message = choices[0].get("message") or {}
        if not isinstance(message, dict):
            raise ProviderError("Mistral returned a malformed message")
        return _content_text(message.get("content"))


def _content_text(content: Any) -> str:
    """Flatten string or chunked (list of typed parts) message content."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            chunk.get("text") for chunk in content
            if isinstance(chunk, dict) and isinstance(chunk.get("text"), str)
        ]
        return "".join(parts)
    raise ProviderError(f"Mistral returned content of type {type(content).__name__}")
