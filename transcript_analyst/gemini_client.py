"""
Google Gemini Client

Direct access to the Gemini API through the google-genai SDK.
Implements the LLMClient protocol.
"""

import logging
from typing import Any, AsyncIterator, Callable, Optional

import httpx
from google import genai
from google.genai import errors, types

from .llm_client import (
    LLMClient,
    CompletionResult,
    StreamEvent,
    TokenUsage,
    LLMHTTPError,
    LLMNotInitializedError,
    LLMTransportError,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash-lite"


__all__ = ['GeminiClient', 'DEFAULT_MODEL']


def _default_client_factory(api_key: str) -> Any:
    return genai.Client(api_key=api_key)


def _usage_from_metadata(metadata: Any) -> Optional[TokenUsage]:
    if metadata is None:
        return None
    return TokenUsage(
        prompt_tokens=getattr(metadata, "prompt_token_count", None) or 0,
        completion_tokens=getattr(metadata, "candidates_token_count", None) or 0,
        total_tokens=getattr(metadata, "total_token_count", None) or 0,
    )


class GeminiClient(LLMClient):
    """
    Async client for the Google Gemini API.

    Usage:
        client = GeminiClient()
        client.initialize("AIza...")
        result = await client.generate_completion("Be brief.", "Hello!")

    client_factory builds the SDK client from an API key; tests pass a
    factory returning a fake exposing aio.models.
    """

    provider = "google"
    default_model = DEFAULT_MODEL

    def __init__(
        self,
        default_model: str = DEFAULT_MODEL,
        client_factory: Optional[Callable[[str], Any]] = None,
    ):
        self.default_model = default_model
        self._client_factory = client_factory or _default_client_factory
        self._client: Any = None

    def initialize(self, api_key: str):
        self._client = self._client_factory(api_key)

    def is_initialized(self) -> bool:
        return self._client is not None

    def _models(self):
        if self._client is None:
            raise LLMNotInitializedError(
                "Gemini API not initialized. Please provide an API key."
            )
        return self._client.aio.models

    def _config(self, system_prompt: Optional[str]) -> Optional[types.GenerateContentConfig]:
        if not system_prompt:
            return None
        return types.GenerateContentConfig(system_instruction=system_prompt)

    async def generate_completion(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        model: Optional[str] = None,
    ) -> CompletionResult:
        models = self._models()
        model = model or self.default_model

        try:
            response = await models.generate_content(
                model=model,
                contents=user_prompt,
                config=self._config(system_prompt),
            )
        except errors.APIError as e:
            raise LLMHTTPError(f"Gemini API error: {e.code} - {e}", status_code=e.code, body=str(e)) from e
        except httpx.HTTPError as e:
            raise LLMTransportError(f"Network error: {e}") from e

        return CompletionResult(
            content=response.text or "",
            usage=_usage_from_metadata(getattr(response, "usage_metadata", None)),
            model=model,
        )

    async def _stream_events(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        model: Optional[str] = None,
    ) -> AsyncIterator[StreamEvent]:
        models = self._models()

        usage_metadata = None
        try:
            stream = await models.generate_content_stream(
                model=model or self.default_model,
                contents=user_prompt,
                config=self._config(system_prompt),
            )
            async for chunk in stream:
                metadata = getattr(chunk, "usage_metadata", None)
                if metadata is not None:
                    usage_metadata = metadata
                text = chunk.text
                if text:
                    yield text
        except errors.APIError as e:
            raise LLMHTTPError(f"Gemini API error: {e.code} - {e}", status_code=e.code, body=str(e)) from e
        except httpx.HTTPError as e:
            raise LLMTransportError(f"Network error during stream: {e}") from e

        usage = _usage_from_metadata(usage_metadata)
        if usage is not None:
            yield usage

    async def validate_api_key(self, api_key: str) -> bool:
        """Try a tiny generation with a throwaway client."""
        try:
            client = self._client_factory(api_key)
            await client.aio.models.generate_content(model=self.default_model, contents="Hello")
        except Exception as e:
            logger.warning("API key validation failed: %s", e)
            return False
        return True
