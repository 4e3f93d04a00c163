"""
LiteLLM Gateway Client

Async client for an OpenAI-compatible chat completions gateway
(LiteLLM proxy) with streaming support. One gateway key reaches many
upstream models; model ids carry a provider prefix such as
"google/gemini-2.0-flash-001" or "azure/gpt-4o".

Implements the LLMClient protocol.
"""

import json
import logging
from typing import AsyncIterator, Optional

import httpx

from .llm_client import (
    LLMClient,
    Message,
    CompletionResult,
    StreamEvent,
    TokenUsage,
    LLMHTTPError,
    LLMNotInitializedError,
    LLMTransportError,
)

logger = logging.getLogger(__name__)

# Default model - any model id the gateway routes
DEFAULT_MODEL = "google/gemini-2.0-flash-001"
DEFAULT_BASE_URL = "http://localhost:4000/v1"


__all__ = ['GatewayClient', 'DEFAULT_MODEL', 'DEFAULT_BASE_URL']


class GatewayClient(LLMClient):
    """
    Async client for a LiteLLM gateway.

    Requests are sent once; there is no automatic retry. Retrying is left
    to the caller.

    Usage:
        client = GatewayClient(base_url="https://litellm.example.com/v1")
        client.initialize("sk-...")
        result = await client.generate_completion("Be brief.", "Hello!")
        print(result.content)

        # Or with streaming:
        async for chunk in client.generate_completion_stream("Be brief.", "Hello!"):
            print(chunk, end="", flush=True)
    """

    provider = "litellm"
    default_model = DEFAULT_MODEL

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        default_model: str = DEFAULT_MODEL,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self.timeout = timeout
        self._transport = transport

        self._client: Optional[httpx.AsyncClient] = None

    @property
    def completions_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _headers(self, api_key: str) -> dict:
        """Get request headers."""
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def initialize(self, api_key: str):
        self.api_key = api_key

    def is_initialized(self) -> bool:
        return bool(self.api_key)

    def _require_key(self) -> str:
        if not self.api_key:
            raise LLMNotInitializedError(
                "LiteLLM API not initialized. Please provide an API key."
            )
        return self.api_key

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _build_messages(self, system_prompt: Optional[str], user_prompt: str) -> list[Message]:
        messages = []
        if system_prompt:
            messages.append(Message("system", system_prompt))
        messages.append(Message("user", user_prompt))
        return messages

    def _build_payload(
        self,
        messages: list[Message],
        model: Optional[str] = None,
        stream: bool = False,
    ) -> dict:
        """Build the request payload."""
        payload = {
            "model": model or self.default_model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        if stream:
            payload["stream"] = True
        return payload

    async def generate_completion(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        model: Optional[str] = None,
    ) -> CompletionResult:
        """
        Send a chat completion request (non-streaming).

        Returns:
            CompletionResult; usage is None when the gateway omits it
        """
        api_key = self._require_key()
        client = await self._get_client()
        payload = self._build_payload(self._build_messages(system_prompt, user_prompt), model)

        try:
            response = await client.post(
                self.completions_url, json=payload, headers=self._headers(api_key)
            )
        except httpx.RequestError as e:
            raise LLMTransportError(f"Network error: {e}") from e

        if not response.is_success:
            raise LLMHTTPError(
                f"LiteLLM API error: {response.status_code} - {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise LLMHTTPError(
                f"LiteLLM API returned a non-JSON body: {response.text[:200]}",
                status_code=response.status_code,
                body=response.text,
            ) from e
        if not isinstance(data, dict):
            raise LLMHTTPError(
                "LiteLLM API returned an unexpected body",
                status_code=response.status_code,
                body=response.text,
            )

        choices = data.get("choices")
        first = choices[0] if isinstance(choices, list) and choices else None
        if not isinstance(first, dict):
            first = {}
        message = first.get("message")
        content = (message.get("content") if isinstance(message, dict) else None) or ""
        usage = data.get("usage")

        return CompletionResult(
            content=content,
            usage=TokenUsage.from_dict(usage) if isinstance(usage, dict) else None,
            model=data.get("model", payload["model"]),
        )

    async def _stream_events(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        model: Optional[str] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Send a streaming chat completion request and decode the SSE body.

        Yields content deltas as they arrive, and a TokenUsage if a frame
        carries usage. Malformed frames are skipped with a warning.
        """
        api_key = self._require_key()
        client = await self._get_client()
        payload = self._build_payload(
            self._build_messages(system_prompt, user_prompt), model, stream=True
        )

        try:
            async with client.stream(
                "POST", self.completions_url, json=payload, headers=self._headers(api_key)
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise LLMHTTPError(
                        f"LiteLLM API error: {response.status_code} - {body}",
                        status_code=response.status_code,
                        body=body,
                    )

                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line or not line.startswith("data:"):
                        continue

                    data_str = line[5:].strip()  # Remove "data:" prefix

                    if data_str == "[DONE]":
                        break

                    try:
                        data = json.loads(data_str)
                    except json.JSONDecodeError:
                        logger.warning("Failed to parse SSE line: %s", line)
                        continue

                    if not isinstance(data, dict):
                        logger.warning("Unexpected SSE payload: %s", line)
                        continue

                    if "error" in data:
                        raise LLMHTTPError(
                            f"Stream error: {data['error']}",
                            status_code=response.status_code,
                            body=data_str,
                        )

                    choices = data.get("choices") or []
                    if choices:
                        choice = choices[0] if isinstance(choices, list) else None
                        delta = (choice.get("delta") or {}) if isinstance(choice, dict) else None
                        if not isinstance(delta, dict):
                            logger.warning("Unexpected SSE choice: %s", line)
                            continue
                        content = delta.get("content")
                        if content:
                            yield content

                    usage = data.get("usage")
                    if isinstance(usage, dict):
                        yield TokenUsage.from_dict(usage)

        except httpx.RequestError as e:
            raise LLMTransportError(f"Network error during stream: {e}") from e

    async def validate_api_key(self, api_key: str) -> bool:
        """Send one tiny request with the candidate key."""
        client = await self._get_client()
        payload = self._build_payload([Message("user", "Hello")], DEFAULT_MODEL)
        try:
            response = await client.post(
                self.completions_url, json=payload, headers=self._headers(api_key)
            )
        except httpx.HTTPError as e:
            logger.warning("API key validation failed: %s", e)
            return False
        return response.is_success
