"""
LLM Client Protocol

This module defines the interface every provider client implements.
The facade (llm_service.LLMService) only ever talks to this interface,
so adding a provider means subclassing LLMClient and registering it.

A client is constructed without credentials and becomes usable once
initialize() has been called with an API key:

    from transcript_analyst.gateway_client import GatewayClient

    client = GatewayClient()
    client.initialize("sk-...")
    result = await client.generate_completion("You are terse.", "Say hi")
    print(result.content)

    stream = client.generate_completion_stream("You are terse.", "Count to 3")
    async for chunk in stream:
        print(chunk, end="", flush=True)
    print(stream.usage)  # TokenUsage or None, known once exhausted
"""

import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional, Union
from dataclasses import dataclass

from .response_parser import Parsed, parse_themes

logger = logging.getLogger(__name__)


class AnalystError(Exception):
    """Base class for all errors raised by transcript_analyst."""
    pass


class LLMError(AnalystError):
    """Base class for provider-level failures."""
    pass


class LLMNotInitializedError(LLMError):
    """Raised when a completion is requested before an API key is set."""
    pass


class LLMHTTPError(LLMError):
    """Raised when a provider answers with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class LLMTransportError(LLMError):
    """Raised when the network call itself fails."""
    pass


@dataclass
class Message:
    """A chat message."""
    role: str  # "system", "user", or "assistant"
    content: str


@dataclass
class TokenUsage:
    """Token usage statistics."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add(self, other: 'TokenUsage') -> 'TokenUsage':
        """Add another TokenUsage to this one."""
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    def format(self) -> str:
        """Format as human-readable string."""
        def fmt_tokens(n: int) -> str:
            if n >= 1000:
                return f"{n/1000:.1f}K"
            return str(n)

        return (
            f"{fmt_tokens(self.prompt_tokens)} in / "
            f"{fmt_tokens(self.completion_tokens)} out"
        )

    def to_dict(self) -> dict:
        return {
            "prompt": self.prompt_tokens,
            "completion": self.completion_tokens,
            "total": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'TokenUsage':
        """Create from an OpenAI-style usage dict."""
        return cls(
            prompt_tokens=data.get('prompt_tokens') or 0,
            completion_tokens=data.get('completion_tokens') or 0,
            total_tokens=data.get('total_tokens') or 0,
        )


@dataclass
class CompletionResult:
    """Response from a single (non-streaming) completion."""
    content: str
    usage: Optional[TokenUsage] = None
    model: Optional[str] = None


# Items produced by a provider's raw stream: text chunks, plus at most
# one TokenUsage when the provider reports it in its final frame.
StreamEvent = Union[str, TokenUsage]


class CompletionStream:
    """
    One streaming generation.

    Iterating yields the non-empty text chunks in production order. The
    sequence can be consumed once. Usage reported by the provider is
    available on .usage after the stream is exhausted.
    """

    def __init__(self, events: AsyncIterator[StreamEvent]):
        self._events = events
        self._consumed = False
        self.usage: Optional[TokenUsage] = None

    def __aiter__(self) -> AsyncIterator[str]:
        if self._consumed:
            raise RuntimeError("CompletionStream can only be iterated once")
        self._consumed = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        async for event in self._events:
            if isinstance(event, TokenUsage):
                self.usage = event
            elif event:
                yield event

    async def collect(self) -> str:
        """Drain the stream and return the full text."""
        return "".join([chunk async for chunk in self])


# Fixed prompts for the convenience operations
THEMES_PROMPT = """Analyze the following transcript and extract 3-5 key themes or topics discussed.
Return ONLY a JSON array of theme names (strings), nothing else.

Transcript:
{transcript}

Example response format: ["Theme 1", "Theme 2", "Theme 3"]"""

ANALYZE_THEME_PROMPT = """Analyze the following transcript focusing on the theme: "{theme}".

Provide a detailed analysis including:
1. Key points related to this theme
2. Relevant quotes from the transcript (with exact text)
3. Insights and patterns

Format your response as clear, structured text.

Transcript:
{transcript}"""

FALLBACK_THEMES = ["Main Topics", "Key Insights", "Important Points"]


class LLMClient(ABC):
    """
    Abstract base class for provider clients.

    Required methods:
    - initialize(): Store the credential
    - is_initialized(): Whether a credential is set
    - generate_completion(): One completion (non-streaming)
    - _stream_events(): Raw stream of text chunks and optional usage
    - validate_api_key(): One minimal live call with a candidate key

    Theme extraction and theme analysis are built on top of
    generate_completion() here and shared by every provider.
    """

    #: Provider id as used in configuration ("litellm", "google")
    provider: str = ""
    default_model: str = ""

    @abstractmethod
    def initialize(self, api_key: str):
        """Store the API key used for subsequent calls."""
        pass

    @abstractmethod
    def is_initialized(self) -> bool:
        pass

    @abstractmethod
    async def generate_completion(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        model: Optional[str] = None,
    ) -> CompletionResult:
        """
        Send one completion request.

        Args:
            system_prompt: System instruction, omitted from the request when empty
            user_prompt: The user message
            model: Model override (defaults to the client's default model)

        Raises:
            LLMNotInitializedError: No API key has been set
            LLMHTTPError: Provider answered with a non-success status
            LLMTransportError: Network failure
        """
        pass

    @abstractmethod
    def _stream_events(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        model: Optional[str] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Async generator of raw stream events for one generation."""
        pass

    def generate_completion_stream(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        model: Optional[str] = None,
    ) -> CompletionStream:
        """
        Start a streaming completion.

        Nothing is sent until the returned stream is iterated; errors
        (including LLMNotInitializedError) surface from the iteration.
        """
        return CompletionStream(self._stream_events(system_prompt, user_prompt, model))

    @abstractmethod
    async def validate_api_key(self, api_key: str) -> bool:
        """Return True only if the provider accepts the key. Never raises."""
        pass

    async def generate_themes(self, transcript: str, model: Optional[str] = None) -> list[str]:
        """
        Extract 3-5 key themes from a transcript.

        Falls back to FALLBACK_THEMES when the call fails or the answer is
        not valid JSON. Never raises.
        """
        prompt = THEMES_PROMPT.format(transcript=transcript)
        try:
            result = await self.generate_completion(None, prompt, model)
        except Exception as e:
            logger.warning("Theme extraction failed: %s", e)
            return list(FALLBACK_THEMES)

        parsed = parse_themes(result.content)
        if isinstance(parsed, Parsed):
            return parsed.value
        logger.warning("Theme extraction returned unparseable output: %s", parsed.reason)
        return list(FALLBACK_THEMES)

    async def analyze_theme(self, transcript: str, theme: str, model: Optional[str] = None) -> str:
        """Analyze one theme of the transcript. Errors propagate."""
        prompt = ANALYZE_THEME_PROMPT.format(theme=theme, transcript=transcript)
        result = await self.generate_completion(None, prompt, model)
        return result.content

    async def close(self):
        """Clean up resources (HTTP clients, etc.)"""
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
