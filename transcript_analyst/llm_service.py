"""
LLM Service Facade

Routes every completion to the provider selected in configuration, so
agents never know which upstream API they are talking to.

Usage:
    config = AnalystConfig.load()
    llm = LLMService(config)
    llm.hydrate_from_settings()

    result = await llm.generate_completion("You are terse.", "Say hi")
    async for chunk in llm.generate_completion_stream(None, "Count to 3"):
        print(chunk, end="")
"""

import logging
from typing import Optional

from .config import AnalystConfig
from .llm_client import LLMClient, CompletionResult, CompletionStream
from .gateway_client import GatewayClient
from .gemini_client import GeminiClient

logger = logging.getLogger(__name__)


def normalize_model(provider: str, model: Optional[str]) -> Optional[str]:
    """Remove the google/ prefix for the direct Google provider."""
    if not model:
        return None
    if provider == "google" and model.startswith("google/"):
        return model[len("google/"):]
    return model


class LLMService:
    """
    Provider-agnostic completion surface.

    One client per provider is kept for the lifetime of the service; the
    active one is resolved from config.provider on every call, so a
    provider switch takes effect immediately.
    """

    def __init__(self, config: AnalystConfig, clients: Optional[dict[str, LLMClient]] = None):
        self.config = config
        if clients is None:
            clients = {
                "litellm": GatewayClient(base_url=config.gateway_base_url, timeout=config.timeout),
                "google": GeminiClient(),
            }
        self.clients = clients

    def _resolve_provider(self, provider: Optional[str] = None) -> str:
        return provider or self.config.get_provider()

    def _client(self, provider: Optional[str] = None) -> LLMClient:
        resolved = self._resolve_provider(provider)
        try:
            return self.clients[resolved]
        except KeyError:
            raise ValueError(f"Unknown provider: {resolved}") from None

    def initialize(self, api_key: str, provider: Optional[str] = None):
        self._client(provider).initialize(api_key)

    def hydrate_from_settings(self) -> bool:
        """Initialize the configured provider from its stored key, if any."""
        provider = self.config.get_provider()
        api_key = self.config.get_api_key(provider)
        if not api_key:
            logger.debug("No stored API key for provider %s", provider)
            return False
        self.initialize(api_key, provider)
        return True

    def is_initialized(self, provider: Optional[str] = None) -> bool:
        return self._client(provider).is_initialized()

    async def validate_api_key(self, provider: str, api_key: str) -> bool:
        return await self._client(provider).validate_api_key(api_key)

    async def generate_completion(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        model: Optional[str] = None,
    ) -> CompletionResult:
        provider = self._resolve_provider()
        return await self._client(provider).generate_completion(
            system_prompt, user_prompt, normalize_model(provider, model)
        )

    def generate_completion_stream(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        model: Optional[str] = None,
    ) -> CompletionStream:
        provider = self._resolve_provider()
        return self._client(provider).generate_completion_stream(
            system_prompt, user_prompt, normalize_model(provider, model)
        )

    async def generate_themes(self, transcript: str, model: Optional[str] = None) -> list[str]:
        provider = self._resolve_provider()
        return await self._client(provider).generate_themes(transcript, normalize_model(provider, model))

    async def analyze_theme(self, transcript: str, theme: str, model: Optional[str] = None) -> str:
        provider = self._resolve_provider()
        return await self._client(provider).analyze_theme(transcript, theme, normalize_model(provider, model))

    async def close(self):
        for client in self.clients.values():
            await client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
