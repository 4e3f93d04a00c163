"""Tests for the provider-routing facade."""

import pytest

from transcript_analyst.config import AnalystConfig
from transcript_analyst.llm_client import CompletionResult, LLMClient
from transcript_analyst.llm_service import LLMService, normalize_model


class RecordingClient(LLMClient):
    """Provider client that echoes which provider and model it was called with."""

    def __init__(self, provider: str):
        self.provider = provider
        self.api_key = None
        self.calls = []
        self.closed = False

    def initialize(self, api_key):
        self.api_key = api_key

    def is_initialized(self):
        return self.api_key is not None

    async def generate_completion(self, system_prompt, user_prompt, model=None):
        self.calls.append(model)
        return CompletionResult(content=f"{self.provider}:{model}")

    async def _stream_events(self, system_prompt, user_prompt, model=None):
        self.calls.append(model)
        yield f"{self.provider}:"
        yield str(model)

    async def validate_api_key(self, api_key):
        return api_key == "good"

    async def close(self):
        self.closed = True


@pytest.fixture
def clients():
    return {"litellm": RecordingClient("litellm"), "google": RecordingClient("google")}


class TestNormalizeModel:

    def test_strips_google_prefix_for_google(self):
        assert normalize_model("google", "google/gemini-2.5-flash") == "gemini-2.5-flash"

    def test_keeps_prefix_for_gateway(self):
        assert normalize_model("litellm", "google/gemini-2.5-flash") == "google/gemini-2.5-flash"

    def test_leaves_bare_ids_alone(self):
        assert normalize_model("google", "gemini-2.5-flash") == "gemini-2.5-flash"

    def test_empty_model_is_none(self):
        assert normalize_model("google", "") is None
        assert normalize_model("litellm", None) is None


class TestLLMService:

    @pytest.mark.asyncio
    async def test_routes_to_configured_provider(self, clients):
        config = AnalystConfig()
        service = LLMService(config, clients)

        result = await service.generate_completion(None, "Hi", "google/gemini-2.0-flash-001")
        assert result.content == "litellm:google/gemini-2.0-flash-001"

        config.provider = "google"
        result = await service.generate_completion(None, "Hi", "google/gemini-2.0-flash-001")
        assert result.content == "google:gemini-2.0-flash-001"

    @pytest.mark.asyncio
    async def test_stream_normalizes_model(self, clients):
        config = AnalystConfig(provider="google")
        service = LLMService(config, clients)

        text = await service.generate_completion_stream("sys", "Hi", "google/gemini-2.5-flash").collect()
        assert text == "google:gemini-2.5-flash"

    def test_hydrate_without_key(self, clients):
        service = LLMService(AnalystConfig(), clients)
        assert service.hydrate_from_settings() is False
        assert not service.is_initialized()

    def test_hydrate_with_stored_key(self, clients):
        config = AnalystConfig(provider="google", api_keys={"google": "AIza-stored"})
        service = LLMService(config, clients)

        assert service.hydrate_from_settings() is True
        assert clients["google"].api_key == "AIza-stored"
        assert service.is_initialized()
        assert not service.is_initialized("litellm")

    def test_initialize_named_provider(self, clients):
        service = LLMService(AnalystConfig(), clients)
        service.initialize("sk-1", "litellm")
        assert clients["litellm"].api_key == "sk-1"
        assert clients["google"].api_key is None

    @pytest.mark.asyncio
    async def test_validate_api_key_uses_named_provider(self, clients):
        service = LLMService(AnalystConfig(), clients)
        assert await service.validate_api_key("google", "good") is True
        assert await service.validate_api_key("google", "bad") is False

    def test_unknown_provider(self, clients):
        config = AnalystConfig()
        config.provider = "openai"
        service = LLMService(config, clients)
        with pytest.raises(ValueError, match="Unknown provider"):
            service.is_initialized()

    @pytest.mark.asyncio
    async def test_close_closes_every_client(self, clients):
        async with LLMService(AnalystConfig(), clients):
            pass
        assert clients["litellm"].closed and clients["google"].closed

    def test_default_clients_follow_config(self):
        config = AnalystConfig(gateway_base_url="https://gw.example.com/v1/", timeout=30.0)
        service = LLMService(config)

        gateway = service.clients["litellm"]
        assert gateway.completions_url == "https://gw.example.com/v1/chat/completions"
        assert gateway.timeout == 30.0
        assert service.clients["google"].provider == "google"
