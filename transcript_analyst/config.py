"""
Transcript Analyst Configuration

Configure via:
1. Environment variables (TRANSCRIPT_ANALYST_*, plus the provider key variables)
2. Config file (transcript_analyst.config.json or .transcript_analyst/config.json)
3. Direct code configuration

Priority: Direct code > Environment variables > Config file > Defaults

A .env file in the working directory is loaded into the environment first.

Example config file (transcript_analyst.config.json):
{
    "provider": "google",
    "api_keys": {"google": "AIza..."},
    "agents": {
        "critic": {"model": "gemini-2.5-flash", "instructions": {}}
    }
}

Example environment variables:
    TRANSCRIPT_ANALYST_PROVIDER=litellm
    LITELLM_API_KEY=sk-...
    TRANSCRIPT_ANALYST_GATEWAY_URL=https://litellm.example.com/v1
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .gateway_client import DEFAULT_BASE_URL

logger = logging.getLogger(__name__)

load_dotenv()


# =============================================================================
# Provider catalogue
# =============================================================================

@dataclass(frozen=True)
class ModelOption:
    id: str
    name: str
    vendor: str


@dataclass(frozen=True)
class ProviderConfig:
    id: str
    label: str
    description: str
    api_key_label: str
    models: tuple[ModelOption, ...]
    default_model: str

    @property
    def model_ids(self) -> set[str]:
        return {m.id for m in self.models}


PROVIDER_CONFIGS: dict[str, ProviderConfig] = {
    "litellm": ProviderConfig(
        id="litellm",
        label="LiteLLM Gateway",
        description="Use a LiteLLM proxy to reach multiple commercial models with a single API surface.",
        api_key_label="LiteLLM API Key",
        models=(
            ModelOption("google/gemini-2.0-flash-001", "Gemini 2.0 Flash", "Google via LiteLLM"),
            ModelOption("google/gemini-2.5-flash", "Gemini 2.5 Flash", "Google via LiteLLM"),
            ModelOption("google/gemini-1.5-pro-002", "Gemini 1.5 Pro", "Google via LiteLLM"),
            ModelOption("azure/gpt-4o-mini", "GPT-4o Mini", "Azure OpenAI"),
            ModelOption("azure/gpt-4o", "GPT-4o", "Azure OpenAI"),
            ModelOption("azure/o1-mini", "O1 Mini", "Azure OpenAI"),
        ),
        default_model="google/gemini-2.0-flash-001",
    ),
    "google": ProviderConfig(
        id="google",
        label="Google Gemini",
        description="Connect directly to the Google Gemini API without an intermediary.",
        api_key_label="Google API Key",
        models=(
            ModelOption("gemini-2.0-flash-001", "Gemini 2.0 Flash", "Google"),
            ModelOption("gemini-2.5-flash", "Gemini 2.5 Flash", "Google"),
            ModelOption("gemini-2.5-flash-lite", "Gemini 2.5 Flash Lite", "Google"),
        ),
        default_model="gemini-2.5-flash-lite",
    ),
}

DEFAULT_PROVIDER = "litellm"

# Models that were once defaults and are reset when a config is loaded
LEGACY_PROVIDER_MODELS: dict[str, set[str]] = {
    "google": {"gemini-2.0-flash-001", "google/gemini-2.0-flash-001"},
}

# Agent roles and the methods whose system instruction can be overridden
AGENT_ROLES = ("planner", "writer", "critic", "gap_analysis")

AGENT_INSTRUCTION_METHODS: dict[str, tuple[str, ...]] = {
    "planner": ("analyze_context", "generate_metadata", "propose_objective", "generate_framework"),
    "writer": ("analyze_segment", "rewrite_segment"),
    "critic": ("evaluate_segment",),
    "gap_analysis": ("analyze_gaps",),
}

CONFIG_FILE_NAMES = (
    Path("transcript_analyst.config.json"),
    Path(".transcript_analyst") / "config.json",
)

_API_KEY_ENV = {
    "litellm": ("LITELLM_API_KEY",),
    "google": ("GOOGLE_API_KEY", "GEMINI_API_KEY"),
}


@dataclass
class AgentSettings:
    """Model and instruction overrides for one agent role."""
    model: str
    instructions: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"model": self.model, "instructions": dict(self.instructions)}


def _default_agents(provider: str) -> dict[str, AgentSettings]:
    default_model = PROVIDER_CONFIGS[provider].default_model
    return {role: AgentSettings(model=default_model) for role in AGENT_ROLES}


def _normalize_agents(agents: dict[str, AgentSettings], provider: str, force_reset: bool = False) -> dict[str, AgentSettings]:
    """
    Align per-role models with a provider.

    A model is kept only if the provider offers it and it is not a legacy
    id. Instructions are always kept.
    """
    allowed = PROVIDER_CONFIGS[provider].model_ids
    legacy = LEGACY_PROVIDER_MODELS.get(provider, set())
    default_model = PROVIDER_CONFIGS[provider].default_model

    normalized = {}
    for role in AGENT_ROLES:
        existing = agents.get(role)
        model = existing.model if existing else None
        if force_reset or not model or model not in allowed or model in legacy:
            model = default_model
        normalized[role] = AgentSettings(
            model=model,
            instructions=dict(existing.instructions) if existing else {},
        )
    return normalized


def _check_role(role: str):
    if role not in AGENT_ROLES:
        raise ValueError(f"Unknown agent role: {role}")


def _check_provider(provider: str):
    if provider not in PROVIDER_CONFIGS:
        raise ValueError(f"Unknown provider: {provider}")


@dataclass
class AnalystConfig:
    """
    Configuration for Transcript Analyst.

    Attributes:
        provider: Active LLM provider. Options:
            - "litellm" (default): OpenAI-compatible LiteLLM gateway
            - "google": Direct Google Gemini API

        api_keys: API key per provider id

        gateway_base_url: Base URL of the LiteLLM gateway (ends in /v1)

        timeout: HTTP timeout in seconds for provider calls

        agents: Model and instruction overrides per agent role

        debug_logging: Verbose logging in the CLI

        path: File the settings operations persist to, if any
    """
    # LLM configuration
    provider: str = DEFAULT_PROVIDER
    api_keys: dict[str, str] = field(default_factory=dict)
    gateway_base_url: str = DEFAULT_BASE_URL
    timeout: float = 120.0

    # Agent settings
    agents: dict[str, AgentSettings] = field(default_factory=lambda: _default_agents(DEFAULT_PROVIDER))

    # Debug settings
    debug_logging: bool = False

    path: Optional[Path] = field(default=None, repr=False, compare=False)

    @classmethod
    def from_env(cls) -> 'AnalystConfig':
        """Load configuration from environment variables."""
        config = cls()
        config._apply_env()
        return config

    @classmethod
    def from_dict(cls, data: dict) -> 'AnalystConfig':
        """
        Build a config from its dict form.

        Unknown providers fall back to the default, and agent models are
        normalized for the provider.
        """
        config = cls()

        provider = data.get("provider") or data.get("llm_provider")
        if provider in PROVIDER_CONFIGS:
            config.provider = provider

        api_keys = data.get("api_keys") or {}
        if isinstance(api_keys, dict):
            config.api_keys = {k: str(v) for k, v in api_keys.items() if v}
        # Legacy single-key shape
        if config.provider not in config.api_keys and data.get("api_key"):
            config.api_keys[config.provider] = str(data["api_key"])

        if "gateway_base_url" in data:
            config.gateway_base_url = str(data["gateway_base_url"])

        if "timeout" in data:
            config.timeout = float(data["timeout"])

        if "debug_logging" in data:
            config.debug_logging = bool(data["debug_logging"])

        agents = {}
        raw_agents = data.get("agents") or {}
        if isinstance(raw_agents, dict):
            for role, settings in raw_agents.items():
                if role not in AGENT_ROLES or not isinstance(settings, dict):
                    continue
                agents[role] = AgentSettings(
                    model=str(settings.get("model") or ""),
                    instructions=dict(settings.get("instructions") or {}),
                )
        config.agents = _normalize_agents(agents, config.provider)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'AnalystConfig':
        """Load configuration from a JSON file."""
        if not path.exists():
            config = cls()
            config.path = path
            return config

        try:
            with open(path, 'r') as f:
                data = json.load(f)
            config = cls.from_dict(data if isinstance(data, dict) else {})
        except (json.JSONDecodeError, ValueError, TypeError) as e:
            # Invalid config file, use defaults
            logger.warning("Ignoring invalid config file %s: %s", path, e)
            config = cls()

        config.path = path
        return config

    @classmethod
    def load(cls, base_path: Optional[Path] = None) -> 'AnalystConfig':
        """
        Load configuration from all sources (file, env, defaults).

        Priority: Environment variables > Config file > Defaults

        Args:
            base_path: Directory to look for config files (defaults to cwd)

        Returns:
            Merged configuration
        """
        base_path = base_path or Path.cwd()

        config = None
        for name in CONFIG_FILE_NAMES:
            config_path = base_path / name
            if config_path.exists():
                config = cls.from_file(config_path)
                break

        if config is None:
            config = cls()

        config._apply_env()
        return config

    def _apply_env(self):
        """Override fields from environment variables."""
        provider = os.getenv("TRANSCRIPT_ANALYST_PROVIDER")
        if provider:
            if provider in PROVIDER_CONFIGS:
                if provider != self.provider:
                    self.provider = provider
                    self.agents = _normalize_agents(self.agents, provider)
            else:
                logger.warning("Ignoring unknown provider in TRANSCRIPT_ANALYST_PROVIDER: %s", provider)

        for provider_id, names in _API_KEY_ENV.items():
            for name in names:
                if os.getenv(name):
                    self.api_keys[provider_id] = os.getenv(name)
                    break

        if os.getenv("TRANSCRIPT_ANALYST_GATEWAY_URL"):
            self.gateway_base_url = os.getenv("TRANSCRIPT_ANALYST_GATEWAY_URL")

        if os.getenv("TRANSCRIPT_ANALYST_MODEL"):
            for settings in self.agents.values():
                settings.model = os.getenv("TRANSCRIPT_ANALYST_MODEL")

        if os.getenv("TRANSCRIPT_ANALYST_TIMEOUT"):
            try:
                self.timeout = float(os.getenv("TRANSCRIPT_ANALYST_TIMEOUT"))
            except ValueError:
                logger.warning("Ignoring invalid TRANSCRIPT_ANALYST_TIMEOUT")

    def apply_overrides(
        self,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
    ):
        """
        Direct code configuration (e.g. CLI flags). Changes are not
        persisted to the config file.
        """
        if provider:
            _check_provider(provider)
            if provider != self.provider:
                self.provider = provider
                self.agents = _normalize_agents(self.agents, provider, force_reset=True)
        if model:
            for settings in self.agents.values():
                settings.model = model
        if api_key:
            self.api_keys[self.provider] = api_key

    def _persist(self):
        if self.path is not None:
            self.save()

    # =========================================================================
    # Settings operations
    # =========================================================================

    def get_provider(self) -> str:
        return self.provider

    def set_provider(self, provider: str):
        """Switch provider and reset every agent model to its default."""
        _check_provider(provider)
        if provider == self.provider:
            return
        self.provider = provider
        self.agents = _normalize_agents(self.agents, provider, force_reset=True)
        self._persist()

    def get_api_key(self, provider: Optional[str] = None) -> Optional[str]:
        return self.api_keys.get(provider or self.provider)

    def save_api_key(self, provider: str, api_key: str):
        _check_provider(provider)
        self.api_keys[provider] = api_key
        self._persist()

    def get_agent_model(self, role: str) -> str:
        _check_role(role)
        return self.agents[role].model

    def save_agent_model(self, role: str, model: str):
        _check_role(role)
        self.agents[role].model = model
        self._persist()

    def get_agent_instruction(self, role: str, method: str) -> Optional[str]:
        """Custom system instruction for (role, method), or None."""
        _check_role(role)
        return self.agents[role].instructions.get(method)

    def save_agent_instruction(self, role: str, method: str, instruction: str):
        _check_role(role)
        if method not in AGENT_INSTRUCTION_METHODS[role]:
            raise ValueError(f"Unknown {role} method: {method}")
        self.agents[role].instructions[method] = instruction
        self._persist()

    def reset_agent(self, role: str):
        """Restore one role's model and instructions to the provider defaults."""
        _check_role(role)
        self.agents[role] = AgentSettings(model=PROVIDER_CONFIGS[self.provider].default_model)
        self._persist()

    def reset_all_agents(self):
        self.agents = _default_agents(self.provider)
        self._persist()

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            "provider": self.provider,
            "api_keys": dict(self.api_keys),
            "gateway_base_url": self.gateway_base_url,
            "timeout": self.timeout,
            "agents": {role: settings.to_dict() for role, settings in self.agents.items()},
            "debug_logging": self.debug_logging,
        }

    def save(self, path: Optional[Path] = None):
        """Save configuration to a JSON file."""
        path = path or self.path
        if path is None:
            raise ValueError("No config path to save to")
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def export_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    def import_json(self, json_string: str) -> bool:
        """
        Replace all settings with those in a JSON document.

        Returns False (leaving the config unchanged) if the document is
        not a valid JSON object.
        """
        try:
            data = json.loads(json_string)
        except json.JSONDecodeError as e:
            logger.error("Failed to import settings: %s", e)
            return False
        if not isinstance(data, dict):
            logger.error("Failed to import settings: not a JSON object")
            return False

        try:
            imported = AnalystConfig.from_dict(data)
        except (ValueError, TypeError) as e:
            logger.error("Failed to import settings: %s", e)
            return False

        self.provider = imported.provider
        self.api_keys = imported.api_keys
        self.gateway_base_url = imported.gateway_base_url
        self.timeout = imported.timeout
        self.agents = imported.agents
        self.debug_logging = imported.debug_logging
        self._persist()
        return True
