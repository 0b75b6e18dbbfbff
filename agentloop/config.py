"""Configuration management for the orchestrator."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINTS = {
    "ollama": "http://localhost:11434/api/generate",
    "openai": "https://api.openai.com/v1/chat/completions",
    "anthropic": "https://api.anthropic.com/v1/messages",
}


@dataclass(frozen=True)
class ProviderConfig:
    """Connection and generation settings for one language-model backend."""

    name: str
    family: str
    endpoint: str
    model: str
    api_key: Optional[str] = None
    max_tokens: int = 2048
    temperature: float = 0.2
    timeout: float = 120.0
    max_concurrent: int = 8
    api_version: Optional[str] = None

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any], defaults: Optional[ProviderConfig] = None) -> ProviderConfig:
        family = data.get("family") or (defaults.family if defaults else name)
        base = defaults or cls(
            name=name,
            family=family,
            endpoint=DEFAULT_ENDPOINTS.get(family, ""),
            model="",
        )
        return replace(
            base,
            name=name,
            family=family,
            endpoint=data.get("endpoint", base.endpoint),
            model=data.get("model", base.model),
            api_key=data.get("apiKey", data.get("api_key", base.api_key)),
            max_tokens=int(data.get("maxTokens", data.get("max_tokens", base.max_tokens))),
            temperature=float(data.get("temperature", base.temperature)),
            timeout=float(data.get("timeout", base.timeout)),
            max_concurrent=int(data.get("max_concurrent", base.max_concurrent)),
            api_version=data.get("api_version", base.api_version),
        )


@dataclass(frozen=True)
class AzureOpenAIConfig:
    """Azure OpenAI service configuration."""

    api_key: str
    endpoint: str
    api_version: str = "2024-02-15-preview"
    deployment_name: str = "gpt-4"
    max_concurrent: int = 50

    def to_provider(self, timeout: float) -> ProviderConfig:
        return ProviderConfig(
            name="azure_openai",
            family="azure_openai",
            endpoint=self.endpoint,
            model=self.deployment_name,
            api_key=self.api_key,
            timeout=timeout,
            max_concurrent=self.max_concurrent,
            api_version=self.api_version,
        )


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment variables."""

    providers: Dict[str, ProviderConfig] = field(default_factory=dict)
    default_provider: str = "ollama"
    default_model: str = "codellama"
    agent_models: Dict[str, str] = field(default_factory=dict)
    agent_providers: Dict[str, str] = field(default_factory=dict)
    max_iterations: int = 20
    max_delegation_depth: int = 5
    command_timeout: float = 60.0
    project_root: Path = field(default_factory=Path.cwd)
    agents_dir: Optional[Path] = None
    log_level: str = "INFO"
    environment: str = "development"

    def provider_for(self, agent_name: str) -> str:
        return self.agent_providers.get(agent_name, self.default_provider)

    def model_for(self, agent_name: str) -> Optional[str]:
        return self.agent_models.get(agent_name)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables."""
        timeout = float(os.getenv("AGENTLOOP_PROVIDER_TIMEOUT", "120"))
        default_model = os.getenv("AGENTLOOP_DEFAULT_MODEL", "codellama")

        providers: Dict[str, ProviderConfig] = {
            "ollama": ProviderConfig(
                name="ollama",
                family="ollama",
                endpoint=os.getenv("OLLAMA_ENDPOINT", DEFAULT_ENDPOINTS["ollama"]),
                model=default_model,
                timeout=timeout,
            ),
        }

        openai_key = os.getenv("OPENAI_API_KEY")
        if openai_key:
            providers["openai"] = ProviderConfig(
                name="openai",
                family="openai",
                endpoint=os.getenv("OPENAI_ENDPOINT", DEFAULT_ENDPOINTS["openai"]),
                model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
                api_key=openai_key,
                timeout=timeout,
            )

        anthropic_key = os.getenv("ANTHROPIC_API_KEY")
        if anthropic_key:
            providers["anthropic"] = ProviderConfig(
                name="anthropic",
                family="anthropic",
                endpoint=os.getenv("ANTHROPIC_ENDPOINT", DEFAULT_ENDPOINTS["anthropic"]),
                model=os.getenv("ANTHROPIC_MODEL", "claude-3-5-sonnet-latest"),
                api_key=anthropic_key,
                timeout=timeout,
            )

        azure_key = os.getenv("AZURE_OPENAI_KEY")
        azure_endpoint = os.getenv("AZURE_OPENAI_ENDPOINT")
        if azure_key and azure_endpoint:
            azure_config = AzureOpenAIConfig(
                api_key=azure_key,
                endpoint=azure_endpoint,
                api_version=os.getenv("AZURE_OPENAI_API_VERSION", "2024-02-15-preview"),
                deployment_name=os.getenv("AZURE_OPENAI_DEPLOYMENT", "gpt-4"),
                max_concurrent=int(os.getenv("AZURE_OPENAI_MAX_CONCURRENT", "50")),
            )
            providers["azure_openai"] = azure_config.to_provider(timeout)

        agents_dir = os.getenv("AGENTLOOP_AGENTS_DIR")
        loaded = cls(
            providers=providers,
            default_provider=os.getenv("AGENTLOOP_DEFAULT_PROVIDER", "ollama"),
            default_model=default_model,
            max_iterations=int(os.getenv("AGENTLOOP_MAX_ITERATIONS", "20")),
            max_delegation_depth=int(os.getenv("AGENTLOOP_MAX_DELEGATION_DEPTH", "5")),
            command_timeout=float(os.getenv("AGENTLOOP_COMMAND_TIMEOUT", "60")),
            project_root=Path(os.getenv("AGENTLOOP_PROJECT_ROOT", os.getcwd())),
            agents_dir=Path(agents_dir) if agents_dir else None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            environment=os.getenv("ENVIRONMENT", "development"),
        )

        settings_file = os.getenv("AGENTLOOP_SETTINGS_FILE")
        if settings_file:
            loaded = loaded.with_settings_file(Path(settings_file))
        return loaded

    def with_settings_file(self, path: Path) -> Config:
        """Overlay the ``agent_settings`` block of a JSON settings file."""
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.info(f"[Config] Settings file {path} not found, using environment only")
            return self
        return self.with_agent_settings(data.get("agent_settings", {}))

    def with_agent_settings(self, settings: Mapping[str, Any]) -> Config:
        providers = dict(self.providers)
        for name, raw in (settings.get("providers") or {}).items():
            providers[name] = ProviderConfig.from_dict(name, raw, defaults=providers.get(name))

        reserved = {"default_model", "default_provider", "providers", "agent_providers"}
        agent_models = dict(self.agent_models)
        agent_models.update(
            {key: value for key, value in settings.items() if key not in reserved and isinstance(value, str)}
        )
        agent_providers = dict(self.agent_providers)
        agent_providers.update(settings.get("agent_providers") or {})

        return replace(
            self,
            providers=providers,
            default_provider=settings.get("default_provider", self.default_provider),
            default_model=settings.get("default_model", self.default_model),
            agent_models=agent_models,
            agent_providers=agent_providers,
        )


# Global config instance
config = Config.from_env()
