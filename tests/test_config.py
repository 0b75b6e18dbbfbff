"""Environment and settings-file configuration."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from agentloop.agents.catalog import AgentCatalog
from agentloop.config import DEFAULT_ENDPOINTS, Config


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in (
        "OLLAMA_ENDPOINT",
        "OPENAI_API_KEY",
        "ANTHROPIC_API_KEY",
        "AZURE_OPENAI_KEY",
        "AZURE_OPENAI_ENDPOINT",
        "AGENTLOOP_SETTINGS_FILE",
        "AGENTLOOP_AGENTS_DIR",
        "AGENTLOOP_MAX_ITERATIONS",
        "AGENTLOOP_DEFAULT_PROVIDER",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_from_env_defaults_to_local_ollama(clean_env: pytest.MonkeyPatch) -> None:
    loaded = Config.from_env()

    assert list(loaded.providers) == ["ollama"]
    assert loaded.providers["ollama"].endpoint == DEFAULT_ENDPOINTS["ollama"]
    assert loaded.default_provider == "ollama"
    assert loaded.max_iterations == 20
    assert loaded.agents_dir is None


def test_from_env_registers_hosted_providers_with_keys(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("OPENAI_API_KEY", "sk-env")
    clean_env.setenv("AZURE_OPENAI_KEY", "az-key")
    clean_env.setenv("AZURE_OPENAI_ENDPOINT", "https://example.openai.azure.com")
    clean_env.setenv("AGENTLOOP_MAX_ITERATIONS", "7")

    loaded = Config.from_env()

    assert loaded.providers["openai"].api_key == "sk-env"
    assert loaded.providers["azure_openai"].model == "gpt-4"
    assert "anthropic" not in loaded.providers
    assert loaded.max_iterations == 7


def test_settings_file_overlays_agent_models_and_providers(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    settings = tmp_path / "settings.json"
    settings.write_text(
        json.dumps(
            {
                "agent_settings": {
                    "default_model": "llama3",
                    "TesterAgent": "deepseek-coder",
                    "agent_providers": {"ReviewerAgent": "anthropic"},
                    "providers": {
                        "anthropic": {"apiKey": "ak-file", "model": "claude-test", "maxTokens": 512},
                        "ollama": {"endpoint": "http://gpu-box:11434/api/generate"},
                    },
                }
            }
        ),
        encoding="utf-8",
    )
    clean_env.setenv("AGENTLOOP_SETTINGS_FILE", str(settings))

    loaded = Config.from_env()

    assert loaded.default_model == "llama3"
    assert loaded.model_for("TesterAgent") == "deepseek-coder"
    assert loaded.model_for("PMAgent") is None
    assert loaded.provider_for("ReviewerAgent") == "anthropic"
    assert loaded.provider_for("PMAgent") == "ollama"
    assert loaded.providers["anthropic"].endpoint == DEFAULT_ENDPOINTS["anthropic"]
    assert loaded.providers["anthropic"].max_tokens == 512
    assert loaded.providers["ollama"].endpoint == "http://gpu-box:11434/api/generate"


def test_missing_settings_file_is_ignored(tmp_path: Path) -> None:
    base = Config()

    assert base.with_settings_file(tmp_path / "absent.json") is base


def test_catalog_skips_broken_definitions(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    (tmp_path / "developer.json").write_text(
        json.dumps(
            {
                "name": "DeveloperAgent",
                "role": "developer",
                "tools": ["file.read"],
                "can_call": ["TesterAgent"],
                "permissions": {"file_system": True},
                "initial_prompt_template": "You are {agent_name}.",
            }
        ),
        encoding="utf-8",
    )
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
    (tmp_path / "nameless.json").write_text(json.dumps({"role": "x"}), encoding="utf-8")
    catalog = AgentCatalog()

    loaded = catalog.load_directory(tmp_path)

    developer = catalog.get("DeveloperAgent")
    assert loaded == 1
    assert developer.tools == ("file.read",)
    assert developer.permissions.filesystem is True
    assert developer.prompt_template == "You are {agent_name}."
    assert "Skipping broken.json" in caplog.text
