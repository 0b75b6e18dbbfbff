"""Routes an agent's prompt to its configured language-model provider."""
from __future__ import annotations

import logging
from typing import Optional

from agentloop.config import Config
from agentloop.core.errors import ProviderError
from agentloop.core.models import AgentDefinition, GenerationOptions, LLMResponse
from agentloop.services.llm_pool import LLMPool

logger = logging.getLogger(__name__)


class ProviderRouter:
    """Select the provider and model for an agent and normalize the call.

    Selection is static per call: an unknown provider fails with
    ``ConfigurationError`` and nothing falls back to another backend. Calls
    are never retried here.
    """

    def __init__(self, *, config: Config, pool: Optional[LLMPool] = None) -> None:
        self._config = config
        self._pool = pool or LLMPool()
        for provider_config in config.providers.values():
            self._pool.register(provider_config)

    @property
    def pool(self) -> LLMPool:
        return self._pool

    def resolve(self, agent: AgentDefinition) -> tuple[str, str]:
        """Return the ``(provider, model)`` pair used for ``agent``."""
        provider = agent.provider or self._config.provider_for(agent.name)
        provider_config = self._pool.get_config(provider)
        model = (
            agent.model
            or self._config.model_for(agent.name)
            or provider_config.model
            or self._config.default_model
        )
        return provider, model

    async def complete(
        self,
        agent: AgentDefinition,
        prompt: str,
        options: Optional[GenerationOptions] = None,
        *,
        task_id: Optional[str] = None,
    ) -> LLMResponse:
        provider, model = self.resolve(agent)
        logger.info(f"[ProviderRouter] Task {task_id} sending prompt to {provider}/{model} for agent {agent.name}")
        async with self._pool.acquire(provider) as backend:
            try:
                response = await backend.generate(model, prompt, options or GenerationOptions())
            except ProviderError as exc:
                logger.error(f"[ProviderRouter] Task {task_id} failed to communicate with {provider}: {exc}")
                raise
        response.metadata.setdefault("provider", provider)
        return response

    async def aclose(self) -> None:
        await self._pool.aclose()
