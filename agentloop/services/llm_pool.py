"""LLM backend pool for shared provider access with concurrency control."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, Mapping, Optional, Type

import httpx

from agentloop.config import ProviderConfig
from agentloop.core.errors import ConfigurationError
from agentloop.services.providers import BACKENDS, HTTPProviderBackend, ProviderBackend

logger = logging.getLogger(__name__)


class LLMPool:
    """Manages one lazily built backend per provider with concurrency limiting."""

    def __init__(
        self,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        backends: Optional[Mapping[str, Type[ProviderBackend]]] = None,
    ) -> None:
        self._http_client = http_client
        self._backend_types = dict(backends or BACKENDS)
        self._configs: Dict[str, ProviderConfig] = {}
        self._backends: Dict[str, ProviderBackend] = {}
        self._semaphores: Dict[str, asyncio.Semaphore] = {}

    def register(self, config: ProviderConfig) -> None:
        """Register a provider configuration; the backend is built on first use."""
        if config.family not in self._backend_types:
            raise ConfigurationError(f"Provider '{config.name}' uses unknown family '{config.family}'")
        self._configs[config.name] = config
        self._semaphores[config.name] = asyncio.Semaphore(max(1, config.max_concurrent))
        self._backends.pop(config.name, None)

    def register_backend(self, backend: ProviderBackend) -> None:
        """Register an already constructed backend under its provider name."""
        self._configs[backend.name] = backend.config
        self._semaphores[backend.name] = asyncio.Semaphore(max(1, backend.config.max_concurrent))
        self._backends[backend.name] = backend

    def get_config(self, provider: str) -> ProviderConfig:
        if provider not in self._configs:
            raise ConfigurationError(f"Provider '{provider}' is not configured")
        return self._configs[provider]

    @property
    def providers(self) -> Iterable[str]:
        return tuple(self._configs)

    @asynccontextmanager
    async def acquire(self, provider: str) -> AsyncIterator[ProviderBackend]:
        """Acquire access to a provider backend with concurrency control."""
        config = self.get_config(provider)
        semaphore = self._semaphores[provider]
        async with semaphore:
            backend = self._backends.get(provider)
            if backend is None:
                backend = self._initialize_backend(config)
            yield backend

    def _initialize_backend(self, config: ProviderConfig) -> ProviderBackend:
        backend_cls = self._backend_types[config.family]
        if issubclass(backend_cls, HTTPProviderBackend):
            backend: ProviderBackend = backend_cls(config, client=self._http_client)
        else:
            backend = backend_cls(config)
        self._backends[config.name] = backend
        logger.info(f"[LLMPool] Initialized {config.family} backend '{config.name}' at {config.endpoint}")
        return backend

    async def aclose(self) -> None:
        backends = list(self._backends.values())
        self._backends.clear()
        await asyncio.gather(*(backend.aclose() for backend in backends), return_exceptions=True)
