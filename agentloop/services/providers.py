"""Language-model backends, one per provider wire format.

Every backend turns a prompt into a normalized :class:`LLMResponse` and
reports every failure (transport, status, body, application error field,
timeout) as a :class:`ProviderError`. HTTP backends only describe their
request and response shapes; sending is shared.
"""
from __future__ import annotations

import abc
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional, Type

import httpx
from openai import APIError, APIStatusError, APITimeoutError, AsyncAzureOpenAI

from agentloop.config import ProviderConfig
from agentloop.core.errors import ConfigurationError, ProviderError
from agentloop.core.models import GenerationOptions, LLMResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderRequest:
    url: str
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)


class ProviderBackend(abc.ABC):
    """A configured language-model backend."""

    family: ClassVar[str]
    requires_api_key: ClassVar[bool] = False

    def __init__(self, config: ProviderConfig) -> None:
        if not config.endpoint:
            raise ConfigurationError(f"Provider '{config.name}' has no endpoint configured")
        if self.requires_api_key and not config.api_key:
            raise ConfigurationError(f"Provider '{config.name}' requires an API key")
        self.config = config

    @property
    def name(self) -> str:
        return self.config.name

    def temperature(self, options: GenerationOptions) -> float:
        return self.config.temperature if options.temperature is None else options.temperature

    def max_tokens(self, options: GenerationOptions) -> int:
        return self.config.max_tokens if options.max_tokens is None else options.max_tokens

    @abc.abstractmethod
    async def generate(self, model: str, prompt: str, options: GenerationOptions) -> LLMResponse:
        """Send ``prompt`` to the backend and return the normalized reply."""

    async def aclose(self) -> None:
        return None


class HTTPProviderBackend(ProviderBackend):
    """Backend speaking JSON over HTTP through a shared ``httpx`` client."""

    def __init__(self, config: ProviderConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__(config)
        self._client = client
        self._owns_client = client is None

    @abc.abstractmethod
    def build_request(self, model: str, prompt: str, options: GenerationOptions) -> ProviderRequest:
        """Describe the backend-specific request."""

    @abc.abstractmethod
    def parse_response(self, data: Dict[str, Any]) -> LLMResponse:
        """Unwrap the backend-specific response envelope."""

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def generate(self, model: str, prompt: str, options: GenerationOptions) -> LLMResponse:
        request = self.build_request(model, prompt, options)
        headers = {"Content-Type": "application/json", **request.headers}
        try:
            # httpx timeouts apply per phase; the whole call is bounded as well
            response = await asyncio.wait_for(
                self._get_client().post(
                    request.url,
                    json=request.body,
                    headers=headers,
                    timeout=self.config.timeout,
                ),
                timeout=self.config.timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            raise ProviderError(self.name, f"Request timed out after {self.config.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(self.name, f"Request failed: {exc}") from exc

        if not response.is_success:
            logger.error(f"[{self.name}] LLM service returned {response.status_code}: {response.text[:500]}")
            raise ProviderError(self.name, response.text[:500] or response.reason_phrase, status=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(self.name, "Malformed JSON response body", status=response.status_code) from exc
        if not isinstance(data, dict):
            raise ProviderError(self.name, "Response body is not a JSON object", status=response.status_code)

        try:
            return self.parse_response(data)
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError(
                self.name, f"Unexpected response shape: missing {exc}", status=response.status_code
            ) from exc

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


class OllamaBackend(HTTPProviderBackend):
    """Local single-prompt completion API."""

    family = "ollama"

    def build_request(self, model: str, prompt: str, options: GenerationOptions) -> ProviderRequest:
        return ProviderRequest(
            url=self.config.endpoint,
            body={
                "model": model,
                "prompt": prompt,
                "stream": False,
                "options": {
                    "temperature": self.temperature(options),
                    "num_predict": self.max_tokens(options),
                },
            },
        )

    def parse_response(self, data: Dict[str, Any]) -> LLMResponse:
        if data.get("error"):
            raise ProviderError(self.name, str(data["error"]))
        content = data["response"]
        if not isinstance(content, str):
            raise ProviderError(self.name, "'response' field is not a string")
        return LLMResponse(
            content=content,
            metadata={
                "provider": self.name,
                "model": data.get("model"),
                "done_reason": data.get("done_reason"),
                "prompt_tokens": data.get("prompt_eval_count"),
                "completion_tokens": data.get("eval_count"),
            },
        )


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)


class OpenAIChatBackend(HTTPProviderBackend):
    """Chat-completions API with bearer authentication."""

    family = "openai"
    requires_api_key = True

    def build_request(self, model: str, prompt: str, options: GenerationOptions) -> ProviderRequest:
        return ProviderRequest(
            url=self.config.endpoint,
            headers={"Authorization": f"Bearer {self.config.api_key}"},
            body={
                "model": model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": self.max_tokens(options),
                "temperature": self.temperature(options),
            },
        )

    def parse_response(self, data: Dict[str, Any]) -> LLMResponse:
        if data.get("error"):
            raise ProviderError(self.name, _error_message(data["error"]))
        choice = data["choices"][0]
        return LLMResponse(
            content=choice["message"]["content"] or "",
            metadata={
                "provider": self.name,
                "model": data.get("model"),
                "finish_reason": choice.get("finish_reason"),
                "usage": data.get("usage"),
            },
        )


class AnthropicBackend(HTTPProviderBackend):
    """Messages API authenticated with ``x-api-key`` and a version header."""

    family = "anthropic"
    requires_api_key = True
    default_version = "2023-06-01"

    def build_request(self, model: str, prompt: str, options: GenerationOptions) -> ProviderRequest:
        return ProviderRequest(
            url=self.config.endpoint,
            headers={
                "x-api-key": self.config.api_key or "",
                "anthropic-version": self.config.api_version or self.default_version,
            },
            body={
                "model": model,
                "max_tokens": self.max_tokens(options),
                "temperature": self.temperature(options),
                "messages": [{"role": "user", "content": prompt}],
            },
        )

    def parse_response(self, data: Dict[str, Any]) -> LLMResponse:
        if data.get("type") == "error" or data.get("error"):
            raise ProviderError(self.name, _error_message(data.get("error")))
        return LLMResponse(
            content=data["content"][0]["text"],
            metadata={
                "provider": self.name,
                "model": data.get("model"),
                "stop_reason": data.get("stop_reason"),
                "usage": data.get("usage"),
            },
        )


class AzureOpenAIBackend(ProviderBackend):
    """Azure-hosted chat completions through the ``openai`` SDK client."""

    family = "azure_openai"
    requires_api_key = True

    def __init__(self, config: ProviderConfig, client: Optional[Any] = None) -> None:
        super().__init__(config)
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> Any:
        # Lazy initialization on first use
        if self._client is None:
            self._client = AsyncAzureOpenAI(
                api_key=self.config.api_key,
                api_version=self.config.api_version,
                azure_endpoint=self.config.endpoint,
                timeout=self.config.timeout,
                max_retries=0,
            )
        return self._client

    async def generate(self, model: str, prompt: str, options: GenerationOptions) -> LLMResponse:
        try:
            response = await self._get_client().chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature(options),
                max_tokens=self.max_tokens(options),
            )
        except APITimeoutError as exc:
            raise ProviderError(self.name, f"Request timed out after {self.config.timeout}s") from exc
        except APIStatusError as exc:
            raise ProviderError(self.name, exc.message, status=exc.status_code) from exc
        except APIError as exc:
            raise ProviderError(self.name, str(exc)) from exc

        if not response.choices:
            raise ProviderError(self.name, "Response carried no choices")
        choice = response.choices[0]
        return LLMResponse(
            content=choice.message.content or "",
            metadata={
                "provider": self.name,
                "model": getattr(response, "model", model),
                "finish_reason": getattr(choice, "finish_reason", None),
            },
        )

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None


BACKENDS: Dict[str, Type[ProviderBackend]] = {
    backend.family: backend
    for backend in (OllamaBackend, OpenAIChatBackend, AnthropicBackend, AzureOpenAIBackend)
}
