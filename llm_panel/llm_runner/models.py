"""
Core records and the provider client abstraction for llm-panel.

This module provides the provider-agnostic types shared by the selector,
executor and output stages:

- GroupInfo: Group a target was selected through (name + system prompt)
- ModelTarget: One provider+model pairing selected for a run (immutable)
- Timing: Wall-clock span in epoch milliseconds
- ProviderReply: Raw text and metadata returned by a provider call
- ModelInfo: Entry returned by provider model listing
- LLMResponse: Per-target outcome (text or error), immutable
- ProviderClient: Protocol every provider client implements
- ProviderRegistry: Provider id -> client lookup
- build_client / build_provider_registry: Factories with lazy imports

Provider clients are provider-level (not model-level): one client instance
serves every model of its provider, receiving model id, system prompt and
API key per call.

Example:
    >>> registry = build_provider_registry()
    >>> client = registry.get("openai")
    >>> reply = await client.generate(
    ...     "Explain CRDTs in one paragraph",
    ...     "gpt-4o",
    ...     "You are a concise assistant.",
    ...     api_key,
    ... )
    >>> reply.text
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from llm_panel.config.schema import ModelConfig


@dataclass(frozen=True)
class GroupInfo:
    """
    Group a target was selected through.

    Attributes:
        name: Group name from the configuration
        system_prompt: Group system prompt, if any
    """

    name: str
    system_prompt: str | None = None


@dataclass(frozen=True)
class ModelTarget:
    """
    One provider+model pairing selected to receive the prompt.

    Identified by its config key ``provider:model_id``. Frozen so a target
    cannot change once selected for a run.

    Attributes:
        provider: Provider identifier (e.g., "openai")
        model_id: Provider model identifier (e.g., "gpt-4o")
        enabled: Enabled flag from configuration
        group_info: Group the target belongs to, if any
        api_key_env_var: Custom API key variable name, if configured
        system_prompt: Model-level system prompt, if configured
        options: Provider request options (temperature, max_tokens, ...)
    """

    provider: str
    model_id: str
    enabled: bool = True
    group_info: GroupInfo | None = None
    api_key_env_var: str | None = None
    system_prompt: str | None = None
    options: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    @property
    def config_key(self) -> str:
        return f"{self.provider}:{self.model_id}"

    @classmethod
    def from_config(
        cls, model: ModelConfig, group_info: GroupInfo | None = None
    ) -> ModelTarget:
        return cls(
            provider=model.provider,
            model_id=model.model_id,
            enabled=model.enabled,
            group_info=group_info,
            api_key_env_var=model.api_key_env_var,
            system_prompt=model.system_prompt,
            options=dict(model.options),
        )

    def to_model_config(self) -> ModelConfig:
        return ModelConfig(
            provider=self.provider,
            model_id=self.model_id,
            enabled=self.enabled,
            api_key_env_var=self.api_key_env_var,
            system_prompt=self.system_prompt,
            options=dict(self.options),
        )


@dataclass(frozen=True)
class Timing:
    """
    Wall-clock span in epoch milliseconds.

    Attributes:
        start_ms: Earliest start
        end_ms: Latest end
        duration_ms: end_ms - start_ms
    """

    start_ms: float
    end_ms: float
    duration_ms: float

    @classmethod
    def span(cls, starts: list[float], ends: list[float], default_ms: float) -> "Timing":
        """Timing covering [min(starts), max(ends)]; zero-length at default_ms when empty."""
        start = min(starts) if starts else default_ms
        end = max(ends) if ends else start
        return cls(start_ms=start, end_ms=end, duration_ms=max(0.0, end - start))


@dataclass(frozen=True)
class ProviderReply:
    """
    Successful provider call result.

    Attributes:
        text: Complete response text
        metadata: Provider metadata (token usage, resolved model, finish reason)
    """

    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ModelInfo:
    """Model advertised by a provider's listing endpoint."""

    id: str
    description: str | None = None


@dataclass(frozen=True)
class LLMResponse:
    """
    Outcome of querying one target.

    Exactly one LLMResponse exists per selected target. Failed targets get
    a synthetic response with ``error`` set and empty ``text``.

    Attributes:
        provider: Provider identifier
        model_id: Model identifier
        config_key: ``provider:model_id``
        text: Response text ("" on error)
        error: Classified error message, if the query failed
        error_category: Category of the error, if known
        group_info: Group the target was selected through
        metadata: response_time_ms, token usage and provider metadata

    Example:
        >>> response = LLMResponse(
        ...     provider="openai",
        ...     model_id="gpt-4o",
        ...     config_key="openai:gpt-4o",
        ...     text="CRDTs are...",
        ...     metadata={"response_time_ms": 812, "usage": {"total_tokens": 210}},
        ... )
        >>> response.succeeded
        True
    """

    provider: str
    model_id: str
    config_key: str
    text: str
    error: str | None = None
    error_category: str | None = None
    group_info: GroupInfo | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def group_name(self) -> str | None:
        return self.group_info.name if self.group_info else None


class ProviderClient(Protocol):
    """
    Provider-agnostic interface for LLM provider clients.

    Attributes:
        provider_id: Provider identifier the client is registered under
        supports_model_listing: Capability flag. list_models() may only be
            called when True; callers check it once instead of probing.

    Note:
        Implementations MUST:
        - Use async HTTP (httpx.AsyncClient)
        - Never log API keys or sensitive headers
        - Raise on failure (the executor classifies the exception)
    """

    provider_id: str
    supports_model_listing: bool

    async def generate(
        self,
        prompt: str,
        model_id: str,
        system_prompt: str | None,
        api_key: str,
        options: dict[str, Any] | None = None,
    ) -> ProviderReply:
        """
        Send one prompt to one model and return the complete reply.

        Raises:
            PanelError: For classified, non-retryable API failures
            httpx.HTTPError: For transport failures after retries
        """
        ...

    async def list_models(self, api_key: str) -> list[ModelInfo]:
        """List models available to this API key (only if supports_model_listing)."""
        ...


class ProviderRegistry:
    """
    Provider id -> ProviderClient lookup used by the executor.

    Example:
        >>> registry = ProviderRegistry()
        >>> registry.register(MockProviderClient())
        >>> registry.get("mock").provider_id
        'mock'
        >>> registry.get("nope") is None
        True
    """

    def __init__(self, clients: list[ProviderClient] | None = None):
        self._clients: dict[str, ProviderClient] = {}
        for client in clients or []:
            self.register(client)

    def register(self, client: ProviderClient) -> None:
        self._clients[client.provider_id] = client

    def get(self, provider: str) -> ProviderClient | None:
        return self._clients.get(provider)

    def providers(self) -> list[str]:
        return sorted(self._clients)

    def listing_clients(self) -> list[ProviderClient]:
        """Registered clients whose supports_model_listing flag is set."""
        return [
            self._clients[p] for p in self.providers() if self._clients[p].supports_model_listing
        ]

    def __contains__(self, provider: str) -> bool:
        return provider in self._clients


def build_client(provider: str) -> ProviderClient:
    """
    Create the client for a provider.

    Supported providers:
    - "openai": OpenAI Chat Completions API
    - "anthropic": Anthropic Messages API
    - "google": Google Gemini generateContent API
    - "openrouter": OpenRouter (OpenAI-compatible, supports model listing)
    - "mock": Deterministic offline client for tests and dry runs

    Raises:
        ValueError: If provider is not supported
    """
    if provider == "openai":
        # Import here to avoid circular dependencies and keep imports lazy
        from llm_panel.llm_runner.openai_client import OpenAIClient

        return OpenAIClient()

    if provider == "anthropic":
        from llm_panel.llm_runner.anthropic_client import AnthropicClient

        return AnthropicClient()

    if provider == "google":
        from llm_panel.llm_runner.gemini_client import GeminiClient

        return GeminiClient()

    if provider == "openrouter":
        from llm_panel.llm_runner.openrouter_client import OpenRouterClient

        return OpenRouterClient()

    if provider == "mock":
        from llm_panel.llm_runner.mock_client import MockProviderClient

        return MockProviderClient()

    raise ValueError(
        f"Unsupported provider: '{provider}'. "
        f"Supported providers: openai, anthropic, google, openrouter, mock"
    )


def build_provider_registry(include_mock: bool = False) -> ProviderRegistry:
    """
    Registry with every built-in provider client.

    Args:
        include_mock: Also register the mock client (dry runs)
    """
    from llm_panel.config.constants import SUPPORTED_PROVIDERS

    providers = list(SUPPORTED_PROVIDERS)
    if include_mock:
        providers.append("mock")
    return ProviderRegistry([build_client(p) for p in providers])
