"""
Mock provider client for tests and dry runs.

MockProviderClient implements the ProviderClient protocol without any
network access. Replies are deterministic, per-model failures and delays
can be scripted, and every call is recorded for assertions.

Example:
    >>> client = MockProviderClient(
    ...     responses={"gpt-4o": "Paris."},
    ...     failures={"broken-model": RuntimeError("connection refused")},
    ... )
    >>> reply = await client.generate("Capital of France?", "gpt-4o", None, "key")
    >>> reply.text
    'Paris.'
    >>> client.calls[0].model_id
    'gpt-4o'
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from llm_panel.llm_runner.models import ModelInfo, ProviderReply

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MockCall:
    """One recorded generate() call."""

    prompt: str
    model_id: str
    system_prompt: str | None
    api_key: str
    options: dict[str, Any]


@dataclass
class MockProviderClient:
    """
    Deterministic provider client.

    Attributes:
        provider_id: Provider id to register under (default "mock")
        responses: model_id -> reply text. Models not listed get
            default_response.
        default_response: Reply for unlisted models. "{model_id}" and
            "{prompt}" placeholders are substituted.
        failures: model_id -> exception raised instead of replying
        delays: model_id -> seconds to sleep before replying (or failing)
        tokens_per_response: total_tokens reported in metadata
        supports_model_listing: Capability flag, True by default
        models: Models returned by list_models()
        calls: Recorded generate() calls in invocation order
    """

    provider_id: str = "mock"
    responses: dict[str, str] = field(default_factory=dict)
    default_response: str = "Mock response from {model_id}."
    failures: dict[str, BaseException] = field(default_factory=dict)
    delays: dict[str, float] = field(default_factory=dict)
    tokens_per_response: int = 100
    supports_model_listing: bool = True
    models: list[ModelInfo] = field(
        default_factory=lambda: [ModelInfo(id="mock-model", description="Mock model")]
    )
    calls: list[MockCall] = field(default_factory=list)

    def __post_init__(self):
        logger.info(
            f"Initialized MockProviderClient '{self.provider_id}' with "
            f"{len(self.responses)} configured responses"
        )

    async def generate(
        self,
        prompt: str,
        model_id: str,
        system_prompt: str | None,
        api_key: str,
        options: dict[str, Any] | None = None,
    ) -> ProviderReply:
        """
        Return the scripted reply for model_id.

        Raises:
            BaseException: The exception scripted in ``failures`` for model_id
        """
        self.calls.append(MockCall(prompt, model_id, system_prompt, api_key, dict(options or {})))

        delay = self.delays.get(model_id)
        if delay:
            await asyncio.sleep(delay)

        if model_id in self.failures:
            raise self.failures[model_id]

        text = self.responses.get(model_id)
        if text is None:
            text = self.default_response.format(model_id=model_id, prompt=prompt)

        return ProviderReply(
            text=text,
            metadata={
                "model": model_id,
                "usage": {"total_tokens": self.tokens_per_response},
            },
        )

    async def list_models(self, api_key: str) -> list[ModelInfo]:
        return list(self.models)
