"""
OpenRouter API client for llm-panel.

OpenRouter exposes an OpenAI-compatible Chat Completions endpoint in front
of many upstream providers, so generation reuses OpenAIClient with a
different endpoint. Model listing uses the /models endpoint, which
returns every model routed for a key.

Example:
    >>> client = OpenRouterClient()
    >>> models = await client.list_models(api_key)
    >>> models[0].id
    'deepseek/deepseek-r1'
"""

import logging
from typing import Any

import httpx

from llm_panel.exceptions import ApiError
from llm_panel.llm_runner.models import ModelInfo
from llm_panel.llm_runner.openai_client import OpenAIClient
from llm_panel.llm_runner.retry_config import (
    NO_RETRY_STATUS_CODES,
    REQUEST_TIMEOUT,
    create_retry_decorator,
    non_retryable_error,
)

OPENROUTER_API_URL = "https://openrouter.ai/api/v1/chat/completions"
OPENROUTER_MODELS_URL = "https://openrouter.ai/api/v1/models"

logger = logging.getLogger(__name__)


class OpenRouterClient(OpenAIClient):
    """
    OpenRouter client (OpenAI-compatible) with model listing support.

    Attributes:
        provider_id: "openrouter"
        supports_model_listing: True
        models_url: Model listing endpoint
    """

    provider_id = "openrouter"
    provider_label = "OpenRouter"
    supports_model_listing = True

    def __init__(
        self,
        api_url: str = OPENROUTER_API_URL,
        models_url: str = OPENROUTER_MODELS_URL,
        timeout: float = REQUEST_TIMEOUT,
    ):
        super().__init__(api_url=api_url, timeout=timeout)
        self.models_url = models_url

    @create_retry_decorator()
    async def list_models(self, api_key: str) -> list[ModelInfo]:
        """
        List models available through OpenRouter.

        Args:
            api_key: OpenRouter API key (NEVER logged)

        Returns:
            Models sorted by id

        Raises:
            ApiError: On non-retryable HTTP errors or malformed responses
        """
        headers = {"Authorization": f"Bearer {api_key}"}

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(self.models_url, headers=headers)

            if response.status_code in NO_RETRY_STATUS_CODES:
                raise non_retryable_error(
                    self.provider_label,
                    "*",
                    response.status_code,
                    self._extract_error_detail(response),
                )
            response.raise_for_status()

        try:
            entries: list[dict[str, Any]] = response.json()["data"]
            models = [
                ModelInfo(id=str(entry["id"]), description=entry.get("name"))
                for entry in entries
            ]
        except (ValueError, KeyError, TypeError) as e:
            raise ApiError(f"Invalid OpenRouter models response: {e}", cause=e) from e

        logger.info(f"OpenRouter listed {len(models)} models")
        return sorted(models, key=lambda m: m.id)
