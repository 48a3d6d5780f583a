"""
Anthropic API client implementation for llm-panel.

Async HTTP client for the Anthropic Messages API with automatic retry,
exponential backoff and error classification.

Key features:
- Retry on transient failures (429, 5xx) with exponential backoff
- Fail fast on permanent errors (400, 401, 403, 404)
- System prompt sent as the top-level ``system`` parameter
- Security: NEVER logs API keys

Example:
    >>> client = AnthropicClient()
    >>> reply = await client.generate(
    ...     "Summarize RFC 9110", "claude-3-7-sonnet-20250219", None, api_key
    ... )
    >>> reply.metadata["usage"]["output_tokens"]
    512
"""

import logging
from typing import Any

import httpx

from llm_panel.exceptions import ApiError
from llm_panel.llm_runner.models import ModelInfo, ProviderReply
from llm_panel.llm_runner.openai_client import validate_prompt
from llm_panel.llm_runner.retry_config import (
    NO_RETRY_STATUS_CODES,
    REQUEST_TIMEOUT,
    create_retry_decorator,
    non_retryable_error,
)

# Anthropic API endpoint
ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"

# Anthropic API version header (required)
ANTHROPIC_VERSION = "2023-06-01"

# max_tokens is required by the Messages API
DEFAULT_MAX_TOKENS = 4096

PASSTHROUGH_OPTIONS = ("temperature", "top_p", "top_k")

# The Messages API has no listing endpoint, so listings come from this table
KNOWN_MODELS = (
    ModelInfo(id="claude-3-7-sonnet-20250219", description="Claude 3.7 Sonnet"),
    ModelInfo(id="claude-3-5-sonnet-20241022", description="Claude 3.5 Sonnet"),
    ModelInfo(id="claude-3-5-haiku-20241022", description="Claude 3.5 Haiku"),
    ModelInfo(id="claude-3-opus-20240229", description="Claude 3 Opus"),
    ModelInfo(id="claude-3-sonnet-20240229", description="Claude 3 Sonnet"),
    ModelInfo(id="claude-3-haiku-20240307", description="Claude 3 Haiku"),
)

logger = logging.getLogger(__name__)


class AnthropicClient:
    """
    Anthropic Messages API client with retry logic.

    Implements the ProviderClient protocol.

    Attributes:
        provider_id: "anthropic"
        supports_model_listing: True (from a built-in table of known models)

    Security:
        - API keys are only sent in the x-api-key header
        - API keys are never logged or included in error messages
    """

    provider_id = "anthropic"
    provider_label = "Anthropic"
    supports_model_listing = True

    def __init__(self, api_url: str = ANTHROPIC_API_URL, timeout: float = REQUEST_TIMEOUT):
        self.api_url = api_url
        self.timeout = timeout

    @create_retry_decorator()
    async def generate(
        self,
        prompt: str,
        model_id: str,
        system_prompt: str | None,
        api_key: str,
        options: dict[str, Any] | None = None,
    ) -> ProviderReply:
        """
        Send one prompt to the Messages API.

        Args:
            prompt: User prompt
            model_id: Anthropic model identifier
            system_prompt: Optional system prompt
            api_key: Anthropic API key (NEVER logged)
            options: Optional request options (max_tokens, temperature, ...)

        Returns:
            ProviderReply with text and usage metadata

        Raises:
            ValueError: If prompt is empty or too long
            ApiError: On non-retryable HTTP errors or malformed responses
            httpx.HTTPError: On transport failures after retries
        """
        validate_prompt(prompt)

        options = options or {}
        payload: dict[str, Any] = {
            "model": model_id,
            "max_tokens": options.get("max_tokens", DEFAULT_MAX_TOKENS),
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            payload["system"] = system_prompt
        for key in PASSTHROUGH_OPTIONS:
            if key in options:
                payload[key] = options[key]

        headers = {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

        logger.debug(f"Sending request to Anthropic: model={model_id}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)

                if response.status_code in NO_RETRY_STATUS_CODES:
                    raise non_retryable_error(
                        self.provider_label,
                        model_id,
                        response.status_code,
                        self._extract_error_detail(response),
                    )

                response.raise_for_status()

        except httpx.HTTPStatusError as e:
            logger.error(
                f"Anthropic API HTTP error: status={e.response.status_code}, "
                f"model={model_id}, detail={self._extract_error_detail(e.response)}"
            )
            raise

        except httpx.ConnectError as e:
            logger.error(f"Anthropic API connection error: model={model_id}, error={e}")
            raise

        except httpx.TimeoutException as e:
            logger.error(f"Anthropic API timeout: model={model_id}, error={e}")
            raise

        try:
            data = response.json()
        except ValueError as e:
            raise ApiError(f"Failed to parse Anthropic response JSON: {e}", cause=e) from e

        return ProviderReply(
            text=self._extract_answer_text(data),
            metadata=self._extract_metadata(data),
        )

    async def list_models(self, api_key: str) -> list[ModelInfo]:
        """Known Anthropic models, sorted by id. No request is made."""
        return sorted(KNOWN_MODELS, key=lambda m: m.id)

    def _extract_answer_text(self, data: dict[str, Any]) -> str:
        """
        Concatenate the text blocks of a Messages API response.

        Raises:
            ApiError: If the response has no text content
        """
        content = data.get("content")
        if not content or not isinstance(content, list):
            raise ApiError("Anthropic response missing 'content' array")

        texts = [
            str(block.get("text", ""))
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        if not texts:
            raise ApiError("Anthropic response contained no text content blocks")

        return "".join(texts)

    def _extract_metadata(self, data: dict[str, Any]) -> dict[str, Any]:
        metadata: dict[str, Any] = {}

        usage = data.get("usage")
        if isinstance(usage, dict):
            input_tokens = int(usage.get("input_tokens") or 0)
            output_tokens = int(usage.get("output_tokens") or 0)
            metadata["usage"] = {
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "total_tokens": input_tokens + output_tokens,
            }
        else:
            logger.warning("Anthropic response missing 'usage' data. Token count unavailable.")

        if data.get("model"):
            metadata["model"] = data["model"]
        if data.get("stop_reason"):
            metadata["stop_reason"] = data["stop_reason"]

        return metadata

    def _extract_error_detail(self, response: httpx.Response) -> str:
        try:
            error = response.json().get("error", {})
            return str(error.get("message", "Unknown error"))
        except (ValueError, AttributeError):
            return f"HTTP {response.status_code}"
