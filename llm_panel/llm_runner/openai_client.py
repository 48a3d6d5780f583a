"""
OpenAI API client implementation for llm-panel.

Async HTTP client for the OpenAI Chat Completions API with automatic retry,
exponential backoff and error classification.

Key features:
- Async HTTP client (httpx.AsyncClient) for concurrent dispatch
- Retry on transient failures (429, 5xx, connection errors, timeouts)
- Fail fast on permanent errors (400, 401, 403, 404) with ApiError
- Token usage reported in reply metadata
- Security: NEVER logs API keys

Example:
    >>> client = OpenAIClient()
    >>> reply = await client.generate(
    ...     "What is a monad?", "gpt-4o", "You are a concise assistant.", api_key
    ... )
    >>> reply.metadata["usage"]["total_tokens"]
    182
"""

import logging
from typing import Any

import httpx

from llm_panel.config.constants import MAX_PROMPT_LENGTH
from llm_panel.exceptions import ApiError
from llm_panel.llm_runner.models import ModelInfo, ProviderReply
from llm_panel.llm_runner.retry_config import (
    NO_RETRY_STATUS_CODES,
    REQUEST_TIMEOUT,
    create_retry_decorator,
    non_retryable_error,
)

# OpenAI Chat Completions endpoint
OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"

# Options forwarded to the request body when configured on the model
PASSTHROUGH_OPTIONS = ("temperature", "top_p", "max_tokens", "max_completion_tokens", "seed")

logger = logging.getLogger(__name__)


class OpenAIClient:
    """
    OpenAI Chat Completions client with retry logic.

    Implements the ProviderClient protocol. A single instance serves every
    OpenAI model; model id, system prompt and API key arrive per call.

    Attributes:
        provider_id: "openai"
        supports_model_listing: False
        api_url: Chat Completions endpoint (overridable for proxies)
        timeout: Per-attempt HTTP timeout in seconds

    Security:
        - API keys are only sent in the Authorization header
        - API keys are never logged or included in error messages

    Retry behavior:
        - Retries on: 429, 500, 502, 503, 504, connection errors, timeouts
        - Fails immediately on: 400, 401, 403, 404
        - Max attempts: 3, exponential backoff 1s to 60s
    """

    provider_id = "openai"
    provider_label = "OpenAI"
    supports_model_listing = False

    def __init__(self, api_url: str = OPENAI_API_URL, timeout: float = REQUEST_TIMEOUT):
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
        Send one prompt and return the assistant reply.

        Args:
            prompt: User prompt (already combined with any context)
            model_id: OpenAI model identifier (e.g., "gpt-4o")
            system_prompt: Optional system message
            api_key: OpenAI API key (NEVER logged)
            options: Optional request options (temperature, max_tokens, ...)

        Returns:
            ProviderReply with the text and usage metadata

        Raises:
            ValueError: If prompt is empty or exceeds MAX_PROMPT_LENGTH
            ApiError: On non-retryable HTTP errors or malformed responses
            httpx.HTTPStatusError: On retryable HTTP errors after retries
            httpx.ConnectError: On connection failures after retries
            httpx.TimeoutException: On timeout after retries
        """
        validate_prompt(prompt)

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload: dict[str, Any] = {"model": model_id, "messages": messages}
        for key in PASSTHROUGH_OPTIONS:
            if options and key in options:
                payload[key] = options[key]

        # NEVER log headers
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

        logger.debug(f"Sending request to {self.provider_label}: model={model_id}")

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

                # Raise for retryable errors (429, 5xx); the decorator retries
                response.raise_for_status()

        except httpx.HTTPStatusError as e:
            logger.error(
                f"{self.provider_label} API HTTP error: "
                f"status={e.response.status_code}, model={model_id}, "
                f"detail={self._extract_error_detail(e.response)}"
            )
            raise

        except httpx.ConnectError as e:
            logger.error(
                f"{self.provider_label} API connection error: model={model_id}, error={e}"
            )
            raise

        except httpx.TimeoutException as e:
            logger.error(f"{self.provider_label} API timeout: model={model_id}, error={e}")
            raise

        try:
            data = response.json()
        except ValueError as e:
            raise ApiError(
                f"Failed to parse {self.provider_label} response JSON: {e}", cause=e
            ) from e

        return ProviderReply(
            text=self._extract_answer_text(data),
            metadata=self._extract_metadata(data),
        )

    async def list_models(self, api_key: str) -> list[ModelInfo]:
        raise NotImplementedError(f"{self.provider_label} client does not list models")

    def _extract_answer_text(self, data: dict[str, Any]) -> str:
        """
        Extract the assistant message from a Chat Completions response.

        Raises:
            ApiError: If the response structure is invalid
        """
        try:
            choices = data.get("choices")
            if not choices or not isinstance(choices, list):
                raise ApiError(f"{self.provider_label} response missing 'choices' array")

            message = choices[0].get("message") or {}
            content = message.get("content")
            if content is None:
                refusal = message.get("refusal")
                if refusal:
                    raise ApiError(f"Content policy refusal: {refusal}")
                raise ApiError(f"{self.provider_label} response missing message content")

            return str(content)

        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise ApiError(
                f"Invalid {self.provider_label} response structure: {e}", cause=e
            ) from e

    def _extract_metadata(self, data: dict[str, Any]) -> dict[str, Any]:
        """Collect token usage, resolved model and finish reason."""
        metadata: dict[str, Any] = {}

        usage = data.get("usage")
        if isinstance(usage, dict):
            metadata["usage"] = {
                "prompt_tokens": int(usage.get("prompt_tokens") or 0),
                "completion_tokens": int(usage.get("completion_tokens") or 0),
                "total_tokens": int(usage.get("total_tokens") or 0),
            }
        else:
            logger.warning(
                f"{self.provider_label} response missing 'usage' data. Token count unavailable."
            )

        if data.get("model"):
            metadata["model"] = data["model"]

        choices = data.get("choices") or []
        if choices and isinstance(choices[0], dict) and choices[0].get("finish_reason"):
            metadata["finish_reason"] = choices[0]["finish_reason"]

        return metadata

    def _extract_error_detail(self, response: httpx.Response) -> str:
        """
        Extract the error message from an error response body.

        Note:
            NEVER includes API keys in error messages.
        """
        try:
            error = response.json().get("error", {})
            if isinstance(error, dict):
                return str(error.get("message", "Unknown error"))
            return str(error)
        except ValueError:
            return f"HTTP {response.status_code}"


def validate_prompt(prompt: str) -> None:
    """Reject empty or oversized prompts before any request is made."""
    if not prompt or prompt.isspace():
        raise ValueError("Prompt cannot be empty")

    if len(prompt) > MAX_PROMPT_LENGTH:
        raise ValueError(
            f"Prompt exceeds maximum length of {MAX_PROMPT_LENGTH:,} characters "
            f"(received {len(prompt):,} characters). "
            f"Reduce the prompt or the context files."
        )
