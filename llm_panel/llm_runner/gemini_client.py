"""
Google Gemini API client implementation for llm-panel.

Async HTTP client for the Gemini generateContent API.

Key features:
- System prompt sent as ``systemInstruction``
- Model listing through the paginated models endpoint
- Non-STOP finish reasons (SAFETY, MAX_TOKENS, ...) raised as ApiError
- Retry on transient failures, fail fast on permanent ones
- Security: the API key travels in the x-goog-api-key header and is never logged
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

GEMINI_API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

# Largest page the models endpoint accepts
LIST_PAGE_SIZE = 1000

# Model options mapped onto generationConfig keys
GENERATION_CONFIG_OPTIONS = {
    "temperature": "temperature",
    "top_p": "topP",
    "top_k": "topK",
    "max_tokens": "maxOutputTokens",
}

logger = logging.getLogger(__name__)


class GeminiClient:
    """
    Gemini generateContent client with retry logic.

    Attributes:
        provider_id: "google"
        supports_model_listing: True
    """

    provider_id = "google"
    provider_label = "Gemini"
    supports_model_listing = True

    def __init__(self, base_url: str = GEMINI_API_BASE_URL, timeout: float = REQUEST_TIMEOUT):
        self.base_url = base_url
        self.timeout = timeout

    def api_url(self, model_id: str) -> str:
        return f"{self.base_url}/models/{model_id}:generateContent"

    @property
    def models_url(self) -> str:
        return f"{self.base_url}/models"

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
        Send one prompt to generateContent.

        Raises:
            ValueError: If prompt is empty or too long
            ApiError: On non-retryable HTTP errors, blocked content or
                malformed responses
            httpx.HTTPError: On transport failures after retries
        """
        validate_prompt(prompt)

        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}

        generation_config = {
            api_name: options[name]
            for name, api_name in GENERATION_CONFIG_OPTIONS.items()
            if options and name in options
        }
        if generation_config:
            payload["generationConfig"] = generation_config

        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": api_key,
        }

        logger.debug(f"Sending request to Gemini: model={model_id}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.api_url(model_id), json=payload, headers=headers
                )

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
                f"Gemini API HTTP error: status={e.response.status_code}, "
                f"model={model_id}, detail={self._extract_error_detail(e.response)}"
            )
            raise

        except httpx.ConnectError as e:
            logger.error(f"Gemini API connection error: model={model_id}, error={e}")
            raise

        except httpx.TimeoutException as e:
            logger.error(f"Gemini API timeout: model={model_id}, error={e}")
            raise

        try:
            data = response.json()
        except ValueError as e:
            raise ApiError(f"Failed to parse Gemini response JSON: {e}", cause=e) from e

        return ProviderReply(
            text=self._extract_answer_text(data),
            metadata=self._extract_metadata(data),
        )

    @create_retry_decorator()
    async def list_models(self, api_key: str) -> list[ModelInfo]:
        """
        List the models available to an API key, following page tokens.

        The "models/" resource prefix is stripped, so ids match the
        model_id used in configuration.

        Args:
            api_key: Gemini API key (NEVER logged)

        Returns:
            Models sorted by id

        Raises:
            ApiError: On non-retryable HTTP errors or malformed responses
        """
        headers = {"x-goog-api-key": api_key}
        params: dict[str, Any] = {"pageSize": LIST_PAGE_SIZE}
        models: list[ModelInfo] = []

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while True:
                response = await client.get(self.models_url, headers=headers, params=params)

                if response.status_code in NO_RETRY_STATUS_CODES:
                    raise non_retryable_error(
                        self.provider_label,
                        "*",
                        response.status_code,
                        self._extract_error_detail(response),
                    )
                response.raise_for_status()

                try:
                    data = response.json()
                    models.extend(
                        ModelInfo(
                            id=str(entry["name"]).removeprefix("models/"),
                            description=entry.get("displayName") or entry.get("description"),
                        )
                        for entry in data["models"]
                    )
                except (ValueError, KeyError, TypeError) as e:
                    raise ApiError(f"Invalid Gemini models response: {e}", cause=e) from e

                page_token = data.get("nextPageToken")
                if not page_token:
                    break
                params = {"pageSize": LIST_PAGE_SIZE, "pageToken": page_token}

        logger.info(f"Gemini listed {len(models)} models")
        return sorted(models, key=lambda m: m.id)

    def _extract_answer_text(self, data: dict[str, Any]) -> str:
        candidates = data.get("candidates")
        if not candidates or not isinstance(candidates, list):
            feedback = data.get("promptFeedback", {})
            if isinstance(feedback, dict) and feedback.get("blockReason"):
                raise ApiError(
                    f"Content policy: Gemini blocked the prompt "
                    f"(blockReason={feedback['blockReason']})"
                )
            raise ApiError("Gemini response missing 'candidates' array")

        candidate = candidates[0]
        finish_reason = candidate.get("finishReason")
        if finish_reason in ("SAFETY", "RECITATION", "PROHIBITED_CONTENT", "BLOCKLIST"):
            raise ApiError(
                f"Content policy: Gemini blocked the response (finishReason={finish_reason})"
            )
        if finish_reason == "MAX_TOKENS" and not candidate.get("content"):
            raise ApiError(
                "Token limit reached before Gemini produced any text (finishReason=MAX_TOKENS)"
            )

        parts = (candidate.get("content") or {}).get("parts") or []
        texts = [str(part["text"]) for part in parts if isinstance(part, dict) and "text" in part]
        if not texts:
            raise ApiError("Gemini response contained no text parts")

        return "".join(texts)

    def _extract_metadata(self, data: dict[str, Any]) -> dict[str, Any]:
        metadata: dict[str, Any] = {}

        usage = data.get("usageMetadata")
        if isinstance(usage, dict):
            prompt_tokens = int(usage.get("promptTokenCount") or 0)
            candidates_tokens = int(usage.get("candidatesTokenCount") or 0)
            metadata["usage"] = {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": candidates_tokens,
                "total_tokens": int(
                    usage.get("totalTokenCount") or prompt_tokens + candidates_tokens
                ),
            }

        candidates = data.get("candidates") or []
        if candidates and candidates[0].get("finishReason"):
            metadata["finish_reason"] = candidates[0]["finishReason"]
        if data.get("modelVersion"):
            metadata["model"] = data["modelVersion"]

        return metadata

    def _extract_error_detail(self, response: httpx.Response) -> str:
        try:
            error = response.json().get("error", {})
            return str(error.get("message", "Unknown error"))
        except (ValueError, AttributeError):
            return f"HTTP {response.status_code}"
