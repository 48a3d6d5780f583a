"""
Retry configuration for provider API calls.

Centralized retry logic using tenacity with exponential backoff. Used by
every HTTP provider client so retry behavior is identical across providers.
The executor itself never retries: a provider call is one best-effort
attempt from its point of view, whatever the client does internally.

Key features:
- Exponential backoff with bounded min/max wait
- Retry on network errors and server errors (429, 5xx)
- Fail fast on client errors (400, 401, 403, 404) with a classified ApiError

Example:
    >>> @create_retry_decorator()
    ... async def call_api():
    ...     response = await client.post(url, json=payload)
    ...     if response.status_code in NO_RETRY_STATUS_CODES:
    ...         raise non_retryable_error("OpenAI", "gpt-4o", response.status_code, detail)
    ...     response.raise_for_status()
"""

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from llm_panel.exceptions import ApiError

# ============================================================================
# RETRY CONSTANTS
# ============================================================================

# Maximum number of attempts (1 initial + 2 retries)
MAX_ATTEMPTS = 3

# Minimum wait time between retries (seconds)
MIN_WAIT_SECONDS = 1

# Maximum wait time between retries (seconds)
MAX_WAIT_SECONDS = 60

# 429: rate limit, 5xx: server errors
RETRY_STATUS_CODES = frozenset([429, 500, 502, 503, 504])

# 400: bad request, 401/403: credentials, 404: unknown model or endpoint
NO_RETRY_STATUS_CODES = frozenset([400, 401, 403, 404])

# HTTP request timeout in seconds, per attempt
# Long answers from large models regularly take more than a minute
REQUEST_TIMEOUT = 120.0

# ============================================================================
# RETRY DECORATOR FACTORY
# ============================================================================


def create_retry_decorator():
    """
    Create a tenacity retry decorator for provider API calls.

    Retries httpx.HTTPStatusError, httpx.ConnectError and
    httpx.TimeoutException up to MAX_ATTEMPTS with exponential backoff,
    then re-raises the last exception. Works on async functions.

    Note:
        The caller raises ApiError for NO_RETRY_STATUS_CODES before calling
        raise_for_status(), so permanent errors are never retried.
    """
    return retry(
        stop=stop_after_attempt(MAX_ATTEMPTS),
        wait=wait_exponential(
            multiplier=1,
            min=MIN_WAIT_SECONDS,
            max=MAX_WAIT_SECONDS,
        ),
        retry=retry_if_exception_type(
            (
                httpx.HTTPStatusError,
                httpx.ConnectError,
                httpx.TimeoutException,
            )
        ),
        reraise=True,
    )


def non_retryable_error(
    provider_label: str, model_id: str, status_code: int, detail: str
) -> ApiError:
    """
    Build the ApiError raised for a non-retryable HTTP status.

    Args:
        provider_label: Human provider name ("OpenAI")
        model_id: Model that was queried
        status_code: HTTP status code
        detail: Error detail extracted from the response body

    Example:
        >>> err = non_retryable_error("OpenAI", "gpt-4o", 401, "Incorrect API key")
        >>> err.message
        'API key error: OpenAI rejected the credentials (status=401, model=gpt-4o): Incorrect API key'
    """
    if status_code in (401, 403):
        return ApiError(
            f"API key error: {provider_label} rejected the credentials "
            f"(status={status_code}, model={model_id}): {detail}",
            suggestions=[
                f"Check the {provider_label} API key environment variable",
                "Verify that the key is valid and has access to this model",
            ],
        )

    if status_code == 404:
        return ApiError(
            f"{provider_label} API error: model not found "
            f"(status=404, model={model_id}): {detail}",
            suggestions=[
                f'Check that "{model_id}" is a valid {provider_label} model id',
                "Run `llm-panel models --remote` to list models where supported",
            ],
        )

    return ApiError(
        f"{provider_label} API error (non-retryable): "
        f"status={status_code}, model={model_id}, detail={detail}",
        suggestions=["Check the request options configured for this model"],
    )
