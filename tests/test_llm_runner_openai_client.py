"""
Tests for llm_runner.openai_client module.

Tests cover:
- Successful API calls with proper response parsing
- Request payload (system message, passthrough options) and auth header
- Retry logic on transient failures (429, 5xx)
- Immediate failure on non-retryable errors (401, 400, 404)
- Usage metadata extraction
- Error handling and logging (without logging API keys)
- Edge cases (empty prompts, malformed JSON, missing fields, refusals)
"""

import json
import logging

import httpx
import pytest

from llm_panel.config.constants import MAX_PROMPT_LENGTH
from llm_panel.exceptions import ApiError
from llm_panel.llm_runner.openai_client import OPENAI_API_URL, OpenAIClient, validate_prompt


def completion(content="Paris is the capital of France.", usage=True, **extra):
    body = {
        "id": "chatcmpl-123",
        "model": "gpt-4o-2024-08-06",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }
    if usage:
        body["usage"] = {"prompt_tokens": 12, "completion_tokens": 8, "total_tokens": 20}
    body.update(extra)
    return body


class TestOpenAIClientInit:
    """Test suite for OpenAIClient construction."""

    def test_provider_level_client(self):
        """One client serves every OpenAI model."""
        client = OpenAIClient()

        assert client.provider_id == "openai"
        assert client.supports_model_listing is False
        assert client.api_url == OPENAI_API_URL

    def test_custom_url_and_timeout(self):
        client = OpenAIClient(api_url="https://proxy.local/v1/chat/completions", timeout=5.0)

        assert client.api_url == "https://proxy.local/v1/chat/completions"
        assert client.timeout == 5.0


class TestGenerateSuccess:
    """Test suite for successful OpenAI API calls."""

    @pytest.mark.asyncio
    async def test_generate_success(self, httpx_mock):
        """Reply text and usage metadata are extracted."""
        httpx_mock.add_response(method="POST", url=OPENAI_API_URL, json=completion())

        reply = await OpenAIClient().generate("Capital of France?", "gpt-4o", None, "sk-test")

        assert reply.text == "Paris is the capital of France."
        assert reply.metadata == {
            "usage": {"prompt_tokens": 12, "completion_tokens": 8, "total_tokens": 20},
            "model": "gpt-4o-2024-08-06",
            "finish_reason": "stop",
        }

    @pytest.mark.asyncio
    async def test_sends_correct_payload(self, httpx_mock):
        """System prompt becomes a system message; known options pass through."""
        httpx_mock.add_response(method="POST", url=OPENAI_API_URL, json=completion())

        await OpenAIClient().generate(
            "Capital of France?",
            "gpt-4o",
            "You are a geography tutor.",
            "sk-test",
            {"temperature": 0.2, "max_tokens": 100, "unknown_option": True},
        )

        payload = json.loads(httpx_mock.get_request().content)
        assert payload == {
            "model": "gpt-4o",
            "messages": [
                {"role": "system", "content": "You are a geography tutor."},
                {"role": "user", "content": "Capital of France?"},
            ],
            "temperature": 0.2,
            "max_tokens": 100,
        }

    @pytest.mark.asyncio
    async def test_no_system_message_without_system_prompt(self, httpx_mock):
        httpx_mock.add_response(method="POST", url=OPENAI_API_URL, json=completion())

        await OpenAIClient().generate("Hi", "gpt-4o", None, "sk-test")

        payload = json.loads(httpx_mock.get_request().content)
        assert payload["messages"] == [{"role": "user", "content": "Hi"}]

    @pytest.mark.asyncio
    async def test_sends_auth_header(self, httpx_mock):
        httpx_mock.add_response(method="POST", url=OPENAI_API_URL, json=completion())

        await OpenAIClient().generate("Hi", "gpt-4o", None, "sk-test123")

        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Bearer sk-test123"

    @pytest.mark.asyncio
    async def test_empty_content_string_allowed(self, httpx_mock):
        httpx_mock.add_response(method="POST", url=OPENAI_API_URL, json=completion(content=""))

        reply = await OpenAIClient().generate("Hi", "gpt-4o", None, "sk-test")

        assert reply.text == ""

    @pytest.mark.asyncio
    async def test_missing_usage_logs_warning(self, httpx_mock, caplog):
        httpx_mock.add_response(method="POST", url=OPENAI_API_URL, json=completion(usage=False))

        with caplog.at_level(logging.WARNING):
            reply = await OpenAIClient().generate("Hi", "gpt-4o", None, "sk-test")

        assert "usage" not in reply.metadata
        assert "missing 'usage' data" in caplog.text


class TestGenerateValidation:
    """Test prompt validation before any request."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("prompt", ["", "   \n"])
    async def test_empty_prompt(self, prompt):
        with pytest.raises(ValueError, match="Prompt cannot be empty"):
            await OpenAIClient().generate(prompt, "gpt-4o", None, "sk-test")

    def test_oversized_prompt(self):
        with pytest.raises(ValueError, match="exceeds maximum length"):
            validate_prompt("x" * (MAX_PROMPT_LENGTH + 1))

    def test_prompt_at_limit_accepted(self):
        validate_prompt("x" * MAX_PROMPT_LENGTH)


class TestGenerateErrors:
    """Test non-retryable errors, retries and malformed responses."""

    @pytest.mark.asyncio
    async def test_401_fails_immediately(self, httpx_mock):
        httpx_mock.add_response(
            method="POST",
            url=OPENAI_API_URL,
            status_code=401,
            json={"error": {"message": "Incorrect API key provided"}},
        )

        with pytest.raises(ApiError) as exc_info:
            await OpenAIClient().generate("Hi", "gpt-4o", None, "sk-bad")

        assert exc_info.value.message.startswith("API key error: OpenAI rejected the credentials")
        assert "Incorrect API key provided" in exc_info.value.message
        assert len(httpx_mock.get_requests()) == 1

    @pytest.mark.asyncio
    async def test_404_unknown_model(self, httpx_mock):
        httpx_mock.add_response(
            method="POST",
            url=OPENAI_API_URL,
            status_code=404,
            json={"error": {"message": "The model `gpt-9` does not exist"}},
        )

        with pytest.raises(ApiError, match="model not found"):
            await OpenAIClient().generate("Hi", "gpt-9", None, "sk-test")

    @pytest.mark.asyncio
    async def test_400_bad_request(self, httpx_mock):
        httpx_mock.add_response(
            method="POST",
            url=OPENAI_API_URL,
            status_code=400,
            json={"error": {"message": "Invalid temperature"}},
        )

        with pytest.raises(ApiError, match="non-retryable"):
            await OpenAIClient().generate("Hi", "gpt-4o", None, "sk-test")

    @pytest.mark.asyncio
    async def test_429_then_success(self, httpx_mock):
        """Rate limits are retried."""
        httpx_mock.add_response(
            method="POST",
            url=OPENAI_API_URL,
            status_code=429,
            json={"error": {"message": "Rate limit exceeded"}},
        )
        httpx_mock.add_response(method="POST", url=OPENAI_API_URL, json=completion())

        reply = await OpenAIClient().generate("Hi", "gpt-4o", None, "sk-test")

        assert reply.text == "Paris is the capital of France."
        assert len(httpx_mock.get_requests()) == 2

    @pytest.mark.asyncio
    async def test_502_exhausts_retries(self, httpx_mock):
        for _ in range(3):
            httpx_mock.add_response(
                method="POST",
                url=OPENAI_API_URL,
                status_code=502,
                json={"error": {"message": "Bad gateway"}},
            )

        with pytest.raises(httpx.HTTPStatusError):
            await OpenAIClient().generate("Hi", "gpt-4o", None, "sk-test")

        assert len(httpx_mock.get_requests()) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body, match",
        [
            ({"model": "gpt-4o"}, "missing 'choices' array"),
            ({"choices": []}, "missing 'choices' array"),
            ({"choices": [{"index": 0}]}, "missing message content"),
            ({"choices": [{"message": {"role": "assistant"}}]}, "missing message content"),
        ],
    )
    async def test_malformed_responses(self, httpx_mock, body, match):
        httpx_mock.add_response(method="POST", url=OPENAI_API_URL, json=body)

        with pytest.raises(ApiError, match=match):
            await OpenAIClient().generate("Hi", "gpt-4o", None, "sk-test")

    @pytest.mark.asyncio
    async def test_refusal(self, httpx_mock):
        httpx_mock.add_response(
            method="POST",
            url=OPENAI_API_URL,
            json={"choices": [{"message": {"content": None, "refusal": "I can't help with that."}}]},
        )

        with pytest.raises(ApiError, match="Content policy refusal: I can't help with that."):
            await OpenAIClient().generate("Hi", "gpt-4o", None, "sk-test")

    @pytest.mark.asyncio
    async def test_invalid_json(self, httpx_mock):
        httpx_mock.add_response(method="POST", url=OPENAI_API_URL, content=b"<html>oops</html>")

        with pytest.raises(ApiError, match="Failed to parse OpenAI response JSON"):
            await OpenAIClient().generate("Hi", "gpt-4o", None, "sk-test")


class TestSecurity:
    """API keys never reach the logs."""

    @pytest.mark.asyncio
    async def test_success_never_logs_api_key(self, httpx_mock, caplog):
        httpx_mock.add_response(method="POST", url=OPENAI_API_URL, json=completion())

        with caplog.at_level(logging.DEBUG):
            await OpenAIClient().generate("Hi", "gpt-4o", None, "sk-secret-value-123")

        assert "sk-secret-value-123" not in caplog.text

    @pytest.mark.asyncio
    async def test_error_never_logs_api_key(self, httpx_mock, caplog):
        for _ in range(3):
            httpx_mock.add_response(method="POST", url=OPENAI_API_URL, status_code=500, json={})

        with caplog.at_level(logging.DEBUG), pytest.raises(httpx.HTTPStatusError):
            await OpenAIClient().generate("Hi", "gpt-4o", None, "sk-secret-value-123")

        assert "sk-secret-value-123" not in caplog.text


class TestExtractErrorDetail:
    """Test _extract_error_detail()."""

    def test_valid_json(self):
        response = httpx.Response(400, json={"error": {"message": "Invalid model"}})
        assert OpenAIClient()._extract_error_detail(response) == "Invalid model"

    def test_missing_message(self):
        response = httpx.Response(400, json={"error": {}})
        assert OpenAIClient()._extract_error_detail(response) == "Unknown error"

    def test_string_error(self):
        response = httpx.Response(400, json={"error": "bad"})
        assert OpenAIClient()._extract_error_detail(response) == "bad"

    def test_invalid_json(self):
        response = httpx.Response(503, content=b"Service Unavailable")
        assert OpenAIClient()._extract_error_detail(response) == "HTTP 503"
