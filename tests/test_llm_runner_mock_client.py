"""
Tests for llm_runner.mock_client module.

Tests cover:
- Default and scripted replies
- Scripted failures and delays
- Call recording
- Model listing
"""

import pytest

from llm_panel.llm_runner.mock_client import MockProviderClient
from llm_panel.llm_runner.models import ModelInfo


class TestMockProviderClient:
    """Test MockProviderClient behavior."""

    @pytest.mark.asyncio
    async def test_default_response_substitutes_model_id(self):
        client = MockProviderClient()

        reply = await client.generate("Hello", "gpt-4o", None, "key")

        assert reply.text == "Mock response from gpt-4o."
        assert reply.metadata == {"model": "gpt-4o", "usage": {"total_tokens": 100}}

    @pytest.mark.asyncio
    async def test_default_response_prompt_placeholder(self):
        client = MockProviderClient(default_response="echo: {prompt}")

        reply = await client.generate("Hello", "m", None, "key")

        assert reply.text == "echo: Hello"

    @pytest.mark.asyncio
    async def test_scripted_response(self):
        client = MockProviderClient(responses={"gpt-4o": "Paris."}, tokens_per_response=7)

        reply = await client.generate("Capital of France?", "gpt-4o", None, "key")

        assert reply.text == "Paris."
        assert reply.metadata["usage"]["total_tokens"] == 7

    @pytest.mark.asyncio
    async def test_scripted_failure(self):
        client = MockProviderClient(failures={"broken": RuntimeError("connection refused")})

        with pytest.raises(RuntimeError, match="connection refused"):
            await client.generate("Hi", "broken", None, "key")

        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_delay(self):
        client = MockProviderClient(delays={"slow": 0.01})
        reply = await client.generate("Hi", "slow", None, "key")
        assert reply.text == "Mock response from slow."

    @pytest.mark.asyncio
    async def test_records_calls(self):
        client = MockProviderClient()
        options = {"temperature": 0.1}

        await client.generate("Prompt", "m1", "Be brief.", "sk-test", options)
        options["temperature"] = 1.0

        call = client.calls[0]
        assert call.prompt == "Prompt"
        assert call.model_id == "m1"
        assert call.system_prompt == "Be brief."
        assert call.api_key == "sk-test"
        assert call.options == {"temperature": 0.1}

    @pytest.mark.asyncio
    async def test_list_models(self):
        client = MockProviderClient(models=[ModelInfo(id="a"), ModelInfo(id="b", description="B")])

        models = await client.list_models("key")

        assert [m.id for m in models] == ["a", "b"]
        assert client.supports_model_listing is True
