"""
Tests for llm_runner.runner module.

Tests cover:
- run_panel() end to end with mock provider clients
- Output directory resolution (--output, config output_dir, default)
- Progress messages for every stage
- Partial failures, write failures and classified errors
- Context files appended to the prompt
- build_dry_run_registry() and fetch_remote_models()
"""

import io
import os
from datetime import UTC, datetime

import pytest

from llm_panel.config.constants import SUPPORTED_PROVIDERS
from llm_panel.config.schema import AppConfig, GroupConfig, ModelConfig
from llm_panel.exceptions import ApiError, ConfigFileNotFoundError, InputError, ModelSelectionError
from llm_panel.llm_runner.mock_client import MockProviderClient
from llm_panel.llm_runner.models import ModelInfo, ProviderRegistry
from llm_panel.llm_runner.runner import (
    RunRequest,
    build_dry_run_registry,
    fetch_remote_models,
    resolve_output_directory,
    run_panel,
)
from llm_panel.llm_runner.selector import SelectionOptions
from llm_panel.storage.filesystem import LocalFileSystem

NOW = datetime(2025, 3, 14, 9, 26, 53, tzinfo=UTC)
ENV = {"MOCK_API_KEY": "test-key"}


class ReadOnlyFileSystem(LocalFileSystem):
    """Creates directories but refuses to write files."""

    def write_file(self, path, content):
        raise PermissionError(13, "Permission denied", path)


@pytest.fixture
def config():
    return AppConfig(
        models=[
            ModelConfig(provider="mock", model_id="alpha"),
            ModelConfig(provider="mock", model_id="beta"),
            ModelConfig(provider="mock", model_id="gamma", enabled=False),
        ],
        groups={
            "review": GroupConfig(models=["mock:beta", "mock:gamma"], system_prompt="Be critical."),
        },
    )


@pytest.fixture
def client():
    return MockProviderClient(responses={"alpha": "Alpha answer.", "beta": "Beta answer."})


def run(request, config, client, **kwargs):
    kwargs.setdefault("env", ENV)
    kwargs.setdefault("now", NOW)
    return run_panel(request, config=config, registry=ProviderRegistry([client]), **kwargs)


class TestResolveOutputDirectory:
    """Test resolve_output_directory()."""

    def test_request_wins(self, config, tmp_path):
        config.output_dir = "/from/config"
        request = RunRequest(prompt_source="q", output_dir=str(tmp_path))

        assert resolve_output_directory(request, config, "run-1") == str(tmp_path / "run-1")

    def test_config_output_dir(self, config):
        config.output_dir = "/from/config"

        assert resolve_output_directory(RunRequest(prompt_source="q"), config, "run-1") == "/from/config/run-1"

    def test_default_is_current_directory(self, config):
        assert resolve_output_directory(RunRequest(prompt_source="q"), config, "run-1") == "run-1"


class TestRunPanel:
    """Test run_panel()."""

    @pytest.mark.asyncio
    async def test_all_enabled_models(self, config, client, tmp_path):
        request = RunRequest(prompt_source="What is a CRDT?", output_dir=str(tmp_path))

        outcome = await run(request, config, client)

        run_dir = tmp_path / "run-20250314-092653"
        assert outcome.run_name == "run-20250314-092653"
        assert outcome.output_directory == str(run_dir)
        assert [r.config_key for r in outcome.run_result.responses] == ["mock:alpha", "mock:beta"]
        assert outcome.summary_data.success_count == 2
        assert outcome.summary_data.failure_count == 0
        assert outcome.all_succeeded
        assert outcome.file_output.succeeded_writes == 2
        assert sorted(os.listdir(run_dir)) == ["mock-alpha.md", "review-mock-beta.md"]

        content = (run_dir / "mock-alpha.md").read_text(encoding="utf-8")
        assert content.startswith("# mock:alpha\n\nGenerated: 2025-03-14T09:26:53.000Z\n")
        assert "## Response\n\nAlpha answer.\n" in content

    @pytest.mark.asyncio
    async def test_prompt_and_api_key_reach_client(self, config, client, tmp_path):
        request = RunRequest(prompt_source="Explain Raft", output_dir=str(tmp_path))

        await run(request, config, client)

        assert {c.prompt for c in client.calls} == {"Explain Raft"}
        assert {c.api_key for c in client.calls} == {"test-key"}

    @pytest.mark.asyncio
    async def test_group_selection_and_system_prompt(self, config, client, tmp_path):
        request = RunRequest(
            prompt_source="Review this",
            output_dir=str(tmp_path),
            selection=SelectionOptions(group_name="review"),
        )

        outcome = await run(request, config, client)

        assert [t.config_key for t in outcome.selection.models] == ["mock:beta"]
        assert [c.model_id for c in client.calls] == ["beta"]
        assert {c.system_prompt for c in client.calls} == {"Be critical."}
        assert "Skipping disabled model: mock:gamma" in outcome.selection.warnings

    @pytest.mark.asyncio
    async def test_system_prompt_override(self, config, client, tmp_path):
        request = RunRequest(prompt_source="q", output_dir=str(tmp_path), system_prompt="Answer in French.")

        await run(request, config, client)

        assert {c.system_prompt for c in client.calls} == {"Answer in French."}

    @pytest.mark.asyncio
    async def test_explicit_run_name(self, config, client, tmp_path):
        request = RunRequest(prompt_source="q", output_dir=str(tmp_path), run_name="nightly")

        outcome = await run(request, config, client)

        assert outcome.output_directory == str(tmp_path / "nightly")
        assert (tmp_path / "nightly" / "mock-alpha.md").exists()

    @pytest.mark.asyncio
    async def test_prompt_from_stdin(self, config, client, tmp_path):
        request = RunRequest(prompt_source="-", output_dir=str(tmp_path), stdin=io.StringIO("piped question\n"))

        outcome = await run(request, config, client)

        assert outcome.prompt.content == "piped question"
        assert client.calls[0].prompt == "piped question"

    @pytest.mark.asyncio
    async def test_context_files_appended(self, config, client, tmp_path):
        source = tmp_path / "src"
        source.mkdir()
        (source / "app.py").write_text("print('hi')\n", encoding="utf-8")
        request = RunRequest(
            prompt_source="Review the code",
            context_paths=[str(source)],
            output_dir=str(tmp_path / "out"),
        )

        outcome = await run(request, config, client)

        assert outcome.context_file_count == 1
        prompt = client.calls[0].prompt
        assert prompt.startswith("Review the code\n\n# Context Files\n")
        assert f"## File: {source / 'app.py'}" in prompt
        assert "print('hi')" in prompt

    @pytest.mark.asyncio
    async def test_partial_failure(self, config, tmp_path):
        client = MockProviderClient(failures={"beta": RuntimeError("connection refused")})
        request = RunRequest(prompt_source="q", output_dir=str(tmp_path), use_colors=False)

        outcome = await run(request, config, client)

        assert outcome.summary_data.success_count == 1
        assert outcome.summary_data.failure_count == 1
        assert not outcome.all_succeeded
        assert outcome.summary.summary_text.startswith("⚠ 1 of 2 models completed successfully")
        # Failed models still get a file describing the error
        failed = (tmp_path / outcome.run_name / "review-mock-beta.md").read_text(encoding="utf-8")
        assert "## Error" in failed
        assert "Network error: connection refused" in failed

    @pytest.mark.asyncio
    async def test_write_failures_are_reported(self, config, client, tmp_path):
        request = RunRequest(prompt_source="q", output_dir=str(tmp_path))

        outcome = await run(request, config, client, file_system=ReadOnlyFileSystem())

        assert outcome.summary_data.success_count == 2
        assert outcome.file_output.failed_writes == 2
        assert outcome.summary_data.failed_writes == 2
        assert not outcome.all_succeeded

    @pytest.mark.asyncio
    async def test_progress_messages(self, config, client, tmp_path):
        messages = []
        request = RunRequest(prompt_source="q", output_dir=str(tmp_path))

        outcome = await run(request, config, client, on_progress=messages.append)

        assert messages[:3] == ["Selecting models...", "Reading input...", "Querying 2 models..."]
        assert "Querying mock:alpha..." in messages
        assert any(m.startswith("mock:alpha answered (") for m in messages)
        assert f"Writing 2 files to {outcome.output_directory}..." in messages
        assert "Wrote mock-alpha.md" in messages
        assert "Loading configuration..." not in messages

    @pytest.mark.asyncio
    async def test_failing_progress_callback_does_not_stop_run(self, config, client, tmp_path):
        def explode(message):
            raise RuntimeError("display closed")

        outcome = await run(RunRequest(prompt_source="q", output_dir=str(tmp_path)), config, client, on_progress=explode)

        assert outcome.all_succeeded

    @pytest.mark.asyncio
    async def test_loads_config_file(self, client, tmp_path):
        config_file = tmp_path / "panel.yaml"
        config_file.write_text(
            "models:\n  - provider: mock\n    model_id: alpha\n",
            encoding="utf-8",
        )
        messages = []
        request = RunRequest(prompt_source="q", config_path=str(config_file), output_dir=str(tmp_path))

        outcome = await run_panel(
            request,
            registry=ProviderRegistry([client]),
            env=ENV,
            now=NOW,
            on_progress=messages.append,
        )

        assert messages[0] == "Loading configuration..."
        assert outcome.summary_data.total_models == 1

    @pytest.mark.asyncio
    async def test_missing_config_file(self, client, tmp_path):
        request = RunRequest(prompt_source="q", config_path=str(tmp_path / "missing.yaml"))

        with pytest.raises(ConfigFileNotFoundError) as exc_info:
            await run_panel(request, registry=ProviderRegistry([client]), env=ENV, now=NOW)

        assert any("run-20250314-092653" in s for s in exc_info.value.suggestions)

    @pytest.mark.asyncio
    async def test_unknown_model(self, config, client):
        request = RunRequest(prompt_source="q", selection=SelectionOptions(specific_model="mock:delta"))

        with pytest.raises(ModelSelectionError):
            await run(request, config, client)

    @pytest.mark.asyncio
    async def test_missing_api_keys(self, config, client):
        with pytest.raises(ModelSelectionError, match="No models available to run"):
            await run(RunRequest(prompt_source="q"), config, client, env={})

    @pytest.mark.asyncio
    async def test_selection_failure_without_throw(self, config, client, tmp_path):
        request = RunRequest(prompt_source="q", output_dir=str(tmp_path), throw_on_error=False)

        outcome = await run(request, config, client, env={})

        assert outcome.summary_data.total_models == 0
        assert outcome.file_output.files == []
        assert not outcome.all_succeeded
        assert not (tmp_path / outcome.run_name).exists()

    @pytest.mark.asyncio
    async def test_empty_prompt(self, config, client):
        with pytest.raises(InputError, match="Prompt is empty"):
            await run(RunRequest(prompt_source="  "), config, client)

    @pytest.mark.asyncio
    async def test_missing_context_path(self, config, client, tmp_path):
        request = RunRequest(prompt_source="q", context_paths=[str(tmp_path / "nope")])

        with pytest.raises(InputError, match="Context path not found"):
            await run(request, config, client)
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_dry_run_without_api_keys(self, tmp_path):
        config = AppConfig(
            models=[
                ModelConfig(provider="openai", model_id="gpt-4o"),
                ModelConfig(provider="anthropic", model_id="claude-3-7-sonnet-20250219"),
            ]
        )
        request = RunRequest(
            prompt_source="q",
            output_dir=str(tmp_path),
            selection=SelectionOptions(validate_api_keys=False),
        )

        outcome = await run_panel(request, config=config, registry=build_dry_run_registry(), env={}, now=NOW)

        assert outcome.all_succeeded
        assert [r.text for r in outcome.run_result.responses] == [
            "Mock response from gpt-4o.",
            "Mock response from claude-3-7-sonnet-20250219.",
        ]


class TestBuildDryRunRegistry:
    """Test build_dry_run_registry()."""

    def test_every_provider_has_mock_client(self):
        registry = build_dry_run_registry()

        for provider in SUPPORTED_PROVIDERS:
            assert isinstance(registry.get(provider), MockProviderClient)


class TestFetchRemoteModels:
    """Test fetch_remote_models()."""

    @pytest.mark.asyncio
    async def test_lists_models(self):
        registry = ProviderRegistry(
            [MockProviderClient(provider_id="openrouter", models=[ModelInfo(id="deepseek/deepseek-r1")])]
        )

        result = await fetch_remote_models(registry, env={"OPENROUTER_API_KEY": "k"})

        assert result == {"openrouter": [ModelInfo(id="deepseek/deepseek-r1")]}

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        registry = ProviderRegistry([MockProviderClient(provider_id="openrouter")])

        result = await fetch_remote_models(registry, env={})

        assert result == {"openrouter": "Missing API key (OPENROUTER_API_KEY is not set)"}

    @pytest.mark.asyncio
    async def test_skips_clients_without_listing(self):
        registry = ProviderRegistry(
            [
                MockProviderClient(provider_id="openai", supports_model_listing=False),
                MockProviderClient(provider_id="openrouter"),
            ]
        )

        result = await fetch_remote_models(registry, env={"OPENROUTER_API_KEY": "k"})

        assert list(result) == ["openrouter"]

    @pytest.mark.asyncio
    async def test_provider_filter(self):
        registry = ProviderRegistry(
            [MockProviderClient(provider_id="google"), MockProviderClient(provider_id="openrouter")]
        )

        result = await fetch_remote_models(
            registry, providers=["google"], env={"GOOGLE_API_KEY": "k", "OPENROUTER_API_KEY": "k"}
        )

        assert list(result) == ["google"]

    @pytest.mark.asyncio
    async def test_listing_failure_becomes_message(self):
        class FailingListing(MockProviderClient):
            async def list_models(self, api_key):
                raise ApiError("API error from openrouter (HTTP 401): invalid key")

        registry = ProviderRegistry([FailingListing(provider_id="openrouter")])

        result = await fetch_remote_models(registry, env={"OPENROUTER_API_KEY": "k"})

        assert result == {"openrouter": "API error from openrouter (HTTP 401): invalid key"}
