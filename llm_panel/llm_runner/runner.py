"""
Run orchestration for llm-panel.

This module implements ``run_panel``, the complete workflow behind
``llm-panel run``:

    load config -> select models -> read prompt and context -> execute
    queries -> process output -> write files -> summarize

The CLI calls it in-process and only takes care of presentation and exit
codes. Every stage reports progress through an optional ``on_progress``
callback instead of printing.

Example:
    >>> outcome = asyncio.run(
    ...     run_panel(RunRequest(prompt_source="question.md", context_paths=["src/"]))
    ... )
    >>> outcome.run_name
    'run-20250314-092653'
    >>> outcome.summary_data.success_count, outcome.summary_data.total_models
    (3, 3)
"""

import asyncio
import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import TextIO

from ..config.constants import DEFAULT_OUTPUT_DIR, SUPPORTED_PROVIDERS
from ..config.loader import get_api_key, load_config
from ..config.schema import AppConfig, ModelConfig
from ..error_classifier import ErrorContext, classify_error
from ..prompt_input import PromptInput, build_prompt_with_context, collect_context_files, read_prompt
from ..report.formatter import OutputOptions, ProcessedOutput, process_output
from ..report.summary import CompletionSummary, SummaryData, format_completion_summary
from ..storage.filesystem import FileSystem
from ..storage.layout import generate_output_directory_path
from ..storage.writer import FileOutputResult, FileWriteDetail, WriteOptions, WriteStatus, write_files
from ..utils.logging import log_with_context
from ..utils.time import run_name_from_timestamp, utc_now
from .executor import ExecutionOptions, QueryStatus, QueryStatusRecord, RunResult, execute_queries
from .mock_client import MockProviderClient
from .models import ModelInfo, ModelTarget, ProviderClient, ProviderRegistry, build_provider_registry
from .selector import ModelSelectionResult, SelectionOptions, select_models

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


@dataclass
class RunRequest:
    """
    Everything ``llm-panel run`` was asked to do.

    Attributes:
        prompt_source: Prompt text, prompt file path, or "-" for stdin
        context_paths: Files/directories appended to the prompt
        config_path: Configuration file (default: ./llm-panel.yaml)
        selection: Model selection filters
        output_dir: Base directory for the run directory (overrides config)
        run_name: Run directory name (default: run-YYYYMMDD-HHMMSS)
        system_prompt: System prompt override for every model
        include_metadata: Metadata sections in files, group stats in tables
        use_table: Table console output
        use_colors: ANSI colors in console output and summary
        timeout_seconds: Per-call timeout (overrides config)
        max_concurrency: In-flight call limit (overrides config)
        throw_on_error: Raise on selection failures instead of running nothing
        stdin: Stream read for "-" (default: sys.stdin)
    """

    prompt_source: str
    context_paths: list[str] = field(default_factory=list)
    config_path: str | None = None
    selection: SelectionOptions = field(default_factory=SelectionOptions)
    output_dir: str | None = None
    run_name: str | None = None
    system_prompt: str | None = None
    include_metadata: bool = False
    use_table: bool = False
    use_colors: bool = True
    timeout_seconds: float | None = None
    max_concurrency: int | None = None
    throw_on_error: bool = True
    stdin: TextIO | None = None


@dataclass
class RunOutcome:
    """Results of every stage of one run."""

    run_name: str
    output_directory: str
    prompt: PromptInput
    context_file_count: int
    selection: ModelSelectionResult
    run_result: RunResult
    processed: ProcessedOutput
    file_output: FileOutputResult
    summary_data: SummaryData
    summary: CompletionSummary

    @property
    def all_succeeded(self) -> bool:
        return (
            self.summary_data.total_models > 0
            and self.summary_data.failure_count == 0
            and self.file_output.failed_writes == 0
        )


def build_dry_run_registry() -> ProviderRegistry:
    """Mock clients registered under every real provider id (no network access)."""
    return ProviderRegistry([MockProviderClient(provider_id=p) for p in SUPPORTED_PROVIDERS])


def _emit(on_progress: ProgressCallback | None, message: str) -> None:
    if on_progress is None:
        return
    try:
        on_progress(message)
    except Exception:
        logger.warning(f"Progress callback failed for message: {message}", exc_info=True)


def _query_progress(on_progress: ProgressCallback | None) -> Callable[[str, QueryStatusRecord], None]:
    def relay(config_key: str, record: QueryStatusRecord) -> None:
        if record.status == QueryStatus.RUNNING:
            _emit(on_progress, f"Querying {config_key}...")
        elif record.status == QueryStatus.SUCCESS:
            _emit(on_progress, f"{config_key} answered ({round(record.duration_ms or 0)}ms)")
        elif record.status == QueryStatus.ERROR:
            _emit(on_progress, f"{config_key} failed: {record.error_message}")

    return relay


def _write_progress(on_progress: ProgressCallback | None) -> Callable[[FileWriteDetail], None]:
    def relay(detail: FileWriteDetail) -> None:
        if detail.status == WriteStatus.SUCCESS:
            _emit(on_progress, f"Wrote {detail.filename}")
        elif detail.status == WriteStatus.ERROR:
            _emit(on_progress, f"Failed to write {detail.filename}: {detail.error}")

    return relay


def resolve_output_directory(request: RunRequest, config: AppConfig, run_name: str) -> str:
    """Run directory: --output, else config output_dir, else the current directory."""
    base = request.output_dir or config.output_dir or DEFAULT_OUTPUT_DIR
    return generate_output_directory_path(run_name, base)


async def run_panel(
    request: RunRequest,
    *,
    config: AppConfig | None = None,
    registry: ProviderRegistry | None = None,
    file_system: FileSystem | None = None,
    env: Mapping[str, str] | None = None,
    on_progress: ProgressCallback | None = None,
    now: datetime | None = None,
) -> RunOutcome:
    """
    Execute one complete run.

    Args:
        request: What to run
        config: Pre-loaded configuration (skips loading request.config_path)
        registry: Provider clients (defaults to build_provider_registry())
        file_system: Filesystem for the writer (defaults to local disk)
        env: Environment for API key lookup (defaults to os.environ)
        on_progress: Receives one human readable message per status change
        now: Clock for the run name and Generated timestamps

    Returns:
        RunOutcome

    Raises:
        PanelError: Any failure that stops the run, already classified
    """
    now = now or utc_now()
    run_name = request.run_name or run_name_from_timestamp(now)
    context = ErrorContext(run_name=run_name, cwd=os.getcwd())

    try:
        if config is None:
            _emit(on_progress, "Loading configuration...")
            config = load_config(request.config_path)

        output_directory = resolve_output_directory(request, config, run_name)
        context = ErrorContext(run_name=run_name, output_directory=output_directory, cwd=os.getcwd())

        _emit(on_progress, "Selecting models...")
        selection = select_models(
            config, request.selection, env=env, throw_on_error=request.throw_on_error
        )

        _emit(on_progress, "Reading input...")
        prompt = read_prompt(request.prompt_source, stdin=request.stdin)
        context_files = collect_context_files(request.context_paths)
        full_prompt = build_prompt_with_context(prompt.content, context_files)

        registry = registry or build_provider_registry()
        options = ExecutionOptions(
            system_prompt=request.system_prompt,
            max_concurrency=request.max_concurrency or config.max_concurrency,
            timeout_seconds=request.timeout_seconds or config.timeout_seconds,
            on_status_update=_query_progress(on_progress),
        )

        def resolve_key(target: ModelTarget) -> str | None:
            return get_api_key(target.to_model_config(), env)

        _emit(on_progress, f"Querying {len(selection.models)} models...")
        run_result = await execute_queries(
            selection.models,
            full_prompt,
            registry,
            options,
            get_api_key=resolve_key,
            context=context,
        )

        processed = process_output(
            run_result.responses,
            OutputOptions(
                include_metadata=request.include_metadata,
                output_directory=output_directory,
                run_name=run_name,
                use_table=request.use_table,
                use_colors=request.use_colors,
            ),
            now=now,
        )

        if processed.files:
            _emit(on_progress, f"Writing {len(processed.files)} files to {output_directory}...")
            file_output = await write_files(
                processed.files,
                output_directory,
                WriteOptions(on_status_update=_write_progress(on_progress), context=context),
                file_system=file_system,
            )
        else:
            file_output = FileOutputResult(output_directory=output_directory)

        summary_data = SummaryData.from_results(run_result, file_output, run_name, output_directory)
        summary = format_completion_summary(summary_data, use_colors=request.use_colors)

    except Exception as e:
        error = classify_error(e, context)
        logger.error(f"Run {run_name} failed: {error.message}")
        if error is e:
            raise
        raise error from e

    log_with_context(
        logger,
        logging.INFO,
        f"Run {run_name} finished: {summary_data.success_count}/{summary_data.total_models} "
        f"models succeeded, {file_output.succeeded_writes} files written",
        context={
            "output_directory": output_directory,
            "failed_models": [e.model_key for e in summary_data.errors],
            "failed_writes": file_output.failed_writes,
            "duration_ms": round(summary_data.total_execution_time_ms),
        },
        run_name=run_name,
    )
    return RunOutcome(
        run_name=run_name,
        output_directory=output_directory,
        prompt=prompt,
        context_file_count=len(context_files),
        selection=selection,
        run_result=run_result,
        processed=processed,
        file_output=file_output,
        summary_data=summary_data,
        summary=summary,
    )


async def fetch_remote_models(
    registry: ProviderRegistry,
    providers: list[str] | None = None,
    env: Mapping[str, str] | None = None,
) -> dict[str, list[ModelInfo] | str]:
    """
    List models from every registered client that supports listing.

    Clients are checked once through ``supports_model_listing``; providers
    without the capability are left out. A failed listing is reported as
    its classified error message instead of raising.

    Args:
        registry: Provider clients
        providers: Restrict to these provider ids
        env: Environment for API key lookup

    Returns:
        provider -> models, or provider -> error message
    """
    clients = [
        c for c in registry.listing_clients() if providers is None or c.provider_id in providers
    ]

    async def _list(client: ProviderClient) -> list[ModelInfo] | str:
        provider_id = client.provider_id
        api_key = get_api_key(ModelConfig(provider=provider_id, model_id="listing"), env)
        if api_key is None and provider_id != "mock":
            return f"Missing API key ({provider_id.upper()}_API_KEY is not set)"
        try:
            return await client.list_models(api_key or "")
        except Exception as e:
            error = classify_error(e)
            logger.warning(f"Model listing failed for {provider_id}: {error.message}")
            return error.message

    results = await asyncio.gather(*(_list(c) for c in clients))
    return {c.provider_id: result for c, result in zip(clients, results, strict=True)}
