"""
CLI entrypoint for llm-panel.

Provides a dual-mode command-line interface with:
- Human-friendly output: Rich spinners, tables, panels, colored text
- Agent-friendly output: Structured JSON for automation
- Quiet mode: Tab-separated minimal output for shell scripts

Commands:
    run: Send one prompt to a panel of models and save every answer
    models: List configured models (and, with --remote, provider listings)
    version: Show the installed version

Exit codes:
    0: Success - every selected model answered and every file was written
    1: Configuration error (invalid YAML, unknown model or group, no usable models)
    2: Filesystem error (prompt/context unreadable, output not writable)
    3: Partial failure (some models failed, or some files were not written)
    4: Complete failure (no model answered)
    5: Unexpected error

Examples:
    # Ask every enabled model
    llm-panel run "Explain the CAP theorem"

    # Prompt from a file, with source code as context, only the "coding" group
    llm-panel run prompt.md src/ --group coding

    # Explicit models, results as a table
    llm-panel run - -m openai:gpt-4o,anthropic:claude-3-7-sonnet-20250219 --table < prompt.md

    # Agent mode for automation
    llm-panel run prompt.md --format json

Security:
    - API keys are loaded from environment variables only
    - Errors may contain file paths but never API keys
"""

import asyncio
import json
import logging
import sys
from pathlib import Path

import typer
from rich.markup import escape
from rich.table import Table
from rich.traceback import install as install_rich_traceback

from llm_panel.config.loader import api_key_env_var_for, get_api_key, load_config
from llm_panel.exceptions import (
    ConfigError,
    ErrorCategory,
    FileSystemError,
    PanelError,
)
from llm_panel.llm_runner.models import build_provider_registry
from llm_panel.llm_runner.runner import (
    RunOutcome,
    RunRequest,
    build_dry_run_registry,
    fetch_remote_models,
    run_panel,
)
from llm_panel.llm_runner.selector import SelectionOptions
from llm_panel.report.formatter import format_model_list, metadata_summary
from llm_panel.report.summary import format_completion_summary, format_timing_report
from llm_panel.utils.console import (
    console,
    error,
    info,
    output_mode,
    print_final_summary,
    spinner,
    success,
    warning,
)
from llm_panel.utils.logging import setup_logging

# Install Rich tracebacks for better error messages
install_rich_traceback(show_locals=False)

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0  # Every model answered, every file written
EXIT_CONFIG_ERROR = 1  # Config or model selection failed
EXIT_FILESYSTEM_ERROR = 2  # Input unreadable or output not writable
EXIT_PARTIAL_FAILURE = 3  # Some models or files failed
EXIT_COMPLETE_FAILURE = 4  # No model answered
EXIT_UNEXPECTED_ERROR = 5  # Anything else

# Create Typer app
app = typer.Typer(
    name="llm-panel",
    help="Ask a panel of LLMs the same question and keep every answer",
    add_completion=False,  # Skip shell completion for simplicity
)


def exit_code_for_error(exc: BaseException) -> int:
    """
    Exit code for an error that stopped a command.

    Example:
        >>> exit_code_for_error(ModelSelectionError("No models available to run"))
        1
    """
    if isinstance(exc, ConfigError):
        return EXIT_CONFIG_ERROR
    if isinstance(exc, FileSystemError):
        return EXIT_FILESYSTEM_ERROR
    if isinstance(exc, PanelError) and exc.category in (ErrorCategory.API, ErrorCategory.NETWORK):
        return EXIT_COMPLETE_FAILURE
    return EXIT_UNEXPECTED_ERROR


def exit_code_for_outcome(outcome: RunOutcome) -> int:
    """Exit code for a run that completed."""
    data = outcome.summary_data
    if data.total_models == 0 or data.success_count == 0:
        return EXIT_COMPLETE_FAILURE
    if outcome.file_output.files and outcome.file_output.succeeded_writes == 0:
        return EXIT_FILESYSTEM_ERROR
    if data.failure_count > 0 or outcome.file_output.failed_writes > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS


def _report_error(exc: PanelError, verbose: bool) -> None:
    """Print a classified error with its suggestions and examples."""
    error(escape(exc.message))
    if output_mode.is_agent():
        output_mode.add_json("error", exc.to_dict())
        output_mode.flush_json()
        return
    for suggestion in exc.suggestions:
        info(escape(suggestion))
    if exc.examples:
        info("Examples:")
        for example in exc.examples:
            info(f"  {escape(example)}")
    if verbose:
        import traceback

        traceback.print_exception(exc)


def _split_models(models: str | None) -> list[str] | None:
    if not models:
        return None
    return [m.strip() for m in models.split(",") if m.strip()]


def _outcome_to_json(outcome: RunOutcome) -> None:
    """Buffer per-model results for agent mode."""
    files = {d.model_key: d for d in outcome.file_output.files}
    results = []
    for response in outcome.run_result.responses:
        detail = files.get(response.config_key)
        results.append(
            {
                "model": response.config_key,
                "group": response.group_name,
                "status": "error" if response.error is not None else "success",
                "error": response.error,
                "error_category": response.error_category,
                "response_time_ms": response.metadata.get("response_time_ms"),
                "file": detail.file_path if detail else None,
                "file_status": str(detail.status) if detail else None,
            }
        )
    output_mode.add_json("results", results)
    output_mode.add_json("totals", metadata_summary(outcome.run_result.responses))


@app.command()
def run(
    prompt: str = typer.Argument(
        ...,
        help="Prompt text, path to a prompt file, or '-' to read stdin",
    ),
    context: list[str] | None = typer.Argument(
        None,
        help="Files or directories to include as context",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML configuration file (default: ./llm-panel.yaml)",
    ),
    models: str | None = typer.Option(
        None,
        "--models",
        "-m",
        help="Comma separated provider:model list to run",
    ),
    group: str | None = typer.Option(
        None,
        "--group",
        "-g",
        help="Run the models of this group",
    ),
    model: str | None = typer.Option(
        None,
        "--model",
        help="Run a single provider:model",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Base directory for the run directory (default: config output_dir or .)",
    ),
    system_prompt: str | None = typer.Option(
        None,
        "--system-prompt",
        help="System prompt for every model (overrides configuration)",
    ),
    include_metadata: bool = typer.Option(
        False,
        "--include-metadata",
        help="Add metadata to answer files and group statistics to tables",
    ),
    table: bool = typer.Option(
        False,
        "--table",
        help="Show results as a table instead of answer previews",
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable colored output",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        min=0.1,
        help="Per-model timeout in seconds",
    ),
    concurrency: int | None = typer.Option(
        None,
        "--concurrency",
        min=1,
        max=50,
        help="Maximum number of models queried at once",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Use offline mock clients instead of calling providers",
    ),
    show_timing: bool = typer.Option(
        False,
        "--show-timing",
        help="Show execution timing per stage and per model",
    ),
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: 'text' (human-friendly) or 'json' (machine-readable)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Minimal output (tab-separated values)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging and tracebacks",
    ),
):
    """
    Send one prompt to a panel of models and save every answer.

    Each answer is written to its own markdown file in a run-YYYYMMDD-HHMMSS
    directory. Selection precedence: --models > --model > --group > every
    enabled model.

    Exit codes:
      0: All models answered
      1: Configuration error
      2: Filesystem error
      3: Partial failure (some models failed)
      4: Complete failure (all models failed)
      5: Unexpected error

    Examples:
      llm-panel run "Explain the CAP theorem"

      llm-panel run prompt.md src/ --group coding --table

      llm-panel run prompt.md --format json
    """
    if format not in ("text", "json"):
        error(f"Invalid format: {escape(format)}. Must be 'text' or 'json'")
        raise typer.Exit(EXIT_CONFIG_ERROR)

    # Set global output mode based on flags
    output_mode.format = format
    output_mode.quiet = quiet

    # Suppress JSON logs in human mode (unless verbose=True)
    setup_logging(verbose=verbose, quiet_logs=output_mode.is_human())

    use_colors = not no_color and output_mode.is_human() and sys.stdout.isatty()

    request = RunRequest(
        prompt_source=prompt,
        context_paths=list(context or []),
        config_path=str(config) if config else None,
        selection=SelectionOptions(
            specific_model=model,
            group_name=group,
            models=_split_models(models),
            validate_api_keys=not dry_run,
        ),
        output_dir=str(output) if output else None,
        system_prompt=system_prompt,
        include_metadata=include_metadata,
        use_table=table,
        use_colors=use_colors,
        timeout_seconds=timeout,
        max_concurrency=concurrency,
    )

    try:
        with spinner("Starting run...") as status:
            outcome = asyncio.run(
                run_panel(
                    request,
                    registry=build_dry_run_registry() if dry_run else None,
                    on_progress=lambda message: status.update(f"[bold blue]{escape(message)}"),
                )
            )
    except PanelError as e:
        _report_error(e, verbose)
        raise typer.Exit(exit_code_for_error(e))
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        error(f"Unexpected error: {escape(str(e))}")
        output_mode.flush_json()
        if verbose:
            import traceback

            traceback.print_exc()
        raise typer.Exit(EXIT_UNEXPECTED_ERROR)

    for message in outcome.selection.warnings:
        warning(escape(message))

    if dry_run:
        info("Dry run: answers come from mock clients")

    if output_mode.is_human() and not quiet:
        console.print()
        console.print(outcome.processed.console_output, markup=False, highlight=False)
        console.print()
        if show_timing:
            console.print(
                format_timing_report(outcome.run_result, outcome.file_output, use_colors),
                markup=False,
                highlight=False,
            )
            console.print()
    elif output_mode.is_agent():
        _outcome_to_json(outcome)

    if outcome.file_output.failed_writes:
        warning(
            f"{outcome.file_output.failed_writes} of {len(outcome.file_output.files)} "
            f"files could not be written"
        )
    elif outcome.file_output.files:
        success(f"Wrote {outcome.file_output.succeeded_writes} files to {escape(outcome.output_directory)}")

    # The panel renders its own styles, so it gets the plain summary
    plain = format_completion_summary(outcome.summary_data, use_colors=False)
    print_final_summary(
        run_name=outcome.run_name,
        output_dir=outcome.output_directory,
        successful=outcome.summary_data.success_count,
        total=outcome.summary_data.total_models,
        summary_text=escape(plain.summary_text),
        error_details=[escape(line) for line in plain.error_details or []],
    )

    raise typer.Exit(exit_code_for_outcome(outcome))


@app.command()
def models(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML configuration file (default: ./llm-panel.yaml)",
    ),
    provider: str | None = typer.Option(
        None,
        "--provider",
        "-p",
        help="Only show models of this provider",
    ),
    remote: bool = typer.Option(
        False,
        "--remote",
        help="Also list models advertised by providers that support listing",
    ),
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: 'text' (human-friendly) or 'json' (machine-readable)",
    ),
):
    """
    List configured models, their groups and API key status.

    Examples:
      llm-panel models

      llm-panel models --provider openrouter --remote
    """
    output_mode.format = format
    output_mode.quiet = False
    setup_logging(quiet_logs=True)

    try:
        app_config = load_config(str(config) if config else None)
    except PanelError as e:
        _report_error(e, verbose=False)
        raise typer.Exit(exit_code_for_error(e))

    provider_filter = provider.lower() if provider else None
    configured = [
        m for m in app_config.models if provider_filter is None or m.provider == provider_filter
    ]

    rows = [
        {
            "model": m.config_key,
            "enabled": m.enabled,
            "groups": app_config.groups_for(m.config_key),
            "api_key_env_var": api_key_env_var_for(m),
            "api_key_set": get_api_key(m) is not None,
        }
        for m in configured
    ]

    remote_models = None
    if remote:
        registry = build_provider_registry()
        providers = [provider_filter] if provider_filter else None
        with spinner("Fetching provider model listings..."):
            remote_models = asyncio.run(fetch_remote_models(registry, providers))

    if output_mode.is_agent():
        output_mode.add_json("models", rows)
        if remote_models is not None:
            output_mode.add_json(
                "remote_models",
                {
                    p: result if isinstance(result, str) else [m.id for m in result]
                    for p, result in remote_models.items()
                },
            )
        output_mode.flush_json()
        raise typer.Exit(EXIT_SUCCESS)

    if not rows:
        warning("No models configured" + (f" for provider {escape(provider_filter)}" if provider_filter else ""))
    else:
        model_table = Table(title="Configured Models", show_header=True, header_style="bold magenta")
        model_table.add_column("Model", style="cyan")
        model_table.add_column("Enabled", justify="center")
        model_table.add_column("Groups")
        model_table.add_column("API Key", justify="center")
        for row in rows:
            model_table.add_row(
                escape(row["model"]),
                "[green]yes[/green]" if row["enabled"] else "[dim]no[/dim]",
                escape(", ".join(row["groups"])) or "[dim]-[/dim]",
                "[green]✓[/green]" if row["api_key_set"] else f"[red]✗ {row['api_key_env_var']}[/red]",
            )
        console.print(model_table)

    if remote_models is not None:
        console.print()
        console.print(format_model_list(remote_models, sys.stdout.isatty()), markup=False, highlight=False)

    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def version(
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: 'text' (human-friendly) or 'json' (machine-readable)",
    ),
):
    """Show the installed llm-panel version."""
    version_str = _read_version()
    if format == "json":
        print(json.dumps({"name": "llm-panel", "version": version_str}))
    else:
        console.print(f"[bold cyan]llm-panel[/bold cyan] version {version_str}")
    raise typer.Exit(EXIT_SUCCESS)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
    ),
):
    """
    llm-panel - Ask a panel of LLMs the same question.

    Sends one prompt (plus optional context files) to models from OpenAI,
    Anthropic, Google and OpenRouter concurrently and saves every answer
    as markdown.

    Use 'llm-panel COMMAND --help' for detailed command documentation.
    """
    if version:
        console.print(f"[bold cyan]llm-panel[/bold cyan] version {_read_version()}")
        raise typer.Exit(EXIT_SUCCESS)

    if ctx.invoked_subcommand is None:
        console.print("[yellow]Use --help to see available commands[/yellow]")
        console.print()
        console.print("Quick start:")
        console.print('  llm-panel run "Explain the CAP theorem"')
        console.print()
        console.print("Commands:")
        console.print("  run       Send a prompt to every selected model")
        console.print("  models    List configured models")
        console.print("  version   Show version")


def _read_version() -> str:
    """
    Read version from package metadata (pyproject.toml).

    Returns:
        Version string (e.g., "0.1.0")
    """
    try:
        from importlib.metadata import version

        return version("llm-panel")
    except Exception:
        # Fallback if package metadata is not available
        return "0.1.0"


if __name__ == "__main__":
    app()
