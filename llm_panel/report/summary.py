"""
Completion summary for llm-panel runs.

Folds the executor's per-model statuses and the writer's file ledger into a
single human readable summary: counts, run name, output location, total
time, plus one line per failed model.

Example:
    >>> data = SummaryData.from_results(run_result, file_result, "run-20250314-092653", "./answers/run-20250314-092653")
    >>> summary = format_completion_summary(data, use_colors=False)
    >>> print(summary.summary_text)
    ⚠ 2 of 3 models completed successfully
    Models: 3 total, 2 succeeded, 1 failed
    Run: run-20250314-092653
    Output: ./answers/run-20250314-092653
    Total time: 1.2s
    >>> summary.error_details
    ['anthropic:claude-3-7-sonnet-20250219: [API] API key error: ...']
"""

from __future__ import annotations

from dataclasses import dataclass, field

from rich.markup import escape

from llm_panel.exceptions import ErrorCategory
from llm_panel.llm_runner.executor import QueryStatus, RunResult
from llm_panel.storage.writer import FileOutputResult
from llm_panel.utils.console import render_markup
from llm_panel.utils.time import format_duration_ms


@dataclass(frozen=True)
class SummaryError:
    """One failed model."""

    model_key: str
    message: str
    category: str | None = None


@dataclass
class SummaryData:
    """
    Inputs to format_completion_summary().

    Attributes:
        total_models: Number of selected models
        success_count: Models that answered
        failure_count: Models that failed
        errors: One entry per failed model, in selection order
        run_name: Run directory name
        output_directory_path: Where the files were written
        total_execution_time_ms: Query time plus file writing time
        failed_writes: Files that could not be written
    """

    total_models: int
    success_count: int
    failure_count: int
    run_name: str
    output_directory_path: str
    total_execution_time_ms: float = 0.0
    errors: list[SummaryError] = field(default_factory=list)
    failed_writes: int = 0

    @classmethod
    def from_results(
        cls,
        run_result: RunResult,
        file_result: FileOutputResult | None,
        run_name: str,
        output_directory_path: str,
    ) -> SummaryData:
        statuses = list(run_result.statuses.values())
        errors = [
            SummaryError(
                model_key=record.config_key,
                message=record.error_message or "Unknown error",
                category=record.error_category,
            )
            for record in statuses
            if record.status == QueryStatus.ERROR
        ]
        write_ms = file_result.timing.duration_ms if file_result else 0.0
        return cls(
            total_models=len(statuses),
            success_count=sum(1 for r in statuses if r.status == QueryStatus.SUCCESS),
            failure_count=len(errors),
            run_name=run_name,
            output_directory_path=output_directory_path,
            total_execution_time_ms=run_result.timing.duration_ms + write_ms,
            errors=errors,
            failed_writes=file_result.failed_writes if file_result else 0,
        )


@dataclass(frozen=True)
class CompletionSummary:
    """Rendered summary. error_details is None when nothing failed."""

    summary_text: str
    error_details: list[str] | None = None


def _headline(data: SummaryData) -> str:
    if data.total_models == 0:
        return "[yellow]⚠ No models were queried[/yellow]"
    if data.failure_count == 0:
        return f"[bold green]✓ All {data.total_models} models completed successfully[/bold green]"
    if data.success_count == 0:
        return f"[bold red]✗ All {data.total_models} models failed[/bold red]"
    return (
        f"[bold yellow]⚠ {data.success_count} of {data.total_models} "
        f"models completed successfully[/bold yellow]"
    )


def format_error_line(error: SummaryError, use_colors: bool = True) -> str:
    """
    ``model_key: [Category] message`` with the category omitted when unknown.

    Example:
        >>> format_error_line(SummaryError("openai:gpt-4o", "Rate limit exceeded", "API"), False)
        'openai:gpt-4o: [API] Rate limit exceeded'
    """
    known = error.category and error.category != ErrorCategory.UNKNOWN
    category = escape(f"[{error.category}] ") if known else ""
    markup = f"[red]{escape(error.model_key)}[/red]: {category}{escape(error.message)}"
    return render_markup(markup, use_colors)


def format_completion_summary(data: SummaryData, use_colors: bool = True) -> CompletionSummary:
    """
    Render the completion summary.

    Args:
        data: Summary inputs
        use_colors: ANSI colors (rich markup rendered); plain text otherwise

    Returns:
        CompletionSummary
    """
    lines = [
        _headline(data),
        f"Models: {data.total_models} total, {data.success_count} succeeded, "
        f"{data.failure_count} failed",
        f"[dim]Run:[/dim] {escape(data.run_name)}",
        f"[dim]Output:[/dim] {escape(data.output_directory_path)}",
        f"[dim]Total time:[/dim] {format_duration_ms(data.total_execution_time_ms)}",
    ]
    if data.failed_writes:
        lines.append(f"[red]Files not written: {data.failed_writes}[/red]")

    summary_text = render_markup("\n".join(lines), use_colors)

    error_details = None
    if data.failure_count > 0:
        error_details = [format_error_line(e, use_colors) for e in data.errors]

    return CompletionSummary(summary_text=summary_text, error_details=error_details)


def format_timing_report(
    run_result: RunResult, file_result: FileOutputResult | None, use_colors: bool = True
) -> str:
    """
    Execution timing breakdown (API calls, file writing, per model).

    Models are listed fastest first; "+" marks a success, "x" a failure.
    """
    api_ms = run_result.timing.duration_ms
    write_ms = file_result.timing.duration_ms if file_result else 0.0
    lines = [
        "[bold]Execution timing:[/bold]",
        f"[dim]  Total API calls:    {format_duration_ms(api_ms)}[/dim]",
        f"[dim]  File writing:       {format_duration_ms(write_ms)}[/dim]",
        f"[dim]  Total execution:    {format_duration_ms(api_ms + write_ms)}[/dim]",
        "",
        "[bold]Model timing:[/bold]",
    ]
    timed = [r for r in run_result.statuses.values() if r.duration_ms is not None]
    for record in sorted(timed, key=lambda r: r.duration_ms or 0):
        icon = "+" if record.status == QueryStatus.SUCCESS else "x"
        lines.append(
            f"[dim]  {icon} {escape(record.config_key)}: "
            f"{format_duration_ms(record.duration_ms or 0)}[/dim]"
        )
    return render_markup("\n".join(lines), use_colors)
