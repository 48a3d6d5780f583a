"""
Output processing for llm-panel.

Turns the responses of a run into in-memory FileArtifacts (one markdown
file per model) and a console string. Everything here is pure: no disk
access, no printing. The file writer persists the artifacts and the CLI
prints the console output.

Markdown file layout:
    # openai:gpt-4o (coding group)

    Generated: 2025-03-14T09:26:53.123Z
    Group: coding

    ## Response

    <response text verbatim>

    ## Metadata            (only with include_metadata)

    ```json
    {...}
    ```

Identical input with a fixed ``now`` produces byte-identical artifacts.

Example:
    >>> processed = process_output(
    ...     run_result.responses,
    ...     OutputOptions(run_name="run-20250314-092653", output_directory="./answers/run-20250314-092653"),
    ... )
    >>> [f.filename for f in processed.files]
    ['openai-gpt-4o.md', 'coding-anthropic-claude-3-7-sonnet-20250219.md']
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from rich import box
from rich.markup import escape
from rich.table import Table

from llm_panel.config.constants import DEFAULT_GROUP_NAME
from llm_panel.llm_runner.models import LLMResponse, ModelInfo
from llm_panel.storage.layout import (
    generate_filename,
    generate_output_directory_path,
    is_default_group,
    with_collision_suffix,
)
from llm_panel.storage.writer import FileArtifact
from llm_panel.utils.console import render_markup, render_to_text
from llm_panel.utils.time import iso_timestamp_ms, run_name_from_timestamp, utc_now

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "No results to display."

SECTION_SEPARATOR = "\n\n" + "-" * 80 + "\n\n"

# Characters of response text shown per model in sections mode
PREVIEW_LENGTH = 500


@dataclass
class OutputOptions:
    """
    Options for process_output().

    Attributes:
        include_metadata: Add metadata sections (files) and group statistics (table)
        include_group_in_filenames: Prefix filenames with the group name
        output_directory: Run directory; derived from run_name when None
        run_name: Run directory name; derived from the clock when None
        use_table: Console output as a table instead of sections
        use_colors: ANSI colors in console output
    """

    include_metadata: bool = False
    include_group_in_filenames: bool = True
    output_directory: str | None = None
    run_name: str | None = None
    use_table: bool = False
    use_colors: bool = True


@dataclass
class ProcessedOutput:
    """Artifacts, target directory and console text for one run."""

    files: list[FileArtifact] = field(default_factory=list)
    directory_path: str = ""
    console_output: str = ""


def _group_label(response: LLMResponse) -> str:
    return response.group_name or DEFAULT_GROUP_NAME


def format_response_as_markdown(
    response: LLMResponse, include_metadata: bool = False, generated_at: str | None = None
) -> str:
    """
    Render one response as a markdown document.

    Args:
        response: Response to render
        include_metadata: Append the metadata block and the group system prompt
        generated_at: Timestamp for the Generated line (defaults to now)

    Returns:
        Markdown text ending with a newline
    """
    generated_at = generated_at or iso_timestamp_ms()
    group = response.group_info
    show_group = group is not None and not is_default_group(group.name)

    heading = f"# {response.config_key}"
    if show_group:
        heading += f" ({group.name} group)"

    lines = [heading, "", f"Generated: {generated_at}"]
    if show_group:
        lines.append(f"Group: {group.name}")
        if include_metadata and group.system_prompt:
            lines.append(f'System Prompt: "{group.system_prompt}"')
    lines.append("")

    if response.error is not None:
        lines += ["## Error", "", "```", response.error, "```"]
    else:
        lines += ["## Response", "", response.text]

    if include_metadata and response.metadata:
        lines += [
            "",
            "## Metadata",
            "",
            "```json",
            json.dumps(response.metadata, indent=2, sort_keys=True, default=str),
            "```",
        ]

    content = "\n".join(lines)
    # Response text is kept verbatim, trailing newlines included
    if not content.endswith("\n"):
        content += "\n"
    return content


def _response_time(response: LLMResponse) -> float | None:
    value = response.metadata.get("response_time_ms")
    return float(value) if isinstance(value, (int, float)) else None


def _token_count(response: LLMResponse) -> int | None:
    usage = response.metadata.get("usage")
    if not isinstance(usage, dict):
        return None
    for key in ("total_tokens", "completion_tokens", "prompt_tokens"):
        if isinstance(usage.get(key), int):
            return usage[key]
    return None


def _format_table(responses: list[LLMResponse], include_metadata: bool, use_colors: bool) -> str:
    ordered = sorted(responses, key=lambda r: (_group_label(r), r.config_key))

    table = Table(box=box.SIMPLE_HEAD, header_style="bold blue")
    table.add_column("Model")
    table.add_column("Group")
    table.add_column("Status", justify="center")
    table.add_column("Time", justify="right")
    table.add_column("Tokens", justify="right")

    by_group: dict[str, list[LLMResponse]] = {}
    for response in ordered:
        group = _group_label(response)
        by_group.setdefault(group, []).append(response)

        elapsed = _response_time(response)
        tokens = _token_count(response)
        table.add_row(
            escape(response.config_key),
            "[dim]default[/dim]" if group == DEFAULT_GROUP_NAME else escape(group),
            "[red]Error[/red]" if response.error is not None else "[green]Success[/green]",
            f"{round(elapsed)}ms" if elapsed is not None else "-",
            str(tokens) if tokens is not None else "-",
        )

    output = render_to_text(table, use_colors=use_colors)
    if not include_metadata:
        return output

    stats = ["", "", render_markup("[bold]Group Statistics:[/bold]", use_colors)]
    for group, members in by_group.items():
        succeeded = sum(1 for r in members if r.error is None)
        line = f"  Models: {len(members)}, Success: {succeeded}, Errors: {len(members) - succeeded}"
        times = [t for t in (_response_time(r) for r in members) if t]
        if times:
            line += f", Avg. Time: {round(sum(times) / len(times))}ms"
        title = "Default Group" if group == DEFAULT_GROUP_NAME else f"Group: {escape(group)}"
        stats += ["", render_markup(f"[bold cyan]{title}[/bold cyan]", use_colors), line]

    return output + "\n".join(stats)


def _format_section(response: LLMResponse, use_colors: bool) -> str:
    parts = [f"[bold]{escape(response.config_key)}[/bold]"]
    if response.group_info and not is_default_group(response.group_info.name):
        parts.append(f"Group: {escape(response.group_info.name)}")

    if response.error is not None:
        category = f"[{response.error_category}] " if response.error_category else ""
        parts.append(f"[red]Error: {escape(category + response.error)}[/red]")
    else:
        preview = response.text
        if len(preview) > PREVIEW_LENGTH:
            preview = preview[:PREVIEW_LENGTH] + "..."
        parts.append(escape(preview))

    return render_markup("\n".join(parts), use_colors)


def format_for_console(
    responses: list[LLMResponse],
    use_table: bool = False,
    include_metadata: bool = False,
    use_colors: bool = True,
) -> str:
    """
    Console rendering of a run's responses.

    Returns:
        "No results to display." for an empty list, a rich table (sorted by
        group then config key) in table mode, or one section per response
        separated by a line of dashes.
    """
    if not responses:
        return NO_RESULTS_MESSAGE

    if use_table:
        return _format_table(responses, include_metadata, use_colors)

    return SECTION_SEPARATOR.join(_format_section(r, use_colors) for r in responses)


def format_model_list(
    models_by_provider: dict[str, list[ModelInfo] | str], use_colors: bool = True
) -> str:
    """
    Render provider model listings.

    Args:
        models_by_provider: provider -> models, or an error message string
        use_colors: ANSI colors

    Example:
        >>> print(format_model_list({"openrouter": [ModelInfo("deepseek/deepseek-r1")]}, False))
        Available Models:

        --- openrouter ---
          - deepseek/deepseek-r1
    """
    lines = ["[bold]Available Models:[/bold]", ""]
    if not models_by_provider:
        lines.append("[dim]No providers support model listing.[/dim]")
        return render_markup("\n".join(lines), use_colors)

    for provider, result in models_by_provider.items():
        lines.append(f"[bold cyan]--- {escape(provider)} ---[/bold cyan]")
        if isinstance(result, str):
            lines.append(f"[red]  Error fetching models: {escape(result)}[/red]")
        elif not result:
            lines.append("[dim]  (No models available)[/dim]")
        else:
            for model in result:
                line = f"  - {escape(model.id)}"
                if model.description:
                    line += f" ({escape(model.description)})"
                lines.append(line)
        lines.append("")

    return render_markup("\n".join(lines).rstrip("\n"), use_colors)


def build_artifacts(
    responses: list[LLMResponse],
    include_metadata: bool = False,
    include_group: bool = True,
    generated_at: str | None = None,
) -> list[FileArtifact]:
    """One FileArtifact per response, in response order, with unique filenames."""
    generated_at = generated_at or iso_timestamp_ms()
    taken: set[str] = set()
    artifacts = []
    for response in responses:
        filename = with_collision_suffix(generate_filename(response, include_group), taken)
        taken.add(filename)
        artifacts.append(
            FileArtifact(
                filename=filename,
                content=format_response_as_markdown(response, include_metadata, generated_at),
                model_key=response.config_key,
            )
        )
    return artifacts


def process_output(
    responses: list[LLMResponse],
    options: OutputOptions | None = None,
    *,
    now: datetime | None = None,
) -> ProcessedOutput:
    """
    Build the artifacts and console output for a run.

    Args:
        responses: Run responses, in selection order
        options: Output options
        now: Clock used for the Generated line and the default run name

    Returns:
        ProcessedOutput
    """
    options = options or OutputOptions()
    now = now or utc_now()

    run_name = options.run_name or run_name_from_timestamp(now)
    directory_path = options.output_directory or generate_output_directory_path(run_name)

    files = build_artifacts(
        responses,
        include_metadata=options.include_metadata,
        include_group=options.include_group_in_filenames,
        generated_at=iso_timestamp_ms(now),
    )
    console_output = format_for_console(
        responses,
        use_table=options.use_table,
        include_metadata=options.include_metadata,
        use_colors=options.use_colors,
    )

    logger.debug(f"Prepared {len(files)} files for {directory_path}")
    return ProcessedOutput(files=files, directory_path=directory_path, console_output=console_output)


def metadata_summary(responses: list[LLMResponse]) -> dict[str, Any]:
    """Aggregate token usage and timing across responses (for JSON output)."""
    tokens = [t for t in (_token_count(r) for r in responses) if t is not None]
    times = [t for t in (_response_time(r) for r in responses) if t is not None]
    return {
        "total_tokens": sum(tokens),
        "average_response_time_ms": round(sum(times) / len(times)) if times else None,
    }
