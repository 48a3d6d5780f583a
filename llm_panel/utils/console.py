"""
Rich console utilities for dual-mode CLI output.

Provides terminal output for humans and structured JSON for automation.
All output functions adapt to the global output_mode setting.

This module provides:
- OutputMode: Output format (text/json) and quiet flag
- spinner(): Status context manager whose message can be updated
- success(), error(), warning(), info(): Leveled one-line messages
- print_final_summary(): Run summary panel
- render_markup() / render_to_text(): Render rich markup or renderables
  into plain strings (ANSI colored or not) for callers that need text

Human Mode (--format text):
    - Rich spinners, colored tables and panels

Agent Mode (--format json):
    - Structured JSON output to stdout, flushed once at the end
    - No ANSI codes or spinners

Quiet Mode (--quiet):
    - Tab-separated final line only

Examples:
    >>> from llm_panel.utils.console import output_mode, spinner, success
    >>> with spinner("Querying models...") as status:
    ...     status.update("openai:gpt-4o finished")
    >>> success("All models answered")
"""

from __future__ import annotations

import io
import json
import sys
from contextlib import contextmanager
from typing import Any

from rich import box
from rich.console import Console, RenderableType
from rich.panel import Panel


class OutputMode:
    """
    Output mode configuration for dual-mode CLI.

    Attributes:
        format: Output format - "text" (human) or "json" (agent)
        quiet: If True, suppress non-essential output
    """

    def __init__(self, format_type: str = "text", quiet: bool = False):
        if format_type not in ["text", "json"]:
            raise ValueError(f"Invalid format: {format_type}. Must be 'text' or 'json'")

        self.format = format_type
        self.quiet = quiet
        self._json_buffer: dict[str, Any] = {}

    def is_human(self) -> bool:
        return self.format == "text"

    def is_agent(self) -> bool:
        return self.format == "json"

    def add_json(self, key: str, value: Any) -> None:
        """
        Add key-value pair to the JSON buffer.

        List values accumulate when the same key is added more than once
        for "warnings" and "errors", so no message is lost.
        """
        if key in ("warnings", "errors"):
            self._json_buffer.setdefault(key, []).append(value)
        else:
            self._json_buffer[key] = value

    def flush_json(self) -> None:
        """Write buffered JSON to stdout and clear the buffer (agent mode only)."""
        if self.is_agent() and self._json_buffer:
            json.dump(self._json_buffer, sys.stdout, indent=2, default=str)
            sys.stdout.write("\n")
            sys.stdout.flush()
            self._json_buffer.clear()


# Global output mode instance (set by CLI flags)
output_mode = OutputMode()

# Global Rich console instances for human mode
console = Console()  # stdout
console_err = Console(stderr=True)  # stderr


class _SilentStatus:
    """Stand-in for rich Status outside human mode."""

    def update(self, *_args: Any, **_kwargs: Any) -> None:
        pass


@contextmanager
def spinner(message: str):
    """
    Show a spinner during an operation.

    Yields an object with an ``update(message)`` method in every mode so
    callers never branch on the output mode.

    Examples:
        >>> with spinner("Loading configuration...") as status:
        ...     config = load_config(path)
        ...     status.update("Selecting models...")
    """
    if output_mode.is_human() and not output_mode.quiet:
        with console.status(f"[bold blue]{message}", spinner="dots") as status:
            yield status
    else:
        yield _SilentStatus()


def success(message: str) -> None:
    """Print a success message (green check in human mode)."""
    if output_mode.is_human():
        if not output_mode.quiet:
            console.print(f"[green]✓[/green] {message}")
    elif output_mode.is_agent():
        output_mode.add_json("status", "success")
        output_mode.add_json("message", message)


def error(message: str) -> None:
    """
    Print an error message.

    Errors always go to stderr in human mode, even when quiet.
    """
    if output_mode.is_human():
        console_err.print(f"[red]✗[/red] {message}", style="red")
    elif output_mode.is_agent():
        output_mode.add_json("status", "error")
        output_mode.add_json("errors", message)


def warning(message: str) -> None:
    """Print a warning message (yellow in human mode)."""
    if output_mode.is_human():
        if not output_mode.quiet:
            console.print(f"[yellow]⚠[/yellow] {message}", style="yellow")
    elif output_mode.is_agent():
        output_mode.add_json("warnings", message)


def info(message: str) -> None:
    """Print an info message. Silent in agent and quiet modes."""
    if output_mode.is_human() and not output_mode.quiet:
        console.print(f"[blue]ℹ[/blue] {message}")


def render_to_text(
    renderable: RenderableType, use_colors: bool = True, width: int = 120
) -> str:
    """
    Render a rich renderable (Table, Panel, markup string) to a string.

    Args:
        renderable: Anything rich can print
        use_colors: Emit ANSI escape codes when True, plain text otherwise
        width: Console width used for layout

    Returns:
        Rendered text without a trailing newline
    """
    buffer = io.StringIO()
    render_console = Console(
        file=buffer,
        width=width,
        force_terminal=use_colors,
        color_system="standard" if use_colors else None,
        highlight=False,
        emoji=False,
    )
    render_console.print(renderable, soft_wrap=isinstance(renderable, str))
    return buffer.getvalue().rstrip("\n")


def render_markup(markup: str, use_colors: bool = True) -> str:
    """
    Render a rich markup string.

    Example:
        >>> render_markup("[bold]Done[/bold]", use_colors=False)
        'Done'
    """
    return render_to_text(markup, use_colors=use_colors)


def print_final_summary(
    run_name: str,
    output_dir: str,
    successful: int,
    total: int,
    summary_text: str,
    error_details: list[str] | None = None,
) -> None:
    """
    Print the final run summary.

    Human mode: Rich panel (green border if all succeeded, yellow for
        partial failures, red if nothing succeeded)
    Agent mode: Adds the run statistics to the JSON buffer and flushes it
    Quiet mode: One tab-separated line

    Args:
        run_name: Run identifier (directory name)
        output_dir: Path to the run output directory
        successful: Number of successful model queries
        total: Number of model queries attempted
        summary_text: Pre-formatted summary body (plain text or markup)
        error_details: Optional per-failure lines
    """
    if output_mode.is_agent():
        output_mode.add_json("run_name", run_name)
        output_mode.add_json("output_dir", output_dir)
        output_mode.add_json("successful_queries", successful)
        output_mode.add_json("total_queries", total)
        if error_details:
            output_mode.add_json("error_details", error_details)
        output_mode.flush_json()
        return

    if output_mode.quiet:
        print(f"{run_name}\t{output_dir}\t{successful}\t{total}")
        return

    body = summary_text
    if error_details:
        body += "\n\n[bold]Errors:[/bold]\n" + "\n".join(
            f"  - {line}" for line in error_details
        )

    if total > 0 and successful == total:
        border_style = "green"
        title = "[bold green]✓ Run Completed Successfully[/bold green]"
    elif successful > 0:
        border_style = "yellow"
        title = "[bold yellow]⚠ Run Completed with Partial Failures[/bold yellow]"
    else:
        border_style = "red"
        title = "[bold red]✗ Run Failed[/bold red]"

    panel = Panel(
        body.strip(),
        title=title,
        border_style=border_style,
        box=box.ROUNDED,
    )

    console.print(panel)
