"""
Report module for llm-panel.

Turns run results into markdown files, console output and the completion
summary. Everything here is pure; callers do the printing and writing.

Key exports:
    - process_output: Build file artifacts and console text for a run
    - format_for_console: Sections or table rendering of responses
    - format_completion_summary: Counts, location and per-model errors
"""

from .formatter import (
    OutputOptions,
    ProcessedOutput,
    format_for_console,
    format_model_list,
    format_response_as_markdown,
    process_output,
)
from .summary import (
    CompletionSummary,
    SummaryData,
    SummaryError,
    format_completion_summary,
    format_timing_report,
)

__all__ = [
    "CompletionSummary",
    "OutputOptions",
    "ProcessedOutput",
    "SummaryData",
    "SummaryError",
    "format_completion_summary",
    "format_for_console",
    "format_model_list",
    "format_response_as_markdown",
    "format_timing_report",
    "process_output",
]
