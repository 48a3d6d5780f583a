"""
Tests for utils.console module - dual-mode CLI output utilities.

This module tests console output functions to ensure:
- OutputMode correctly manages format/quiet state and JSON buffering
- success/error/warning/info adapt to human, agent and quiet modes
- spinner yields an updatable status in every mode
- print_final_summary renders a panel, JSON, or a tab-separated line
- render_markup/render_to_text produce plain text without colors
"""

import json
from unittest.mock import MagicMock, patch

import pytest
from rich.table import Table

from llm_panel.utils.console import (
    OutputMode,
    error,
    info,
    output_mode,
    print_final_summary,
    render_markup,
    render_to_text,
    spinner,
    success,
    warning,
)

# ========================================================================
# Fixtures
# ========================================================================


@pytest.fixture
def reset_output_mode():
    """Reset global output_mode to default state after each test."""
    original_format = output_mode.format
    original_quiet = output_mode.quiet
    output_mode._json_buffer.clear()

    yield

    output_mode.format = original_format
    output_mode.quiet = original_quiet
    output_mode._json_buffer.clear()


# ========================================================================
# OutputMode
# ========================================================================


class TestOutputMode:
    """Test OutputMode initialization and predicates."""

    def test_default_initialization(self):
        """OutputMode should default to text format and not quiet."""
        mode = OutputMode()
        assert mode.format == "text"
        assert mode.quiet is False
        assert mode.is_human() is True
        assert mode.is_agent() is False

    def test_json_format(self):
        """json format is agent mode."""
        mode = OutputMode(format_type="json", quiet=True)
        assert mode.is_agent() is True
        assert mode.quiet is True

    def test_invalid_format_raises_error(self):
        """OutputMode should raise ValueError for invalid format."""
        with pytest.raises(ValueError) as exc_info:
            OutputMode(format_type="yaml")
        assert "Invalid format: yaml" in str(exc_info.value)


class TestOutputModeJsonBuffering:
    """Test OutputMode JSON buffering methods."""

    def test_add_json_overwrites_plain_keys(self):
        """Regular keys keep the last value."""
        mode = OutputMode(format_type="json")
        mode.add_json("status", "success")
        mode.add_json("status", "error")
        assert mode._json_buffer["status"] == "error"

    def test_add_json_accumulates_warnings_and_errors(self):
        """warnings and errors collect every message."""
        mode = OutputMode(format_type="json")
        mode.add_json("warnings", "first")
        mode.add_json("warnings", "second")
        mode.add_json("errors", "boom")
        assert mode._json_buffer["warnings"] == ["first", "second"]
        assert mode._json_buffer["errors"] == ["boom"]

    def test_flush_json_outputs_and_clears_buffer(self, capsys):
        """flush_json() should print the buffer as JSON and clear it."""
        mode = OutputMode(format_type="json")
        mode.add_json("run_name", "run-20251102-083045")
        mode.flush_json()

        captured = capsys.readouterr()
        assert json.loads(captured.out) == {"run_name": "run-20251102-083045"}
        assert mode._json_buffer == {}

    def test_flush_json_no_op_in_human_mode(self, capsys):
        """flush_json() should not print anything in text mode."""
        mode = OutputMode(format_type="text")
        mode.add_json("key", "value")
        mode.flush_json()

        assert capsys.readouterr().out == ""

    def test_flush_json_empty_buffer(self, capsys):
        """An empty buffer prints nothing."""
        OutputMode(format_type="json").flush_json()
        assert capsys.readouterr().out == ""


# ========================================================================
# Leveled messages
# ========================================================================


class TestMessages:
    """Test success/error/warning/info in every mode."""

    @patch("llm_panel.utils.console.console")
    def test_success_human_mode(self, mock_console, reset_output_mode):
        """success() prints a green check in human mode."""
        output_mode.format = "text"
        output_mode.quiet = False

        success("Wrote 3 files")

        mock_console.print.assert_called_once_with("[green]✓[/green] Wrote 3 files")

    def test_success_agent_mode_buffers(self, reset_output_mode):
        """success() adds status and message to the JSON buffer."""
        output_mode.format = "json"

        success("done")

        assert output_mode._json_buffer["status"] == "success"
        assert output_mode._json_buffer["message"] == "done"

    @patch("llm_panel.utils.console.console")
    def test_success_quiet_mode_silent(self, mock_console, reset_output_mode):
        """success() is suppressed in quiet mode."""
        output_mode.format = "text"
        output_mode.quiet = True

        success("done")

        mock_console.print.assert_not_called()

    @patch("llm_panel.utils.console.console_err")
    def test_error_printed_even_when_quiet(self, mock_console_err, reset_output_mode):
        """Errors always reach stderr in human mode."""
        output_mode.format = "text"
        output_mode.quiet = True

        error("Config file not found")

        mock_console_err.print.assert_called_once()
        assert "Config file not found" in mock_console_err.print.call_args[0][0]

    def test_error_agent_mode_buffers(self, reset_output_mode):
        output_mode.format = "json"

        error("first")
        error("second")

        assert output_mode._json_buffer["status"] == "error"
        assert output_mode._json_buffer["errors"] == ["first", "second"]

    @patch("llm_panel.utils.console.console")
    def test_warning_human_mode(self, mock_console, reset_output_mode):
        output_mode.format = "text"
        output_mode.quiet = False

        warning("Unknown model filter")

        mock_console.print.assert_called_once()
        assert "Unknown model filter" in mock_console.print.call_args[0][0]

    def test_warning_agent_mode_buffers(self, reset_output_mode):
        output_mode.format = "json"

        warning("careful")

        assert output_mode._json_buffer["warnings"] == ["careful"]

    @patch("llm_panel.utils.console.console")
    def test_info_agent_mode_silent(self, mock_console, reset_output_mode):
        """info() prints nothing and buffers nothing in agent mode."""
        output_mode.format = "json"

        info("just so you know")

        mock_console.print.assert_not_called()
        assert output_mode._json_buffer == {}


# ========================================================================
# Spinner
# ========================================================================


class TestSpinner:
    """Test spinner() context manager."""

    @patch("llm_panel.utils.console.console")
    def test_spinner_human_mode_uses_rich_status(self, mock_console, reset_output_mode):
        """Human mode wraps console.status()."""
        output_mode.format = "text"
        output_mode.quiet = False
        status = MagicMock()
        mock_console.status.return_value.__enter__.return_value = status

        with spinner("Querying models...") as active:
            active.update("openai:gpt-4o answered")

        mock_console.status.assert_called_once()
        assert "Querying models..." in mock_console.status.call_args[0][0]
        status.update.assert_called_once_with("openai:gpt-4o answered")

    @patch("llm_panel.utils.console.console")
    def test_spinner_agent_mode_silent(self, mock_console, reset_output_mode):
        """Agent mode yields a status whose update() does nothing."""
        output_mode.format = "json"

        with spinner("Loading...") as active:
            active.update("still loading")

        mock_console.status.assert_not_called()

    @patch("llm_panel.utils.console.console")
    def test_spinner_quiet_mode_silent(self, mock_console, reset_output_mode):
        output_mode.format = "text"
        output_mode.quiet = True

        with spinner("Loading...") as active:
            active.update("still loading")

        mock_console.status.assert_not_called()


# ========================================================================
# Rendering helpers
# ========================================================================


class TestRendering:
    """Test render_markup() and render_to_text()."""

    def test_render_markup_plain(self):
        """Markup tags are removed when colors are off."""
        assert render_markup("[bold]Done[/bold]", use_colors=False) == "Done"

    def test_render_markup_colored_has_ansi(self):
        """Colored rendering emits ANSI escape codes."""
        rendered = render_markup("[bold]Done[/bold]", use_colors=True)
        assert "\x1b[" in rendered
        assert "Done" in rendered

    def test_render_table_plain(self):
        """Tables render to plain text with their cell values."""
        table = Table("Model", "Status")
        table.add_row("openai:gpt-4o", "success")

        rendered = render_to_text(table, use_colors=False)

        assert "openai:gpt-4o" in rendered
        assert "success" in rendered
        assert "\x1b[" not in rendered
        assert not rendered.endswith("\n")


# ========================================================================
# Final summary
# ========================================================================


class TestPrintFinalSummary:
    """Test print_final_summary() in every mode."""

    @patch("llm_panel.utils.console.console")
    def test_human_mode_prints_panel(self, mock_console, reset_output_mode):
        """Human mode prints a single rich Panel."""
        output_mode.format = "text"
        output_mode.quiet = False

        print_final_summary("run-1", "./run-1", 2, 2, "All good")

        mock_console.print.assert_called_once()
        panel = mock_console.print.call_args[0][0]
        assert panel.border_style == "green"
        assert "Run Completed Successfully" in panel.title

    @patch("llm_panel.utils.console.console")
    def test_partial_failure_yellow(self, mock_console, reset_output_mode):
        output_mode.format = "text"
        output_mode.quiet = False

        print_final_summary("run-1", "./run-1", 1, 2, "Half", ["openai:gpt-4o: boom"])

        panel = mock_console.print.call_args[0][0]
        assert panel.border_style == "yellow"
        assert "openai:gpt-4o: boom" in panel.renderable

    @patch("llm_panel.utils.console.console")
    def test_total_failure_red(self, mock_console, reset_output_mode):
        output_mode.format = "text"
        output_mode.quiet = False

        print_final_summary("run-1", "./run-1", 0, 2, "None")

        assert mock_console.print.call_args[0][0].border_style == "red"

    def test_agent_mode_flushes_json(self, capsys, reset_output_mode):
        """Agent mode writes the run statistics as one JSON object."""
        output_mode.format = "json"

        print_final_summary("run-1", "./run-1", 1, 2, "Half", ["a: boom"])

        data = json.loads(capsys.readouterr().out)
        assert data == {
            "run_name": "run-1",
            "output_dir": "./run-1",
            "successful_queries": 1,
            "total_queries": 2,
            "error_details": ["a: boom"],
        }

    def test_quiet_mode_tab_separated(self, capsys, reset_output_mode):
        """Quiet human mode prints one tab-separated line."""
        output_mode.format = "text"
        output_mode.quiet = True

        print_final_summary("run-1", "./run-1", 1, 2, "Half")

        assert capsys.readouterr().out == "run-1\t./run-1\t1\t2\n"
