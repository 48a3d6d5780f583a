"""
Tests for report.summary module.

Tests cover:
- SummaryData.from_results() counting and error collection
- Headlines for all-success, partial, all-failed and empty runs
- Error lines with and without categories
- Failed write reporting
- Timing report ordering
"""

from llm_panel.exceptions import ApiError, UnknownError
from llm_panel.llm_runner.executor import QueryStatusRecord, RunResult
from llm_panel.llm_runner.models import Timing
from llm_panel.report.summary import (
    SummaryData,
    SummaryError,
    format_completion_summary,
    format_error_line,
    format_timing_report,
)
from llm_panel.storage.writer import FileOutputResult


def succeeded(key, start=0.0, end=100.0):
    record = QueryStatusRecord(config_key=key)
    record.mark_running(start)
    record.mark_success(end)
    return record


def failed(key, error, start=0.0, end=50.0):
    record = QueryStatusRecord(config_key=key)
    record.mark_running(start)
    record.mark_error(error, end)
    return record


def run_result(*records, duration=1200.0):
    return RunResult(
        responses=[],
        statuses={r.config_key: r for r in records},
        timing=Timing(0.0, duration, duration),
    )


def data(total, ok, bad, errors=None, failed_writes=0, ms=1234.0):
    return SummaryData(
        total_models=total,
        success_count=ok,
        failure_count=bad,
        run_name="run-20250314-092653",
        output_directory_path="/tmp/answers/run-20250314-092653",
        total_execution_time_ms=ms,
        errors=errors or [],
        failed_writes=failed_writes,
    )


class TestSummaryDataFromResults:
    """Test SummaryData.from_results()."""

    def test_counts_and_errors(self):
        result = run_result(
            succeeded("openai:gpt-4o"),
            failed("anthropic:claude", ApiError("API key error: bad key")),
            succeeded("google:gemini"),
        )
        file_result = FileOutputResult(
            output_directory="/out", failed_writes=1, timing=Timing(0.0, 300.0, 300.0)
        )

        summary = SummaryData.from_results(result, file_result, "run-1", "/out")

        assert summary.total_models == 3
        assert summary.success_count == 2
        assert summary.failure_count == 1
        assert summary.errors == [
            SummaryError("anthropic:claude", "API key error: bad key", "API")
        ]
        assert summary.total_execution_time_ms == 1500.0
        assert summary.failed_writes == 1

    def test_without_file_result(self):
        summary = SummaryData.from_results(run_result(succeeded("a:b")), None, "run-1", "/out")

        assert summary.total_execution_time_ms == 1200.0
        assert summary.failed_writes == 0


class TestFormatCompletionSummary:
    """Test format_completion_summary()."""

    def test_all_succeeded(self):
        summary = format_completion_summary(data(3, 3, 0), use_colors=False)

        assert summary.summary_text == (
            "✓ All 3 models completed successfully\n"
            "Models: 3 total, 3 succeeded, 0 failed\n"
            "Run: run-20250314-092653\n"
            "Output: /tmp/answers/run-20250314-092653\n"
            "Total time: 1.2s"
        )
        assert summary.error_details is None

    def test_partial_failure(self):
        errors = [SummaryError("anthropic:claude", "Rate limit exceeded: slow down", "API")]

        summary = format_completion_summary(data(3, 2, 1, errors), use_colors=False)

        assert summary.summary_text.startswith("⚠ 2 of 3 models completed successfully\n")
        assert summary.error_details == ["anthropic:claude: [API] Rate limit exceeded: slow down"]

    def test_all_failed(self):
        errors = [SummaryError("a:b", "boom", "Network"), SummaryError("c:d", "bang", "API")]

        summary = format_completion_summary(data(2, 0, 2, errors), use_colors=False)

        assert summary.summary_text.startswith("✗ All 2 models failed\n")
        assert len(summary.error_details) == 2

    def test_no_models(self):
        summary = format_completion_summary(data(0, 0, 0, ms=0), use_colors=False)

        assert summary.summary_text.startswith("⚠ No models were queried\n")
        assert "Total time: 0ms" in summary.summary_text

    def test_failed_writes_line(self):
        summary = format_completion_summary(data(1, 1, 0, failed_writes=2), use_colors=False)
        assert summary.summary_text.endswith("Files not written: 2")

    def test_colors(self):
        summary = format_completion_summary(data(1, 1, 0), use_colors=True)
        assert "\x1b[" in summary.summary_text

    def test_paths_with_brackets_are_literal(self):
        summary = SummaryData(
            total_models=1,
            success_count=1,
            failure_count=0,
            run_name="run-[test]",
            output_directory_path="/tmp/[out]",
        )

        text = format_completion_summary(summary, use_colors=False).summary_text

        assert "Run: run-[test]" in text
        assert "Output: /tmp/[out]" in text


class TestFormatErrorLine:
    """Test format_error_line()."""

    def test_with_category(self):
        line = format_error_line(SummaryError("openai:gpt-4o", "Rate limit exceeded", "API"), False)
        assert line == "openai:gpt-4o: [API] Rate limit exceeded"

    def test_without_category(self):
        assert format_error_line(SummaryError("a:b", "boom"), False) == "a:b: boom"

    def test_unknown_category_omitted(self):
        line = format_error_line(SummaryError("a:b", "boom", str(UnknownError.category)), False)
        assert line == "a:b: boom"


class TestFormatTimingReport:
    """Test format_timing_report()."""

    def test_breakdown_fastest_first(self):
        result = run_result(
            succeeded("slow:model", 0.0, 2500.0),
            failed("bad:model", ApiError("x"), 0.0, 40.0),
            succeeded("fast:model", 0.0, 300.0),
            duration=2500.0,
        )
        file_result = FileOutputResult(output_directory="/out", timing=Timing(0.0, 20.0, 20.0))

        report = format_timing_report(result, file_result, use_colors=False)

        assert "Total API calls:    2.5s" in report
        assert "File writing:       20ms" in report
        assert "Total execution:    2.5s" in report
        assert report.index("x bad:model: 40ms") < report.index("+ fast:model: 300ms")
        assert report.index("+ fast:model: 300ms") < report.index("+ slow:model: 2.5s")

    def test_without_file_result(self):
        report = format_timing_report(run_result(), None, use_colors=False)
        assert "File writing:       0ms" in report
