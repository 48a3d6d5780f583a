"""
File writing for llm-panel.

This module persists the in-memory FileArtifacts produced by the output
processor. It creates the run directory, writes every artifact concurrently
and returns a per-file ledger of what succeeded and what failed.

Key features:
- UTF-8 encoding for all files
- Blocking filesystem calls run in asyncio.to_thread
- Per-file failures are recorded, never dropped
- Optional throw_on_error: the first failure is raised after every write
  has settled, carrying the complete ledger as ``error.result``
- Status callbacks: pending (in artifact order), then success or error

Example:
    >>> result = await write_files(processed.files, processed.directory_path)
    >>> result.succeeded_writes, result.failed_writes
    (3, 0)
    >>> [d.filename for d in result.files]
    ['openai-gpt-4o.md', 'anthropic-claude-3-7-sonnet-20250219.md', 'coding-google-gemini-1.5-pro.md']
"""

import asyncio
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from llm_panel.error_classifier import ErrorContext, classify_error
from llm_panel.exceptions import FileSystemError, PanelError
from llm_panel.llm_runner.models import Timing
from llm_panel.storage.filesystem import FileSystem, LocalFileSystem
from llm_panel.utils.time import now_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileArtifact:
    """
    One file to write, derived from one LLMResponse.

    Attributes:
        filename: Path relative to the output directory
        content: UTF-8 text content
        model_key: Config key of the response it came from
    """

    filename: str
    content: str
    model_key: str


class WriteStatus(StrEnum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class FileWriteDetail:
    """Ledger entry for one artifact; mutated in place by write_files()."""

    model_key: str
    filename: str
    file_path: str
    status: WriteStatus = WriteStatus.PENDING
    error: str | None = None
    start_time: float | None = None
    end_time: float | None = None
    duration_ms: float | None = None

    def finish(self, status: WriteStatus, at_ms: float, error: str | None = None) -> None:
        self.status = status
        self.error = error
        if self.start_time is None:
            self.start_time = at_ms
        self.end_time = at_ms
        self.duration_ms = max(0.0, at_ms - self.start_time)


@dataclass
class FileOutputResult:
    """
    Outcome of writing one run's artifacts.

    Invariant: succeeded_writes + failed_writes == len(files).
    """

    output_directory: str
    files: list[FileWriteDetail] = field(default_factory=list)
    succeeded_writes: int = 0
    failed_writes: int = 0
    timing: Timing = field(default_factory=lambda: Timing(0.0, 0.0, 0.0))

    @property
    def all_succeeded(self) -> bool:
        return self.failed_writes == 0


WriteCallback = Callable[[FileWriteDetail], None]


@dataclass
class WriteOptions:
    """
    Options for write_files().

    Attributes:
        throw_on_error: Raise the first failure (classified) after all
            writes settle. If the directory cannot be created, every file
            is marked as failed and that error is raised instead.
        on_status_update: Called with the detail on every status change
        context: Run context used when classifying failures
    """

    throw_on_error: bool = False
    on_status_update: WriteCallback | None = None
    context: ErrorContext | None = None


def _notify(callback: WriteCallback | None, detail: FileWriteDetail) -> None:
    if callback is None:
        return
    try:
        callback(detail)
    except Exception:
        logger.warning(
            f"Write status callback failed for {detail.filename} ({detail.status})",
            exc_info=True,
        )


def _as_filesystem_error(error: PanelError, filename: str) -> FileSystemError:
    if isinstance(error, FileSystemError):
        return error
    return FileSystemError(
        f"Failed to write {filename}: {error.message}",
        cause=error.cause or error,
        suggestions=error.suggestions,
    )


def _summarize(output_directory: str, details: list[FileWriteDetail], started: float) -> FileOutputResult:
    succeeded = sum(1 for d in details if d.status == WriteStatus.SUCCESS)
    failed = sum(1 for d in details if d.status == WriteStatus.ERROR)
    timing = Timing.span(
        [d.start_time for d in details if d.start_time is not None] or [started],
        [d.end_time for d in details if d.end_time is not None] or [now_ms()],
        started,
    )
    return FileOutputResult(
        output_directory=output_directory,
        files=details,
        succeeded_writes=succeeded,
        failed_writes=failed,
        timing=timing,
    )


async def write_files(
    artifacts: list[FileArtifact],
    output_directory: str,
    options: WriteOptions | None = None,
    *,
    file_system: FileSystem | None = None,
) -> FileOutputResult:
    """
    Write artifacts into output_directory.

    Args:
        artifacts: Files to write, in report order
        output_directory: Run directory (created if missing)
        options: Write options
        file_system: Filesystem to use (defaults to LocalFileSystem)

    Returns:
        FileOutputResult with one FileWriteDetail per artifact, in order

    Raises:
        PermissionDeniedError: Directory or file not writable (throw_on_error only)
        FileSystemError: Any other write failure (throw_on_error only)
    """
    options = options or WriteOptions()
    fs = file_system or LocalFileSystem()
    context = options.context or ErrorContext(output_directory=output_directory)
    started = now_ms()

    details = [
        FileWriteDetail(
            model_key=artifact.model_key,
            filename=artifact.filename,
            file_path=os.path.join(output_directory, artifact.filename),
        )
        for artifact in artifacts
    ]

    for detail in details:
        _notify(options.on_status_update, detail)

    try:
        await asyncio.to_thread(fs.mkdir, output_directory, True)
    except Exception as e:
        error = _as_filesystem_error(classify_error(e, context), output_directory)
        logger.error(f"Cannot create output directory {output_directory}: {error.message}")

        at = now_ms()
        for detail in details:
            detail.finish(WriteStatus.ERROR, at, error.message)
            _notify(options.on_status_update, detail)
        result = _summarize(output_directory, details, started)

        if options.throw_on_error:
            error.result = result
            raise error from e
        return result

    failures: dict[int, BaseException] = {}

    async def _write(index: int, artifact: FileArtifact, detail: FileWriteDetail) -> None:
        detail.start_time = now_ms()
        try:
            parent = os.path.dirname(detail.file_path)
            if parent and os.path.normpath(parent) != os.path.normpath(output_directory):
                await asyncio.to_thread(fs.mkdir, parent, True)
            await asyncio.to_thread(fs.write_file, detail.file_path, artifact.content)
        except Exception as e:
            failures[index] = e
            detail.finish(WriteStatus.ERROR, now_ms(), str(e))
            logger.error(f"Failed to write {detail.file_path}: {e}")
        else:
            detail.finish(WriteStatus.SUCCESS, now_ms())
            logger.debug(f"Wrote {detail.file_path} for {detail.model_key}")
        _notify(options.on_status_update, detail)

    await asyncio.gather(
        *(_write(i, artifact, detail) for i, (artifact, detail) in enumerate(zip(artifacts, details, strict=True)))
    )

    result = _summarize(output_directory, details, started)
    logger.info(
        f"Wrote {result.succeeded_writes}/{len(details)} files to {output_directory}"
        + (f" ({result.failed_writes} failed)" if result.failed_writes else "")
    )

    if failures and options.throw_on_error:
        first = min(failures)
        cause = failures[first]
        error = _as_filesystem_error(classify_error(cause, context), details[first].filename)
        error.result = result
        raise error from cause

    return result
