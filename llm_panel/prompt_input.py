"""
Prompt and context-file input for llm-panel.

The prompt argument of ``llm-panel run`` can be a file path, "-" for stdin,
or the prompt text itself. Context paths (files or directories) are read
and appended to the prompt so every model sees the same material.

Example:
    >>> prompt = read_prompt("question.md")
    >>> files = collect_context_files(["src/", "README.md"])
    >>> full_prompt = build_prompt_with_context(prompt.content, files)
"""

import logging
import os
import sys
from dataclasses import dataclass
from enum import StrEnum
from typing import TextIO

from llm_panel.config.constants import MAX_PROMPT_LENGTH
from llm_panel.exceptions import InputError

logger = logging.getLogger(__name__)

STDIN_MARKER = "-"

# Directory names never descended into when collecting context
SKIPPED_DIRECTORIES = frozenset({".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build"})

# Context files larger than this are skipped
MAX_CONTEXT_FILE_BYTES = 1_000_000

# Bytes inspected for NUL when detecting binary files
BINARY_SNIFF_BYTES = 8192


class InputSource(StrEnum):
    FILE = "file"
    STDIN = "stdin"
    TEXT = "text"


@dataclass(frozen=True)
class PromptInput:
    """
    Normalized prompt text and where it came from.

    Attributes:
        content: Prompt text (line endings normalized, stripped)
        source: Where the text came from
        source_path: File path for FILE sources
    """

    content: str
    source: InputSource
    source_path: str | None = None


@dataclass(frozen=True)
class ContextFile:
    """One context file: path as given (relative paths stay relative) and text."""

    path: str
    content: str


def normalize_text(text: str) -> str:
    """Normalize CRLF/CR line endings to LF and strip surrounding whitespace."""
    return text.replace("\r\n", "\n").replace("\r", "\n").strip()


def read_prompt(source: str, stdin: TextIO | None = None) -> PromptInput:
    """
    Read the prompt from a file, stdin or literal text.

    Args:
        source: "-" for stdin, an existing file path, or the prompt itself
        stdin: Stream used for "-" (defaults to sys.stdin)

    Returns:
        PromptInput

    Raises:
        InputError: If the input is empty, unreadable or too long
    """
    if source == STDIN_MARKER:
        stream = stdin or sys.stdin
        try:
            raw = stream.read()
        except (OSError, UnicodeDecodeError) as e:
            raise InputError(f"Error reading from stdin: {e}", cause=e) from e
        prompt = PromptInput(normalize_text(raw), InputSource.STDIN)

    elif os.path.isfile(source):
        try:
            with open(source, encoding="utf-8") as f:
                raw = f.read()
        except UnicodeDecodeError as e:
            raise InputError(
                f"Prompt file is not valid UTF-8 text: {source}",
                cause=e,
                suggestions=["Save the prompt file with UTF-8 encoding"],
            ) from e
        except OSError as e:
            raise InputError(f"Cannot read prompt file '{source}': {e}", cause=e) from e
        prompt = PromptInput(normalize_text(raw), InputSource.FILE, source)

    else:
        prompt = PromptInput(normalize_text(source), InputSource.TEXT)

    if not prompt.content:
        raise InputError(
            f"Prompt is empty (source: {prompt.source_path or prompt.source})",
            suggestions=[
                "Pass the prompt text directly, a path to a prompt file, or '-' to read stdin",
            ],
            examples=[
                'llm-panel run "Explain vector clocks"',
                "llm-panel run prompt.md src/",
                "cat prompt.md | llm-panel run -",
            ],
        )

    if len(prompt.content) > MAX_PROMPT_LENGTH:
        raise InputError(
            f"Prompt exceeds maximum length of {MAX_PROMPT_LENGTH:,} characters "
            f"(got {len(prompt.content):,})"
        )

    logger.info(f"Read prompt from {prompt.source} ({len(prompt.content)} characters)")
    return prompt


def _is_binary(path: str) -> bool:
    with open(path, "rb") as f:
        return b"\x00" in f.read(BINARY_SNIFF_BYTES)


def _read_context_file(path: str) -> ContextFile | None:
    try:
        size = os.path.getsize(path)
        if size > MAX_CONTEXT_FILE_BYTES:
            logger.warning(f"Skipping context file larger than {MAX_CONTEXT_FILE_BYTES} bytes: {path}")
            return None
        if _is_binary(path):
            logger.warning(f"Skipping binary context file: {path}")
            return None
        with open(path, encoding="utf-8") as f:
            return ContextFile(path=path, content=f.read())
    except UnicodeDecodeError:
        logger.warning(f"Skipping context file that is not UTF-8 text: {path}")
        return None


def _walk_directory(directory: str) -> list[str]:
    paths = []
    for root, dirs, files in os.walk(directory):
        dirs[:] = sorted(d for d in dirs if d not in SKIPPED_DIRECTORIES and not d.startswith("."))
        paths.extend(os.path.join(root, name) for name in sorted(files) if not name.startswith("."))
    return paths


def collect_context_files(paths: list[str]) -> list[ContextFile]:
    """
    Read context files from files and directories.

    Directories are walked recursively in sorted order. Hidden entries and
    common build/dependency directories are skipped, as are binary, non
    UTF-8 and oversized files (each with a warning). A path given twice is
    read once.

    Raises:
        InputError: If a path does not exist or a file cannot be read
    """
    candidates: list[str] = []
    for path in paths:
        if os.path.isdir(path):
            candidates.extend(_walk_directory(path))
        elif os.path.isfile(path):
            candidates.append(path)
        else:
            raise InputError(
                f"Context path not found: {path}",
                suggestions=["Check the path, relative paths resolve from the current directory"],
            )

    files = []
    seen: set[str] = set()
    for path in candidates:
        key = os.path.realpath(path)
        if key in seen:
            continue
        seen.add(key)
        try:
            context_file = _read_context_file(path)
        except OSError as e:
            raise InputError(f"Cannot read context file '{path}': {e}", cause=e) from e
        if context_file is not None:
            files.append(context_file)

    logger.info(f"Collected {len(files)} context files from {len(paths)} paths")
    return files


def _fence_for(content: str) -> str:
    fence = "```"
    while fence in content:
        fence += "`"
    return fence


def build_prompt_with_context(prompt: str, context_files: list[ContextFile]) -> str:
    """
    Append context files to the prompt.

    Example:
        >>> print(build_prompt_with_context("Review this", [ContextFile("a.py", "x = 1")]))
        Review this
        <BLANKLINE>
        # Context Files
        <BLANKLINE>
        ## File: a.py
        <BLANKLINE>
        ```
        x = 1
        ```
    """
    if not context_files:
        return prompt

    sections = [prompt, "", "# Context Files"]
    for context_file in context_files:
        fence = _fence_for(context_file.content)
        sections += [
            "",
            f"## File: {context_file.path}",
            "",
            fence,
            context_file.content.rstrip("\n"),
            fence,
        ]
    return "\n".join(sections)
