"""
File naming conventions and path utilities for llm-panel.

This module defines consistent naming conventions for run directories and
per-model answer files. The output processor and the file writer both use
these functions so the layout is predictable for humans and scripts alike.

Output structure:
    {output_dir}/
        run-YYYYMMDD-HHMMSS/
            {provider}-{model_id}.md
            {group}-{provider}-{model_id}.md
            {provider}-{model_id}-2.md      (collision suffix)

Key features:
- Deterministic file naming (same response, same filename)
- Safe for filesystem (only [A-Za-z0-9_-] plus the .md extension)
- The implicit "default" group never appears in filenames

Example:
    >>> get_run_directory("./answers", "run-20250314-092653")
    'answers/run-20250314-092653'
    >>> build_filename("openai", "gpt-4o", group="coding")
    'coding-openai-gpt-4o.md'
"""

import logging
import os
import re

from llm_panel.config.constants import DEFAULT_GROUP_NAME
from llm_panel.llm_runner.models import LLMResponse

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSION = ".md"

# Replacement for anything outside [A-Za-z0-9_-]; runs collapse to one "_"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]+")
_UNDERSCORE_RUNS = re.compile(r"_{2,}")


def sanitize(value: str) -> str:
    """
    Make a value safe for use in a filename.

    Every character outside ``[A-Za-z0-9_-]`` becomes ``_`` and consecutive
    underscores collapse to one. An empty result becomes "unnamed".

    Examples:
        >>> sanitize("open/ai:test")
        'open_ai_test'
        >>> sanitize('gpt*4<>?"')
        'gpt_4_'
        >>> sanitize("")
        'unnamed'
    """
    cleaned = _UNDERSCORE_RUNS.sub("_", _UNSAFE_CHARS.sub("_", value))
    return cleaned or "unnamed"


def is_default_group(group: str | None) -> bool:
    return group is None or group == DEFAULT_GROUP_NAME


def build_filename(provider: str, model_id: str, group: str | None = None) -> str:
    """
    Filename for one model's answer.

    Args:
        provider: Provider identifier
        model_id: Model identifier
        group: Group name to prefix (skipped for None or "default")

    Examples:
        >>> build_filename("openai", "gpt-4o")
        'openai-gpt-4o.md'
        >>> build_filename("openai", "gpt-4o", group="default")
        'openai-gpt-4o.md'
    """
    stem = f"{sanitize(provider)}-{sanitize(model_id)}"
    if not is_default_group(group):
        stem = f"{sanitize(group or '')}-{stem}"
    return f"{stem}{MARKDOWN_EXTENSION}"


def generate_filename(response: LLMResponse, include_group: bool = True) -> str:
    """
    Filename for an LLMResponse.

    Example:
        >>> generate_filename(response_with_group_coding)
        'coding-openai-gpt-4o.md'
        >>> generate_filename(response_with_group_coding, include_group=False)
        'openai-gpt-4o.md'
    """
    group = response.group_name if include_group else None
    return build_filename(response.provider, response.model_id, group)


def with_collision_suffix(filename: str, taken: set[str]) -> str:
    """
    Return filename, or the first free ``-N`` variant when it is already taken.

    The caller owns ``taken`` and adds the returned name to it.

    Example:
        >>> with_collision_suffix("openai-gpt-4o.md", {"openai-gpt-4o.md"})
        'openai-gpt-4o-2.md'
    """
    if filename not in taken:
        return filename

    stem, ext = os.path.splitext(filename)
    n = 2
    while f"{stem}-{n}{ext}" in taken:
        n += 1
    candidate = f"{stem}-{n}{ext}"
    logger.warning(f"Filename collision for {filename}; writing {candidate} instead")
    return candidate


def get_run_directory(output_dir: str, run_name: str) -> str:
    """
    Path of the run directory under output_dir.

    Note:
        Does NOT create the directory; the file writer does that.
    """
    return os.path.normpath(os.path.join(output_dir, run_name))


def generate_output_directory_path(run_name: str, base: str | None = None) -> str:
    """Run directory under base, defaulting to the current working directory."""
    return get_run_directory(base if base is not None else os.getcwd(), run_name)
