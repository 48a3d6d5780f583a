"""
Tests for storage.layout and storage.filesystem modules.

Tests file naming conventions and path utilities for deterministic output
structure, plus the local filesystem implementation.
"""

import os

import pytest

from llm_panel.llm_runner.models import GroupInfo, LLMResponse
from llm_panel.storage.filesystem import LocalFileSystem
from llm_panel.storage.layout import (
    build_filename,
    generate_filename,
    generate_output_directory_path,
    get_run_directory,
    is_default_group,
    sanitize,
    with_collision_suffix,
)


def response(provider="openai", model_id="gpt-4o", group=None):
    return LLMResponse(
        provider=provider,
        model_id=model_id,
        config_key=f"{provider}:{model_id}",
        text="answer",
        group_info=GroupInfo(name=group) if group else None,
    )


class TestSanitize:
    """Tests for sanitize function."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("gpt-4o", "gpt-4o"),
            ("claude_3", "claude_3"),
            ("open/ai:test", "open_ai_test"),
            ("deepseek/deepseek-r1", "deepseek_deepseek-r1"),
            ('gpt*4<>?"', "gpt_4_"),
            ("a  b", "a_b"),
            ("a__b", "a_b"),
            ("gemini-1.5-pro", "gemini-1_5-pro"),
            ("", "unnamed"),
        ],
    )
    def test_sanitize(self, value, expected):
        assert sanitize(value) == expected

    def test_output_is_filesystem_safe(self):
        result = sanitize("../../etc/passwd")
        assert "/" not in result
        assert "." not in result


class TestBuildFilename:
    """Tests for build_filename and generate_filename."""

    def test_without_group(self):
        assert build_filename("openai", "gpt-4o") == "openai-gpt-4o.md"

    def test_default_group_omitted(self):
        assert build_filename("openai", "gpt-4o", group="default") == "openai-gpt-4o.md"

    def test_group_prefix(self):
        assert build_filename("openai", "gpt-4o", group="coding") == "coding-openai-gpt-4o.md"

    def test_unsafe_model_id(self):
        assert (
            build_filename("openrouter", "deepseek/deepseek-r1")
            == "openrouter-deepseek_deepseek-r1.md"
        )

    def test_generate_filename_uses_group(self):
        assert generate_filename(response(group="coding")) == "coding-openai-gpt-4o.md"

    def test_generate_filename_without_group(self):
        assert generate_filename(response(group="coding"), include_group=False) == "openai-gpt-4o.md"

    def test_is_default_group(self):
        assert is_default_group(None)
        assert is_default_group("default")
        assert not is_default_group("coding")


class TestCollisionSuffix:
    """Tests for with_collision_suffix function."""

    def test_free_name_unchanged(self):
        assert with_collision_suffix("openai-gpt-4o.md", set()) == "openai-gpt-4o.md"

    def test_first_collision(self, caplog):
        result = with_collision_suffix("openai-gpt-4o.md", {"openai-gpt-4o.md"})

        assert result == "openai-gpt-4o-2.md"
        assert "Filename collision for openai-gpt-4o.md" in caplog.text

    def test_skips_taken_suffixes(self):
        taken = {"a.md", "a-2.md", "a-3.md"}
        assert with_collision_suffix("a.md", taken) == "a-4.md"


class TestRunDirectory:
    """Tests for get_run_directory and generate_output_directory_path."""

    def test_basic_path_joining(self):
        result = get_run_directory("./output", "run-20250314-092653")
        assert result == os.path.normpath(os.path.join("output", "run-20250314-092653"))

    def test_absolute_path(self):
        assert get_run_directory("/var/data", "run-1") == os.path.join("/var/data", "run-1")

    def test_default_base_is_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert generate_output_directory_path("run-1") == os.path.join(os.getcwd(), "run-1")

    def test_explicit_base(self):
        assert generate_output_directory_path("run-1", "/tmp/answers") == os.path.join(
            "/tmp/answers", "run-1"
        )


class TestLocalFileSystem:
    """Tests for LocalFileSystem."""

    def test_mkdir_write_read(self, tmp_path):
        fs = LocalFileSystem()
        directory = str(tmp_path / "nested" / "run-1")

        fs.mkdir(directory)
        fs.mkdir(directory)
        fs.write_file(os.path.join(directory, "b.md"), "café ☕\n")
        fs.write_file(os.path.join(directory, "a.md"), "first\n")

        assert fs.exists(directory)
        assert fs.readdir(directory) == ["a.md", "b.md"]
        assert fs.read_file(os.path.join(directory, "b.md")) == "café ☕\n"
        assert fs.stat(os.path.join(directory, "a.md")).st_size == len("first\n")

    def test_exists_false(self, tmp_path):
        assert LocalFileSystem().exists(str(tmp_path / "nope")) is False

    def test_write_missing_directory_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LocalFileSystem().write_file(str(tmp_path / "missing" / "a.md"), "x")
