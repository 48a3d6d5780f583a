"""
Custom exceptions for llm-panel.

Every error that crosses a component boundary is a PanelError carrying a
human message, a category tag, the optional original cause, and lists of
remediation suggestions and usage examples. The CLI prints the message and
suggestions instead of a traceback.

Exception Hierarchy:
    PanelError (base)
    ├── ConfigError
    │   ├── ConfigFileNotFoundError
    │   ├── ConfigValidationError
    │   └── ModelSelectionError
    ├── ApiError
    ├── NetworkError
    ├── FileSystemError
    │   ├── InputError
    │   └── PermissionDeniedError
    └── UnknownError

Usage:
    from llm_panel.exceptions import ConfigError

    try:
        config = load_config(path)
    except ConfigError as e:
        error(e.message)
        for suggestion in e.suggestions:
            info(suggestion)
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from llm_panel.storage.writer import FileOutputResult


class ErrorCategory(StrEnum):
    """Closed set of error categories shown to users."""

    API = "API"
    CONFIGURATION = "Configuration"
    NETWORK = "Network"
    FILESYSTEM = "File System"
    PERMISSION = "Permission"
    UNKNOWN = "Unknown"


class PanelError(Exception):
    """
    Base exception for all llm-panel errors.

    Attributes:
        message: Human readable message
        category: ErrorCategory tag
        cause: Original exception (also chained as __cause__ when raised
            with ``from``)
        suggestions: Actionable remediation strings
        examples: Usage examples (e.g. valid model specifiers)

    Example:
        raise ConfigError(
            "Invalid model format: gpt4",
            suggestions=["Use the provider:model_id format"],
            examples=["openai:gpt-4o"],
        )
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        suggestions: list[str] | None = None,
        examples: list[str] | None = None,
        category: ErrorCategory | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.suggestions = list(suggestions or [])
        self.examples = list(examples or [])
        if category is not None:
            self.category = category

    def with_suggestions(self, *suggestions: str) -> PanelError:
        """Append suggestions not already present and return self."""
        for suggestion in suggestions:
            if suggestion not in self.suggestions:
                self.suggestions.append(suggestion)
        return self

    def format(self) -> str:
        """
        Format the error for display: message, then suggestions and examples.

        Example:
            >>> print(ConfigError("Bad", suggestions=["Fix it"]).format())
            Bad

            Suggestions:
              - Fix it
        """
        parts = [self.message]
        if self.suggestions:
            parts.append("")
            parts.append("Suggestions:")
            parts.extend(f"  - {s}" for s in self.suggestions)
        if self.examples:
            parts.append("")
            parts.append("Examples:")
            parts.extend(f"  {e}" for e in self.examples)
        return "\n".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": type(self).__name__,
            "category": str(self.category),
            "message": self.message,
            "suggestions": self.suggestions,
            "examples": self.examples,
        }


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigError(PanelError):
    """
    Configuration loading, parsing or validation failed.

    Results in exit code 1.
    """

    category = ErrorCategory.CONFIGURATION


class ConfigFileNotFoundError(ConfigError):
    """
    Configuration file does not exist at the specified path.

    Example:
        raise ConfigFileNotFoundError("Configuration file not found: llm-panel.yaml")
    """

    pass


class ConfigValidationError(ConfigError):
    """
    Configuration file is invalid (YAML syntax or schema validation).

    Example:
        raise ConfigValidationError("models.0.model_id: model_id cannot be empty")
    """

    pass


class ModelSelectionError(ConfigError):
    """
    Model selection resolved to an unusable set.

    Raised for malformed specifiers, unknown models or groups, and empty
    selections. Surfaces to callers as a configuration error.

    Example:
        raise ModelSelectionError(
            'Model "openai:gpt-5" not found in configuration',
            suggestions=['Did you mean "openai:gpt-4o"?'],
        )
    """

    pass


# ============================================================================
# Provider Errors
# ============================================================================


class ApiError(PanelError):
    """
    Provider API rejected the request.

    Covers authentication and API key failures, rate limits, token limits,
    content policy refusals and malformed responses.

    Example:
        raise ApiError("API key error: invalid x-api-key")
    """

    category = ErrorCategory.API


class NetworkError(PanelError):
    """
    Provider could not be reached or did not answer in time.

    Example:
        raise NetworkError("Request to openai:gpt-4o timed out after 30s")
    """

    category = ErrorCategory.NETWORK


# ============================================================================
# Filesystem Errors
# ============================================================================


class FileSystemError(PanelError):
    """
    Reading or writing files failed.

    Results in exit code 2. When raised by the file writer in
    throw_on_error mode, ``result`` carries the complete write ledger.

    Example:
        raise FileSystemError("No space left on device")
    """

    category = ErrorCategory.FILESYSTEM

    def __init__(self, message: str, *, result: FileOutputResult | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.result = result


class InputError(FileSystemError):
    """
    Prompt or context input could not be read.

    Example:
        raise InputError("Prompt input is empty")
    """

    pass


class PermissionDeniedError(FileSystemError):
    """
    Operating system refused access to a file or directory.

    Named so it does not shadow the builtin PermissionError.

    Example:
        raise PermissionDeniedError("Permission denied when accessing output directory: ./out")
    """

    category = ErrorCategory.PERMISSION


# ============================================================================
# Fallback
# ============================================================================


class UnknownError(PanelError):
    """
    Error that could not be classified.

    Example:
        raise UnknownError("Unknown error (no structured error information was available): None")
    """

    category = ErrorCategory.UNKNOWN
