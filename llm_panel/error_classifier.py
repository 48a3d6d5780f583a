"""
Error classification for llm-panel.

Turns any caught value (domain errors, OS errors, httpx transport errors,
plain exceptions, even non-exception values) into a PanelError from the
closed taxonomy in llm_panel.exceptions, with remediation suggestions.

Classification happens in two steps:

1. tag_caught_value() wraps the value in a CaughtValue whose ``kind`` is
   one of DOMAIN, OS, TRANSPORT, GENERIC or NON_ERROR.
2. classify_error() walks CLASSIFICATION_RULES in order and applies the
   handler of the first rule whose predicate matches. Rules are pure
   functions of (CaughtValue, ErrorContext).

Rule priority:
    - Domain errors pass through unchanged (only enriched)
    - OS errno codes (EACCES/EPERM, ENOENT, ENOSPC, others)
    - Transport errors (HTTP status, timeouts, connection failures)
    - Message heuristics (permission, API key, rate/token/content limits,
      model format, model not found, network, file, config, API)
    - UnknownError fallback

Example:
    >>> from llm_panel.error_classifier import ErrorContext, classify_error
    >>> err = classify_error(OSError(28, "No space left on device"))
    >>> type(err).__name__
    'FileSystemError'
    >>> err.suggestions[0]
    'Free up disk space'
"""

from __future__ import annotations

import errno
import os
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import httpx

from llm_panel.config.constants import MODEL_SPEC_EXAMPLES, SUPPORTED_PROVIDERS
from llm_panel.exceptions import (
    ApiError,
    ConfigError,
    FileSystemError,
    NetworkError,
    PanelError,
    PermissionDeniedError,
    UnknownError,
)


class CaughtKind(StrEnum):
    """Tag of a caught value."""

    DOMAIN = "domain"
    OS = "os"
    TRANSPORT = "transport"
    GENERIC = "generic"
    NON_ERROR = "non_error"


@dataclass(frozen=True)
class CaughtValue:
    """
    A caught value tagged with its kind.

    Attributes:
        kind: CaughtKind tag
        value: The original value
        message: str() of the value ("" for None)
        errno: OS error number when kind is OS
        filename: Filename attached to an OSError, if any
        status_code: HTTP status code for HTTPStatusError transport errors
    """

    kind: CaughtKind
    value: Any
    message: str
    errno: int | None = None
    filename: str | None = None
    status_code: int | None = None

    @property
    def lower(self) -> str:
        return self.message.lower()


@dataclass(frozen=True)
class ErrorContext:
    """
    Run context used to enrich suggestions.

    Attributes:
        run_name: Current run directory name
        output_directory: Output directory of the current run
        cwd: Working directory (defaults to os.getcwd() when classifying)
    """

    run_name: str | None = None
    output_directory: str | None = None
    cwd: str | None = None


def tag_caught_value(value: Any) -> CaughtValue:
    """
    Wrap a caught value in a CaughtValue tag.

    TimeoutError is an OSError subclass but is tagged TRANSPORT, and OS
    errors without an errno are tagged GENERIC so message heuristics apply.
    """
    if isinstance(value, PanelError):
        return CaughtValue(CaughtKind.DOMAIN, value, value.message)

    if isinstance(value, httpx.HTTPStatusError):
        return CaughtValue(
            CaughtKind.TRANSPORT,
            value,
            str(value),
            status_code=value.response.status_code,
        )

    if isinstance(value, (httpx.TransportError, TimeoutError)):
        return CaughtValue(CaughtKind.TRANSPORT, value, str(value))

    if isinstance(value, OSError) and value.errno is not None:
        filename = value.filename
        return CaughtValue(
            CaughtKind.OS,
            value,
            str(value),
            errno=value.errno,
            filename=os.fsdecode(filename) if filename is not None else None,
        )

    if isinstance(value, BaseException):
        return CaughtValue(CaughtKind.GENERIC, value, str(value))

    return CaughtValue(
        CaughtKind.NON_ERROR, value, "" if value is None else str(value)
    )


# ============================================================================
# Predicates
# ============================================================================

Predicate = Callable[[CaughtValue], bool]
Handler = Callable[[CaughtValue, ErrorContext], PanelError]


def _is_kind(kind: CaughtKind) -> Predicate:
    return lambda caught: caught.kind == kind


def _has_errno(*codes: int) -> Predicate:
    return lambda caught: caught.kind == CaughtKind.OS and caught.errno in codes


def _message_matches(*needles: str) -> Predicate:
    """Match GENERIC values whose lowercased message contains any needle."""

    def predicate(caught: CaughtValue) -> bool:
        return caught.kind == CaughtKind.GENERIC and any(
            needle in caught.lower for needle in needles
        )

    return predicate


def _mentions_model_and(*needles: str) -> Predicate:
    def predicate(caught: CaughtValue) -> bool:
        return (
            caught.kind == CaughtKind.GENERIC
            and "model" in caught.lower
            and any(needle in caught.lower for needle in needles)
        )

    return predicate


def _is_timeout(caught: CaughtValue) -> bool:
    return isinstance(caught.value, (TimeoutError, httpx.TimeoutException))


def _has_status(*codes: int) -> Predicate:
    return lambda caught: caught.status_code in codes


# ============================================================================
# Handlers
# ============================================================================


def _cause(caught: CaughtValue) -> BaseException | None:
    return caught.value if isinstance(caught.value, BaseException) else None


def _api_key_suggestions() -> list[str]:
    env_vars = ", ".join(f"{p.upper()}_API_KEY" for p in SUPPORTED_PROVIDERS)
    return [
        f"Check that the API key environment variable is set ({env_vars})",
        "Verify that the API key is valid and has not expired",
        "Set api_key_env_var on the model in your configuration if the key lives in a custom variable",
    ]


def _pass_through(caught: CaughtValue, context: ErrorContext) -> PanelError:
    return caught.value


def _permission_denied(caught: CaughtValue, context: ErrorContext) -> PanelError:
    if context.output_directory:
        message = (
            f"Permission denied when accessing output directory: {context.output_directory}"
        )
    elif caught.filename:
        message = f"Permission denied when accessing: {caught.filename}"
    else:
        message = f"Permission denied: {caught.message}"
    return PermissionDeniedError(
        message,
        cause=_cause(caught),
        suggestions=[
            "Check that you have write permissions for the directory",
            "Try specifying a different output directory",
        ],
    )


def _not_found(caught: CaughtValue, context: ErrorContext) -> PanelError:
    target = caught.filename or caught.message
    return FileSystemError(
        f"File or directory not found: {target}",
        cause=_cause(caught),
        suggestions=[
            "Check that the file or directory exists and the path is spelled correctly",
            f"Current working directory: {context.cwd or os.getcwd()}",
        ],
    )


def _no_space(caught: CaughtValue, context: ErrorContext) -> PanelError:
    return FileSystemError(
        f"No space left on device: {caught.filename or caught.message}",
        cause=_cause(caught),
        suggestions=[
            "Free up disk space",
            "Try specifying a different output directory on a drive with more space",
        ],
    )


def _other_os_error(caught: CaughtValue, context: ErrorContext) -> PanelError:
    strerror = getattr(caught.value, "strerror", None) or caught.message
    code = errno.errorcode.get(caught.errno or -1, str(caught.errno))
    return FileSystemError(
        f"File system error ({code}): {strerror}",
        cause=_cause(caught),
        suggestions=["Check the path and try the operation again"],
    )


def _http_auth(caught: CaughtValue, context: ErrorContext) -> PanelError:
    return ApiError(
        f"API key error: provider rejected the credentials (HTTP {caught.status_code})",
        cause=_cause(caught),
        suggestions=_api_key_suggestions(),
    )


def _rate_limited(caught: CaughtValue, context: ErrorContext) -> PanelError:
    return ApiError(
        f"Rate limit exceeded: {caught.message}",
        cause=_cause(caught),
        suggestions=[
            "Wait a moment and run again",
            "Lower --concurrency to send fewer requests at once",
            "Check your plan's quota with the provider",
        ],
    )


def _http_status(caught: CaughtValue, context: ErrorContext) -> PanelError:
    return ApiError(
        f"Provider API error (HTTP {caught.status_code}): {caught.message}",
        cause=_cause(caught),
        suggestions=[
            "Check the provider status page for outages",
            "Verify the model id is available for your account",
        ],
    )


def _timeout(caught: CaughtValue, context: ErrorContext) -> PanelError:
    detail = f": {caught.message}" if caught.message else ""
    return NetworkError(
        f"Network error: request timed out{detail}",
        cause=_cause(caught),
        suggestions=[
            "Increase --timeout to give slow models more time",
            "Check your internet connection",
        ],
    )


def _network(caught: CaughtValue, context: ErrorContext) -> PanelError:
    return NetworkError(
        f"Network error: {caught.message}",
        cause=_cause(caught),
        suggestions=[
            "Check your internet connection",
            "Check that the provider API is reachable (proxy, firewall, DNS)",
        ],
    )


def _api_key(caught: CaughtValue, context: ErrorContext) -> PanelError:
    return ApiError(
        f"API key error: {caught.message}",
        cause=_cause(caught),
        suggestions=_api_key_suggestions(),
    )


def _token_limit(caught: CaughtValue, context: ErrorContext) -> PanelError:
    return ApiError(
        f"Token limit exceeded: {caught.message}",
        cause=_cause(caught),
        suggestions=[
            "Reduce the size of the prompt or the context files",
            "Use a model with a larger context window",
        ],
    )


def _content_policy(caught: CaughtValue, context: ErrorContext) -> PanelError:
    return ApiError(
        f"Content policy violation: {caught.message}",
        cause=_cause(caught),
        suggestions=["Rephrase the prompt to comply with the provider's content policy"],
    )


def _model_format(caught: CaughtValue, context: ErrorContext) -> PanelError:
    return ConfigError(
        f"Invalid model format: {caught.message}",
        cause=_cause(caught),
        suggestions=[
            'Use the "provider:model_id" format',
            f"Supported providers: {', '.join(SUPPORTED_PROVIDERS)}",
        ],
        examples=list(MODEL_SPEC_EXAMPLES),
    )


def _model_not_found(caught: CaughtValue, context: ErrorContext) -> PanelError:
    return ConfigError(
        f"Model not found: {caught.message}",
        cause=_cause(caught),
        suggestions=[
            "Check that the model is listed and enabled in your configuration",
            "Run `llm-panel models` to see the configured models",
        ],
        examples=list(MODEL_SPEC_EXAMPLES),
    )


def _file_generic(caught: CaughtValue, context: ErrorContext) -> PanelError:
    return FileSystemError(
        f"File system error: {caught.message}",
        cause=_cause(caught),
        suggestions=["Check that the path exists and is accessible"],
    )


def _config_generic(caught: CaughtValue, context: ErrorContext) -> PanelError:
    return ConfigError(
        f"Configuration error: {caught.message}",
        cause=_cause(caught),
        suggestions=["Check your configuration file for mistakes"],
    )


def _api_generic(caught: CaughtValue, context: ErrorContext) -> PanelError:
    return ApiError(
        f"API error: {caught.message}",
        cause=_cause(caught),
        suggestions=["Check the provider status page and your account settings"],
    )


def _unknown(caught: CaughtValue, context: ErrorContext) -> PanelError:
    return UnknownError(
        f"An unexpected error occurred: {caught.message or type(caught.value).__name__}",
        cause=_cause(caught),
        suggestions=[
            "This is an unexpected error. Run again with --verbose for details",
            "If the problem persists, report it with the command you ran",
        ],
    )


def _non_error(caught: CaughtValue, context: ErrorContext) -> PanelError:
    return UnknownError(
        f"Unknown error (no structured error information was available): {caught.value!s}",
        suggestions=["This is an unexpected error. Run again with --verbose for details"],
    )


@dataclass(frozen=True)
class ClassificationRule:
    name: str
    predicate: Predicate
    handler: Handler


CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule("domain", _is_kind(CaughtKind.DOMAIN), _pass_through),
    # OS error codes
    ClassificationRule("os-permission", _has_errno(errno.EACCES, errno.EPERM), _permission_denied),
    ClassificationRule("os-not-found", _has_errno(errno.ENOENT), _not_found),
    ClassificationRule("os-no-space", _has_errno(errno.ENOSPC), _no_space),
    ClassificationRule("os-other", _is_kind(CaughtKind.OS), _other_os_error),
    # Transport
    ClassificationRule("http-auth", _has_status(401, 403), _http_auth),
    ClassificationRule("http-rate-limit", _has_status(429), _rate_limited),
    ClassificationRule(
        "http-status", lambda caught: caught.status_code is not None, _http_status
    ),
    ClassificationRule("timeout", _is_timeout, _timeout),
    ClassificationRule("transport", _is_kind(CaughtKind.TRANSPORT), _network),
    # Message heuristics
    ClassificationRule(
        "msg-permission",
        _message_matches("permission denied", "eacces", "eperm", "not permitted"),
        _permission_denied,
    ),
    ClassificationRule(
        "msg-api-key",
        _message_matches(
            "api key", "api_key", "apikey", "auth", "credential", "unauthorized", "401"
        ),
        _api_key,
    ),
    ClassificationRule(
        "msg-rate-limit",
        _message_matches("rate limit", "ratelimit", "429", "too many requests", "quota"),
        _rate_limited,
    ),
    ClassificationRule(
        "msg-token-limit",
        _message_matches(
            "token limit", "context length", "maximum context", "too many tokens"
        ),
        _token_limit,
    ),
    ClassificationRule(
        "msg-content-policy",
        _message_matches("content policy", "content filter", "moderation", "safety"),
        _content_policy,
    ),
    ClassificationRule("msg-model-format", _mentions_model_and("format", "invalid"), _model_format),
    ClassificationRule("msg-model-not-found", _mentions_model_and("not found"), _model_not_found),
    ClassificationRule(
        "msg-network",
        _message_matches(
            "network",
            "connect",
            "timeout",
            "timed out",
            "econnrefused",
            "etimedout",
            "enotfound",
            "socket",
            "dns",
        ),
        _network,
    ),
    ClassificationRule(
        "msg-file",
        _message_matches("file", "directory", "path", "enoent", "disk"),
        _file_generic,
    ),
    ClassificationRule(
        "msg-config", _message_matches("config", "setting", "yaml"), _config_generic
    ),
    ClassificationRule(
        "msg-api", _message_matches("api", "endpoint", "provider"), _api_generic
    ),
    ClassificationRule("generic", _is_kind(CaughtKind.GENERIC), _unknown),
    ClassificationRule("non-error", _is_kind(CaughtKind.NON_ERROR), _non_error),
)


def _enrich(error: PanelError, context: ErrorContext) -> PanelError:
    if context.run_name:
        error.with_suggestions(f"This error occurred during run: {context.run_name}")
    if context.output_directory and isinstance(error, FileSystemError):
        error.with_suggestions(f"Output directory: {context.output_directory}")
    return error


def classify_error(value: Any, context: ErrorContext | None = None) -> PanelError:
    """
    Classify any caught value into a PanelError.

    Domain errors are returned as the same object (with context suggestions
    appended). Everything else produces a new PanelError whose ``cause`` is
    the original exception.

    Args:
        value: Anything caught in an ``except`` clause, or any other value
        context: Optional run context used to enrich suggestions

    Returns:
        PanelError subclass instance

    Examples:
        >>> classify_error(PermissionError(13, "Permission denied", "/out")).category
        <ErrorCategory.PERMISSION: 'Permission'>
        >>> classify_error("boom").message
        'Unknown error (no structured error information was available): boom'
    """
    context = context or ErrorContext()
    caught = tag_caught_value(value)

    for rule in CLASSIFICATION_RULES:
        if rule.predicate(caught):
            return _enrich(rule.handler(caught, context), context)

    # CLASSIFICATION_RULES ends with catch-alls for every kind
    raise AssertionError(f"No classification rule matched kind {caught.kind}")
