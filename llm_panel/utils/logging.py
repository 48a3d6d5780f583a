"""
Structured JSON logging for llm-panel.

Provides standardized logging with:
- JSON formatted output to stderr
- UTC timestamps
- Structured context fields
- Secret redaction (API keys never reach the logs in full)

All modules log through the standard logging module using
``logger = logging.getLogger(__name__)``. The CLI calls setup_logging() once.

Examples:
    >>> from llm_panel.utils.logging import setup_logging
    >>> setup_logging(verbose=True)
    >>> logger = logging.getLogger("llm_panel.llm_runner.executor")
    >>> logger.info("Dispatching", extra={"context": {"targets": 3}})

Security:
    - NEVER log full API keys
    - Only stderr is used (stdout is reserved for user output)
"""

import json
import logging
import re
import sys
from typing import Any

from llm_panel.utils.time import utc_timestamp


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs one JSON object per log record.

    Fields: timestamp, level, component, message, plus optional context,
    run_name and exception.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": utc_timestamp(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "context") and isinstance(record.context, dict):
            log_entry["context"] = record.context

        if hasattr(record, "run_name"):
            log_entry["run_name"] = record.run_name

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


# Ordered: provider-specific shapes before the generic long-token rule
SECRET_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\bsk-[a-zA-Z0-9_-]{20,}\b"), "sk-...{last4}"),
    (re.compile(r"\bAIza[0-9A-Za-z_-]{30,}\b"), "AIza...{last4}"),
    (re.compile(r"\bBearer\s+[a-zA-Z0-9_-]{20,}\b"), "Bearer ***{last4}"),
    (re.compile(r"\b[a-zA-Z0-9_-]{32,}\b"), "***{last4}"),
]


def redact_secrets(text: str) -> str:
    """
    Replace likely secrets in text, keeping the last four characters.

    Example:
        >>> redact_secrets("key sk-proj-abcdefghijklmnopqrstuvwxyz1234")
        'key sk-...1234'
    """
    for pattern, template in SECRET_PATTERNS:
        text = pattern.sub(lambda m, t=template: t.format(last4=m.group(0)[-4:]), text)
    return text


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return redact_secrets(value)
    if isinstance(value, dict):
        return {k: _redact_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_redact_value(v) for v in value]
    return value


class SecretRedactingFilter(logging.Filter):
    """
    Logging filter that redacts likely secrets before a record is emitted.

    The message is merged with its args first, so a key passed as a %s
    argument is caught too. Structured ``context`` is redacted recursively.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_secrets(record.getMessage())
        record.args = None

        if isinstance(getattr(record, "context", None), dict):
            record.context = _redact_value(record.context)

        return True


def setup_logging(verbose: bool = False, quiet_logs: bool = False) -> None:
    """
    Configure structured JSON logging for the application.

    Args:
        verbose: If True, log at DEBUG level. Overrides quiet_logs.
        quiet_logs: If True (and not verbose), only WARNING and above are
            emitted. Used in human output mode so JSON lines do not
            interleave with the rich spinner.

    Example:
        >>> setup_logging(verbose=True)
        >>> logging.getLogger("llm_panel").debug("Debug message")
    """
    if verbose:
        level = logging.DEBUG
    elif quiet_logs:
        level = logging.WARNING
    else:
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicate output on repeated setup
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(SecretRedactingFilter())

    root_logger.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    context: dict[str, Any] | None = None,
    run_name: str | None = None,
) -> None:
    """
    Log a message with structured context and optional run name.

    Equivalent to ``logger.log(level, message, extra={...})``.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, logging.WARNING, etc.)
        message: Human-readable log message
        context: Optional dict with additional structured data
        run_name: Optional run identifier to include in the record

    Example:
        >>> log_with_context(
        ...     logger,
        ...     logging.INFO,
        ...     "Query completed",
        ...     context={"model": "openai:gpt-4o", "duration_ms": 812},
        ...     run_name="run-20251102-083000",
        ... )
    """
    extra: dict[str, Any] = {}

    if context is not None:
        extra["context"] = context

    if run_name is not None:
        extra["run_name"] = run_name

    logger.log(level, message, extra=extra if extra else None)
