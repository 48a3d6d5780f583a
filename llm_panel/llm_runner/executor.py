"""
Concurrent query execution for llm-panel.

Dispatches one prompt to every selected ModelTarget concurrently on the
running event loop and aggregates the outcomes into a RunResult.

Guarantees:
- Every target gets exactly one QueryStatusRecord and one LLMResponse, in
  selection order, whatever order the calls complete in.
- A failing target never aborts its siblings: the failure is classified
  and recorded as an error status plus a synthetic error response.
- Status records only move forward: pending -> running -> success | error
  (pending -> error for targets that cannot be dispatched at all).
- Concurrency is unbounded unless max_concurrency is set, in which case an
  asyncio.Semaphore keeps at most that many calls in flight.
- A configured timeout_seconds bounds each call with asyncio.wait_for; a
  timed-out call is recorded as a NetworkError like any other failure.

Example:
    >>> result = await execute_queries(
    ...     targets,
    ...     "Compare Raft and Paxos",
    ...     build_provider_registry(),
    ...     ExecutionOptions(max_concurrency=4, timeout_seconds=120),
    ... )
    >>> [(key, record.status) for key, record in result.statuses.items()]
    [('openai:gpt-4o', 'success'), ('anthropic:claude-3-7-sonnet-20250219', 'error')]
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from llm_panel.config.constants import DEFAULT_SYSTEM_PROMPT, SUPPORTED_PROVIDERS
from llm_panel.config.loader import get_api_key as get_config_api_key
from llm_panel.error_classifier import ErrorContext, classify_error
from llm_panel.exceptions import ConfigError, NetworkError, PanelError
from llm_panel.llm_runner.models import (
    LLMResponse,
    ModelTarget,
    ProviderClient,
    ProviderRegistry,
    Timing,
)
from llm_panel.utils.time import now_ms

logger = logging.getLogger(__name__)


class QueryStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


ALLOWED_TRANSITIONS: dict[QueryStatus, frozenset[QueryStatus]] = {
    QueryStatus.PENDING: frozenset({QueryStatus.RUNNING, QueryStatus.ERROR}),
    QueryStatus.RUNNING: frozenset({QueryStatus.SUCCESS, QueryStatus.ERROR}),
    QueryStatus.SUCCESS: frozenset(),
    QueryStatus.ERROR: frozenset(),
}


@dataclass
class QueryStatusRecord:
    """
    Per-target status record, mutated only by the executor.

    Attributes:
        config_key: Target config key
        status: Current QueryStatus
        start_time: Epoch ms when the call started
        end_time: Epoch ms when the call settled
        duration_ms: end_time - start_time
        error_message: Classified error message on failure
        error_category: Error category on failure
    """

    config_key: str
    status: QueryStatus = QueryStatus.PENDING
    start_time: float | None = None
    end_time: float | None = None
    duration_ms: float | None = None
    error_message: str | None = None
    error_category: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (QueryStatus.SUCCESS, QueryStatus.ERROR)

    def _transition(self, new_status: QueryStatus) -> None:
        if new_status not in ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(
                f"Invalid status transition for {self.config_key}: "
                f"{self.status} -> {new_status}"
            )
        self.status = new_status

    def mark_running(self, at_ms: float) -> None:
        self._transition(QueryStatus.RUNNING)
        self.start_time = at_ms

    def mark_success(self, at_ms: float) -> None:
        self._transition(QueryStatus.SUCCESS)
        self._finish(at_ms)

    def mark_error(self, error: PanelError, at_ms: float) -> None:
        self._transition(QueryStatus.ERROR)
        if self.start_time is None:
            self.start_time = at_ms
        self._finish(at_ms)
        self.error_message = error.message
        self.error_category = str(error.category)

    def _finish(self, at_ms: float) -> None:
        self.end_time = at_ms
        self.duration_ms = max(0.0, at_ms - (self.start_time or at_ms))


StatusCallback = Callable[[str, QueryStatusRecord], None]


@dataclass
class ExecutionOptions:
    """
    Options for execute_queries().

    Attributes:
        system_prompt: Override applied to every target
        max_concurrency: Maximum in-flight calls (None = unbounded)
        timeout_seconds: Per-call client-side timeout (None = none)
        on_status_update: Called as (config_key, record) on every transition
    """

    system_prompt: str | None = None
    max_concurrency: int | None = None
    timeout_seconds: float | None = None
    on_status_update: StatusCallback | None = None


@dataclass
class RunResult:
    """
    Aggregated outcome of one execution.

    Attributes:
        responses: One LLMResponse per target, in selection order
        statuses: config_key -> QueryStatusRecord, in selection order
        timing: Span from the earliest start to the latest end
    """

    responses: list[LLMResponse] = field(default_factory=list)
    statuses: dict[str, QueryStatusRecord] = field(default_factory=dict)
    timing: Timing = field(default_factory=lambda: Timing(0.0, 0.0, 0.0))

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.statuses.values() if r.status == QueryStatus.SUCCESS)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.statuses.values() if r.status == QueryStatus.ERROR)


def resolve_system_prompt(target: ModelTarget, override: str | None = None) -> str:
    """
    System prompt for a target.

    Precedence: override > model system_prompt > group system_prompt >
    DEFAULT_SYSTEM_PROMPT.
    """
    if override:
        return override
    if target.system_prompt:
        return target.system_prompt
    if target.group_info and target.group_info.system_prompt:
        return target.group_info.system_prompt
    return DEFAULT_SYSTEM_PROMPT


def _default_api_key(target: ModelTarget) -> str | None:
    return get_config_api_key(target.to_model_config())


def _notify(callback: StatusCallback | None, record: QueryStatusRecord) -> None:
    if callback is None:
        return
    try:
        callback(record.config_key, record)
    except Exception:
        # Observers never affect the run
        logger.warning(
            f"Status callback failed for {record.config_key} ({record.status})",
            exc_info=True,
        )


def _error_response(target: ModelTarget, error: PanelError, record: QueryStatusRecord) -> LLMResponse:
    metadata = {}
    if record.duration_ms is not None:
        metadata["response_time_ms"] = round(record.duration_ms)
    return LLMResponse(
        provider=target.provider,
        model_id=target.model_id,
        config_key=target.config_key,
        text="",
        error=error.message,
        error_category=str(error.category),
        group_info=target.group_info,
        metadata=metadata,
    )


def _missing_provider_error(target: ModelTarget, registry: ProviderRegistry) -> ConfigError:
    registered = registry.providers() or list(SUPPORTED_PROVIDERS)
    return ConfigError(
        f'No provider client registered for "{target.provider}" (model {target.config_key})',
        suggestions=[
            f"Registered providers: {', '.join(registered)}",
            "Check the provider name of this model in your configuration",
        ],
    )


def _timeout_error(target: ModelTarget, timeout_seconds: float, cause: BaseException) -> NetworkError:
    return NetworkError(
        f"Network error: request to {target.config_key} timed out after {timeout_seconds}s",
        cause=cause,
        suggestions=[
            "Increase --timeout to give slow models more time",
            "Check your internet connection",
        ],
    )


async def execute_queries(
    targets: list[ModelTarget],
    prompt: str,
    registry: ProviderRegistry,
    options: ExecutionOptions | None = None,
    *,
    get_api_key: Callable[[ModelTarget], str | None] | None = None,
    context: ErrorContext | None = None,
) -> RunResult:
    """
    Query every target concurrently and collect the results.

    Args:
        targets: Selected targets (unique config keys), in selection order
        prompt: Prompt content, already combined with any context files
        registry: Provider clients by provider id
        options: Execution options
        get_api_key: API key resolver (defaults to the configuration loader's
            environment lookup). A missing key is passed as "".
        context: Error context used to enrich classified errors

    Returns:
        RunResult covering every target

    Raises:
        ValueError: If two targets share a config key
    """
    options = options or ExecutionOptions()
    resolve_key = get_api_key or _default_api_key

    statuses: dict[str, QueryStatusRecord] = {}
    for target in targets:
        if target.config_key in statuses:
            raise ValueError(f"Duplicate target: {target.config_key}")
        statuses[target.config_key] = QueryStatusRecord(config_key=target.config_key)

    for record in statuses.values():
        _notify(options.on_status_update, record)

    if not targets:
        logger.info("No targets to query")
        return RunResult(timing=Timing.span([], [], now_ms()))

    # Provider capabilities are resolved once, before dispatch
    clients: dict[str, ProviderClient | None] = {
        target.config_key: registry.get(target.provider) for target in targets
    }

    semaphore = asyncio.Semaphore(options.max_concurrency) if options.max_concurrency else None
    if semaphore is not None:
        logger.info(f"Concurrency limited to {options.max_concurrency} in-flight requests")

    async def _dispatch(target: ModelTarget, client: ProviderClient) -> LLMResponse:
        record = statuses[target.config_key]
        record.mark_running(now_ms())
        _notify(options.on_status_update, record)
        logger.info(f"Querying {target.config_key}")

        try:
            call = client.generate(
                prompt,
                target.model_id,
                resolve_system_prompt(target, options.system_prompt),
                resolve_key(target) or "",
                dict(target.options),
            )
            if options.timeout_seconds is not None:
                reply = await asyncio.wait_for(call, options.timeout_seconds)
            else:
                reply = await call
        except Exception as e:
            # Only wait_for deadlines are reported with the configured timeout
            if isinstance(e, TimeoutError) and options.timeout_seconds is not None:
                error = classify_error(_timeout_error(target, options.timeout_seconds, e), context)
            else:
                error = classify_error(e, context)
        else:
            record.mark_success(now_ms())
            _notify(options.on_status_update, record)
            logger.info(f"{target.config_key} answered in {record.duration_ms:.0f}ms")
            return LLMResponse(
                provider=target.provider,
                model_id=target.model_id,
                config_key=target.config_key,
                text=reply.text,
                group_info=target.group_info,
                metadata={**reply.metadata, "response_time_ms": round(record.duration_ms or 0)},
            )

        record.mark_error(error, now_ms())
        _notify(options.on_status_update, record)
        logger.error(f"{target.config_key} failed [{error.category}]: {error.message}")
        return _error_response(target, error, record)

    async def _run_target(target: ModelTarget) -> LLMResponse:
        client = clients[target.config_key]
        if client is None:
            record = statuses[target.config_key]
            error = _missing_provider_error(target, registry)
            record.mark_error(error, now_ms())
            _notify(options.on_status_update, record)
            logger.error(error.message)
            return _error_response(target, error, record)

        if semaphore is None:
            return await _dispatch(target, client)
        async with semaphore:
            return await _dispatch(target, client)

    logger.info(f"Executing {len(targets)} queries concurrently")
    results = await asyncio.gather(*(_run_target(t) for t in targets), return_exceptions=True)

    responses: list[LLMResponse] = []
    for target, result in zip(targets, results, strict=True):
        if isinstance(result, LLMResponse):
            responses.append(result)
            continue

        # Unexpected failure outside the per-target handler
        error = classify_error(result, context)
        record = statuses[target.config_key]
        if not record.is_terminal:
            record.mark_error(error, now_ms())
            _notify(options.on_status_update, record)
        logger.error(f"Task for {target.config_key} failed unexpectedly: {error.message}")
        responses.append(_error_response(target, error, record))

    timing = Timing.span(
        [r.start_time for r in statuses.values() if r.start_time is not None],
        [r.end_time for r in statuses.values() if r.end_time is not None],
        now_ms(),
    )
    run_result = RunResult(responses=responses, statuses=statuses, timing=timing)
    logger.info(
        f"Execution finished: {run_result.success_count} succeeded, "
        f"{run_result.failure_count} failed in {timing.duration_ms:.0f}ms"
    )
    return run_result
