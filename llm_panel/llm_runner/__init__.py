"""
LLM runner module for llm-panel.

This module provides the query side of a run:
- ProviderClient protocol and ProviderRegistry (provider id -> client)
- Model selection (configured models + user filters -> ModelTargets)
- Concurrent query execution with per-model status tracking

The run orchestrator lives in ``llm_panel.llm_runner.runner`` and is not
re-exported here; it depends on the report and storage modules, which in
turn use the records defined in this package.

Example:
    >>> from llm_panel.llm_runner import build_provider_registry, execute_queries, select_models
    >>> selection = select_models(config)
    >>> result = await execute_queries(selection.models, "Explain CRDTs", build_provider_registry())
"""

from .executor import (
    ExecutionOptions,
    QueryStatus,
    QueryStatusRecord,
    RunResult,
    execute_queries,
)
from .models import (
    GroupInfo,
    LLMResponse,
    ModelInfo,
    ModelTarget,
    ProviderClient,
    ProviderReply,
    ProviderRegistry,
    Timing,
    build_client,
    build_provider_registry,
)
from .selector import ModelSelectionResult, SelectionOptions, select_models

__all__ = [
    # Protocols
    "ProviderClient",
    # Data classes
    "ExecutionOptions",
    "GroupInfo",
    "LLMResponse",
    "ModelInfo",
    "ModelSelectionResult",
    "ModelTarget",
    "ProviderReply",
    "QueryStatus",
    "QueryStatusRecord",
    "RunResult",
    "SelectionOptions",
    "Timing",
    # Registry
    "ProviderRegistry",
    # Functions
    "build_client",
    "build_provider_registry",
    "execute_queries",
    "select_models",
]
