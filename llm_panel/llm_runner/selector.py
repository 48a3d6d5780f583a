"""
Model selection for llm-panel.

Resolves the configured models plus user filters into the ordered list of
ModelTargets for a run.

Selection modes (exactly one is honored, in this precedence):
    1. Explicit list (``--models a:b,c:d``): caller order, deduplicated
    2. Specific model (``--model a:b``): exact config key
    3. Group (``--group coding``): the group's members, in group order
    4. Default: every model with ``enabled: true``, in configuration order

After the mode resolves candidates, models without a resolvable API key are
dropped and reported. Any selection that resolves to zero models raises
ModelSelectionError (or, with throw_on_error=False, returns an empty result
carrying the error message as a warning).

Example:
    >>> result = select_models(config, SelectionOptions(group_name="coding"))
    >>> [t.config_key for t in result.models]
    ['openai:gpt-4o', 'anthropic:claude-3-7-sonnet-20250219']
    >>> result.warnings
    []
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from rapidfuzz import fuzz

from llm_panel.config.constants import MODEL_SPEC_EXAMPLES
from llm_panel.config.loader import api_key_env_var_for, get_api_key
from llm_panel.config.schema import AppConfig, ModelConfig
from llm_panel.exceptions import ModelSelectionError
from llm_panel.llm_runner.models import GroupInfo, ModelTarget

logger = logging.getLogger(__name__)

# Minimum rapidfuzz ratio for "did you mean" suggestions
SUGGESTION_THRESHOLD = 60

# Maximum number of "did you mean" suggestions
MAX_SUGGESTIONS = 3


@dataclass
class SelectionOptions:
    """
    User filters for model selection.

    Attributes:
        specific_model: Exact config key to run
        group_name: Group to run
        models: Explicit list of config keys to run
        include_disabled: Include disabled models that were explicitly
            requested by list or specific model. Disabled group members
            are always skipped
        validate_api_keys: Drop models without a resolvable API key
    """

    specific_model: str | None = None
    group_name: str | None = None
    models: list[str] | None = None
    include_disabled: bool = True
    validate_api_keys: bool = True


@dataclass
class ModelSelectionResult:
    """
    Outcome of model selection.

    Attributes:
        models: Targets to run, in selection order
        warnings: Human-readable warnings for skipped or ignored entries
        disabled_models: Config keys skipped because they are disabled
        missing_api_key_models: Config keys skipped for lack of an API key
    """

    models: list[ModelTarget] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    disabled_models: list[str] = field(default_factory=list)
    missing_api_key_models: list[str] = field(default_factory=list)


def parse_model_spec(spec: str) -> tuple[str, str]:
    """
    Split a ``provider:model_id`` specifier.

    The provider part is lowercased. Everything after the first colon is the
    model id, so ids containing colons survive.

    Raises:
        ModelSelectionError: If the specifier is not ``provider:model_id``

    Examples:
        >>> parse_model_spec("OpenAI:gpt-4o")
        ('openai', 'gpt-4o')
        >>> parse_model_spec("gpt-4o")
        Traceback (most recent call last):
        ...
        llm_panel.exceptions.ModelSelectionError: Invalid model format: "gpt-4o"
    """
    provider, sep, model_id = spec.strip().partition(":")
    if not sep or not provider.strip() or not model_id.strip():
        raise ModelSelectionError(
            f'Invalid model format: "{spec}"',
            suggestions=['Use the "provider:model_id" format'],
            examples=list(MODEL_SPEC_EXAMPLES),
        )
    return provider.strip().lower(), model_id.strip()


def suggest_similar(name: str, candidates: list[str]) -> list[str]:
    """
    Return up to MAX_SUGGESTIONS candidates similar to name, best first.

    Example:
        >>> suggest_similar("openai:gpt4o", ["openai:gpt-4o", "anthropic:claude"])
        ['openai:gpt-4o']
    """
    scored = [
        (fuzz.ratio(name.lower(), candidate.lower()), candidate) for candidate in candidates
    ]
    scored = [item for item in scored if item[0] >= SUGGESTION_THRESHOLD]
    scored.sort(key=lambda item: (-item[0], item[1]))
    return [candidate for _, candidate in scored[:MAX_SUGGESTIONS]]


def _not_found_error(spec: str, config: AppConfig) -> ModelSelectionError:
    available = [m.config_key for m in config.models]
    suggestions = [f'Did you mean "{s}"?' for s in suggest_similar(spec, available)]
    if available:
        suggestions.append(f"Available models: {', '.join(available)}")
    else:
        suggestions.append("No models are configured. Add entries under 'models:'")
    return ModelSelectionError(
        f'Model "{spec}" not found in configuration',
        suggestions=suggestions,
        examples=list(MODEL_SPEC_EXAMPLES),
    )


def _first_group_info(config: AppConfig, config_key: str) -> GroupInfo | None:
    for name in config.groups_for(config_key):
        return GroupInfo(name=name, system_prompt=config.groups[name].system_prompt)
    return None


def _lookup(config: AppConfig, spec: str) -> ModelConfig:
    provider, model_id = parse_model_spec(spec)
    model = config.find_model(f"{provider}:{model_id}")
    if model is None:
        raise _not_found_error(spec, config)
    return model


def _explicitly_requested(
    models: list[ModelConfig],
    config: AppConfig,
    options: SelectionOptions,
    result: ModelSelectionResult,
) -> list[ModelTarget]:
    """Targets for explicitly requested models, applying the disabled policy."""
    targets = []
    for model in models:
        info = _first_group_info(config, model.config_key)
        if not model.enabled:
            if options.include_disabled:
                result.warnings.append(
                    f"Model {model.config_key} is disabled in configuration but was explicitly requested"
                )
            else:
                result.disabled_models.append(model.config_key)
                result.warnings.append(f"Skipping disabled model: {model.config_key}")
                continue
        targets.append(ModelTarget.from_config(model, info))
    return targets


def _select_from_list(
    config: AppConfig, options: SelectionOptions, result: ModelSelectionResult
) -> list[ModelTarget]:
    seen: set[str] = set()
    requested: list[ModelConfig] = []
    for spec in options.models or []:
        model = _lookup(config, spec)
        if model.config_key in seen:
            result.warnings.append(f"Duplicate model ignored: {model.config_key}")
            continue
        seen.add(model.config_key)
        requested.append(model)
    return _explicitly_requested(requested, config, options, result)


def _select_specific(
    config: AppConfig, options: SelectionOptions, result: ModelSelectionResult
) -> list[ModelTarget]:
    model = _lookup(config, options.specific_model or "")
    return _explicitly_requested([model], config, options, result)


def _select_group(
    config: AppConfig, options: SelectionOptions, result: ModelSelectionResult
) -> list[ModelTarget]:
    name = options.group_name or ""
    group = config.groups.get(name)
    if group is None:
        available = sorted(config.groups)
        suggestions = [f'Did you mean "{s}"?' for s in suggest_similar(name, available)]
        suggestions.append(
            f"Available groups: {', '.join(available)}"
            if available
            else "No groups are configured. Add entries under 'groups:'"
        )
        raise ModelSelectionError(f'Group "{name}" not found in configuration', suggestions=suggestions)

    info = GroupInfo(name=name, system_prompt=group.system_prompt)
    members = []
    for key in dict.fromkeys(group.models):
        model = config.find_model(key)
        if model is None:
            raise ModelSelectionError(
                f'Group "{name}" lists model "{key}" which is not configured',
                suggestions=_not_found_error(key, config).suggestions,
            )
        if not model.enabled:
            result.disabled_models.append(model.config_key)
            result.warnings.append(f"Skipping disabled model: {model.config_key}")
            continue
        members.append(ModelTarget.from_config(model, info))

    return members


def _select_enabled(config: AppConfig, result: ModelSelectionResult) -> list[ModelTarget]:
    targets = []
    for model in config.models:
        if not model.enabled:
            result.disabled_models.append(model.config_key)
            continue
        targets.append(ModelTarget.from_config(model, _first_group_info(config, model.config_key)))

    if result.disabled_models:
        logger.info(f"Skipping disabled models: {', '.join(result.disabled_models)}")
    return targets


def _resolve_mode(
    config: AppConfig, options: SelectionOptions, result: ModelSelectionResult
) -> tuple[str, list[ModelTarget]]:
    given = [
        name
        for name, value in (
            ("models", options.models),
            ("specific model", options.specific_model),
            ("group", options.group_name),
        )
        if value
    ]
    if len(given) > 1:
        result.warnings.append(
            f"Multiple selection options given; using {given[0]} and ignoring {', '.join(given[1:])}"
        )

    if options.models:
        return "models", _select_from_list(config, options, result)
    if options.specific_model:
        return "specific model", _select_specific(config, options, result)
    if options.group_name:
        return "group", _select_group(config, options, result)
    return "all enabled", _select_enabled(config, result)


def _filter_missing_api_keys(
    targets: list[ModelTarget], env: Mapping[str, str] | None, result: ModelSelectionResult
) -> list[ModelTarget]:
    usable = []
    for target in targets:
        if get_api_key(target.to_model_config(), env) is None:
            result.missing_api_key_models.append(target.config_key)
        else:
            usable.append(target)

    if result.missing_api_key_models:
        result.warnings.append(
            f"Missing API keys for models: {', '.join(result.missing_api_key_models)}"
        )
    return usable


def select_models(
    config: AppConfig,
    options: SelectionOptions | None = None,
    *,
    env: Mapping[str, str] | None = None,
    throw_on_error: bool = True,
) -> ModelSelectionResult:
    """
    Resolve the targets for a run.

    Args:
        config: Loaded configuration
        options: Selection filters (None = all enabled)
        env: Environment used for API key lookup (defaults to os.environ)
        throw_on_error: Raise ModelSelectionError on failure. When False,
            return an empty result whose warnings carry the error message.

    Returns:
        ModelSelectionResult

    Raises:
        ModelSelectionError: For malformed specifiers, unknown models or
            groups, or an empty final selection (only if throw_on_error)
    """
    options = options or SelectionOptions()
    result = ModelSelectionResult()

    try:
        mode, targets = _resolve_mode(config, options, result)

        if options.validate_api_keys:
            targets = _filter_missing_api_keys(targets, env, result)

        if not targets:
            suggestions = []
            if result.missing_api_key_models:
                env_vars = sorted(
                    {
                        api_key_env_var_for(config.find_model(key))
                        for key in result.missing_api_key_models
                        if config.find_model(key) is not None
                    }
                )
                suggestions.append(f"Set the API key environment variables: {', '.join(env_vars)}")
            if result.disabled_models:
                suggestions.append(
                    f"Enable models in your configuration: {', '.join(result.disabled_models)}"
                )
            suggestions.append("Run `llm-panel models` to see the configured models")
            raise ModelSelectionError(
                f"No models available to run (selection: {mode})", suggestions=suggestions
            )

    except ModelSelectionError as e:
        if throw_on_error:
            raise
        logger.warning(f"Model selection failed: {e.message}")
        return ModelSelectionResult(
            warnings=[*result.warnings, e.message],
            disabled_models=result.disabled_models,
            missing_api_key_models=result.missing_api_key_models,
        )

    for warning in result.warnings:
        logger.warning(warning)

    result.models = targets
    logger.info(
        f"Selected {len(targets)} models ({mode}): {', '.join(t.config_key for t in targets)}"
    )
    return result
