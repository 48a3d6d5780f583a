"""
Configuration loader for llm-panel.

Loads llm-panel.yaml, validates it with the pydantic schema, and resolves
API keys from the environment.

Key functions:
    load_config: Load and validate a configuration file
    resolve_config_path: Pick the config file (explicit path or default name)
    api_key_env_var_for: Name of the environment variable holding a model's key
    get_api_key: Resolve a model's API key from the environment
"""

import logging
import os
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import ValidationError

from llm_panel.config.constants import DEFAULT_CONFIG_FILENAME
from llm_panel.config.schema import AppConfig, ModelConfig
from llm_panel.exceptions import ConfigFileNotFoundError, ConfigValidationError

logger = logging.getLogger(__name__)


def resolve_config_path(config_path: str | Path | None = None) -> Path:
    """
    Return the configuration file path to load.

    Args:
        config_path: Explicit path, or None to use llm-panel.yaml in the
            current working directory

    Returns:
        Path to the configuration file (existence is not checked)
    """
    if config_path is None:
        return Path.cwd() / DEFAULT_CONFIG_FILENAME
    return Path(config_path)


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """
    Load llm-panel.yaml and validate it.

    Args:
        config_path: Path to the YAML file. Defaults to llm-panel.yaml in
            the current working directory.

    Returns:
        AppConfig: Validated configuration

    Raises:
        ConfigFileNotFoundError: If the file does not exist
        ConfigValidationError: If YAML is invalid, the file is empty, or
            schema validation fails

    Example:
        >>> config = load_config("llm-panel.yaml")
        >>> [m.config_key for m in config.models]
        ['openai:gpt-4o', 'anthropic:claude-3-7-sonnet-20250219']

    Security:
        - API keys are never stored in the config, only env var names
        - Uses yaml.safe_load() to prevent code injection
    """
    config_path = resolve_config_path(config_path)

    if not config_path.exists():
        raise ConfigFileNotFoundError(
            f"Configuration file not found: {config_path}",
            suggestions=[
                f"Create {DEFAULT_CONFIG_FILENAME} in the current directory",
                "Pass an explicit path with --config",
            ],
        )

    try:
        with config_path.open(encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(
            f"Invalid YAML syntax in {config_path}: {e}", cause=e
        ) from e
    except OSError as e:
        raise ConfigValidationError(
            f"Failed to read configuration file {config_path}: {e}", cause=e
        ) from e

    if raw_config is None:
        raise ConfigValidationError(f"Configuration file is empty: {config_path}")

    try:
        config = AppConfig.model_validate(raw_config)
    except ValidationError as e:
        # Format validation errors in a user-friendly way
        error_messages = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            error_messages.append(f"  - {loc}: {msg}")

        raise ConfigValidationError(
            f"Configuration validation failed in {config_path}:\n"
            + "\n".join(error_messages),
            cause=e,
        ) from e

    logger.info(
        f"Loaded configuration from {config_path}: "
        f"{len(config.models)} models, {len(config.groups)} groups"
    )
    return config


def api_key_env_var_for(model: ModelConfig) -> str:
    """
    Name of the environment variable that holds a model's API key.

    Example:
        >>> api_key_env_var_for(ModelConfig(provider="openai", model_id="gpt-4o"))
        'OPENAI_API_KEY'
    """
    return model.api_key_env_var or f"{model.provider.upper()}_API_KEY"


def get_api_key(model: ModelConfig, env: Mapping[str, str] | None = None) -> str | None:
    """
    Resolve a model's API key.

    Args:
        model: Model configuration
        env: Environment mapping (defaults to os.environ)

    Returns:
        The API key, or None when the variable is unset or blank

    Security:
        The key is never logged. Only the variable name appears in logs.
    """
    env = os.environ if env is None else env
    env_var_name = api_key_env_var_for(model)
    api_key = env.get(env_var_name)

    if not api_key or api_key.isspace():
        logger.debug(f"API key variable {env_var_name} is not set for {model.config_key}")
        return None

    return api_key
