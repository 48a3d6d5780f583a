"""
Configuration schema models for llm-panel.

Pydantic v2 models that validate the llm-panel.yaml file.

Models:
    ModelConfig: One configured model (provider, model_id, enabled, API key env var)
    GroupConfig: Named model group with an optional shared system prompt
    AppConfig: Root configuration model (validates the entire YAML)

Example llm-panel.yaml:

    output_dir: ./panel-output
    max_concurrency: 4
    timeout_seconds: 120
    models:
      - provider: openai
        model_id: gpt-4o
      - provider: anthropic
        model_id: claude-3-7-sonnet-20250219
        options:
          temperature: 0.2
      - provider: openrouter
        model_id: deepseek/deepseek-r1
        enabled: false
    groups:
      coding:
        system_prompt: You are a senior software engineer.
        models:
          - openai:gpt-4o
          - anthropic:claude-3-7-sonnet-20250219
"""

from typing import Any

from pydantic import BaseModel, field_validator, model_validator


class ModelConfig(BaseModel):
    """
    LLM model configuration from llm-panel.yaml.

    Attributes:
        provider: Provider identifier (openai, anthropic, google, openrouter)
        model_id: Provider-specific model identifier (e.g., "gpt-4o")
        enabled: Whether the model runs in "all enabled" mode
        api_key_env_var: Environment variable holding the API key.
            Defaults to {PROVIDER}_API_KEY when unset.
        system_prompt: Optional system prompt for this model only
        options: Provider request options passed through (temperature, max_tokens)
    """

    provider: str
    model_id: str
    enabled: bool = True
    api_key_env_var: str | None = None
    system_prompt: str | None = None
    options: dict[str, Any] = {}

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Validate provider is non-empty and has no colon; normalize to lowercase."""
        if not v or v.isspace():
            raise ValueError("provider cannot be empty")
        if ":" in v:
            raise ValueError(f"provider cannot contain ':' (got: {v})")
        return v.strip().lower()

    @field_validator("model_id")
    @classmethod
    def validate_model_id(cls, v: str) -> str:
        """Validate model_id is non-empty."""
        if not v or v.isspace():
            raise ValueError("model_id cannot be empty")
        return v.strip()

    @field_validator("api_key_env_var")
    @classmethod
    def validate_api_key_env_var(cls, v: str | None) -> str | None:
        """Validate api_key_env_var is non-empty when provided."""
        if v is not None and (not v or v.isspace()):
            raise ValueError("api_key_env_var cannot be empty")
        return v

    @property
    def config_key(self) -> str:
        """Canonical ``provider:model_id`` identifier."""
        return f"{self.provider}:{self.model_id}"


class GroupConfig(BaseModel):
    """
    Named group of models sharing a system prompt.

    Attributes:
        system_prompt: Optional system prompt applied to every member
            (a member's own system_prompt still wins)
        description: Free-form description shown by `llm-panel models`
        models: Member config keys in ``provider:model_id`` form
    """

    system_prompt: str | None = None
    description: str | None = None
    models: list[str]

    @field_validator("models")
    @classmethod
    def validate_models(cls, v: list[str]) -> list[str]:
        """Validate members are ``provider:model_id`` keys; lowercase the provider."""
        if not v:
            raise ValueError("group must list at least one model")
        members = []
        for key in v:
            provider, sep, model_id = key.partition(":")
            if not sep or not provider.strip() or not model_id.strip():
                raise ValueError(
                    f"group member must use provider:model_id format (got: {key})"
                )
            members.append(f"{provider.strip().lower()}:{model_id.strip()}")
        return members


class AppConfig(BaseModel):
    """
    Root configuration model for llm-panel.yaml.

    Attributes:
        models: Configured models
        groups: Named model groups
        output_dir: Base directory for run folders (None = current directory)
        max_concurrency: Maximum in-flight provider calls (None = unbounded).
            Range: 1-50.
        timeout_seconds: Client-side timeout per provider call (None = only
            the provider client's own timeout)
    """

    models: list[ModelConfig]
    groups: dict[str, GroupConfig] = {}
    output_dir: str | None = None
    max_concurrency: int | None = None
    timeout_seconds: float | None = None

    @field_validator("max_concurrency")
    @classmethod
    def validate_max_concurrency(cls, v: int | None) -> int | None:
        """Validate max_concurrency is within 1-50 when set."""
        if v is not None and not 1 <= v <= 50:
            raise ValueError(f"max_concurrency must be between 1 and 50 (got: {v})")
        return v

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout_seconds(cls, v: float | None) -> float | None:
        """Validate timeout_seconds is positive when set."""
        if v is not None and v <= 0:
            raise ValueError(f"timeout_seconds must be positive (got: {v})")
        return v

    @model_validator(mode="after")
    def validate_unique_config_keys(self) -> "AppConfig":
        """
        Validate config keys are unique.

        Raises:
            ValueError: If two models share the same provider:model_id
        """
        seen: set[str] = set()
        duplicates = []
        for model in self.models:
            if model.config_key in seen:
                duplicates.append(model.config_key)
            seen.add(model.config_key)

        if duplicates:
            raise ValueError(f"Duplicate models in configuration: {', '.join(duplicates)}")

        return self

    def find_model(self, config_key: str) -> ModelConfig | None:
        """Return the model with this config key, or None."""
        for model in self.models:
            if model.config_key == config_key:
                return model
        return None

    def groups_for(self, config_key: str) -> list[str]:
        """Names of the groups listing this config key, in configuration order."""
        return [name for name, group in self.groups.items() if config_key in group.models]
