"""
Configuration constants for llm-panel.

Global constants shared across modules to avoid tight coupling between
the selector, executor, error classifier and CLI.
"""

# Providers with a built-in client
SUPPORTED_PROVIDERS = ("openai", "anthropic", "google", "openrouter")

# Valid model specifiers shown in error messages
MODEL_SPEC_EXAMPLES = (
    "openai:gpt-4o",
    "anthropic:claude-3-7-sonnet-20250219",
    "google:gemini-1.5-pro",
    "openrouter:deepseek/deepseek-r1",
)

# Used when neither the CLI, the model nor its group provides a system prompt
DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful, accurate, and intelligent assistant. "
    "Provide clear, concise, and correct information."
)

# Default configuration file looked up in the working directory
DEFAULT_CONFIG_FILENAME = "llm-panel.yaml"

# Base directory for run folders when neither --output nor output_dir is set
DEFAULT_OUTPUT_DIR = "."

# Group name that is treated as "no group" in headings and filenames
DEFAULT_GROUP_NAME = "default"

# Maximum prompt length (characters) accepted by provider clients
# ~100k tokens at 4 chars/token, guards against runaway context directories
MAX_PROMPT_LENGTH = 400_000
