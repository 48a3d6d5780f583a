"""
Entry point for running llm-panel as a module.

Enables execution via:
    python -m llm_panel [command] [options]

This is equivalent to running the installed CLI:
    llm-panel [command] [options]

Examples:
    python -m llm_panel --help
    python -m llm_panel run "Explain the CAP theorem" --table
    python -m llm_panel models --remote
"""

from llm_panel.cli import app

if __name__ == "__main__":
    app()
