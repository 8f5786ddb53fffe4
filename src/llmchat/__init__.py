"""llmchat - one command-line interface for many LLM providers."""

__version__ = "0.4.0"
