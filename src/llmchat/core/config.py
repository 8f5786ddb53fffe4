"""Configuration management for llmchat.

Loads configuration from environment variables using Pydantic. Provides
sensible defaults for all settings while allowing override via environment.

Provides:
- Config: Pydantic model with all application settings
- load_config: Factory function to create Config instance
"""

import os
from pathlib import Path

from pydantic import BaseModel, Field

DEFAULT_SYSTEM_PROMPT = """\
- Answer the question precisely, without much elaboration
- Write natural prose for a sophisticated reader, without unnecessary bullets or headings
- When asked to write code, primarily output code, with minimal explanation unless requested
- Your answers MUST be in markdown format
- Put code within a triple-backtick fence block with a language key (like ```rust)
- Never put markdown prose (or bullets or whatever) in a fenced code block
"""


def _default_history_url() -> str:
    data_home = Path(os.getenv("XDG_DATA_HOME", Path.home() / ".local" / "share"))
    return f"sqlite+aiosqlite:///{data_home / 'llmchat' / 'history.db'}"


class Config(BaseModel):
    """Application configuration loaded from environment.

    Attributes:
        openai_api_key: OPENAI_API_KEY
        anthropic_api_key: ANTHROPIC_API_KEY
        gemini_api_key: GEMINI_API_KEY
        deepseek_api_key: DEEPSEEK_API_KEY
        groq_api_key: GROQ_API_KEY
        cerebras_api_key: CEREBRAS_API_KEY
        xai_api_key: XAI_API_KEY
        openrouter_api_key: OPENROUTER_API_KEY
        history_db_url: SQLAlchemy URL of the chat history store
        history_limit: Number of most recent chats kept in history
        poll_interval_seconds: Delay between background task status checks
        renderer: Markdown renderer binary used when stdout is a terminal
        log_level: structlog level name
        system_prompt: Default system prompt for new chats
    """

    # API Keys
    openai_api_key: str = Field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))
    anthropic_api_key: str = Field(default_factory=lambda: os.getenv("ANTHROPIC_API_KEY", ""))
    gemini_api_key: str = Field(default_factory=lambda: os.getenv("GEMINI_API_KEY", ""))
    deepseek_api_key: str = Field(default_factory=lambda: os.getenv("DEEPSEEK_API_KEY", ""))
    groq_api_key: str = Field(default_factory=lambda: os.getenv("GROQ_API_KEY", ""))
    cerebras_api_key: str = Field(default_factory=lambda: os.getenv("CEREBRAS_API_KEY", ""))
    xai_api_key: str = Field(default_factory=lambda: os.getenv("XAI_API_KEY", ""))
    openrouter_api_key: str = Field(
        default_factory=lambda: os.getenv("OPENROUTER_API_KEY", "")
    )

    # History
    history_db_url: str = Field(
        default_factory=lambda: os.getenv("LLMCHAT_HISTORY_URL") or _default_history_url()
    )
    history_limit: int = Field(default=20)

    # Background tasks
    poll_interval_seconds: float = Field(default=5.0)

    # Display
    renderer: str = Field(default="glow")
    log_level: str = Field(default_factory=lambda: os.getenv("LLMCHAT_LOG_LEVEL", "WARNING"))
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT)

    def api_key_for(self, env_var: str) -> str | None:
        """Look up a configured key by its environment variable name.

        Returns:
            The key, or None when unset or empty
        """
        return getattr(self, env_var.lower(), "") or None


def load_config() -> Config:
    """Load configuration from environment.

    Returns:
        Populated Config instance
    """
    return Config()
