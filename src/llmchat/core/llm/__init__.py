"""Provider adapters, tool policy and the dispatching client."""

from .anthropic_provider import AnthropicProvider
from .background import BackgroundResult, BackgroundTaskManager
from .client import LLMClient, LLMProvider, fork_chat
from .google_provider import GoogleProvider
from .openai_compat_provider import COMPAT_PROFILES, CompatProfile, OpenAICompatProvider
from .openai_responses_provider import OpenAIResponsesProvider
from .tools import PROVIDER_TOOLS, allowed_tools, validate_image, validate_tools

__all__ = [
    "AnthropicProvider",
    "BackgroundResult",
    "BackgroundTaskManager",
    "LLMClient",
    "LLMProvider",
    "fork_chat",
    "GoogleProvider",
    "COMPAT_PROFILES",
    "CompatProfile",
    "OpenAICompatProvider",
    "OpenAIResponsesProvider",
    "PROVIDER_TOOLS",
    "allowed_tools",
    "validate_image",
    "validate_tools",
]
