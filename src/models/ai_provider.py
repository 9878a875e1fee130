"""Sage AI provider identity.

The closed set of backends the Sage can be wired to at process start.
"""

import enum


class AIProviderType(str, enum.Enum):
    """Supported AI provider types."""

    # Hosted, pay-per-token
    OPENAI = "openai"
    # Declared but not yet implemented; only capability/info metadata works
    ANTHROPIC = "anthropic"

    # Self-hosted OpenAI-compatible server (vLLM, FastChat, llama.cpp, ...)
    LOCAL = "local"
    # Local Ollama daemon, native generate API
    OLLAMA = "ollama"


# Providers that run on the operator's own hardware
LOCAL_PROVIDER_TYPES = frozenset({AIProviderType.LOCAL, AIProviderType.OLLAMA})
