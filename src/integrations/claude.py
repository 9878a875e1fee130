"""Claude (Anthropic) AI client placeholder.

Anthropic is a declared provider, but its ask path has not been built yet.
Selecting it fails fast with AIProviderNotImplementedError, while the
capability and provider-info lookups still describe the target model so
those endpoints keep working.
"""

from collections.abc import Mapping
from typing import Any

from src.logging_config import get_logger
from src.models.ai_provider import LOCAL_PROVIDER_TYPES, AIProviderType
from src.schemas.ai_response import (
    AICapabilities,
    AIProviderInfo,
    AIRequest,
    AIResponse,
)
from src.services.ai_client import AIProviderNotImplementedError, BaseAIClient

logger = get_logger(__name__)

DEFAULT_MODEL = "claude-3-5-sonnet-20241022"

_NOT_IMPLEMENTED_MSG = "Anthropic service not yet implemented"


class ClaudeClient(BaseAIClient):
    """Placeholder Claude client; every network operation is unimplemented."""

    provider_type = AIProviderType.ANTHROPIC

    def __init__(self, api_key: str = "", model: str = DEFAULT_MODEL) -> None:
        self._api_key = api_key
        self.model = model

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ClaudeClient":
        """Reject construction through the provider factory."""
        logger.warning(
            "Anthropic provider selected but not implemented",
            model=config.get("model") or DEFAULT_MODEL,
        )
        raise AIProviderNotImplementedError(f"{_NOT_IMPLEMENTED_MSG} - coming soon")

    async def ask(self, request: AIRequest) -> AIResponse:
        raise AIProviderNotImplementedError(_NOT_IMPLEMENTED_MSG)

    def get_capabilities(self) -> AICapabilities:
        return AICapabilities(
            supports_streaming=True,
            supports_conversations=True,
            supported_languages=["en", "es", "fr", "de", "it", "pt", "ja", "ko", "zh"],
            max_tokens=100000,
            max_context_length=200000,
            supports_documents=True,
            supports_images=True,
        )

    def get_provider_info(self) -> AIProviderInfo:
        return AIProviderInfo(
            name="Anthropic Claude",
            provider=self.provider_type,
            model=self.model,
            version="3.5",
            description=(
                "Advanced AI assistant by Anthropic with strong reasoning capabilities"
            ),
            is_local=self.provider_type in LOCAL_PROVIDER_TYPES,
            cost="$3/$15 per million tokens (input/output)",
        )

    async def is_healthy(self) -> None:
        raise AIProviderNotImplementedError(_NOT_IMPLEMENTED_MSG)
