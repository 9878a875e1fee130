"""OpenAI AI client integration.

Implements the BaseAIClient interface against the OpenAI Chat Completions
API, spoken directly over httpx so the exact wire contract is preserved.
"""

import time
from collections.abc import Mapping
from typing import Any

import httpx

from src.logging_config import get_logger
from src.models.ai_provider import LOCAL_PROVIDER_TYPES, AIProviderType
from src.schemas.ai_response import (
    DEFAULT_TEMPERATURE,
    AICapabilities,
    AIProviderInfo,
    AIRequest,
    AIResponse,
)
from src.services.ai_client import (
    HEALTH_PROBE_MAX_TOKENS,
    HOSTED_REQUEST_TIMEOUT_SECONDS,
    AIConfigurationError,
    AIResponseError,
    AIServiceError,
    HTTPAIClient,
    build_ai_response,
    build_chat_messages,
    client_options,
    decode_json_object,
    first_choice_content,
    provider_error_message,
    total_tokens,
    truncate_body,
)

logger = get_logger(__name__)

DEFAULT_MODEL = "gpt-4"
DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MAX_TOKENS = 4096

SUPPORTED_LANGUAGES = ["en", "es", "fr", "de", "it", "pt", "ru", "ja", "ko", "zh"]

# Context window per model; unknown models get the smallest common window
MODEL_CONTEXT_LENGTHS: dict[str, int] = {
    "gpt-4": 8192,
    "gpt-4-32k": 32768,
    "gpt-4-turbo-preview": 128000,
    "gpt-4-0125-preview": 128000,
    "gpt-3.5-turbo": 4096,
    "gpt-3.5-turbo-16k": 16384,
}
DEFAULT_CONTEXT_LENGTH = 4096

VISION_MODELS = frozenset({"gpt-4-vision-preview", "gpt-4-turbo", "gpt-4o"})

MODEL_COSTS: dict[str, str] = {
    "gpt-4": "~$0.03/1K tokens (input), ~$0.06/1K tokens (output)",
    "gpt-4-turbo-preview": "~$0.01/1K tokens (input), ~$0.03/1K tokens (output)",
    "gpt-3.5-turbo": "~$0.001/1K tokens (input), ~$0.002/1K tokens (output)",
}
DEFAULT_COST = "Variable pricing - check OpenAI pricing page"

_HEALTH_PROBE_CONTEXT = "You are a helpful assistant. Respond with just 'OK'."


def get_model_context_length(model: str) -> int:
    """Return the context window for an OpenAI model name."""
    return MODEL_CONTEXT_LENGTHS.get(model, DEFAULT_CONTEXT_LENGTH)


def is_vision_model(model: str) -> bool:
    """Check whether the exact model name accepts image input."""
    return model in VISION_MODELS


def get_cost_info(model: str) -> str:
    """Return a human-readable pricing note for a model."""
    return MODEL_COSTS.get(model, DEFAULT_COST)


class OpenAIClient(HTTPAIClient):
    """OpenAI AI client using the Chat Completions endpoint."""

    provider_type = AIProviderType.OPENAI
    request_timeout = HOSTED_REQUEST_TIMEOUT_SECONDS

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        health_generation_probe: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        # A paid hosted provider must never run without a credential
        if not api_key:
            raise AIConfigurationError("openai api_key is required")

        super().__init__(
            api_key=api_key,
            base_url=base_url,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            health_generation_probe=health_generation_probe,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "OpenAIClient":
        """Build a client from a provider option mapping."""
        options = client_options(
            config,
            base_url=DEFAULT_BASE_URL,
            model=DEFAULT_MODEL,
            max_tokens=DEFAULT_MAX_TOKENS,
        )
        return cls(**options, transport=transport)

    async def ask(self, request: AIRequest) -> AIResponse:
        """Ask a question using the OpenAI Chat Completions API.

        Args:
            request: Question, system context and generation settings.

        Returns:
            Normalised AIResponse.

        Raises:
            AITransportError: The request could not be delivered.
            AIResponseError: Error object in the body, non-2xx status,
                undecodable body, or an empty choice list.
        """
        url = f"{self.base_url}/chat/completions"
        temperature, max_tokens = self._resolve_generation(request)
        body = {
            "model": self.model,
            "messages": build_chat_messages(request),
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": False,
        }

        start = time.perf_counter()
        try:
            response = await self._send("POST", url, payload=body)
            payload = decode_json_object(response, url)

            # An embedded error object wins over whatever the status says
            error_message = provider_error_message(payload)
            if error_message:
                raise AIResponseError(
                    f"openai api error: {error_message}",
                    endpoint=url,
                    status_code=response.status_code,
                    body=response.text,
                )

            if not response.is_success:
                raise AIResponseError(
                    f"HTTP {response.status_code} from {url}: "
                    f"{truncate_body(response.text)}",
                    endpoint=url,
                    status_code=response.status_code,
                    body=response.text,
                )

            return build_ai_response(
                answer=first_choice_content(payload, url),
                payload=payload,
                url=url,
                start=start,
                tokens_used=total_tokens(payload),
                default_model=self.model,
                provider=self.provider_type,
            )
        except AIServiceError as e:
            logger.warning("OpenAI request failed", model=self.model, error=str(e))
            raise

    def get_capabilities(self) -> AICapabilities:
        return AICapabilities(
            supports_streaming=True,
            supports_conversations=True,
            supported_languages=list(SUPPORTED_LANGUAGES),
            max_tokens=self.max_tokens,
            max_context_length=get_model_context_length(self.model),
            supports_documents=True,
            supports_images=is_vision_model(self.model),
        )

    def get_provider_info(self) -> AIProviderInfo:
        return AIProviderInfo(
            name="OpenAI",
            provider=self.provider_type,
            model=self.model,
            version="1.0",
            description="OpenAI GPT models for classical education",
            is_local=self.provider_type in LOCAL_PROVIDER_TYPES,
            cost=get_cost_info(self.model),
        )

    async def is_healthy(self) -> None:
        """Check availability with a minimal real completion.

        OpenAI has no lightweight ping endpoint, so success means a 5-token
        generation came back without error. With generation probing turned
        off, listing models is used instead; it proves the key and the
        network path but not the model.
        """
        if self.health_generation_probe:
            await self.ask(
                AIRequest(
                    question="Test",
                    context=_HEALTH_PROBE_CONTEXT,
                    max_tokens=HEALTH_PROBE_MAX_TOKENS,
                )
            )
            return

        url = f"{self.base_url}/models"
        response = await self._send("GET", url)
        if response.status_code != httpx.codes.OK:
            raise AIResponseError(
                f"OpenAI health check failed with status: {response.status_code}",
                endpoint=url,
                status_code=response.status_code,
                body=response.text,
            )
