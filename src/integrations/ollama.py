"""Ollama AI client integration.

Implements the BaseAIClient interface against Ollama's native
single-prompt ``/api/generate`` endpoint.
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
    LOCAL_REQUEST_TIMEOUT_SECONDS,
    AIResponseError,
    AIServiceError,
    AITransportError,
    HTTPAIClient,
    build_ai_response,
    client_options,
    decode_json_object,
    provider_error_message,
    token_count,
    truncate_body,
)

logger = get_logger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_MODEL = "llama3:8b"
DEFAULT_MAX_TOKENS = 2048

# Fixed sampling parameters sent with every generate call
TOP_K = 40
TOP_P = 0.9

# Context windows for common Ollama tags; exact-match only
MODEL_CONTEXT_LENGTHS: dict[str, int] = {
    "llama3:8b": 8192,
    "llama3:70b": 8192,
    "llama3.1:8b": 131072,
    "llama3.1:70b": 131072,
    "llama3.2:3b": 131072,
    "mistral:7b": 8192,
    "mixtral:8x7b": 32768,
    "codellama:13b": 16384,
    "phi3:3.8b": 4096,
    "qwen2:7b": 32768,
    "gemma2:9b": 8192,
    "neural-chat:7b": 4096,
}
DEFAULT_CONTEXT_LENGTH = 4096


def get_model_context_length(model: str) -> int:
    """Return the context window for an Ollama tag, conservatively defaulted.

    Best effort: unmapped tags get a small window rather than a guess.
    """
    return MODEL_CONTEXT_LENGTHS.get(model, DEFAULT_CONTEXT_LENGTH)


def build_prompt(request: AIRequest) -> str:
    """Flatten system context, passage and question into one prompt."""
    prompt = ""
    if request.context:
        prompt += request.context + "\n\n"
    if request.passage_text:
        prompt += f"Passage: {request.passage_text}\n\n"
    prompt += request.question
    return prompt


class OllamaClient(HTTPAIClient):
    """Client for a local Ollama daemon."""

    provider_type = AIProviderType.OLLAMA
    # Ollama can be slow while it loads a model on first use
    request_timeout = LOCAL_REQUEST_TIMEOUT_SECONDS

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        health_generation_probe: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
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
    ) -> "OllamaClient":
        """Build a client from a provider option mapping, defaulting freely."""
        options = client_options(
            config,
            base_url=DEFAULT_BASE_URL,
            model=DEFAULT_MODEL,
            max_tokens=DEFAULT_MAX_TOKENS,
        )
        # Ollama has no authentication
        options.pop("api_key")
        return cls(**options, transport=transport)

    async def ask(self, request: AIRequest) -> AIResponse:
        """Ask a question through Ollama's generate endpoint.

        Token usage is approximated as ``eval_count + prompt_eval_count``;
        treat it as telemetry, not a billing figure.
        """
        url = f"{self.base_url}/api/generate"
        temperature, max_tokens = self._resolve_generation(request)
        body = {
            "model": self.model,
            "prompt": build_prompt(request),
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
                "top_k": TOP_K,
                "top_p": TOP_P,
            },
        }

        start = time.perf_counter()
        try:
            response = await self._send("POST", url, payload=body)

            if response.status_code != httpx.codes.OK:
                raise AIResponseError(
                    f"HTTP {response.status_code}: {truncate_body(response.text)}",
                    endpoint=url,
                    status_code=response.status_code,
                    body=response.text,
                )

            payload = decode_json_object(response, url)

            error_message = provider_error_message(payload)
            if error_message:
                raise AIResponseError(
                    f"ollama api error: {error_message}",
                    endpoint=url,
                    status_code=response.status_code,
                    body=response.text,
                )

            answer = payload.get("response")
            if not isinstance(answer, str):
                raise AIResponseError(
                    f"malformed response from {url}: missing 'response' field",
                    endpoint=url,
                    status_code=response.status_code,
                    body=response.text,
                )
            return build_ai_response(
                answer=answer,
                payload=payload,
                url=url,
                start=start,
                tokens_used=token_count(payload, "eval_count")
                + token_count(payload, "prompt_eval_count"),
                default_model=self.model,
                provider=self.provider_type,
            )
        except AIServiceError as e:
            logger.warning("Ollama request failed", model=self.model, error=str(e))
            raise

    def get_capabilities(self) -> AICapabilities:
        return AICapabilities(
            supports_streaming=True,
            supports_conversations=True,
            # Depends on the pulled model
            supported_languages=["en"],
            max_tokens=self.max_tokens,
            max_context_length=get_model_context_length(self.model),
            supports_documents=True,
            supports_images=False,
        )

    def get_provider_info(self) -> AIProviderInfo:
        return AIProviderInfo(
            name="Ollama",
            provider=self.provider_type,
            model=self.model,
            version="1.0",
            description="Local LLM runner with easy model management",
            is_local=self.provider_type in LOCAL_PROVIDER_TYPES,
            cost="Free (local compute only)",
        )

    async def is_healthy(self) -> None:
        """Check that the Ollama daemon answers its model listing.

        A 200 from ``/api/tags`` means the daemon is up; it does not prove
        the configured model has been pulled.
        """
        url = f"{self.base_url}/api/tags"
        try:
            response = await self._send("GET", url)
        except AITransportError as e:
            raise AITransportError(
                f"Ollama is not running or not accessible: {e}", endpoint=url
            ) from e

        if response.status_code != httpx.codes.OK:
            raise AIResponseError(
                f"Ollama health check failed with status: {response.status_code}",
                endpoint=url,
                status_code=response.status_code,
                body=response.text,
            )
