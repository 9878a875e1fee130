"""Self-hosted LLM client integration.

Implements the BaseAIClient interface for local servers that speak an
OpenAI-compatible chat-completions dialect (vLLM, FastChat, llama.cpp,
LM Studio, ...). The exact route such a server exposes is not known up
front, so a short ordered list of candidate endpoints is tried in turn.
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
    LOCAL_REQUEST_TIMEOUT_SECONDS,
    AIResponseError,
    AIServiceError,
    AITransportError,
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

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_MODEL = "classius-sage-7b"
# Conservative default for local hardware
DEFAULT_MAX_TOKENS = 2048

# Tried in order; the first structurally valid answer wins
CANDIDATE_ENDPOINTS = ("/v1/chat/completions", "/chat/completions", "/generate")
HEALTH_ENDPOINTS = ("/health", "/v1/health", "/ping")

STOP_TOKENS = ["<|endoftext|>", "<|end|>", "</s>"]

# Parameter-size markers mapped to typical context windows. This is a
# best-effort guess from the model name, not an authoritative lookup:
# the real window depends on how the server was launched.
_SIZE_CONTEXT_HINTS: tuple[tuple[str, int], ...] = (
    ("7b", 4096),
    ("13b", 4096),
    ("30b", 2048),
    ("70b", 4096),
)
DEFAULT_CONTEXT_LENGTH = 2048

_HEALTH_PROBE_CONTEXT = "You are a helpful assistant. Respond with just 'Hi'."


def estimate_context_length(model: str) -> int:
    """Estimate a local model's context window from its name.

    Heuristic only: matches parameter-size substrings such as ``7b`` and
    returns a conservative default for names it does not recognise.
    """
    name = model.lower()
    for marker, context_length in _SIZE_CONTEXT_HINTS:
        if marker in name:
            return context_length
    return DEFAULT_CONTEXT_LENGTH


class LocalLLMClient(HTTPAIClient):
    """Client for a self-hosted OpenAI-compatible server."""

    provider_type = AIProviderType.LOCAL
    # Local hardware may need to load the model on first request
    request_timeout = LOCAL_REQUEST_TIMEOUT_SECONDS

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        api_key: str = "",
        health_generation_probe: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
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
    ) -> "LocalLLMClient":
        """Build a client from a provider option mapping, defaulting freely."""
        options = client_options(
            config,
            base_url=DEFAULT_BASE_URL,
            model=DEFAULT_MODEL,
            max_tokens=DEFAULT_MAX_TOKENS,
        )
        return cls(**options, transport=transport)

    async def _complete(self, url: str, body: dict[str, Any]) -> AIResponse:
        """Run one candidate endpoint to a validated response or raise."""
        start = time.perf_counter()
        response = await self._send("POST", url, payload=body)

        if response.status_code != httpx.codes.OK:
            raise AIResponseError(
                f"HTTP {response.status_code} from {url}: "
                f"{truncate_body(response.text)}",
                endpoint=url,
                status_code=response.status_code,
                body=response.text,
            )

        payload = decode_json_object(response, url)

        error_message = provider_error_message(payload)
        if error_message:
            raise AIResponseError(
                f"local llm api error from {url}: {error_message}",
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

    async def ask(self, request: AIRequest) -> AIResponse:
        """Ask a question, falling back across candidate endpoints.

        Each endpoint gets exactly one full attempt. Only the last failure is
        kept; if every candidate fails it is raised, chained as the cause.
        Cancellation aborts the whole sequence immediately.
        """
        temperature, max_tokens = self._resolve_generation(request)
        body = {
            "model": self.model,
            "messages": build_chat_messages(request),
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": False,
            "stop": STOP_TOKENS,
        }

        last_error: AIServiceError | None = None
        for path in CANDIDATE_ENDPOINTS:
            url = f"{self.base_url}{path}"
            try:
                return await self._complete(url, body)
            except AIServiceError as e:
                logger.warning(
                    "Local LLM endpoint failed", endpoint=url, error=str(e)
                )
                last_error = e

        message = f"all endpoints failed, last error: {last_error}"
        logger.error(
            "Local LLM request failed on every endpoint",
            base_url=self.base_url,
            error=str(last_error),
        )
        if isinstance(last_error, AITransportError):
            raise AITransportError(message, endpoint=last_error.endpoint) from last_error
        if isinstance(last_error, AIResponseError):
            raise AIResponseError(
                message,
                endpoint=last_error.endpoint,
                status_code=last_error.status_code,
                body=last_error.body,
            ) from last_error
        raise AIResponseError(message) from last_error

    def get_capabilities(self) -> AICapabilities:
        return AICapabilities(
            supports_streaming=False,
            supports_conversations=True,
            # Depends on what the local model was trained on
            supported_languages=["en"],
            max_tokens=self.max_tokens,
            max_context_length=estimate_context_length(self.model),
            supports_documents=True,
            supports_images=False,
        )

    def get_provider_info(self) -> AIProviderInfo:
        return AIProviderInfo(
            name="Local LLM",
            provider=self.provider_type,
            model=self.model,
            version="1.0",
            description="Self-hosted LLM optimized for classical education",
            is_local=self.provider_type in LOCAL_PROVIDER_TYPES,
            cost="Free (local compute only)",
        )

    async def is_healthy(self) -> None:
        """Probe conventional health routes, then fall back to a tiny ask.

        The first health route answering HTTP 200 counts as healthy. When
        none does and generation probing is disabled, the server is
        reported unhealthy without spending compute on a completion.
        """
        for path in HEALTH_ENDPOINTS:
            url = f"{self.base_url}{path}"
            try:
                response = await self._send("GET", url)
            except AITransportError as e:
                logger.debug("Local LLM health route unreachable", endpoint=url, error=str(e))
                continue
            if response.status_code == httpx.codes.OK:
                return

        if not self.health_generation_probe:
            raise AIResponseError(
                f"no health endpoint responded at {self.base_url}",
                endpoint=self.base_url,
            )

        await self.ask(
            AIRequest(
                question="Hello",
                context=_HEALTH_PROBE_CONTEXT,
                max_tokens=HEALTH_PROBE_MAX_TOKENS,
            )
        )
