"""Sage AI provider abstraction layer.

Abstract base classes, error taxonomy and factory for AI provider clients.
Provides a unified interface for asking questions regardless of the
underlying provider (OpenAI, Anthropic, a self-hosted OpenAI-compatible
server, or Ollama).
"""

import abc
import time
from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import ValidationError

from src.logging_config import get_logger
from src.models.ai_provider import AIProviderType
from src.schemas.ai_response import (
    DEFAULT_TEMPERATURE,
    AICapabilities,
    AIProviderInfo,
    AIRequest,
    AIResponse,
)

logger = get_logger(__name__)

# Client-level timeouts; a caller-side asyncio.timeout() still bounds each call
HOSTED_REQUEST_TIMEOUT_SECONDS = 60.0
LOCAL_REQUEST_TIMEOUT_SECONDS = 120.0

# Health checks that fall back to a real generation keep it tiny
HEALTH_PROBE_MAX_TOKENS = 5

# Max characters of a response body copied into error messages
_ERROR_BODY_LIMIT = 500


class AIServiceError(Exception):
    """Base class for every error raised by the AI provider layer."""


class AIConfigurationError(AIServiceError):
    """A provider was configured incorrectly (e.g. a missing API key)."""


class UnsupportedProviderError(AIConfigurationError):
    """The requested provider token is not one of the supported providers."""


class AIProviderNotImplementedError(AIServiceError):
    """The provider is declared but its ask path does not exist yet."""


class AITransportError(AIServiceError):
    """The request never produced an HTTP response (refused, DNS, timeout)."""

    def __init__(self, message: str, *, endpoint: str | None = None) -> None:
        super().__init__(message)
        self.endpoint = endpoint


class AIResponseError(AIServiceError):
    """The provider answered, but not with a usable result.

    Covers non-2xx statuses, undecodable bodies, provider-embedded error
    objects and empty choice lists. A 200 status does not imply success.
    """

    def __init__(
        self,
        message: str,
        *,
        endpoint: str | None = None,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code
        self.body = body


class BaseAIClient(abc.ABC):
    """Abstract base class for Sage AI provider clients.

    Subclasses implement provider-specific calls while returning a
    normalized AIResponse. ``ask`` either returns a complete response or
    raises an AIServiceError; it never returns a partial result.
    """

    provider_type: AIProviderType

    @abc.abstractmethod
    async def ask(self, request: AIRequest) -> AIResponse:
        """Send one question and return one normalized answer.

        Args:
            request: The question plus system context and generation settings.

        Returns:
            Normalized AIResponse.

        Raises:
            AIServiceError: On any transport, protocol or semantic failure.
        """

    @abc.abstractmethod
    def get_capabilities(self) -> AICapabilities:
        """Return static capabilities for this provider/model. No I/O."""

    @abc.abstractmethod
    def get_provider_info(self) -> AIProviderInfo:
        """Return static provider metadata. No I/O."""

    @abc.abstractmethod
    async def is_healthy(self) -> None:
        """Return if the provider is reachable; raise AIServiceError if not."""

    async def aclose(self) -> None:
        """Release any resources held by the client."""


class HTTPAIClient(BaseAIClient):
    """Base for providers spoken to over HTTP.

    Each instance owns one long-lived ``httpx.AsyncClient`` so concurrent
    calls share a single connection pool. Configuration is read once at
    construction and never mutated afterwards.
    """

    request_timeout: float = HOSTED_REQUEST_TIMEOUT_SECONDS

    def __init__(
        self,
        *,
        base_url: str,
        model: str,
        max_tokens: int,
        temperature: float = DEFAULT_TEMPERATURE,
        api_key: str = "",
        health_generation_probe: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.health_generation_probe = health_generation_probe
        self._http = httpx.AsyncClient(
            timeout=self.request_timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self) -> dict[str, str]:
        """Build request headers including optional bearer token."""
        h: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            h["Authorization"] = f"Bearer {self._api_key}"
        return h

    def _resolve_generation(self, request: AIRequest) -> tuple[float, int]:
        """Apply client defaults to zero-valued request settings."""
        temperature = request.temperature or self.temperature
        max_tokens = request.max_tokens or self.max_tokens
        return temperature, max_tokens

    async def _send(
        self,
        method: str,
        url: str,
        *,
        payload: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Issue one HTTP request, translating request-level failures.

        A body that cannot be decoded (a broken ``Content-Encoding``) is a
        protocol failure; every other ``httpx.RequestError`` is a transport
        failure. Task cancellation is not caught here: it aborts the
        in-flight request and propagates to the caller.
        """
        try:
            return await self._http.request(
                method, url, json=payload, headers=self._headers()
            )
        except httpx.DecodingError as e:
            raise AIResponseError(
                f"failed to decode response body from {url}: {e}", endpoint=url
            ) from e
        except httpx.RequestError as e:
            raise AITransportError(
                f"failed to send request to {url}: {e!r}", endpoint=url
            ) from e

    async def aclose(self) -> None:
        await self._http.aclose()


def truncate_body(text: str) -> str:
    """Clip a response body for inclusion in error messages."""
    if len(text) <= _ERROR_BODY_LIMIT:
        return text
    return text[:_ERROR_BODY_LIMIT] + "..."


def decode_json_object(response: httpx.Response, url: str) -> dict[str, Any]:
    """Decode a JSON object body or raise AIResponseError with the raw body."""
    try:
        payload = response.json()
    except ValueError as e:
        raise AIResponseError(
            f"failed to decode response from {url} "
            f"(HTTP {response.status_code}): {truncate_body(response.text)}",
            endpoint=url,
            status_code=response.status_code,
            body=response.text,
        ) from e

    if not isinstance(payload, dict):
        raise AIResponseError(
            f"unexpected response shape from {url}: expected a JSON object",
            endpoint=url,
            status_code=response.status_code,
            body=response.text,
        )
    return payload


def provider_error_message(payload: Mapping[str, Any]) -> str | None:
    """Extract an embedded provider error message, if the payload has one.

    OpenAI-style servers send ``{"error": {"message": ...}}``; some local
    servers send ``{"error": "..."}``.
    """
    error = payload.get("error")
    if not error:
        return None
    if isinstance(error, Mapping):
        return str(error.get("message") or error)
    return str(error)


def build_chat_messages(request: AIRequest) -> list[dict[str, str]]:
    """Build the two-message chat body shared by OpenAI-compatible servers."""
    return [
        {"role": "system", "content": request.context},
        {"role": "user", "content": request.question},
    ]


def first_choice_content(payload: Mapping[str, Any], url: str) -> str:
    """Return ``choices[0].message.content`` or raise on an empty choice list."""
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        raise AIResponseError(f"no choices in response from {url}", endpoint=url)

    choice = choices[0] if isinstance(choices[0], Mapping) else {}
    message = choice.get("message")
    content = message.get("content") if isinstance(message, Mapping) else None
    if not isinstance(content, str):
        raise AIResponseError(
            f"malformed choice in response from {url}: missing message content",
            endpoint=url,
        )
    return content


def total_tokens(payload: Mapping[str, Any]) -> int:
    """Best-effort ``usage.total_tokens``; absent or junk usage reports 0."""
    usage = payload.get("usage")
    if not isinstance(usage, Mapping):
        return 0
    return token_count(usage, "total_tokens")


def token_count(counts: Mapping[str, Any], key: str) -> int:
    """Read one token counter, clamping junk and negative values to 0."""
    try:
        return max(0, int(counts.get(key) or 0))
    except (TypeError, ValueError):
        return 0


def build_ai_response(
    *,
    answer: str,
    payload: Mapping[str, Any],
    url: str,
    start: float,
    tokens_used: int,
    default_model: str,
    provider: AIProviderType,
) -> AIResponse:
    """Normalize a decoded provider payload into an AIResponse.

    Field values the provider got wrong surface as AIResponseError, never as
    a pydantic ValidationError.
    """
    model = payload.get("model")
    try:
        return AIResponse(
            answer=answer,
            response_time=time.perf_counter() - start,
            tokens_used=tokens_used,
            model=str(model) if model else default_model,
            provider=provider,
        )
    except ValidationError as e:
        raise AIResponseError(
            f"malformed response from {url}: {e.error_count()} invalid field(s)",
            endpoint=url,
        ) from e


def _option(config: Mapping[str, Any], key: str, default: Any, cast: type) -> Any:
    """Read one option, falling back to ``default`` when absent or empty."""
    value = config.get(key)
    if value is None or value == "":
        return default
    if cast is bool and isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    try:
        return cast(value)
    except (TypeError, ValueError) as e:
        raise AIConfigurationError(
            f"invalid value for {key!r}: {value!r}"
        ) from e


def client_options(
    config: Mapping[str, Any],
    *,
    base_url: str,
    model: str,
    max_tokens: int,
) -> dict[str, Any]:
    """Resolve the recognized option keys against provider defaults."""
    return {
        "api_key": _option(config, "api_key", "", str),
        "base_url": _option(config, "base_url", base_url, str),
        "model": _option(config, "model", model, str),
        "max_tokens": _option(config, "max_tokens", max_tokens, int),
        "temperature": _option(config, "temperature", DEFAULT_TEMPERATURE, float),
        "health_generation_probe": _option(
            config, "health_generation_probe", True, bool
        ),
    }


def create_ai_client(
    provider: AIProviderType | str,
    config: Mapping[str, Any],
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BaseAIClient:
    """Factory that returns the AI client for a provider token.

    OpenAI requires an API key at construction; local providers fall back
    to common defaults and defer any failure to first use.

    Args:
        provider: Provider token (enum member or its string value).
        config: Option mapping (api_key, model, base_url, max_tokens,
            temperature, health_generation_probe).
        transport: Optional httpx transport, used by tests.

    Returns:
        A configured BaseAIClient subclass instance.

    Raises:
        UnsupportedProviderError: Unknown provider token.
        AIConfigurationError: Missing or invalid required configuration.
        AIProviderNotImplementedError: The provider has no ask path yet.
    """
    from src.integrations.claude import ClaudeClient
    from src.integrations.local_llm import LocalLLMClient
    from src.integrations.ollama import OllamaClient
    from src.integrations.openai_client import OpenAIClient

    try:
        provider_type = AIProviderType(provider)
    except ValueError:
        raise UnsupportedProviderError(
            f"unsupported AI provider: {provider}"
        ) from None

    if provider_type is AIProviderType.OPENAI:
        return OpenAIClient.from_config(config, transport=transport)

    if provider_type is AIProviderType.ANTHROPIC:
        return ClaudeClient.from_config(config)

    if provider_type is AIProviderType.LOCAL:
        return LocalLLMClient.from_config(config, transport=transport)

    if provider_type is AIProviderType.OLLAMA:
        return OllamaClient.from_config(config, transport=transport)

    raise UnsupportedProviderError(f"unsupported AI provider: {provider}")
