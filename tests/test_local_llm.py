"""Tests for the self-hosted OpenAI-compatible client."""

import asyncio
import time

import httpx
import pytest

from src.integrations.local_llm import (
    CANDIDATE_ENDPOINTS,
    LocalLLMClient,
    estimate_context_length,
)
from src.models.ai_provider import AIProviderType
from src.schemas.ai_response import AIRequest
from src.services.ai_client import AIResponseError, AITransportError

BASE_URL = "http://local.test"


def _request() -> AIRequest:
    return AIRequest(question="Who was Boethius?", context="You are the Sage.")


def _client(transport: httpx.MockTransport, **kwargs) -> LocalLLMClient:
    return LocalLLMClient(base_url=BASE_URL, transport=transport, **kwargs)


class TestLocalConstruction:
    def test_permissive_defaults(self):
        """Nothing is required; common defaults fill every gap."""
        client = LocalLLMClient.from_config({})

        assert client.base_url == "http://localhost:8000"
        assert client.model == "classius-sage-7b"
        assert client.max_tokens == 2048
        assert client.temperature == 0.7

    def test_config_values_respected(self):
        client = LocalLLMClient.from_config(
            {
                "base_url": "http://gpu-box:5000",
                "model": "mistral-7b-instruct",
                "max_tokens": "512",
                "temperature": 0.2,
            }
        )

        assert client.base_url == "http://gpu-box:5000"
        assert client.model == "mistral-7b-instruct"
        assert client.max_tokens == 512
        assert client.temperature == 0.2


class TestLocalAskFallback:
    """Candidate endpoints are tried in order, one attempt each."""

    async def test_first_endpoint_success_short_circuits(
        self, make_transport, chat_completion
    ):
        transport, handler = make_transport(
            {"/v1/chat/completions": httpx.Response(200, json=chat_completion())}
        )
        client = _client(transport)

        result = await client.ask(_request())

        assert result.answer == "The Forms are eternal archetypes."
        assert result.provider == AIProviderType.LOCAL
        assert handler.paths == ["/v1/chat/completions"]

    async def test_falls_through_connection_errors_to_third_endpoint(
        self, make_transport, chat_completion, refuse_connection
    ):
        """Two refused endpoints then a valid one: third answer, no fourth try."""
        transport, handler = make_transport(
            {
                "/v1/chat/completions": refuse_connection,
                "/chat/completions": refuse_connection,
                "/generate": httpx.Response(
                    200, json=chat_completion("Answer from generate", model="sage-7b")
                ),
            }
        )
        client = _client(transport)

        result = await client.ask(_request())

        assert result.answer == "Answer from generate"
        assert result.model == "sage-7b"
        assert handler.paths == ["/v1/chat/completions", "/chat/completions", "/generate"]

    async def test_falls_through_bad_status_and_error_object(
        self, make_transport, chat_completion
    ):
        transport, handler = make_transport(
            {
                "/v1/chat/completions": httpx.Response(404, text="no such route"),
                "/chat/completions": httpx.Response(
                    200, json={"error": {"message": "model not loaded"}}
                ),
                "/generate": httpx.Response(200, json=chat_completion()),
            }
        )
        client = _client(transport)

        result = await client.ask(_request())

        assert result.tokens_used == 42
        assert len(handler.requests) == 3

    async def test_all_endpoints_failing_reports_last_error(
        self, make_transport, refuse_connection
    ):
        transport, handler = make_transport(
            {
                "/v1/chat/completions": refuse_connection,
                "/chat/completions": httpx.Response(500, text="boom"),
                "/generate": httpx.Response(418, text="teapot"),
            }
        )
        client = _client(transport)

        with pytest.raises(AIResponseError) as exc_info:
            await client.ask(_request())

        error = exc_info.value
        assert "all endpoints failed" in str(error)
        assert f"{BASE_URL}/generate" in str(error)
        assert "HTTP 418" in str(error)
        assert error.endpoint == f"{BASE_URL}/generate"
        assert isinstance(error.__cause__, AIResponseError)
        assert len(handler.requests) == len(CANDIDATE_ENDPOINTS)

    async def test_last_transport_error_keeps_its_kind(
        self, make_transport, refuse_connection
    ):
        transport, _ = make_transport(
            {path: refuse_connection for path in CANDIDATE_ENDPOINTS}
        )
        client = _client(transport)

        with pytest.raises(AITransportError) as exc_info:
            await client.ask(_request())

        assert exc_info.value.endpoint == f"{BASE_URL}/generate"

    async def test_empty_choices_is_an_error(self, make_transport):
        """A 200 with an empty choice list never counts as an answer."""
        def empty(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"model": "x", "choices": []})

        transport, _ = make_transport({path: empty for path in CANDIDATE_ENDPOINTS})
        client = _client(transport)

        with pytest.raises(AIResponseError, match="no choices in response"):
            await client.ask(_request())

    async def test_undecodable_body_falls_through(self, make_transport, chat_completion):
        transport, handler = make_transport(
            {
                "/v1/chat/completions": httpx.Response(200, text="not json"),
                "/chat/completions": httpx.Response(200, json=chat_completion()),
            }
        )
        client = _client(transport)

        result = await client.ask(_request())

        assert result.answer
        assert handler.paths == ["/v1/chat/completions", "/chat/completions"]

    async def test_broken_content_encoding_falls_through(
        self, make_transport, chat_completion, broken_encoding
    ):
        transport, handler = make_transport(
            {
                "/v1/chat/completions": broken_encoding,
                "/chat/completions": httpx.Response(200, json=chat_completion()),
            }
        )
        client = _client(transport)

        result = await client.ask(_request())

        assert result.answer == "The Forms are eternal archetypes."
        assert handler.paths == ["/v1/chat/completions", "/chat/completions"]

    async def test_broken_content_encoding_everywhere_is_response_error(
        self, make_transport, broken_encoding
    ):
        transport, _ = make_transport(
            {path: broken_encoding for path in CANDIDATE_ENDPOINTS}
        )
        client = _client(transport)

        with pytest.raises(AIResponseError, match="failed to decode response body"):
            await client.ask(_request())

    async def test_odd_field_types_normalized(self, make_transport, chat_completion):
        """A numeric model name and negative usage still yield an answer."""
        body = chat_completion(total_tokens=-3)
        body["model"] = 123
        transport, handler = make_transport(
            {"/v1/chat/completions": httpx.Response(200, json=body)}
        )
        client = _client(transport)

        result = await client.ask(_request())

        assert result.model == "123"
        assert result.tokens_used == 0
        assert handler.paths == ["/v1/chat/completions"]

    async def test_cancellation_aborts_candidate_sequence(self):
        """A cancelled call does not move on to the next candidate."""
        seen: list[str] = []

        async def hang(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            await asyncio.sleep(30)
            return httpx.Response(200, json={})

        client = _client(httpx.MockTransport(hang))

        start = time.perf_counter()
        with pytest.raises(TimeoutError):
            async with asyncio.timeout(0.05):
                await client.ask(_request())

        assert time.perf_counter() - start < 1.0
        assert seen == ["/v1/chat/completions"]


class TestLocalWireFormat:
    async def test_body_and_optional_auth(self, make_transport, chat_completion):
        transport, handler = make_transport(
            {"/v1/chat/completions": httpx.Response(200, json=chat_completion())}
        )
        client = _client(transport, model="sage-13b")

        await client.ask(_request())

        sent = handler.requests[0]
        body = handler.json_body()
        assert "Authorization" not in sent.headers
        assert body["model"] == "sage-13b"
        assert body["messages"][0] == {"role": "system", "content": "You are the Sage."}
        assert body["messages"][1]["role"] == "user"
        assert body["stream"] is False
        assert body["max_tokens"] == 2048
        assert body["stop"] == ["<|endoftext|>", "<|end|>", "</s>"]

    async def test_auth_header_when_key_configured(self, make_transport, chat_completion):
        transport, handler = make_transport(
            {"/v1/chat/completions": httpx.Response(200, json=chat_completion())}
        )
        client = _client(transport, api_key="local-secret")

        await client.ask(_request())

        assert handler.requests[0].headers["Authorization"] == "Bearer local-secret"


class TestLocalHealth:
    async def test_first_health_route_ok(self, make_transport):
        transport, handler = make_transport({"/health": httpx.Response(200)})
        client = _client(transport)

        await client.is_healthy()

        assert handler.paths == ["/health"]

    async def test_later_health_route_ok(self, make_transport, refuse_connection):
        transport, handler = make_transport(
            {
                "/health": httpx.Response(500),
                "/v1/health": refuse_connection,
                "/ping": httpx.Response(200, text="pong"),
            }
        )
        client = _client(transport)

        await client.is_healthy()

        assert handler.paths == ["/health", "/v1/health", "/ping"]

    async def test_falls_back_to_minimal_generation(
        self, make_transport, chat_completion
    ):
        transport, handler = make_transport(
            {"/chat/completions": httpx.Response(200, json=chat_completion("Hi"))}
        )
        client = _client(transport)

        await client.is_healthy()

        assert handler.paths[:3] == ["/health", "/v1/health", "/ping"]
        assert handler.paths[-1] == "/chat/completions"
        assert handler.json_body()["max_tokens"] == 5

    async def test_generation_fallback_disabled(self, make_transport):
        transport, handler = make_transport({})
        client = _client(transport, health_generation_probe=False)

        with pytest.raises(AIResponseError, match="no health endpoint responded"):
            await client.is_healthy()

        assert handler.paths == ["/health", "/v1/health", "/ping"]


class TestLocalStaticMetadata:
    def test_lookups_do_no_io(self, unreachable_base_url):
        client = LocalLLMClient(base_url=unreachable_base_url, model="Llama-2-70B-chat")

        assert client.get_capabilities() == client.get_capabilities()
        assert client.get_provider_info() == client.get_provider_info()
        assert client.get_capabilities().max_context_length == 4096
        assert client.get_capabilities().supports_streaming is False

        info = client.get_provider_info()
        assert info.name == "Local LLM"
        assert info.is_local is True
        assert info.cost == "Free (local compute only)"

    @pytest.mark.parametrize(
        ("model", "expected"),
        [
            ("classius-sage-7b", 4096),
            ("vicuna-13B-v1.5", 4096),
            ("llama-30b", 2048),
            ("falcon-70b", 4096),
            ("my-custom-model", 2048),
        ],
    )
    def test_context_length_heuristic(self, model, expected):
        assert estimate_context_length(model) == expected
