"""Pytest configuration and shared fixtures.

Provider clients are exercised against ``httpx.MockTransport`` handlers,
so no test ever reaches a real network.
"""

import json
from collections.abc import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.main import app

# Host that nothing listens on; used to prove lookups do no I/O
UNREACHABLE_BASE_URL = "http://unreachable.invalid:9"


def _chat_completion(
    content: str = "The Forms are eternal archetypes.",
    model: str = "gpt-4",
    total_tokens: int = 42,
) -> dict:
    """Build an OpenAI-style chat-completion body."""
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 1700000000,
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": {
            "prompt_tokens": total_tokens - 10,
            "completion_tokens": 10,
            "total_tokens": total_tokens,
        },
    }


class RecordingHandler:
    """MockTransport handler that records requests and replays a script.

    ``routes`` maps a URL path to either an ``httpx.Response`` or a callable
    taking the request; a callable may raise ``httpx`` transport errors.
    Unrouted paths answer 404.
    """

    def __init__(
        self,
        routes: dict[str, httpx.Response | Callable[[httpx.Request], httpx.Response]],
    ) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, text="not found")
        if callable(route):
            return route(request)
        return route

    @property
    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def json_body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


def _refuse_connection(request: httpx.Request) -> httpx.Response:
    """Route that behaves like a closed port."""
    raise httpx.ConnectError("Connection refused", request=request)


def _broken_encoding(request: httpx.Request) -> httpx.Response:
    """Route whose body claims gzip but is not.

    A raw stream defers decoding until the client reads the body.
    """
    return httpx.Response(
        200,
        headers={"Content-Encoding": "gzip", "Content-Type": "application/json"},
        stream=httpx.ByteStream(b"definitely not gzip"),
    )


@pytest.fixture
def make_transport() -> Callable[..., tuple[httpx.MockTransport, RecordingHandler]]:
    """Factory returning a MockTransport and its recording handler."""

    def _make(routes: dict) -> tuple[httpx.MockTransport, RecordingHandler]:
        handler = RecordingHandler(routes)
        return httpx.MockTransport(handler), handler

    return _make


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for testing the API.

    ASGITransport does not run the lifespan, so tests wire ``app.state.sage``
    themselves; it is cleared afterwards.
    """
    app.state.sage = None
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.state.sage = None


@pytest.fixture
def chat_completion() -> Callable[..., dict]:
    """Builder for OpenAI-style chat-completion bodies."""
    return _chat_completion


@pytest.fixture
def refuse_connection() -> Callable[[httpx.Request], httpx.Response]:
    """Route callable that raises ConnectError."""
    return _refuse_connection


@pytest.fixture
def broken_encoding() -> Callable[[httpx.Request], httpx.Response]:
    """Route callable answering with an undecodable Content-Encoding."""
    return _broken_encoding


@pytest.fixture
def unreachable_base_url() -> str:
    return UNREACHABLE_BASE_URL
