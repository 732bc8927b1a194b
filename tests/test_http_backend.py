from __future__ import annotations

import asyncio
import json

import allure
import httpx
import pytest

from lumosgen.orchestrator.backend.base import GenerationRequest
from lumosgen.orchestrator.backend.http_backend import HttpChatBackend
from lumosgen.orchestrator.errors import BackendCallError

pytestmark = [
    allure.epic("Provider Chain"),
    allure.feature("HTTP Backend"),
]


def _backend(handler) -> HttpChatBackend:
    return HttpChatBackend(
        name="deepseek",
        endpoint="https://api.deepseek.test/v1/",
        api_key="ds-secret",
        model="deepseek-chat",
        transport=httpx.MockTransport(handler),
    )


def test_generate_posts_chat_completion_and_parses_usage() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "model": "deepseek-chat",
                "choices": [{"message": {"role": "assistant", "content": "Generated text"}}],
                "usage": {"prompt_tokens": 12, "completion_tokens": 8, "total_tokens": 20},
            },
        )

    result = asyncio.run(
        _backend(handler).generate(
            GenerationRequest(prompt="Write a tagline", system_prompt="Be brief", max_tokens=64),
        ),
    )

    assert seen["url"] == "https://api.deepseek.test/v1/chat/completions"
    assert seen["auth"] == "Bearer ds-secret"
    body = seen["body"]
    assert body["model"] == "deepseek-chat"
    assert body["max_tokens"] == 64
    assert body["messages"] == [
        {"role": "system", "content": "Be brief"},
        {"role": "user", "content": "Write a tagline"},
    ]
    assert result.content == "Generated text"
    assert result.provider == "deepseek"
    assert result.prompt_tokens == 12
    assert result.completion_tokens == 8
    assert result.total_tokens == 20
    assert result.cost is not None
    assert result.cost > 0


def test_non_success_status_raises_backend_call_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"message": "Rate limit reached"}})

    with pytest.raises(BackendCallError, match="HTTP 429") as caught:
        asyncio.run(_backend(handler).generate(GenerationRequest(prompt="x")))

    assert caught.value.status_code == 429
    assert caught.value.provider == "deepseek"


def test_transport_errors_are_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(BackendCallError, match="network error"):
        asyncio.run(_backend(handler).generate(GenerationRequest(prompt="x")))


def test_timeouts_are_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(BackendCallError, match="timed out"):
        asyncio.run(_backend(handler).generate(GenerationRequest(prompt="x")))


def test_empty_content_is_an_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"content": "  "}}]})

    with pytest.raises(BackendCallError, match="empty content"):
        asyncio.run(_backend(handler).generate(GenerationRequest(prompt="x")))


def test_api_key_is_required() -> None:
    with pytest.raises(ValueError, match="API key is required"):
        HttpChatBackend(name="openai", endpoint="https://api.openai.com/v1", api_key=" ",
                        model="gpt-4o-mini")


class _ClosingTransport(httpx.MockTransport):
    def __init__(self, handler) -> None:
        super().__init__(handler)
        self.closed = 0

    async def aclose(self) -> None:
        self.closed += 1


def _ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": "fine"}}]})


def test_requests_share_one_client_until_closed() -> None:
    transport = _ClosingTransport(_ok)
    backend = HttpChatBackend(
        name="openai",
        endpoint="https://api.openai.test/v1",
        api_key="sk-secret",
        model="gpt-4o-mini",
        transport=transport,
    )

    async def _scenario() -> list[httpx.AsyncClient | None]:
        clients = []
        await backend.generate(GenerationRequest(prompt="one"))
        clients.append(backend._client)
        await backend.generate(GenerationRequest(prompt="two"))
        clients.append(backend._client)
        await backend.aclose()
        clients.append(backend._client)
        await backend.aclose()
        return clients

    first, second, after_close = asyncio.run(_scenario())

    assert first is not None
    assert second is first
    assert first.is_closed
    assert after_close is None
    assert transport.closed == 1


def test_closed_backend_reopens_on_next_request() -> None:
    backend = _backend(_ok)

    async def _scenario() -> str:
        await backend.generate(GenerationRequest(prompt="one"))
        await backend.aclose()
        result = await backend.generate(GenerationRequest(prompt="two"))
        await backend.aclose()
        return result.content

    assert asyncio.run(_scenario()) == "fine"
