"""OpenAI-compatible chat-completions backend (DeepSeek, OpenAI)."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from lumosgen.orchestrator.backend.base import GenerationRequest, GenerationResult
from lumosgen.orchestrator.errors import BackendCallError
from lumosgen.orchestrator.pricing import estimate_cost_usd

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_USER_AGENT = "lumosgen/0.3 (+https://github.com/lumosgen/lumosgen)"


class HttpChatBackend:
    """Call `/chat/completions` on an OpenAI-compatible endpoint."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        name: str,
        endpoint: str,
        api_key: str,
        model: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key.strip():
            raise ValueError(f"API key is required for provider={name!r}")
        self.name = name
        self.endpoint = endpoint.rstrip("/")
        self.model = model
        self._api_key = api_key
        self._timeout = httpx.Timeout(timeout_seconds, connect=10.0)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        model = request.model or self.model
        payload = _build_payload(request=request, model=model)
        try:
            response = await self._get_client().post(
                f"{self.endpoint}/chat/completions",
                json=payload,
            )
        except httpx.TimeoutException as exc:
            raise BackendCallError(
                f"{self.name} request timed out: {exc}",
                provider=self.name,
            ) from exc
        except httpx.HTTPError as exc:
            raise BackendCallError(
                f"{self.name} network error: {exc}",
                provider=self.name,
            ) from exc

        if not response.is_success:
            raise BackendCallError(
                f"{self.name} API error: HTTP {response.status_code} {_error_detail(response)}",
                provider=self.name,
                status_code=response.status_code,
            )
        return self._parse_response(response=response, model=model)

    async def aclose(self) -> None:
        """Close the pooled client; the next request opens a new one."""

        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "User-Agent": DEFAULT_USER_AGENT,
                },
                transport=self._transport,
            )
        return self._client

    def _parse_response(self, *, response: httpx.Response, model: str) -> GenerationResult:
        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise BackendCallError(
                f"{self.name} returned an unexpected response body",
                provider=self.name,
                status_code=response.status_code,
            ) from exc
        if not isinstance(content, str) or not content.strip():
            raise BackendCallError(
                f"{self.name} returned empty content",
                provider=self.name,
                status_code=response.status_code,
            )

        usage = data.get("usage") or {}
        prompt_tokens = int(usage.get("prompt_tokens") or 0)
        completion_tokens = int(usage.get("completion_tokens") or 0)
        resolved_model = str(data.get("model") or model)
        timestamp = datetime.now(tz=UTC)
        cost = estimate_cost_usd(
            provider=self.name,
            model=resolved_model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            at=timestamp,
        )
        logger.debug(
            "%s completion: model=%s prompt_tokens=%d completion_tokens=%d",
            self.name,
            resolved_model,
            prompt_tokens,
            completion_tokens,
        )
        return GenerationResult(
            content=content,
            provider=self.name,
            model=resolved_model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            timestamp=timestamp,
            cost=cost,
        )


def _build_payload(*, request: GenerationRequest, model: str) -> dict[str, Any]:
    messages: list[dict[str, str]] = []
    if request.system_prompt:
        messages.append({"role": "system", "content": request.system_prompt})
    messages.append({"role": "user", "content": request.prompt})
    return {
        "model": model,
        "messages": messages,
        "temperature": request.temperature,
        "max_tokens": request.max_tokens,
        "stream": False,
    }


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message", ""))[:200]
    return str(body)[:200]
