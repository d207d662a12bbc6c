from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

import httpx

from domain.errors import MalformedResponse, UpstreamError
from infrastructure.config import Settings


def _upstream_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, Mapping):
        error_obj = payload.get("error")
        if isinstance(error_obj, Mapping):
            detail = error_obj.get("message")
            if isinstance(detail, str) and detail.strip():
                return detail.strip()
        if isinstance(error_obj, str) and error_obj.strip():
            return error_obj.strip()
    return response.reason_phrase or "Unknown error"


def extract_content(payload: Any) -> str:
    """Pull the assistant text out of a chat-completion response body."""
    if not isinstance(payload, Mapping):
        raise MalformedResponse("Completion response must be a JSON object")
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        raise MalformedResponse("Completion response missing choices")
    first = choices[0]
    message_obj = first.get("message") if isinstance(first, Mapping) else None
    if not isinstance(message_obj, Mapping):
        raise MalformedResponse("Completion response missing message")
    content = message_obj.get("content")
    if isinstance(content, str) and content.strip():
        return content.strip()
    if isinstance(content, list):
        chunks = [
            part["text"].strip()
            for part in content
            if isinstance(part, Mapping) and isinstance(part.get("text"), str) and part["text"].strip()
        ]
        if chunks:
            return "\n".join(chunks)
    raise MalformedResponse("Completion response missing content text")


@dataclass
class ChatCompletionClient:
    """OpenAI-compatible chat completion client that asks for JSON-object replies."""

    api_key: str
    model: str
    base_url: str
    temperature: float = 0.3
    max_tokens: int = 1000
    timeout_s: float = 30.0
    http_client: Optional[httpx.AsyncClient] = field(default=None, repr=False)

    def __post_init__(self):
        self._owns_client = self.http_client is None
        if self.http_client is None:
            self.http_client = httpx.AsyncClient(timeout=self.timeout_s)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"

    def build_payload(self, messages: Sequence[Mapping[str, str]]) -> dict:
        return {
            "model": self.model,
            "messages": [dict(message) for message in messages],
            "response_format": {"type": "json_object"},
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    async def complete(self, messages: Sequence[Mapping[str, str]]) -> str:
        try:
            response = await self.http_client.post(
                self.endpoint,
                json=self.build_payload(messages),
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout_s,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamError("Completion request timed out") from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Completion request failed: {exc}") from exc

        if not response.is_success:
            raise UpstreamError(_upstream_message(response), status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponse("Completion response is not JSON") from exc
        return extract_content(payload)

    async def aclose(self) -> None:
        if self._owns_client and self.http_client is not None:
            await self.http_client.aclose()


def build_llm_client(
    settings: Settings,
    http_client: Optional[httpx.AsyncClient] = None,
) -> tuple[Optional[ChatCompletionClient], dict[str, Any]]:
    runtime = {
        "enabled": False,
        "model": settings.llm_model,
        "base_url": settings.llm_base_url,
        "reason": "unknown",
    }
    if not settings.llm_api_key:
        runtime["reason"] = "missing_api_key"
        return None, runtime

    client = ChatCompletionClient(
        api_key=settings.llm_api_key,
        model=settings.llm_model,
        base_url=settings.llm_base_url,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout_s=settings.llm_timeout_s,
        http_client=http_client,
    )
    runtime["enabled"] = True
    runtime["reason"] = "ready"
    return client, runtime


__all__ = ["ChatCompletionClient", "build_llm_client", "extract_content"]
