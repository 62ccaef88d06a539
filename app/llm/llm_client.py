from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import httpx

from app.config import settings


logger = logging.getLogger(__name__)

NO_RESPONSE_TEXT = "No response generated."


# -----------------------------
# Public types
# -----------------------------

@dataclass(frozen=True)
class InferenceRequest:
    """
    One analysis attempt: a prompt plus an optional base64 image
    (JPEG or PDF bytes, without the data: prefix).
    """
    prompt: str
    image_data: Optional[str] = None


@dataclass(frozen=True)
class UpstreamReply:
    """
    Raw upstream outcome. The client never raises on HTTP status;
    deciding what is retryable belongs to the gateway.
    """
    status_code: int
    body_text: str = ""
    payload: Optional[Dict[str, Any]] = None
    latency_ms: int = 0
    meta: Dict[str, Any] = field(default_factory=dict)
    # 2xx whose body was not a JSON object (proxy page, truncated body)
    parse_failed: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def unavailable(self) -> bool:
        return self.status_code == 503

    def content(self) -> str:
        """choices[0].message.content, or a fixed fallback when absent."""
        try:
            text = self.payload["choices"][0]["message"]["content"]  # type: ignore[index]
        except (KeyError, IndexError, TypeError):
            return NO_RESPONSE_TEXT
        return text if isinstance(text, str) and text else NO_RESPONSE_TEXT


# -----------------------------
# Client interface
# -----------------------------

class ChatCompletionClient(Protocol):
    """
    Upstream chat-completion client interface.

    Implementation examples:
    - HttpChatCompletionClient (dedicated endpoint over HTTP)
    - scripted fakes (tests)
    """
    @property
    def model_id(self) -> str:
        ...

    async def complete(self, req: InferenceRequest) -> UpstreamReply:
        ...

    async def aclose(self) -> None:
        ...


def build_messages(req: InferenceRequest) -> List[Dict[str, Any]]:
    content: List[Dict[str, Any]] = []
    if req.image_data:
        content.append({
            "type": "image_url",
            "image_url": {"url": f"data:image/jpeg;base64,{req.image_data}"},
        })
    content.append({"type": "text", "text": req.prompt})
    return [{"role": "user", "content": content}]


# -----------------------------
# HTTP implementation
# -----------------------------

class HttpChatCompletionClient:
    """
    OpenAI-compatible chat-completions over HTTP.

    Generation settings are fixed for patient-facing explanations:
    low temperature and a mild repetition penalty.
    """

    def __init__(
        self,
        *,
        api_key: str,
        url: str,
        model: str,
        timeout_s: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = url
        self._model = model
        self._client = httpx.AsyncClient(
            timeout=timeout_s,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {api_key}",
            },
        )

    @property
    def model_id(self) -> str:
        return self._model

    async def complete(self, req: InferenceRequest) -> UpstreamReply:
        body = {
            "model": self._model,
            "messages": build_messages(req),
            "max_tokens": 2048,
            "temperature": 0.2,
            "top_p": 0.9,
            "frequency_penalty": 0.15,
        }

        start = time.perf_counter()
        response = await self._client.post(self._url, json=body)
        latency_ms = int((time.perf_counter() - start) * 1000)

        payload: Optional[Dict[str, Any]] = None
        parse_failed = False
        if response.is_success:
            try:
                data = response.json()
            except ValueError:
                data = None
            if isinstance(data, dict):
                payload = data
            else:
                parse_failed = True
                logger.warning("upstream returned non-JSON body status=%d", response.status_code)

        return UpstreamReply(
            status_code=response.status_code,
            body_text=response.text,
            payload=payload,
            latency_ms=latency_ms,
            meta={"model": self._model},
            parse_failed=parse_failed,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def create_upstream_client() -> HttpChatCompletionClient:
    """
    Factory used by the routes; one client per request so nothing is shared
    between concurrent analyses. Credential presence is checked by the
    gateway before this is called.
    """
    return HttpChatCompletionClient(
        api_key=settings.upstream_api_key,
        url=settings.upstream_url,
        model=settings.upstream_model,
        timeout_s=settings.upstream_timeout_seconds,
    )
