from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Sequence

import httpx

from app.client.sse_parser import aiter_events
from app.gateway.events import ErrorEvent, ResultEvent, StatusEvent
from app.labs.models import HistoricalPoint, LabEntry, PatientContext
from app.labs.prompts import build_analysis_prompt

logger = logging.getLogger(__name__)

NO_RESULT_MESSAGE = "No response from MedGemma. Please try again."

# Waiting out the wake-up schedule means long gaps between events.
DEFAULT_TIMEOUT = httpx.Timeout(10.0, read=None)


class AnalysisFailed(RuntimeError):
    """Single failure path for callers: HTTP error, `error` event or missing result."""

    def __init__(self, message: str, *, details: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.status_code = status_code


class AnalyzeClient:
    """
    Python consumer for the analyze/TTS endpoints.

    analyze() streams the event response, forwards each status event to
    `on_status` as it arrives and returns the result text. Reading continues
    after a `result` event until the server closes the stream.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: httpx.Timeout = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "AnalyzeClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def analyze(
        self,
        prompt: str,
        *,
        image_base64: Optional[str] = None,
        on_status: Optional[Callable[[StatusEvent], None]] = None,
    ) -> str:
        body: Dict[str, Any] = {"prompt": prompt}
        if image_base64:
            body["imageBase64"] = image_base64

        result: Optional[str] = None

        async with self._client.stream("POST", "/api/analyze", json=body) as resp:
            if not resp.is_success:
                await resp.aread()
                raise AnalysisFailed(_error_message(resp), status_code=resp.status_code)

            async for ev in aiter_events(resp.aiter_bytes()):
                if isinstance(ev, StatusEvent):
                    logger.debug("analyze status phase=%s attempt=%s", ev.phase, ev.attempt)
                    if on_status is not None:
                        on_status(ev)
                elif isinstance(ev, ResultEvent):
                    result = ev.result
                elif isinstance(ev, ErrorEvent):
                    raise AnalysisFailed(ev.error, details=ev.details)

        if not result:
            raise AnalysisFailed(NO_RESULT_MESSAGE)
        return result

    async def explain_labs(
        self,
        labs: Sequence[LabEntry],
        question: str,
        *,
        ctx: Optional[PatientContext] = None,
        history: Optional[Sequence[HistoricalPoint]] = None,
        image_base64: Optional[str] = None,
        on_status: Optional[Callable[[StatusEvent], None]] = None,
    ) -> str:
        prompt = build_analysis_prompt(labs, question, ctx=ctx, history=history)
        return await self.analyze(prompt, image_base64=image_base64, on_status=on_status)

    async def synthesize(self, text: str) -> bytes:
        resp = await self._client.post("/api/tts", json={"text": text})
        if not resp.is_success:
            raise AnalysisFailed(_error_message(resp), status_code=resp.status_code)
        if not resp.content:
            raise AnalysisFailed("Received empty audio response", status_code=resp.status_code)
        return resp.content


def _error_message(resp: httpx.Response) -> str:
    fallback = f"Request failed ({resp.status_code})"
    try:
        data = resp.json()
    except ValueError:
        return fallback

    err = data.get("error") if isinstance(data, dict) else None
    if isinstance(err, dict):
        return str(err.get("message") or fallback)
    if isinstance(err, str) and err:
        return err
    return fallback
