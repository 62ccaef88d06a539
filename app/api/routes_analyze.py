from __future__ import annotations

import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from app.api.dependencies import get_gateway
from app.api.schemas import AnalyzeRequest, error_responses
from app.gateway.events import ErrorEvent, encode_sse
from app.gateway.inference_gateway import InferenceGateway
from app.llm.llm_client import InferenceRequest

router = APIRouter(prefix="/api", tags=["analyze"])

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


@router.post("/analyze", responses=error_responses(400, 422, 500))
async def analyze(
    request: Request,
    body: AnalyzeRequest,
    gateway: InferenceGateway = Depends(get_gateway),
):
    """
    Stream an explanation as server-sent events.

    Validation and configuration errors are raised here, before the first
    byte, so they surface as plain 400/500 JSON. Everything after that is
    reported in-band as `status` events followed by one `result`/`error`.
    """
    req = InferenceRequest(prompt=body.prompt or "", image_data=body.image_base64 or None)
    gateway.validate(req)

    logger.info(
        "analyze start prompt_chars=%d has_image=%s max_attempts=%d",
        len(req.prompt),
        req.image_data is not None,
        gateway.schedule.max_attempts,
    )

    return StreamingResponse(
        _event_stream(gateway, req, request),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


async def _event_stream(gateway: InferenceGateway, req: InferenceRequest, request: Request) -> AsyncIterator[str]:
    try:
        async for ev in gateway.stream(req, is_disconnected=request.is_disconnected):
            yield encode_sse(ev)
    except Exception as e:
        # Headers are already sent; the only channel left is an error event.
        logger.exception("analyze stream failed")
        yield encode_sse(ErrorEvent(error=str(e) or type(e).__name__))
