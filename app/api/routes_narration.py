from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from app.api.dependencies import get_speech_client
from app.api.schemas import NarrationRequest, NarrationResponse, TTSRequest, error_responses
from app.config import settings
from app.gateway.errors import ClientInputError, ConfigurationError, SpeechSynthesisError
from app.labs.status import status_counts
from app.narration.condenser import condense_for_narration
from app.narration.tts_client import SpeechSynthesisClient
from app.observability.metrics import NARRATION_SCRIPT_CHARS, TTS_REQUESTS_TOTAL

router = APIRouter(prefix="/api", tags=["narration"])

logger = logging.getLogger(__name__)

TTS_FAILED_MESSAGE = "Failed to generate audio. Please try again."


@router.post("/tts", responses=error_responses(400, 422, 500))
async def text_to_speech(
    body: TTSRequest,
    speech: SpeechSynthesisClient = Depends(get_speech_client),
):
    text = (body.text or "").strip()
    if not text:
        raise ClientInputError("Non-empty text is required")

    truncated = text[: settings.tts_max_chars]

    try:
        audio = await speech.synthesize(truncated)
    except ConfigurationError:
        TTS_REQUESTS_TOTAL.labels(result="misconfigured").inc()
        raise
    except SpeechSynthesisError as e:
        TTS_REQUESTS_TOTAL.labels(result="failed").inc()
        raise SpeechSynthesisError(TTS_FAILED_MESSAGE, details=e.details) from e

    TTS_REQUESTS_TOTAL.labels(result="ok").inc()
    logger.info("tts ok chars=%d truncated=%s audio_bytes=%d", len(truncated), len(text) > len(truncated), len(audio))
    return Response(content=audio, media_type="audio/mpeg")


@router.post("/narration/script", response_model=NarrationResponse, responses=error_responses(422))
def narration_script(body: NarrationRequest) -> NarrationResponse:
    ok_count, watch_count = status_counts(body.labs)
    max_chars = min(body.max_chars or settings.narration_max_chars, settings.tts_max_chars)

    script = condense_for_narration(body.analysis, ok_count, watch_count, max_chars=max_chars)
    NARRATION_SCRIPT_CHARS.observe(len(script))

    return NarrationResponse(script=script, ok_count=ok_count, watch_count=watch_count)
