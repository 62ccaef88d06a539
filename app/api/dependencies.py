from __future__ import annotations

from app.config import settings
from app.gateway.inference_gateway import InferenceGateway
from app.gateway.retry import RetrySchedule
from app.llm.llm_client import create_upstream_client
from app.narration.tts_client import SpeechSynthesisClient, create_speech_client


def get_gateway() -> InferenceGateway:
    """
    Dependency provider for the inference gateway.

    Built per request from current settings; tests swap it through
    app.dependency_overrides with a scripted upstream and instant sleep.
    """
    return InferenceGateway(
        create_upstream_client,
        api_key=settings.upstream_api_key,
        schedule=RetrySchedule.default(settings.retry_delays()),
    )


def get_speech_client() -> SpeechSynthesisClient:
    return create_speech_client()
