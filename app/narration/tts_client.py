from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from app.config import settings
from app.gateway.errors import ConfigurationError, SpeechSynthesisError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoiceSettings:
    """Warm, steady delivery tuned for medical explanations."""
    stability: float = 0.65
    similarity_boost: float = 0.8
    style: float = 0.15
    use_speaker_boost: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stability": self.stability,
            "similarity_boost": self.similarity_boost,
            "style": self.style,
            "use_speaker_boost": self.use_speaker_boost,
        }


@dataclass(frozen=True)
class SpeechConfig:
    api_key: str
    base_url: str = "https://api.elevenlabs.io"
    voice_id: str = "21m00Tcm4TlvDq8ikWAM"
    model_id: str = "eleven_flash_v2_5"
    timeout_s: float = 60.0
    voice: VoiceSettings = field(default_factory=VoiceSettings)


class SpeechSynthesisClient:
    """
    Stateless forwarder to the ElevenLabs text-to-speech REST API.
    Returns the full MP3 body; the caller decides how to ship it.
    """

    def __init__(self, cfg: SpeechConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._cfg = cfg
        self._transport = transport

    async def synthesize(self, text: str) -> bytes:
        if not self._cfg.api_key:
            raise ConfigurationError("Text-to-speech API key is not configured")

        url = f"{self._cfg.base_url.rstrip('/')}/v1/text-to-speech/{self._cfg.voice_id}"
        body = {
            "text": text,
            "model_id": self._cfg.model_id,
            "voice_settings": self._cfg.voice.to_dict(),
        }

        try:
            async with httpx.AsyncClient(timeout=self._cfg.timeout_s, transport=self._transport) as client:
                chunks = []
                async with client.stream(
                    "POST",
                    url,
                    json=body,
                    headers={"xi-api-key": self._cfg.api_key, "Accept": "audio/mpeg"},
                ) as resp:
                    if not resp.is_success:
                        detail = (await resp.aread()).decode("utf-8", errors="replace")
                        logger.error("tts upstream error status=%d body=%s", resp.status_code, detail[:500])
                        raise SpeechSynthesisError(
                            f"Speech synthesis failed: {resp.status_code}",
                            details=detail,
                        )
                    async for chunk in resp.aiter_bytes():
                        chunks.append(chunk)
        except httpx.HTTPError as e:
            logger.error("tts transport error err=%s", e)
            raise SpeechSynthesisError(f"Speech synthesis request failed: {type(e).__name__}") from e

        audio = b"".join(chunks)
        if not audio:
            raise SpeechSynthesisError("Speech synthesis returned no audio")
        return audio


def create_speech_client() -> SpeechSynthesisClient:
    return SpeechSynthesisClient(
        SpeechConfig(
            api_key=settings.tts_api_key,
            base_url=settings.tts_base_url,
            voice_id=settings.tts_voice_id,
            model_id=settings.tts_model_id,
            timeout_s=settings.tts_timeout_seconds,
        )
    )
