from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "kidney-companion-api"
    log_level: str = "INFO"

    # request limits
    max_image_mb: int = 10

    # Upstream chat-completion endpoint (dedicated MedGemma deployment)
    upstream_api_key: str = ""
    upstream_url: str = "https://api.friendli.ai/dedicated/v1/chat/completions"
    upstream_model: str = "dep0ju34hez4juy"
    upstream_timeout_seconds: float = 120.0

    # Comma-separated override of the wake-up schedule delays, e.g. "5,8,10"
    retry_delays_seconds: str = ""

    # Speech synthesis (ElevenLabs)
    tts_api_key: str = ""
    tts_base_url: str = "https://api.elevenlabs.io"
    tts_voice_id: str = "21m00Tcm4TlvDq8ikWAM"
    tts_model_id: str = "eleven_flash_v2_5"
    tts_timeout_seconds: float = 60.0
    tts_max_chars: int = 4000
    narration_max_chars: int = 4000

    @field_validator("retry_delays_seconds")
    @classmethod
    def _check_retry_delays(cls, v: str) -> str:
        # fail at startup, not on the first request
        delays = _split_delays(v)
        if any(d < 0 for d in delays):
            raise ValueError("retry delays must be non-negative")
        return ",".join(f"{d:g}" for d in delays)

    def retry_delays(self) -> Optional[List[float]]:
        return _split_delays(self.retry_delays_seconds) or None


def _split_delays(raw: str) -> List[float]:
    parts = [p.strip() for p in (raw or "").split(",") if p.strip()]
    try:
        return [float(p) for p in parts]
    except ValueError:
        raise ValueError(f"retry delays must be comma-separated numbers, got {raw!r}") from None


settings = Settings()
