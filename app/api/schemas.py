from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.labs.models import LabEntry


# ---------
# Analyze / TTS
# ---------

class AnalyzeRequest(BaseModel):
    # prompt is optional at the schema level so a missing/blank prompt is a
    # 400 from the gateway rather than a 422 from validation
    model_config = ConfigDict(populate_by_name=True)

    prompt: Optional[str] = None
    image_base64: Optional[str] = Field(default=None, alias="imageBase64")


class TTSRequest(BaseModel):
    text: Optional[str] = None


# ---------
# Labs
# ---------

class LabStatusItem(BaseModel):
    name: str
    value: str
    label: str
    level: Literal["ok", "watch", "discuss"]


class LabStatusRequest(BaseModel):
    labs: List[LabEntry] = Field(default_factory=list)


class LabStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    labs: List[LabStatusItem] = Field(default_factory=list)
    ok_count: int = Field(alias="okCount")
    watch_count: int = Field(alias="watchCount")


class LabExtractionResponse(BaseModel):
    kind: Literal["current", "history"]
    labs: List[LabEntry] = Field(default_factory=list)


# ---------
# Narration
# ---------

class NarrationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    analysis: str
    labs: List[LabEntry] = Field(default_factory=list)
    max_chars: Optional[int] = Field(default=None, alias="maxChars", gt=0)


class NarrationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    script: str
    ok_count: int = Field(alias="okCount")
    watch_count: int = Field(alias="watchCount")


# ---------
# Errors (global schema)
# ---------

class ErrorBody(BaseModel):
    code: str
    message: str
    request_id: Optional[str] = None


class ErrorResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    error: ErrorBody


def error_responses(*status_codes: int) -> Dict[int, Dict[str, Any]]:
    """OpenAPI `responses=` entries documenting the global error schema."""
    return {code: {"model": ErrorResponse} for code in status_codes}
