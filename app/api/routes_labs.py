from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, Depends, File, Form, UploadFile

from app.api.dependencies import get_gateway
from app.api.schemas import (
    LabExtractionResponse,
    LabStatusItem,
    LabStatusRequest,
    LabStatusResponse,
    error_responses,
)
from app.config import settings
from app.gateway.errors import UpstreamError
from app.gateway.inference_gateway import InferenceGateway
from app.labs.extraction import parse_lab_values
from app.labs.prompts import build_extraction_prompt, build_history_extraction_prompt
from app.labs.status import lab_status, status_counts
from app.llm.llm_client import InferenceRequest
from app.preprocessing.image_preprocess import load_lab_document

router = APIRouter(prefix="/api/labs", tags=["labs"])

logger = logging.getLogger(__name__)


@router.post(
    "/extract",
    response_model=LabExtractionResponse,
    responses=error_responses(400, 413, 422, 500, 502, 503),
)
async def extract_labs(
    file: UploadFile = File(...),
    kind: Literal["current", "history"] = Form("current"),
    gateway: InferenceGateway = Depends(get_gateway),
) -> LabExtractionResponse:
    """
    Read lab values off a photo/PDF of a lab report.

    Runs the same gateway as /api/analyze (wake-up retries included) but
    waits for the terminal event instead of streaming it.
    """
    doc = await load_lab_document(file, max_mb=settings.max_image_mb)
    prompt = build_extraction_prompt() if kind == "current" else build_history_extraction_prompt()

    try:
        text = await gateway.run(InferenceRequest(prompt=prompt, image_data=doc.base64_data))
    except UpstreamError as e:
        # surface the upstream body so the photo flow can show what went wrong
        message = f"{e.message}: {e.details[:300]}" if e.details else e.message
        raise UpstreamError(message, details=e.details, upstream_status=e.upstream_status) from e

    labs = parse_lab_values(text)

    logger.info(
        "labs_extract ok kind=%s mime=%s upload_bytes=%d labs=%d filename=%s",
        kind,
        doc.mime_type,
        doc.byte_size,
        len(labs),
        file.filename,
    )
    return LabExtractionResponse(kind=kind, labs=labs)


@router.post("/status", response_model=LabStatusResponse, responses=error_responses(422))
def labs_status(body: LabStatusRequest) -> LabStatusResponse:
    items = []
    for lab in body.labs:
        st = lab_status(lab.name, lab.value)
        items.append(LabStatusItem(name=lab.name, value=lab.value, label=st.label, level=st.level))

    ok_count, watch_count = status_counts(body.labs)
    return LabStatusResponse(labs=items, ok_count=ok_count, watch_count=watch_count)
