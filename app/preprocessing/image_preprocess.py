from __future__ import annotations

import base64
import io
from dataclasses import dataclass

from PIL import Image, ImageOps
from fastapi import HTTPException, UploadFile


SUPPORTED_IMAGE_MIME = {"image/jpeg", "image/png", "image/webp"}
PDF_MIME = "application/pdf"

MAX_DIMENSION = 1600
TARGET_MAX_BYTES = 1024 * 1024
MAX_PDF_BYTES = 4 * 1024 * 1024
JPEG_QUALITY = 80
MIN_JPEG_QUALITY = 30


@dataclass(frozen=True)
class PreparedLabDocument:
    """Upload ready to be attached to an inference request."""
    base64_data: str
    mime_type: str
    width: int = 0
    height: int = 0
    byte_size: int = 0


def _mb_to_bytes(mb: int) -> int:
    return mb * 1024 * 1024


async def load_lab_document(
    file: UploadFile,
    *,
    max_mb: int = 10,
) -> PreparedLabDocument:
    """
    Validate an uploaded lab report and shrink it for the upstream model.
    - Validates MIME type (best-effort)
    - Enforces raw size limit
    - PDFs pass through untouched (up to 4MB)
    - Images: EXIF orientation fix, RGB, longest side <= 1600px,
      JPEG re-encode stepping quality down until <= ~1MB
    """
    # 1) Basic type check (header-based, but not fully trustworthy)
    content_type = (file.content_type or "").lower()
    if content_type not in SUPPORTED_IMAGE_MIME and content_type != PDF_MIME:
        raise HTTPException(
            status_code=400,
            detail={"code": "unsupported_file_type", "message": f"Unsupported content_type={file.content_type}"},
        )

    # 2) Read bytes and enforce size limit
    data = await file.read()
    if len(data) > _mb_to_bytes(max_mb):
        raise HTTPException(
            status_code=413,
            detail={"code": "payload_too_large", "message": f"File exceeds max size of {max_mb}MB"},
        )

    if content_type == PDF_MIME:
        if len(data) > MAX_PDF_BYTES:
            raise HTTPException(
                status_code=413,
                detail={
                    "code": "payload_too_large",
                    "message": (
                        f"This PDF is too large ({round(len(data) / 1024 / 1024)}MB). Please use a smaller "
                        "file under 4MB, or take a photo of the lab report page instead."
                    ),
                },
            )
        return PreparedLabDocument(
            base64_data=base64.b64encode(data).decode("ascii"),
            mime_type=PDF_MIME,
            byte_size=len(data),
        )

    # 3) Decode image safely
    try:
        img = Image.open(io.BytesIO(data))
        img = ImageOps.exif_transpose(img)
        img = img.convert("RGB")
    except Exception:
        raise HTTPException(
            status_code=422,
            detail={"code": "unprocessable_input", "message": "Could not load image. Please try a different file."},
        )

    return compress_image(img)


def compress_image(img: Image.Image) -> PreparedLabDocument:
    """Downscale to MAX_DIMENSION and JPEG-encode within the byte target."""
    width, height = img.size
    if width > MAX_DIMENSION or height > MAX_DIMENSION:
        scale = MAX_DIMENSION / max(width, height)
        width, height = max(1, round(width * scale)), max(1, round(height * scale))
        img = img.resize((width, height), Image.BILINEAR)

    quality = JPEG_QUALITY
    encoded = _encode_jpeg(img, quality)
    while len(encoded) > TARGET_MAX_BYTES and quality > MIN_JPEG_QUALITY:
        quality -= 10
        encoded = _encode_jpeg(img, quality)

    return PreparedLabDocument(
        base64_data=base64.b64encode(encoded).decode("ascii"),
        mime_type="image/jpeg",
        width=width,
        height=height,
        byte_size=len(encoded),
    )


def _encode_jpeg(img: Image.Image, quality: int) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality)
    return buf.getvalue()
