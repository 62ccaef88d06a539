from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.gateway.errors import GatewayError


logger = logging.getLogger(__name__)


def _get_request_id(request: Request) -> Optional[str]:
    """
    Best-effort request_id retrieval.
    - RequestIdMiddleware stores it on request.state.request_id.
    - Otherwise fall back to inbound header.
    """
    rid = getattr(getattr(request, "state", None), "request_id", None)
    if rid:
        return rid
    return request.headers.get("X-Request-Id")


def _error_payload(code: str, message: str, request_id: Optional[str]) -> Dict[str, Any]:
    return {"error": {"code": code, "message": message, "request_id": request_id}}


def error_response(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    rid = _get_request_id(request)
    return JSONResponse(
        status_code=status_code,
        content=_error_payload(code=code, message=message, request_id=rid),
        headers={"X-Request-Id": rid} if rid else None,
    )


async def gateway_exception_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """
    Failures raised before a stream starts (bad prompt, missing key, TTS
    errors, unparseable extraction) share the global error schema.
    """
    if exc.status_code >= 500:
        logger.error("request failed code=%s message=%s", exc.code, exc.message)
    else:
        logger.info("request rejected code=%s message=%s", exc.code, exc.message)
    return error_response(request, exc.status_code, exc.code, exc.message)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Normalize FastAPI HTTPException into the global error schema.
    We support:
    - detail as dict: {"code": "...", "message": "..."}
    - detail as str: "..."  (FastAPI default style)
    """
    code = "http_error"
    message = "Request failed"

    if isinstance(exc.detail, dict):
        code = str(exc.detail.get("code", code))
        message = str(exc.detail.get("message", message))
    elif isinstance(exc.detail, str):
        message = exc.detail

    return error_response(request, exc.status_code, code, message)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Normalize validation errors (422) into the global error schema.
    Kept concise: "field: msg; other: msg".
    """
    parts = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err.get("loc", []) if x != "body")
        msg = err.get("msg", "Invalid value")
        parts.append(f"{loc}: {msg}" if loc else str(msg))

    message = "; ".join(parts) if parts else "Validation error"
    return error_response(request, 422, "validation_error", message)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all handler to ensure we always return the global error schema on 500.
    """
    logger.exception("Unhandled error")
    return error_response(request, 500, "internal_error", "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatewayError, gateway_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
