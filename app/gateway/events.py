from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional, Union


Phase = Literal["connecting", "waking", "retrying", "done"]


# -----------------------------
# Public types
# -----------------------------

@dataclass(frozen=True)
class StatusEvent:
    """Progress notification; any number may precede the terminal event."""
    message: str
    phase: Phase
    attempt: Optional[int] = None
    max_attempts: Optional[int] = None
    retry_sec: Optional[float] = None

    kind = "status"
    terminal = False

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"message": self.message, "phase": self.phase}
        if self.attempt is not None:
            payload["attempt"] = self.attempt
        if self.max_attempts is not None:
            payload["maxAttempts"] = self.max_attempts
        if self.retry_sec is not None:
            payload["retrySec"] = _compact_number(self.retry_sec)
        return payload


@dataclass(frozen=True)
class ResultEvent:
    result: str

    kind = "result"
    terminal = True

    def to_payload(self) -> Dict[str, Any]:
        return {"result": self.result}


@dataclass(frozen=True)
class ErrorEvent:
    error: str
    details: Optional[str] = None
    # Internal failure classification (GatewayError.code); not sent on the wire.
    code: Optional[str] = field(default=None, compare=False)

    kind = "error"
    terminal = True

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.error}
        if self.details is not None:
            payload["details"] = self.details
        return payload


StreamEvent = Union[StatusEvent, ResultEvent, ErrorEvent]


# -----------------------------
# Wire format
# -----------------------------

def encode_sse(event: StreamEvent) -> str:
    """Frame one event as `event: <kind>\\ndata: <json>\\n\\n`."""
    data = json.dumps(event.to_payload(), ensure_ascii=False)
    return f"event: {event.kind}\ndata: {data}\n\n"


def event_from_payload(kind: str, payload: Dict[str, Any]) -> Optional[StreamEvent]:
    """
    Inverse of to_payload(). Returns None for unknown kinds or payloads that
    don't carry the kind's required field.
    """
    if not isinstance(payload, dict):
        return None

    if kind == "status":
        message = payload.get("message")
        if not isinstance(message, str):
            return None
        return StatusEvent(
            message=message,
            phase=payload.get("phase") or "connecting",
            attempt=payload.get("attempt"),
            max_attempts=payload.get("maxAttempts"),
            retry_sec=payload.get("retrySec"),
        )

    if kind == "result":
        result = payload.get("result")
        if not isinstance(result, str):
            return None
        return ResultEvent(result=result)

    if kind == "error":
        error = payload.get("error")
        if not isinstance(error, str):
            return None
        return ErrorEvent(error=error, details=payload.get("details"))

    return None


def _compact_number(x: float) -> Union[int, float]:
    # 5.0 -> 5 so the wire matches the integer seconds clients display
    return int(x) if float(x).is_integer() else float(x)
