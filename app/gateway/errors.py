from __future__ import annotations

from typing import Optional


# -----------------------------
# Errors
# -----------------------------

class GatewayError(RuntimeError):
    """
    Base class for every failure the service reports to a caller.

    status_code/code map the failure onto the global error schema
    ({"error": {"code", "message", "request_id"}}) when it is raised before
    streaming starts, and onto the `error` event once it has.
    """
    status_code: int = 500
    code: str = "gateway_error"

    def __init__(self, message: str, *, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ClientInputError(GatewayError):
    """Empty prompt / empty text. Never retried, never reaches upstream."""
    status_code = 400
    code = "invalid_parameters"


class ConfigurationError(GatewayError):
    """A required credential or setting is missing."""
    status_code = 500
    code = "configuration_error"


class UpstreamUnavailable(GatewayError):
    """Upstream answered 503: the model is still warming up."""
    status_code = 503
    code = "upstream_unavailable"


class UpstreamExhausted(UpstreamUnavailable):
    """The wake-up schedule ran out while upstream kept answering 503."""
    code = "upstream_exhausted"


class UpstreamError(GatewayError):
    """
    Any other non-success upstream response, or a transport failure.
    Terminal; surfaced with upstream status/body where available.
    """
    status_code = 502
    code = "upstream_error"

    def __init__(self, message: str, *, details: Optional[str] = None, upstream_status: Optional[int] = None):
        super().__init__(message, details=details)
        self.upstream_status = upstream_status


class LabParseError(GatewayError):
    """
    The model's extraction answer held no usable lab list.
    User-actionable: retake the photo or type the values in.
    """
    status_code = 422
    code = "parse_error"


class SpeechSynthesisError(GatewayError):
    status_code = 500
    code = "tts_failed"
