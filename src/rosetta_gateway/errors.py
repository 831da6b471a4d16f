"""Classified errors surfaced by the normalization core."""

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base class for every classified error.

    Fatal errors abort the current request and are turned into exactly one
    terminal error event (streaming) or error envelope (buffered). Non-fatal
    errors are handled inside the core and only logged.
    """

    error_type = "gateway_error"
    fatal = True
    default_remediation: Optional[str] = None

    def __init__(self, message: str, *, remediation: Optional[str] = None, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.remediation = remediation or self.default_remediation
        self.data = data or {}

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"type": self.error_type, "message": self.message}
        if self.remediation:
            error["remediation"] = self.remediation
        return {"type": "error", "error": error}


class MalformedUnit(GatewayError):
    """A chunk or response failed basic structural shape checks."""

    error_type = "malformed_unit"


class SilentFailureDetected(GatewayError):
    """Empty content, missing terminal reason or a sentinel placeholder value."""

    error_type = "silent_failure_detected"


class ExtractionFailure(GatewayError):
    """A tool call candidate could not be parsed even after repair."""

    error_type = "extraction_failure"
    fatal = False


class TokenLimitExceeded(GatewayError):
    error_type = "token_limit_exceeded"
    fatal = False
    default_remediation = "The request will be retried with reduced conversation history."


class UnrecoverableTokenLimit(GatewayError):
    error_type = "unrecoverable_token_limit"
    default_remediation = "Reduce input length or increase the token limit."


class TransportError(GatewayError):
    """Raised by the transport collaborator; passed through unchanged."""

    error_type = "transport_error"

    def __init__(self, message: str, *, status_code: Optional[int] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status_code = status_code


def error_from_payload(payload: Dict[str, Any]) -> GatewayError:
    """Rebuild a classified error from the ``error`` object of ``to_dict()``."""
    classes = {cls.error_type: cls for cls in GatewayError.__subclasses__()}
    cls = classes.get(payload.get("type", ""), GatewayError)
    return cls(payload.get("message", "Stream ended with an error"), remediation=payload.get("remediation"))
