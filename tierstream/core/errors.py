"""Error codes and relay error types for tierstream."""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Normalized error codes for tierstream.

    Used in pre-stream error responses, in-band error events, logs and metrics.
    """
    # Credential errors (401)
    UNAUTHORIZED = "UNAUTHORIZED"

    # Request errors (400)
    INVALID_INPUT = "INVALID_INPUT"

    # Upstream errors (in-band, after the stream started)
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"
    UPSTREAM_AUTH = "UPSTREAM_AUTH"
    UPSTREAM_RATE_LIMIT = "UPSTREAM_RATE_LIMIT"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"

    # Internal errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AuthFailureReason(str, Enum):
    """Why a bearer credential was rejected."""
    MISSING = "missing"
    MALFORMED = "malformed"
    EXPIRED = "expired"
    SIGNATURE_INVALID = "signature-invalid"
    CLAIMS_INVALID = "claims-invalid"
    KEY_UNAVAILABLE = "key-unavailable"


class UpstreamErrorKind(str, Enum):
    """Classification of a failed upstream model call."""
    TIMEOUT = "timeout"
    AUTH = "auth"
    RATE_LIMIT = "rate-limit"
    UNKNOWN = "unknown"


class RelayError(Exception):
    """Base class for all tierstream errors."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "client_error" if self.status_code < 500 else "internal_error",
            "code": self.code.value,
            "message": self.message,
            "retryable": False,
            "status_code": self.status_code,
        }


class AuthError(RelayError):
    """Credential rejected before any streaming begins."""

    code = ErrorCode.UNAUTHORIZED
    status_code = 401

    def __init__(self, reason: AuthFailureReason, message: Optional[str] = None):
        super().__init__(message or f"Credential rejected: {reason.value}")
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["reason"] = self.reason.value
        return data


class ValidationError(RelayError):
    """Request payload rejected before any streaming begins.

    Names the first field (in the use case's fixed check order) that was
    missing or invalid.
    """

    code = ErrorCode.INVALID_INPUT
    status_code = 400

    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(message or f"Missing or invalid field: {field}")
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        return data


_UPSTREAM_CODES = {
    UpstreamErrorKind.TIMEOUT: ErrorCode.UPSTREAM_TIMEOUT,
    UpstreamErrorKind.AUTH: ErrorCode.UPSTREAM_AUTH,
    UpstreamErrorKind.RATE_LIMIT: ErrorCode.UPSTREAM_RATE_LIMIT,
    UpstreamErrorKind.UNKNOWN: ErrorCode.UPSTREAM_ERROR,
}

_UPSTREAM_DESCRIPTIONS = {
    UpstreamErrorKind.TIMEOUT: "The model took too long to respond and the request was stopped.",
    UpstreamErrorKind.AUTH: "The model provider rejected the service credentials.",
    UpstreamErrorKind.RATE_LIMIT: "The model provider is rate limiting requests. Please try again shortly.",
    UpstreamErrorKind.UNKNOWN: "The model provider returned an unexpected error.",
}


class UpstreamError(RelayError):
    """Upstream model call failed after the stream had started.

    Never raised past the stream adapter: it travels as the terminal fragment
    of the fragment sequence and is rendered as an in-band error event.
    """

    status_code = 502

    def __init__(self, kind: UpstreamErrorKind, detail: str = ""):
        super().__init__(f"Upstream {kind.value} error: {detail}" if detail else f"Upstream {kind.value} error")
        self.kind = kind
        self.detail = detail

    @property
    def code(self) -> ErrorCode:  # type: ignore[override]
        return _UPSTREAM_CODES[self.kind]

    def describe(self) -> str:
        """Human-readable description shown inline to the end user."""
        return _UPSTREAM_DESCRIPTIONS[self.kind]
