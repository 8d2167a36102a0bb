"""Response schemas for tierstream.

The relay route itself streams ``text/event-stream``; these models cover the
JSON responses around it (tier projection and pre-stream errors).
"""
from typing import Optional

from pydantic import BaseModel, Field


class TierProjection(BaseModel):
    """Read-only view of the server-resolved tier, for presentation."""

    tier: str = Field(..., description="Resolved access tier: premium, standard or free")
    rank: int = Field(..., description="Position in the tier order, 0 = most privileged")
    plan: Optional[str] = Field(None, description="Plan slug that matched, if any")
    model: str = Field(..., description="Model identifier used for this tier")


class ErrorDetail(BaseModel):
    """Error detail structure."""

    type: str = Field(..., description="Error type: client_error or internal_error")
    code: str = Field(..., description="Normalized error code")
    message: str = Field(..., description="Human-readable message")
    retryable: bool = Field(False, description="Whether retrying the same request may succeed")
    status_code: int = Field(..., description="HTTP status code")
    reason: Optional[str] = Field(None, description="Credential failure reason (auth errors)")
    field: Optional[str] = Field(None, description="First invalid field (validation errors)")


class ErrorResponse(BaseModel):
    """Pre-stream error response."""

    success: bool = False
    error: ErrorDetail
    request_id: Optional[str] = None
