"""Request payload validation per use case.

Each use case declares its required fields as a frozen, strict pydantic
model. Fields are checked in declaration order and the first failing field
is reported. Text fields are trimmed; nothing else is coerced.
"""
import re
from datetime import date
from enum import Enum
from typing import Any, Dict, Mapping, Type

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from tierstream.core.errors import ValidationError
from tierstream.metrics.prometheus import validation_failures_total

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class UseCase(str, Enum):
    """Supported use cases."""
    IDEA = "idea"
    CONSULTATION = "consultation"

    @property
    def http_method(self) -> str:
        """GET for query-string input, POST when a structured body is required."""
        return "GET" if self is UseCase.IDEA else "POST"


class _Payload(BaseModel):
    model_config = ConfigDict(
        strict=True,
        frozen=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


class IdeaRequest(_Payload):
    """Free-form topic for the idea generator."""

    topic: str = Field(..., min_length=1, max_length=500)


class ConsultationRequest(_Payload):
    """Doctor's notes from a patient visit."""

    patient_name: str = Field(..., min_length=1, max_length=200)
    date_of_visit: str = Field(..., min_length=1)
    notes: str = Field(..., min_length=1, max_length=20000)

    @field_validator("date_of_visit")
    @classmethod
    def validate_date_of_visit(cls, v: str) -> str:
        """Require an ISO-8601 calendar date (YYYY-MM-DD)."""
        if not _ISO_DATE.match(v):
            raise ValueError("date_of_visit must be formatted YYYY-MM-DD")
        date.fromisoformat(v)
        return v


PAYLOAD_MODELS: Dict[UseCase, Type[_Payload]] = {
    UseCase.IDEA: IdeaRequest,
    UseCase.CONSULTATION: ConsultationRequest,
}


def validate_request(use_case: UseCase, raw: Any) -> _Payload:
    """Validate a raw request body for ``use_case``.

    Args:
        use_case: Active use case
        raw: Decoded JSON body or query parameters

    Returns:
        Immutable normalized record

    Raises:
        ValidationError: Naming the first missing or invalid field.
    """
    if not isinstance(raw, Mapping):
        validation_failures_total.labels(use_case=use_case.value, field="body").inc()
        raise ValidationError("body", "Request body must be a JSON object")

    model = PAYLOAD_MODELS[use_case]
    try:
        return model.model_validate(dict(raw))
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        loc = first.get("loc") or ("body",)
        field = str(loc[0])
        validation_failures_total.labels(use_case=use_case.value, field=field).inc()
        raise ValidationError(field, f"Missing or invalid field '{field}': {first.get('msg', 'invalid')}") from e
