"""Shared Pydantic response/request models for the kindred API.

Provides the generic ``ApiResponse`` wrapper and the error envelope used by
every endpoint, and re-exports the anniversary models.
"""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiMeta(BaseModel):
    """Extensible metadata bag attached to every API response."""

    model_config = {"extra": "allow"}


class ApiResponse(BaseModel, Generic[T]):
    """Generic API response wrapper.

    All successful responses follow ``{"data": T, "meta": {...}}``.
    """

    data: T
    meta: ApiMeta = Field(default_factory=ApiMeta)


class ErrorDetail(BaseModel):
    """Structured error payload."""

    code: str
    message: str
    details: dict | None = None


class ErrorResponse(BaseModel):
    """Standard error response envelope."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    status: str


from kindred.api.models.anniversary import (  # noqa: E402
    AnniversaryCreateRequest,
    AnniversaryEventModel,
    AnniversaryUpdateRequest,
    DeleteResponse,
    HorizonRequest,
    HorizonResponse,
    OccurrenceModel,
)

__all__ = [
    "AnniversaryCreateRequest",
    "AnniversaryEventModel",
    "AnniversaryUpdateRequest",
    "ApiMeta",
    "ApiResponse",
    "DeleteResponse",
    "ErrorDetail",
    "ErrorResponse",
    "HealthResponse",
    "HorizonRequest",
    "HorizonResponse",
    "OccurrenceModel",
]
