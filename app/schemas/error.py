"""
Pydantic schemas for error responses.
"""

from typing import Any

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standard error response format.

    Examples:
        400: {"error": "validation_failed", "message": "..."}
        404: {"error": "tenant_not_found", "message": "Tenant 'acme' not found"}
        409: {"error": "upload_failed", "message": "Upload failed: Container ... access mismatch ...",
              "details": {"operation": "upload", "cause": "access_mismatch"}}
        413: {"error": "payload_too_large", "message": "maximum size exceeded"}
    """

    error: str = Field(
        ...,
        description="Error code string",
        examples=["validation_failed", "tenant_not_found", "upload_failed", "file_not_found"],
    )
    message: str = Field(
        ...,
        description="Human-readable error message",
    )
    details: dict[str, Any] | None = Field(
        default=None,
        description="Optional additional error details, including the failed operation",
    )


class ValidationErrorDetail(BaseModel):
    """Detail for validation errors."""

    loc: list[str | int]
    msg: str
    type: str


class ValidationErrorResponse(BaseModel):
    """Response for validation errors (400)."""

    error: str = "validation_failed"
    message: str = "Request validation failed"
    details: dict[str, list[ValidationErrorDetail]]
