"""
Response utilities for the file service.
Provides standardized response formatting.
"""

from typing import Any

from fastapi.responses import JSONResponse


def create_error_response(
    error: str,
    message: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """
    Create a standardized error response.

    Args:
        error: Error code string
        message: Human-readable error message
        status_code: HTTP status code
        details: Optional additional error details

    Returns:
        JSONResponse with error payload
    """
    content = {
        "error": error,
        "message": message,
    }
    if details:
        content["details"] = details

    return JSONResponse(status_code=status_code, content=content)


def success_envelope(data: Any) -> dict[str, Any]:
    """Wrap an operation result as ``{"success": true, "data": ...}``."""
    return {"success": True, "data": data}
