from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Machine-readable error carried in a failed response."""
    code: str
    message: str
    details: Optional[dict[str, Any]] = None


class ApiResponse(BaseModel):
    """Envelope returned by every ramp endpoint."""
    success: bool
    message: str
    data: Optional[Any] = None
    error: Optional[ErrorDetail] = None
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def standard_response(
    success: bool,
    message: str,
    data: Any = None,
    error: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Build the ``{success, message, data, error, timestamp}`` envelope as a plain dict."""
    return ApiResponse(
        success=success,
        message=message,
        data=data,
        error=ErrorDetail(**error) if error else None,
    ).model_dump(mode="json")
