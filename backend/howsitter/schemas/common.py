"""
How Sitter Backend — Shared Pydantic Schemas
==============================================

What:  Response models reused by every router (errors, health, pagination,
       plain acknowledgements).
Why:   Clients need one consistent structure to parse errors and pages.
"""

import math
from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    What:  Standardized error response format for all API errors.

    Fields:
        error: Machine-readable error code (e.g., "conflict", "not_found")
        message: Human-readable description for display to users
        details: Optional extra context (e.g., which stay bound was violated)
        request_id: Correlation ID for tracing this error in server logs

    Example:
        {
            "error": "conflict",
            "message": "Property is not available for the selected dates",
            "details": {"reason": "overlap"},
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class MessageResponse(BaseModel):
    """Plain acknowledgement, e.g. {"message": "Property deleted successfully"}."""
    message: str


class PaginationMeta(BaseModel):
    """
    Offset pagination block returned by list endpoints.

    pages is ceil(total / limit); an empty result has pages = 0.
    """
    page: int = Field(ge=1)
    limit: int = Field(ge=1)
    total: int = Field(ge=0)
    pages: int = Field(ge=0)

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationMeta":
        return cls(page=page, limit=limit, total=total, pages=math.ceil(total / limit))


class HealthResponse(BaseModel):
    """
    What:  Health check response showing service and dependency status.
    Who:   Returned by GET /health for monitoring and load balancer health checks.
    """
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")
