"""
Pydantic Schemas for API - Response models for the HTTP surface.

The WebSocket protocol itself is plain JSON frames (see
``storysync.session.router``); these models only cover the REST
endpoints used for health checks, session codes and introspection.

Error Codes:
- SESSION_NOT_FOUND: No live session with that name
- INTERNAL_ERROR: Unexpected server failure
"""

from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================

class ErrorCode(str, Enum):
    """Structured error codes."""
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# =============================================================================
# Nested Models
# =============================================================================

class CardInfo(BaseModel):
    """One story card as stored by the session."""
    card_id: str = Field(..., description="Card identifier")
    card_index: Any = Field(None, description="Client display/order hint, stored as sent")
    data: Any = Field(None, description="Opaque card payload")


# =============================================================================
# Responses
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Human-readable error message")
    error_code: ErrorCode = Field(..., description="Machine-readable error code")
    details: Optional[dict[str, Any]] = Field(None, description="Additional error context")
    api_version: str = Field("v1", description="API version")


class SessionCodeResponse(BaseModel):
    """A freshly generated session code."""
    code: str


class SessionSummary(BaseModel):
    """Short description of a live session."""
    name: str
    connections: int
    created_at: float


class SessionListResponse(BaseModel):
    """Live sessions."""
    sessions: list[SessionSummary]
    total: int


class SessionStateResponse(BaseModel):
    """Read-only view of a session's current state."""
    name: str
    text: str
    column: str
    cards: list[CardInfo] = Field(default_factory=list, description="Cards in table order")
    connections: int
    frames_relayed: int
    frames_discarded: int
    created_at: float


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str
    sessions: int = 0
