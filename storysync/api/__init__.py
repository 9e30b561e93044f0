"""
API Module - HTTP and WebSocket interface.

Browsers:
1. Load the collaboration page
2. Create a session code or enter an existing one
3. Connect to /ws?session=<code>
4. Receive a snapshot, then live edits from the other members

All state is session-scoped. No user accounts.
"""

from .schemas import (
    ErrorCode,
    ErrorResponse,
    CardInfo,
    SessionCodeResponse,
    SessionSummary,
    SessionListResponse,
    SessionStateResponse,
    HealthResponse,
)
from .app import create_app

__all__ = [
    "ErrorCode",
    "ErrorResponse",
    "CardInfo",
    "SessionCodeResponse",
    "SessionSummary",
    "SessionListResponse",
    "SessionStateResponse",
    "HealthResponse",
    "create_app",
]
