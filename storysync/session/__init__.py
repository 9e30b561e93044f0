"""
Session Module - Shared state and live relay for collaboration sessions.

A session is one named collaboration context:
- Created when the first client joins
- Holds text, column and story cards (last-write-wins)
- Relays every client's frames to the other clients
- Destroyed when the last client leaves

Sessions are EPHEMERAL: nothing survives a restart.
"""

from .state import SessionState, CardTable, CardRecord, encode_message
from .connection import Connection, ConnectionSet
from .router import MessageRouter, MalformedFrameError, SyncMessage, decode_frame
from .manager import SessionRegistry, Session

__all__ = [
    "SessionState",
    "CardTable",
    "CardRecord",
    "encode_message",
    "Connection",
    "ConnectionSet",
    "MessageRouter",
    "MalformedFrameError",
    "SyncMessage",
    "decode_frame",
    "SessionRegistry",
    "Session",
]
