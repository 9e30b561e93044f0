"""
Message Router - Decodes inbound frames and applies them to a session.

Pipeline for one frame:
1. Decode JSON into a typed message (malformed frames are dropped)
2. Apply state-affecting kinds to the SessionState
3. Broadcast the ORIGINAL frame text to every other member

Mutation always happens before the broadcast is queued, so a client
joining afterwards sees the update in its snapshot.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any
import json
import logging

from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError

from .state import SessionState, UNSET, TEXT_UPDATE, COLUMN_UPDATE, CARD_UPDATE, CARD_DELETE
from .connection import Connection, ConnectionSet

logger = logging.getLogger(__name__)


class MalformedFrameError(ValueError):
    """Frame could not be decoded as a sync message."""


# =============================================================================
# Message models
# =============================================================================

class SyncMessage(BaseModel):
    """Any sync message. Unknown kinds only need a string ``type``."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: StrictStr


class ContentMessage(SyncMessage):
    """text-update / column-update"""
    content: StrictStr


class CardUpdateMessage(SyncMessage):
    card_id: StrictStr = Field(..., alias="cardId")
    card_index: Any = Field(None, alias="cardIndex")
    data: Any = None

    def supplied(self, field_name: str) -> Any:
        """Field value, or UNSET if the frame did not carry it."""
        if field_name in self.model_fields_set:
            return getattr(self, field_name)
        return UNSET


class CardDeleteMessage(SyncMessage):
    card_id: StrictStr = Field(..., alias="cardId")


MESSAGE_MODELS: dict[str, type[SyncMessage]] = {
    TEXT_UPDATE: ContentMessage,
    COLUMN_UPDATE: ContentMessage,
    CARD_UPDATE: CardUpdateMessage,
    CARD_DELETE: CardDeleteMessage,
}


def decode_frame(frame: str | bytes) -> SyncMessage:
    """
    Decode one frame.

    Raises:
        MalformedFrameError: not JSON, not an object, no string ``type``,
            or a known kind missing its required fields.
    """
    try:
        payload = json.loads(frame)
    except (TypeError, ValueError) as e:
        raise MalformedFrameError(f"Invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise MalformedFrameError("Frame is not a JSON object")

    kind = payload.get("type")
    model = MESSAGE_MODELS.get(kind, SyncMessage) if isinstance(kind, str) else SyncMessage
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise MalformedFrameError(
            f"Invalid {kind!r} message: {e.error_count()} validation error(s)"
        ) from e


@dataclass
class RouteResult:
    """Outcome of routing one frame."""
    kind: str | None
    mutated: bool = False
    delivered: int = 0
    discarded: bool = False


class MessageRouter:
    """
    Applies frames to one session's state and relays them to its peers.

    Not thread-safe: the owning session feeds it one frame at a time.
    """

    def __init__(self, state: SessionState, connections: ConnectionSet, session_name: str = ""):
        self.state = state
        self.connections = connections
        self.session_name = session_name
        self.frames_relayed = 0
        self.frames_discarded = 0

    def route(self, frame: str, sender: Connection | None = None) -> RouteResult:
        try:
            message = decode_frame(frame)
        except MalformedFrameError as e:
            self.frames_discarded += 1
            logger.warning(
                "Discarding malformed frame in session %r from %r: %s",
                self.session_name, sender, e,
            )
            return RouteResult(kind=None, discarded=True)

        mutated = self.apply(message)
        delivered = self.connections.broadcast(frame, excluding=sender)
        self.frames_relayed += 1
        return RouteResult(kind=message.type, mutated=mutated, delivered=delivered)

    def apply(self, message: SyncMessage) -> bool:
        """Apply a decoded message. Returns True if the state was touched."""
        if isinstance(message, ContentMessage):
            if message.type == TEXT_UPDATE:
                self.state.apply_text_update(message.content)
            else:
                self.state.apply_column_update(message.content)
            return True
        if isinstance(message, CardUpdateMessage):
            self.state.apply_card_upsert(
                message.card_id,
                card_index=message.supplied("card_index"),
                data=message.supplied("data"),
            )
            return True
        if isinstance(message, CardDeleteMessage):
            self.state.apply_card_delete(message.card_id)
            return True
        return False
