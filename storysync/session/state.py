"""
Session State - The shared document of one collaboration session.

Holds:
- text: free-text content
- column: secondary column value
- cards: Card Table (cardId -> CardRecord, insertion ordered)

Every field is last-write-wins. No history is kept.
All operations are plain in-memory mutations and never block.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Iterator
import json


TEXT_UPDATE = "text-update"
COLUMN_UPDATE = "column-update"
CARD_UPDATE = "card-update"
CARD_DELETE = "card-delete"


class _Unset:
    """Marks a card field the client never sent."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


def encode_message(message: dict[str, Any]) -> str:
    """Encode a sync message as a compact JSON frame."""
    return json.dumps(message, separators=(",", ":"))


@dataclass
class CardRecord:
    """
    A single story card. card_index and data are opaque to the server.

    Fields left UNSET are omitted from the card's snapshot frame, so a
    late joiner sees the same keys the live peers saw.
    """
    card_id: str
    card_index: Any = UNSET
    data: Any = UNSET

    def to_message(self) -> dict[str, Any]:
        message: dict[str, Any] = {"type": CARD_UPDATE, "cardId": self.card_id}
        if self.card_index is not UNSET:
            message["cardIndex"] = self.card_index
        if self.data is not UNSET:
            message["data"] = self.data
        return message


class CardTable:
    """
    Insertion-ordered mapping of cardId to CardRecord.

    Upserting an existing id replaces the record in place: its position
    and every other card are left untouched.
    """

    def __init__(self):
        self._cards: dict[str, CardRecord] = {}

    def upsert(self, record: CardRecord) -> None:
        self._cards[record.card_id] = record

    def delete(self, card_id: str) -> bool:
        """Remove a card. Returns False if it was not present."""
        return self._cards.pop(card_id, None) is not None

    def get(self, card_id: str) -> CardRecord | None:
        return self._cards.get(card_id)

    def __contains__(self, card_id: object) -> bool:
        return card_id in self._cards

    def __len__(self) -> int:
        return len(self._cards)

    def __iter__(self) -> Iterator[CardRecord]:
        return iter(list(self._cards.values()))


@dataclass
class SessionState:
    """
    Current shared state of a session.

    Mutated only by the session's message router, one frame at a time.
    """
    text: str = ""
    column: str = ""
    cards: CardTable = field(default_factory=CardTable)

    def apply_text_update(self, new_text: str) -> None:
        self.text = new_text

    def apply_column_update(self, new_column: str) -> None:
        self.column = new_column

    def apply_card_upsert(self, card_id: str, card_index: Any = UNSET, data: Any = UNSET) -> None:
        self.cards.upsert(CardRecord(card_id=card_id, card_index=card_index, data=data))

    def apply_card_delete(self, card_id: str) -> None:
        # Deleting an unknown card is a no-op
        self.cards.delete(card_id)

    def snapshot_messages(self) -> list[dict[str, Any]]:
        """
        Build the ordered synchronization sequence for a joining client.

        Order: text (if non-empty), column (if non-empty), then every
        card in table order.
        """
        messages: list[dict[str, Any]] = []
        if self.text:
            messages.append({"type": TEXT_UPDATE, "content": self.text})
        if self.column:
            messages.append({"type": COLUMN_UPDATE, "content": self.column})
        for record in self.cards:
            messages.append(record.to_message())
        return messages

    def snapshot(self) -> list[str]:
        """Snapshot as encoded frames, ready to send."""
        return [encode_message(m) for m in self.snapshot_messages()]

    def is_empty(self) -> bool:
        return not self.text and not self.column and len(self.cards) == 0
