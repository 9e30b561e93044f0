"""
Pytest fixtures for StorySync tests.
"""

import asyncio
import json
import pytest

from ..session.state import SessionState
from ..session.manager import SessionRegistry


class FakeTransport:
    """Stands in for a WebSocket: records every frame it is sent."""

    def __init__(self, fail: bool = False, stall: bool = False):
        self.sent: list[str] = []
        self.fail = fail
        self.stall = stall

    async def send_text(self, frame: str) -> None:
        if self.fail:
            raise ConnectionError("peer went away")
        if self.stall:
            # Never completes
            await asyncio.Event().wait()
        self.sent.append(frame)

    @property
    def messages(self) -> list[dict]:
        return [json.loads(f) for f in self.sent]


@pytest.fixture
def make_transport():
    """Factory for fake transports."""
    return FakeTransport


@pytest.fixture
def registry() -> SessionRegistry:
    """A fresh, empty session registry."""
    return SessionRegistry()


@pytest.fixture
def populated_state() -> SessionState:
    """State with text, column and two cards."""
    state = SessionState()
    state.apply_text_update("hello")
    state.apply_column_update("c1")
    state.apply_card_upsert("k1", 0, "x")
    state.apply_card_upsert("k2", 1, "y")
    return state
