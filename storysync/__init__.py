"""
StorySync - Real-time collaborative session server.

Clients join a named session and edit shared state together:
- Free-text content
- A secondary column value
- A keyed collection of story cards

Every edit is relayed to the other members of the session, and late
joiners receive a snapshot of the current state before live updates.
"""

__version__ = "0.1.0"
