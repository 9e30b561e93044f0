"""
Session Manager - Named collaboration sessions and their lifecycle.

LIFECYCLE:
1. First client joins under a name -> session created with empty state
2. Clients join/leave; each join receives a snapshot, then live frames
3. Last client leaves -> session destroyed, ALL state deleted
4. A later join under the same name starts from empty state

Sessions are EPHEMERAL:
- In-memory only, no persistence across restarts
- No TTL: only the empty-membership rule destroys a session

ORDERING:
Each session has exactly one worker task consuming an ordered inbox of
join / frame / leave events. Handling an event never awaits, so a join's
snapshot and a frame's mutate-then-broadcast are atomic with respect to
each other, with no locking inside the session.

The registry is the only structure shared between sessions and is
guarded by a single lock.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional
import asyncio
import logging
import threading
import time

from .state import SessionState
from .connection import Connection, ConnectionSet, OUTBOX_LIMIT, CLOSE_TIMEOUT
from .router import MessageRouter

logger = logging.getLogger(__name__)


class EventKind(Enum):
    """Kinds of events on a session inbox."""
    JOIN = "join"
    FRAME = "frame"
    LEAVE = "leave"
    STOP = "stop"


@dataclass
class SessionEvent:
    kind: EventKind
    conn: Optional[Connection] = None
    frame: Optional[str] = None


class Session:
    """
    One named session: state, members and the worker that serializes them.

    Callers never touch ``state`` or ``connections`` directly; they submit
    events and the worker applies them in order.
    """

    def __init__(self, name: str, on_empty: Optional[Callable[["Session"], Any]] = None):
        self.name = name
        self.created_at = time.time()
        self.state = SessionState()
        self.connections = ConnectionSet()
        self.router = MessageRouter(self.state, self.connections, session_name=name)
        self._on_empty = on_empty
        self._inbox: asyncio.Queue[SessionEvent] = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._pending_joins = 0
        self._stopped = False

    def __repr__(self) -> str:
        return f"Session({self.name!r}, members={len(self.connections)})"

    @property
    def pending_joins(self) -> int:
        """Joins submitted but not yet processed by the worker."""
        return self._pending_joins

    @property
    def stopped(self) -> bool:
        return self._stopped

    # =========================================================================
    # Event submission
    # =========================================================================

    def submit_join(self, conn: Connection) -> None:
        self._pending_joins += 1
        self._enqueue(SessionEvent(EventKind.JOIN, conn=conn))

    def submit_frame(self, conn: Connection, frame: str) -> None:
        self._enqueue(SessionEvent(EventKind.FRAME, conn=conn, frame=frame))

    def submit_leave(self, conn: Connection) -> None:
        self._enqueue(SessionEvent(EventKind.LEAVE, conn=conn))

    def stop(self) -> None:
        """Let the worker exit once everything queued so far is handled."""
        if self._stopped:
            return
        if self._worker is not None:
            self._inbox.put_nowait(SessionEvent(EventKind.STOP))
        self._stopped = True

    def _enqueue(self, event: SessionEvent) -> None:
        if self._stopped:
            # Destroyed sessions accept nothing new
            if event.conn is not None:
                event.conn.close()
            return
        if self._worker is None:
            self._worker = asyncio.get_running_loop().create_task(self._run())
        self._inbox.put_nowait(event)

    # =========================================================================
    # Worker
    # =========================================================================

    async def _run(self) -> None:
        while True:
            event = await self._inbox.get()
            try:
                if event.kind == EventKind.STOP:
                    return
                self.handle(event)
            except Exception:
                logger.exception("Error handling %s event in session %r", event.kind.value, self.name)
            finally:
                self._inbox.task_done()
            # Give the connection pumps a turn between events
            await asyncio.sleep(0)

    def handle(self, event: SessionEvent) -> None:
        """Apply one event. Synchronous: never interleaves with another event."""
        if event.kind == EventKind.JOIN:
            self._handle_join(event.conn)
        elif event.kind == EventKind.FRAME:
            self._handle_frame(event.conn, event.frame)
        elif event.kind == EventKind.LEAVE:
            self._handle_leave(event.conn)

    def _handle_join(self, conn: Connection) -> None:
        self._pending_joins -= 1
        if not conn.writable:
            # Closed before the join was processed
            self._after_membership_change()
            return

        self.connections.add(conn)
        frames = self.state.snapshot()
        for frame in frames:
            conn.deliver(frame)
        logger.info(
            "%r joined session %r (%d members, %d snapshot frames)",
            conn, self.name, len(self.connections), len(frames),
        )

    def _handle_frame(self, conn: Connection, frame: str) -> None:
        if conn not in self.connections:
            logger.debug("Ignoring frame from non-member %r in session %r", conn, self.name)
            return
        self.router.route(frame, sender=conn)

    def _handle_leave(self, conn: Connection) -> None:
        was_member = conn in self.connections
        self.connections.remove(conn)
        conn.close()
        if was_member:
            logger.info("%r left session %r (%d members)", conn, self.name, len(self.connections))
        self._after_membership_change()

    def _after_membership_change(self) -> None:
        if len(self.connections) == 0 and self._on_empty is not None:
            self._on_empty(self)

    # =========================================================================
    # Utilities
    # =========================================================================

    async def wait_idle(self) -> None:
        """Wait until every submitted event has been handled."""
        await self._inbox.join()

    async def drain(self) -> None:
        """Wait until all queued events and outbound frames are handled."""
        await self.wait_idle()
        for conn in self.connections:
            await conn.drain()

    async def close(self) -> None:
        """Disconnect every member and stop the worker (used on shutdown)."""
        members = list(self.connections)
        for conn in members:
            self.connections.remove(conn)
            conn.close()
        self.stop()
        if self._worker is not None:
            await self._worker
        await asyncio.gather(*(conn.wait_closed(timeout=CLOSE_TIMEOUT) for conn in members))

    def stats(self) -> dict[str, int]:
        return {
            "connections": len(self.connections),
            "cards": len(self.state.cards),
            "frames_relayed": self.router.frames_relayed,
            "frames_discarded": self.router.frames_discarded,
        }


class SessionRegistry:
    """
    Process-wide map of session name -> Session.

    Responsibilities:
    - Create sessions lazily on first join (never two for one name)
    - Destroy a session as soon as it has no members and no pending join
    - Look up sessions for introspection
    """

    def __init__(self, outbox_limit: int = OUTBOX_LIMIT):
        self.outbox_limit = outbox_limit
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, name: object) -> bool:
        return name in self._sessions

    def get(self, name: str) -> Session | None:
        return self._sessions.get(name)

    def names(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def get_or_create(self, name: str) -> Session:
        """Return the session for ``name``, creating an empty one if needed."""
        with self._lock:
            return self._get_or_create_locked(name)

    def _get_or_create_locked(self, name: str) -> Session:
        session = self._sessions.get(name)
        if session is None:
            session = Session(name, on_empty=self._session_emptied)
            self._sessions[name] = session
            logger.info("Created session %r", name)
        return session

    def join(self, name: str, transport: Any) -> tuple[Session, Connection]:
        """
        Attach a transport to the named session.

        The join is queued behind any frames already submitted to the
        session; the snapshot is sent when the worker reaches it.
        Must be called from a running event loop.
        """
        with self._lock:
            session = self._get_or_create_locked(name)
            conn = Connection(transport, session_name=name, outbox_limit=self.outbox_limit)
            session.submit_join(conn)
        conn.start()
        return session, conn

    def leave(self, conn: Connection, session: Session | None = None) -> None:
        """Detach a connection from its session (close or transport error)."""
        if session is None:
            session = self._sessions.get(conn.session_name)
        if session is None or session.stopped:
            conn.close()
            return
        session.submit_leave(conn)

    def remove_if_empty(self, name: str, session: Session | None = None) -> bool:
        """
        Delete the session if it has no members and no join in flight.

        If ``session`` is given, only that exact instance is removed.
        Returns True if the session was removed.
        """
        with self._lock:
            current = self._sessions.get(name)
            if current is None:
                return False
            if session is not None and current is not session:
                return False
            if len(current.connections) > 0 or current.pending_joins > 0:
                return False
            del self._sessions[name]
        current.stop()
        logger.info("Destroyed empty session %r", name)
        return True

    def _session_emptied(self, session: Session) -> None:
        self.remove_if_empty(session.name, session=session)

    async def close(self) -> None:
        """Close every session (application shutdown)."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            await session.close()
