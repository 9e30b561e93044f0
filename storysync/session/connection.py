"""
Connections - One peer attached to a session, and the set of peers.

A Connection wraps any transport exposing an async ``send_text(str)``
(a Starlette/FastAPI WebSocket in production, a fake in tests).

Outbound frames go through a per-connection queue drained by a pump
task, so broadcasting never awaits a peer: a slow or stalled client
only delays itself. A peer whose queue overflows is skipped from then
on, the same as a peer that has gone away.
"""

from __future__ import annotations
from typing import Any, Iterator, Optional
import asyncio
import logging
import uuid

logger = logging.getLogger(__name__)

# Frames a peer may have queued before it is treated as stalled
OUTBOX_LIMIT = 1024

# Seconds to let a closing pump finish before it is cancelled
CLOSE_TIMEOUT = 1.0


class Connection:
    """
    A live peer.

    The connection refers to its session by name only; the session's
    ConnectionSet is what holds the connection.
    """

    def __init__(
        self,
        transport: Any,
        session_name: str,
        conn_id: Optional[str] = None,
        outbox_limit: int = OUTBOX_LIMIT,
    ):
        self.conn_id = conn_id or uuid.uuid4().hex
        self.session_name = session_name
        self.transport = transport
        self.frames_sent = 0
        self._outbox: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize=outbox_limit)
        self._writable = True
        self._closed = False
        self._pump_task: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return f"Connection({self.conn_id[:8]}, session={self.session_name!r})"

    @property
    def writable(self) -> bool:
        return self._writable

    @property
    def queued(self) -> int:
        """Frames waiting to be sent."""
        return self._outbox.qsize()

    @property
    def pump_finished(self) -> bool:
        return self._pump_task is None or self._pump_task.done()

    def start(self) -> None:
        """Start the outbound pump. Must be called from a running event loop."""
        if self._pump_task is None:
            self._pump_task = asyncio.get_running_loop().create_task(self._pump())

    def deliver(self, frame: str) -> bool:
        """
        Queue a frame for this peer without waiting.

        Returns False (and drops the frame) if the peer is no longer
        writable. A peer whose outbox is full is marked not writable.
        """
        if not self._writable:
            return False
        try:
            self._outbox.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning("Outbox of %r is full, skipping the peer from now on", self)
            self._writable = False
            return False
        return True

    def close(self) -> None:
        """Stop accepting frames and let the pump exit."""
        if self._closed:
            return
        self._closed = True
        self._writable = False
        try:
            self._outbox.put_nowait(None)
        except asyncio.QueueFull:
            # No room for the stop marker: the pump is stuck on a send
            if self._pump_task is not None:
                self._pump_task.cancel()

    async def drain(self) -> None:
        """Wait until every queued frame has been sent or skipped."""
        await self._outbox.join()

    async def wait_closed(self, timeout: Optional[float] = None) -> None:
        """Wait for the pump to exit, cancelling it after ``timeout`` seconds."""
        if self._pump_task is None:
            return
        await asyncio.wait({self._pump_task}, timeout=timeout)
        if not self._pump_task.done():
            logger.debug("Cancelling stuck pump of %r", self)
            self._pump_task.cancel()
            await asyncio.wait({self._pump_task})

    async def _pump(self) -> None:
        while True:
            frame = await self._outbox.get()
            try:
                if frame is None:
                    return
                if not self._writable:
                    continue
                try:
                    await self.transport.send_text(frame)
                    self.frames_sent += 1
                except Exception as e:
                    # Treated as if the peer had already closed
                    logger.debug("Delivery to %r failed: %s", self, e)
                    self._writable = False
            finally:
                self._outbox.task_done()


class ConnectionSet:
    """Members of one session, in join order, keyed by conn_id."""

    def __init__(self):
        self._members: dict[str, Connection] = {}

    def add(self, conn: Connection) -> None:
        self._members.setdefault(conn.conn_id, conn)

    def remove(self, conn: Connection) -> None:
        self._members.pop(conn.conn_id, None)

    def get(self, conn_id: str) -> Connection | None:
        return self._members.get(conn_id)

    def __contains__(self, conn: object) -> bool:
        return isinstance(conn, Connection) and conn.conn_id in self._members

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._members.values()))

    def broadcast(self, frame: str, excluding: Connection | None = None) -> int:
        """
        Queue ``frame`` for every member except ``excluding``.

        Members that are no longer writable are skipped silently.
        Returns the number of peers the frame was queued for.
        """
        delivered = 0
        for conn in self:
            if excluding is not None and conn.conn_id == excluding.conn_id:
                continue
            if conn.deliver(frame):
                delivered += 1
        return delivered
