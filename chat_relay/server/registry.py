"""
Session registry module.

Holds the connected sessions, keyed by session id. The registry is the single
source of truth for presence: roster snapshots, whisper target lookup and
broadcast fan-out all read from it.
"""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional

from chat_relay.common.constants import ENCODING, LINE_DELIMITER, OUTBOUND_QUEUE_SIZE, WRITE_TIMEOUT
from chat_relay.common.events import EventStream
from chat_relay.server.utils.logger import logger


class Session:
    """
    One connected client.

    The session exclusively owns its StreamWriter. Lines are queued with
    send() and written by a single pump task, so concurrent broadcasts and
    whispers to the same client never interleave. A client that cannot keep
    up (queue full, or a drain exceeding the write timeout) is disconnected.
    """

    def __init__(self, session_id: str, display_name: str, writer: asyncio.StreamWriter,
                 queue_size: int = OUTBOUND_QUEUE_SIZE, write_timeout: float = WRITE_TIMEOUT):
        self.id = session_id
        self.display_name = display_name
        self.writer = writer
        self.joined_at = datetime.now().isoformat()
        self.write_timeout = write_timeout
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.closed = False
        self._pump_task: Optional[asyncio.Task] = None

    def __repr__(self):
        return f"Session(id={self.id!r}, display_name={self.display_name!r})"

    def start(self):
        """Start the writer task."""
        if self._pump_task is None:
            self._pump_task = asyncio.create_task(self._pump(), name=f"session-writer-{self.id}")

    def send(self, line: str) -> bool:
        """Queue a line for delivery. Never blocks."""
        if self.closed:
            return False
        try:
            self.outbox.put_nowait(line)
        except asyncio.QueueFull:
            logger.warning(f"Outbound queue full for {self.display_name} (id={self.id}), dropping session")
            self.abort()
            return False
        return True

    async def _pump(self):
        """Write queued lines to the socket, one at a time."""
        try:
            while True:
                line = await self.outbox.get()
                if self.closed:
                    break
                self.writer.write((line + LINE_DELIMITER).encode(ENCODING))
                await asyncio.wait_for(self.writer.drain(), timeout=self.write_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Write to {self.display_name} (id={self.id}) timed out, dropping session")
            self.abort()
        except (ConnectionError, OSError) as e:
            logger.error(f"Failed to write to {self.display_name} (id={self.id}): {e}")
            self.abort()

    def abort(self):
        """Close the connection without waiting. The read loop then sees end-of-stream."""
        if self.closed:
            return
        self.closed = True
        try:
            self.writer.close()
        except Exception:
            pass

    async def close(self):
        """Stop the writer task and close the connection, ignoring close errors."""
        self.abort()
        if self._pump_task is not None and self._pump_task is not asyncio.current_task():
            self._pump_task.cancel()
            try:
                await self._pump_task
            except (asyncio.CancelledError, Exception):
                pass
        try:
            await self.writer.wait_closed()
        except Exception:
            pass


class SessionRegistry:
    """Concurrent mapping of session id to Session."""

    def __init__(self, presence_stream: Optional[EventStream] = None):
        self._sessions: Dict[str, Session] = {}
        self.lock = asyncio.Lock()  # Protect shared state
        self.presence_stream = presence_stream

    def __len__(self):
        return len(self._sessions)

    def __contains__(self, session_id: str):
        return session_id in self._sessions

    async def try_add(self, session_id: str, session: Session) -> bool:
        """Register a session. Never overwrites a live id."""
        async with self.lock:
            if session_id in self._sessions:
                return False
            self._sessions[session_id] = session
            self._publish_presence()
            return True

    async def remove(self, session_id: str) -> Optional[Session]:
        """Deregister a session. Returns None if it was already removed."""
        async with self.lock:
            session = self._sessions.pop(session_id, None)
            if session is not None:
                self._publish_presence()
            return session

    async def clear(self) -> List[Session]:
        """Remove every session, returning the ones that were registered."""
        async with self.lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._publish_presence()
            return sessions

    async def get(self, session_id: str) -> Optional[Session]:
        async with self.lock:
            return self._sessions.get(session_id)

    async def snapshot(self) -> List[str]:
        """Display names of every registered session, in join order."""
        async with self.lock:
            return self._names()

    async def sessions(self) -> List[Session]:
        async with self.lock:
            return list(self._sessions.values())

    async def find_by_name(self, name: str) -> Optional[Session]:
        """First session whose display name matches, ignoring case."""
        wanted = name.casefold()
        async with self.lock:
            for session in self._sessions.values():
                if session.display_name.casefold() == wanted:
                    return session
        return None

    def _names(self) -> List[str]:
        return [session.display_name for session in self._sessions.values()]

    def _publish_presence(self):
        # Called with the lock held so observers see changes in order
        if self.presence_stream is not None:
            self.presence_stream.publish(self._names())
