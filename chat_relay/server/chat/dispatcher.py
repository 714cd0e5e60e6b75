"""
Broadcast dispatcher module.

Fans formatted lines out to registered sessions. Delivery is best-effort:
a failure on one session is logged and never stops delivery to the others.
"""

from typing import Optional

from chat_relay.common.events import EventStream
from chat_relay.server.registry import Session, SessionRegistry
from chat_relay.server.utils.logger import logger


class BroadcastDispatcher:
    """Server-side fan-out of protocol lines."""
    
    def __init__(self, registry: SessionRegistry, log_stream: Optional[EventStream] = None):
        self.registry = registry
        self.log_stream = log_stream
    
    async def broadcast_to_all(self, line: str) -> int:
        """
        Send a line to every session currently registered.
        Returns the number of sessions the line was queued for.
        """
        return await self.broadcast_except(line, exclude_id=None)
    
    async def broadcast_except(self, line: str, exclude_id: Optional[str]) -> int:
        """Send a line to every registered session except one."""
        sessions = await self.registry.sessions()
        delivered = 0
        
        for session in sessions:
            if exclude_id is not None and session.id == exclude_id:
                continue
            if self._deliver(session, line):
                delivered += 1
        
        self._publish(line)
        return delivered
    
    def send_to(self, session: Session, line: str, publish: bool = True) -> bool:
        """Send a line to a single session."""
        delivered = self._deliver(session, line)
        if publish:
            self._publish(line)
        return delivered
    
    def _deliver(self, session: Session, line: str) -> bool:
        try:
            return session.send(line)
        except Exception as e:
            logger.error(f"Failed to send to {session.display_name} (id={session.id}): {e}")
            return False
    
    def _publish(self, line: str):
        if self.log_stream is not None:
            self.log_stream.publish(line)
