"""
Chat client module.

This module handles client-side chat messaging functionality: connecting and
joining, sending lines, and interpreting what the server relays.
"""

import asyncio
import time
from typing import Callable, Optional

from chat_relay.client.chat.presence import PresenceTracker, TypingTracker
from chat_relay.client.utils.config import ClientConfig
from chat_relay.client.utils.logger import logger
from chat_relay.common.constants import DEFAULT_HOST, DEFAULT_PORT, ENCODING, LINE_DELIMITER
from chat_relay.common.events import EventStream
from chat_relay.common.protocol_definitions import (
    ServerLine, create_join_line, create_typing_line, create_whisper_command,
    parse_server_line, parse_system_payload, strip_line
)


class ChatClient:
    """Client-side chat functionality."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT, username: str = None,
                 config: Optional[ClientConfig] = None, clock: Callable[[], float] = time.monotonic):
        self.config = config or ClientConfig(host, port, username)
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self.running = False

        self.roster = PresenceTracker()
        self.typing = TypingTracker(self.config.typing_ttl, clock)

        # Streams for the front end
        self.log_stream = EventStream('client-log', self.config.event_buffer_size)
        self.presence_stream = EventStream('client-presence', self.config.event_buffer_size, replay_latest=True)

        self._write_lock = asyncio.Lock()
        self._listen_task: Optional[asyncio.Task] = None

    @property
    def username(self) -> str:
        return self.config.username

    async def connect(self, retry_count: int = None, base_delay: float = None) -> bool:
        """Connect with exponential backoff, send the join line and start listening."""
        retry_count = retry_count or self.config.connect_attempts
        base_delay = self.config.retry_delay_base if base_delay is None else base_delay
        connection = self.config.get_connection_info()
        host, port = connection['host'], connection['port']

        for attempt in range(1, retry_count + 1):
            try:
                self.reader, self.writer = await asyncio.open_connection(host, port)
                logger.log_connection(host, port, True)
                break
            except OSError as e:
                logger.log_connection(host, port, False)
                logger.log_error("connection", e)
                if attempt < retry_count:
                    delay = base_delay * (2 ** (attempt - 1))
                    logger.info(f"Retrying connection in {delay}s (attempt {attempt}/{retry_count})...")
                    await asyncio.sleep(delay)
        else:
            logger.error(f"Failed to connect after {retry_count} attempts")
            return False

        self.running = True
        logger.log_join(self.username)
        if not await self.send(create_join_line(self.username)):
            await self.disconnect()
            return False

        self._listen_task = asyncio.create_task(self.listen())
        return True

    async def send(self, text: str) -> bool:
        """Send one raw line to the server."""
        if not self.running or self.writer is None:
            logger.error("Not connected to server")
            return False

        try:
            async with self._write_lock:
                self.writer.write((text + LINE_DELIMITER).encode(ENCODING))
                await self.writer.drain()
            return True
        except (ConnectionError, OSError) as e:
            logger.log_error("send", e)
            return False

    async def send_chat(self, text: str) -> bool:
        """Send a chat line. Blank text is not sent."""
        text = text.strip()
        if not text:
            return False
        return await self.send(text)

    async def send_whisper(self, target: str, text: str) -> bool:
        """Send a private message to one user."""
        return await self.send(create_whisper_command(target, text))

    async def set_typing(self, on: bool) -> bool:
        """Report the local typing state."""
        return await self.send(create_typing_line(on))

    async def listen(self):
        """Read server lines until the connection closes."""
        try:
            while self.running:
                data = await self.reader.readline()
                if not data:
                    logger.info("Server closed connection")
                    break
                self.handle_line(strip_line(data.decode(ENCODING, errors='replace')))
        except asyncio.CancelledError:
            logger.info("Listener cancelled")
            raise
        except (ConnectionError, OSError) as e:
            logger.log_error("listen", e)
        finally:
            await self._close_connection()

    def handle_line(self, line: str) -> Optional[ServerLine]:
        """Update roster and typing state from one server line."""
        self.log_stream.publish(line)

        parsed = parse_server_line(line)
        if parsed is None:
            logger.debug(f"Unrecognised line from server: {line!r}")
            return None

        if not parsed.is_system:
            # A message from someone ends their typing indicator
            self.typing.clear(parsed.tag)
            if self.roster.add(parsed.tag):
                self._publish_presence()
            return parsed

        event = parse_system_payload(parsed.body)
        changed = False
        if event.kind == 'users':
            changed = self.roster.replace(event.names)
        elif event.kind == 'joined':
            changed = self.roster.add(event.name)
        elif event.kind == 'left':
            self.typing.clear(event.name)
            changed = self.roster.remove(event.name)
        elif event.kind == 'typing':
            if event.name.casefold() != self.username.casefold():
                self.typing.mark(event.name)

        if changed:
            self._publish_presence()
        return parsed

    def typing_users(self):
        """Users whose typing indicator has not aged out."""
        return self.typing.active()

    def _publish_presence(self):
        self.presence_stream.publish(self.roster.names())

    async def disconnect(self):
        """Close the connection and stop listening."""
        self.running = False
        task = self._listen_task
        self._listen_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except (asyncio.CancelledError, Exception):
                pass
        await self._close_connection()

    async def _close_connection(self):
        self.running = False
        writer = self.writer
        self.writer = None
        if writer is None:
            return
        try:
            writer.close()
            await writer.wait_closed()
        except Exception:
            pass
        self.roster.clear()
        self._publish_presence()
        logger.info("Disconnected from server")
