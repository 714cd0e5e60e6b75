"""
Connection handler module.

Runs the per-connection control loop: join handshake, read loop, dispatch of
each line to the chat/whisper/typing handlers, and teardown.
"""

import asyncio
from enum import Enum
from typing import Optional

from chat_relay.common.constants import DEFAULT_DISPLAY_NAME, ENCODING, LINE_DELIMITER
from chat_relay.common.protocol_definitions import (
    Chat, MalformedWhisper, TypingState, Whisper,
    parse_join_line, parse_line, strip_line,
    create_chat_line, create_joined_notice, create_left_notice, create_typing_notice,
    create_users_message, create_whisper_line, create_whisper_not_found_message,
    create_whisper_usage_message, create_line_too_long_message
)
from chat_relay.server.chat.dispatcher import BroadcastDispatcher
from chat_relay.server.identity import IdentityGenerator
from chat_relay.server.registry import Session, SessionRegistry
from chat_relay.server.utils.config import ServerConfig
from chat_relay.server.utils.logger import logger


class ConnectionState(Enum):
    CONNECTING = 'connecting'
    JOINED = 'joined'
    ACTIVE = 'active'
    DISCONNECTING = 'disconnecting'
    REMOVED = 'removed'


class ConnectionHandler:
    """Drives one client connection from accept to removal."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
                 registry: SessionRegistry, dispatcher: BroadcastDispatcher,
                 identity: IdentityGenerator, config: ServerConfig):
        self.reader = reader
        self.writer = writer
        self.registry = registry
        self.dispatcher = dispatcher
        self.identity = identity
        self.config = config
        self.session: Optional[Session] = None
        self.state = ConnectionState.CONNECTING
        self.addr = writer.get_extra_info('peername')

    def describe(self) -> str:
        if self.session is None:
            return f"{self.addr} (not joined)"
        return f"{self.session.display_name} (id={self.session.id})"

    async def run(self):
        """Handle the connection until the peer goes away or the server stops."""
        logger.log_connection(self.addr)

        try:
            first_line = await self._next_line()
            if first_line is None:
                logger.info(f"Connection from {self.addr} closed before joining")
                return

            join = parse_join_line(first_line)
            display_name = join.name if join is not None else DEFAULT_DISPLAY_NAME
            await self.join(display_name)

            self.state = ConnectionState.ACTIVE

            # Without a join line the first line is the first chat message
            if join is None and first_line.strip():
                await self.handle_chat(first_line)

            while True:
                line = await self._next_line()
                if line is None:
                    break
                await self.dispatch(line)

        except asyncio.CancelledError:
            logger.info(f"Connection cancelled for {self.describe()}")
            raise
        except (ConnectionError, OSError) as e:
            logger.info(f"Connection lost for {self.describe()}: {e}")
        except Exception as e:
            logger.error(f"Error handling {self.describe()}: {e}")
        finally:
            await self.teardown()

    async def _next_line(self) -> Optional[str]:
        """
        Read the next line. None on end-of-stream.

        A line longer than the stream limit is rejected as a whole: everything
        up to and including its newline is dropped, however many reads it
        arrives in, and the sender gets one notice.
        """
        discarding = False
        while True:
            try:
                data = await self.reader.readuntil(LINE_DELIMITER.encode(ENCODING))
            except asyncio.IncompleteReadError as e:
                # EOF; a final unterminated line still counts unless it is the tail of an oversized one
                if discarding or not e.partial:
                    return None
                data = e.partial
            except asyncio.LimitOverrunError as e:
                # The over-limit bytes are still buffered; drop them and keep discarding
                await self.reader.readexactly(e.consumed)
                if not discarding:
                    discarding = True
                    logger.warning(f"Line too long from {self.describe()}")
                    if self.session is not None:
                        self.dispatcher.send_to(self.session, create_line_too_long_message(self.config.max_line_bytes))
                continue

            if discarding:
                discarding = False
                continue
            return strip_line(data.decode(ENCODING, errors='replace'))

    async def join(self, display_name: str):
        """Assign an identity, register the session and announce it."""
        delivery = self.config.get_delivery_settings()
        session = Session(
            self.identity.generate(display_name), display_name, self.writer,
            queue_size=delivery['outbound_queue_size'],
            write_timeout=delivery['write_timeout']
        )

        attempt = 0
        while not await self.registry.try_add(session.id, session):
            attempt += 1
            logger.debug(f"Session id collision on {session.id}, regenerating (attempt {attempt})")
            session.id = self.identity.regenerate(session.id, attempt, self.config.max_id_attempts)

        self.session = session
        session.start()
        self.state = ConnectionState.JOINED
        logger.log_join(display_name, session.id)

        # Full roster to the newcomer, then announce to everyone
        roster = await self.registry.snapshot()
        self.dispatcher.send_to(session, create_users_message(roster))
        await self.dispatcher.broadcast_to_all(create_joined_notice(display_name))

    async def dispatch(self, line: str):
        """Route one line from an active session."""
        if not line.strip():
            return

        message = parse_line(line)

        if isinstance(message, TypingState):
            await self.handle_typing(message)
        elif isinstance(message, Whisper):
            await self.handle_whisper(message)
        elif isinstance(message, MalformedWhisper):
            self.dispatcher.send_to(self.session, create_whisper_usage_message(message.reason))
        elif isinstance(message, Chat):
            await self.handle_chat(message.body)

    async def handle_chat(self, body: str):
        """Broadcast a chat line to every session."""
        logger.log_chat(self.session.display_name, self.session.id, body)
        await self.dispatcher.broadcast_to_all(create_chat_line(self.session.display_name, body))

    async def handle_typing(self, message: TypingState):
        """Tell the other sessions this user is typing. 'off' is never broadcast."""
        if not message.on:
            return
        logger.debug(f"Typing from {self.describe()}")
        await self.dispatcher.broadcast_except(create_typing_notice(self.session.display_name), self.session.id)

    async def handle_whisper(self, message: Whisper):
        """Deliver a private message to the named user and echo it to the sender."""
        target = await self.registry.find_by_name(message.target)

        if target is None:
            logger.info(f"Whisper from {self.describe()} to unknown user '{message.target}'")
            self.dispatcher.send_to(self.session, create_whisper_not_found_message(message.target))
            return

        logger.log_whisper(self.session.display_name, target.display_name, message.body)

        line = create_whisper_line(self.session.display_name, target.display_name, message.body)
        self.dispatcher.send_to(target, line)
        if target is not self.session:
            self.dispatcher.send_to(self.session, line, publish=False)

    def close(self):
        """Force the connection closed; the read loop then ends."""
        if self.session is not None:
            self.session.abort()
        else:
            self.writer.close()

    async def teardown(self):
        """Deregister the session and announce the departure."""
        self.state = ConnectionState.DISCONNECTING

        if self.session is None:
            try:
                self.writer.close()
                await self.writer.wait_closed()
            except Exception:
                pass
            self.state = ConnectionState.REMOVED
            return

        removed = await self.registry.remove(self.session.id)
        await self.session.close()

        # Already removed (server shutdown): nothing left to announce
        if removed is not None:
            logger.log_disconnect(removed.display_name, removed.id)
            await self.dispatcher.broadcast_to_all(create_left_notice(removed.display_name))
            roster = await self.registry.snapshot()
            await self.dispatcher.broadcast_to_all(create_users_message(roster))

        self.state = ConnectionState.REMOVED
