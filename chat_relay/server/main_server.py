#!/usr/bin/env python3
"""
LAN Chat Relay Server - Main Entry Point

This module owns the listening socket. It accepts connections, runs one
ConnectionHandler task per client, and exposes the log-line and presence
streams that front ends subscribe to.
"""

import argparse
import asyncio
import logging
from typing import List, Optional, Set

from chat_relay.common.constants import DEFAULT_SERVER_HOST, DEFAULT_PORT, LOG_DIR
from chat_relay.common.events import EventStream
from chat_relay.common.protocol_definitions import create_system_notice
from chat_relay.server.chat.connection_handler import ConnectionHandler
from chat_relay.server.chat.dispatcher import BroadcastDispatcher
from chat_relay.server.identity import IdentityGenerator
from chat_relay.server.registry import SessionRegistry
from chat_relay.server.utils.config import ServerConfig
from chat_relay.server.utils.logger import logger


class ChatRelayServer:
    """Main server class: acceptor, session registry and event streams."""

    def __init__(self, host: str = DEFAULT_SERVER_HOST, port: int = DEFAULT_PORT, logs_dir: str = LOG_DIR,
                 config: Optional[ServerConfig] = None, identity: Optional[IdentityGenerator] = None):
        self.config = config or ServerConfig(host, port, logs_dir)
        logger.set_logs_dir(self.config.get_log_settings()['logs_dir'])

        # Outbound streams for front ends
        self.log_stream = EventStream('log', self.config.event_buffer_size)
        self.presence_stream = EventStream('presence', self.config.event_buffer_size, replay_latest=True)

        self.registry = SessionRegistry(self.presence_stream)
        self.dispatcher = BroadcastDispatcher(self.registry, self.log_stream)
        self.identity = identity or IdentityGenerator()

        self.handlers: Set[ConnectionHandler] = set()
        self._handler_tasks: Set[asyncio.Task] = set()
        self._server: Optional[asyncio.AbstractServer] = None
        self._stopping = False
        self.port: Optional[int] = None

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    def _log(self, message: str):
        """Log to the console and to the log-line stream."""
        logger.info(message)
        self.log_stream.publish(message)

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Run a ConnectionHandler for an accepted socket."""
        if self._stopping:
            writer.close()
            return

        handler = ConnectionHandler(reader, writer, self.registry, self.dispatcher, self.identity, self.config)
        task = asyncio.current_task()
        self.handlers.add(handler)
        self._handler_tasks.add(task)

        try:
            await handler.run()
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.log_error("handle_client", e)
        finally:
            self.handlers.discard(handler)
            self._handler_tasks.discard(task)
            if handler.session is not None:
                self._log(f"Client {handler.session.id} disconnected")

    async def start(self):
        """Bind the listening socket. Returns once the server is accepting."""
        connection = self.config.get_connection_info()
        delivery = self.config.get_delivery_settings()
        self._server = await asyncio.start_server(
            self.handle_client,
            connection['host'],
            connection['port'],
            limit=delivery['max_line_bytes']
        )

        self.port = self._server.sockets[0].getsockname()[1]
        addr = ', '.join(str(sock.getsockname()) for sock in self._server.sockets)
        logger.info(f"Server listening on {addr}")
        self.log_stream.publish(f"Server started on port {self.port}")

    async def serve_forever(self):
        """Accept connections until stop() is called."""
        if self._server is None:
            await self.start()

        try:
            await self._server.serve_forever()
        except asyncio.CancelledError:
            # serve_forever is cancelled when the listener is closed
            if not self._stopping:
                raise

    async def connected_names(self) -> List[str]:
        """Current roster."""
        return await self.registry.snapshot()

    async def announce(self, text: str):
        """Broadcast a timestamped system notice from the server operator."""
        await self.dispatcher.broadcast_to_all(create_system_notice(text))

    async def stop(self):
        """Close the listener and every live session, then clear the registry."""
        if self._stopping:
            return
        self._stopping = True

        if self._server is not None:
            try:
                self._server.close()
            except Exception as e:
                logger.log_error("stop", e)

        # Clearing first keeps handlers from announcing departures during shutdown
        sessions = await self.registry.clear()
        for session in sessions:
            await session.close()

        for handler in list(self.handlers):
            handler.close()

        tasks = [task for task in self._handler_tasks if task is not asyncio.current_task()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if self._server is not None:
            try:
                await asyncio.wait_for(self._server.wait_closed(), timeout=self.config.write_timeout)
            except Exception as e:
                logger.log_error("stop", e)

        self._log("Server stopped")
        self.log_stream.close()
        self.presence_stream.close()


async def run_server(server: ChatRelayServer):
    """Serve until cancelled, always running the shutdown path."""
    try:
        await server.serve_forever()
    finally:
        await server.stop()


def main(argv=None):
    parser = argparse.ArgumentParser(description='LAN Chat Relay Server')
    parser.add_argument('--host', type=str, default=DEFAULT_SERVER_HOST,
                       help=f'Host to bind to (default: {DEFAULT_SERVER_HOST})')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT,
                       help=f'TCP port for the relay (default: {DEFAULT_PORT})')
    parser.add_argument('--logs-dir', type=str, default=LOG_DIR,
                       help=f'Directory for the chat history log (default: {LOG_DIR})')
    parser.add_argument('--debug', action='store_true',
                       help='Enable debug logging')

    args = parser.parse_args(argv)

    if args.debug:
        logger.set_level(logging.DEBUG)

    server = ChatRelayServer(host=args.host, port=args.port, logs_dir=args.logs_dir)
    try:
        asyncio.run(run_server(server))
    except KeyboardInterrupt:
        logger.info("Server shutting down...")
    except Exception as e:
        logger.log_error("server", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
