#!/usr/bin/env python3
"""
LAN Chat Relay Client - Command-line Entry Point

Joins the relay and bridges stdin/stdout:
- each typed line is sent as-is (so `/w <name> <message>` whispers)
- every line from the server is printed
- `/quit` leaves
"""

import argparse
import asyncio
import sys

from chat_relay.client.chat.chat_client import ChatClient
from chat_relay.client.utils.logger import logger
from chat_relay.common.constants import DEFAULT_HOST, DEFAULT_PORT


async def _print_lines(client: ChatClient):
    async for line in client.log_stream.subscribe():
        print(line, flush=True)


async def run_cli_client(username: str, host: str, port: int) -> int:
    client = ChatClient(host, port, username)
    printer = asyncio.create_task(_print_lines(client))

    if not await client.connect():
        printer.cancel()
        return 1

    logger.info("Type messages to chat, /w <name> <message> to whisper, /quit to exit")
    try:
        while client.running:
            text = await asyncio.to_thread(sys.stdin.readline)
            if not text:
                break
            text = text.strip()
            if text == '/quit':
                break
            await client.send_chat(text)
    finally:
        await client.disconnect()
        client.log_stream.close()
        await asyncio.gather(printer, return_exceptions=True)
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(description='LAN Chat Relay Client')
    parser.add_argument('--host', type=str, default=DEFAULT_HOST,
                       help=f'Server host (default: {DEFAULT_HOST})')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT,
                       help=f'Server port (default: {DEFAULT_PORT})')
    parser.add_argument('--username', type=str, default=None,
                       help='Display name (default: Guest)')

    args = parser.parse_args(argv)

    try:
        return asyncio.run(run_cli_client(args.username, args.host, args.port))
    except KeyboardInterrupt:
        logger.info("Client shutting down...")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
