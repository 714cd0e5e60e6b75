#!/usr/bin/env python3
"""
LAN Chat Relay Server - Main Entry Point

Usage:
    python main_server.py

Optional arguments:
    --host HOST           Bind address (default: 0.0.0.0)
    --port PORT           TCP port (default: 9000)
    --logs-dir DIR        Chat history log directory (default: logs)
    --debug               Enable debug logging
"""

if __name__ == "__main__":
    from chat_relay.server.main_server import main

    raise SystemExit(main())
