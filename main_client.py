#!/usr/bin/env python3
"""
LAN Chat Relay Client - Main Entry Point

Usage:
    python main_client.py [--host HOST] [--port PORT] [--username NAME]
"""

if __name__ == "__main__":
    from chat_relay.client.main_client import main

    raise SystemExit(main())
