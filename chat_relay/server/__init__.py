"""
Server package for LAN Chat Relay.

This package contains all server-side functionality including:
- Session identity and registry
- Line protocol dispatch (chat, whisper, typing, presence)
- Connection acceptance and shutdown
- Event streams for front ends
- Configuration and utilities
"""
