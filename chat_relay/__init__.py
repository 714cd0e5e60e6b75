"""
LAN Chat Relay.

A line-oriented multi-client chat relay:
- Server-side session management and broadcast protocol
- Headless client core with presence and typing bookkeeping
"""

__version__ = "1.0.0"
