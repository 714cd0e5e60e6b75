"""
Chat module for server-side messaging functionality.

Handles:
- Broadcast fan-out to every session
- Whisper delivery to a single session
- Typing notices
- Join/leave presence notices
"""
