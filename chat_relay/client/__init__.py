"""
Client package for LAN Chat Relay.

Headless client core: connection and join handshake, sending chat, whisper
and typing lines, and turning server lines into roster and typing state for
whatever front end sits on top.
"""
