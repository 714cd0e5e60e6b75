"""
Shared constants for LAN Chat Relay.

This module contains all constants used across client and server components.
"""

# Network Configuration
DEFAULT_HOST = 'localhost'
DEFAULT_SERVER_HOST = '0.0.0.0'
DEFAULT_PORT = 9000

# Wire format
ENCODING = 'utf-8'
LINE_DELIMITER = '\n'
MAX_LINE_BYTES = 64 * 1024  # Longest accepted client line

# Outbound delivery
OUTBOUND_QUEUE_SIZE = 256  # Pending lines per session before eviction
WRITE_TIMEOUT = 5.0  # seconds a single drain may take

# Identity
DEFAULT_DISPLAY_NAME = 'Guest'
FALLBACK_ID_BASE = 'User'
ID_SUFFIX_LENGTH = 4
ID_SUFFIX_ALPHABET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789'
MAX_ID_ATTEMPTS = 8  # Suffix regenerations before a counter is appended

# Event streams
EVENT_STREAM_BUFFER = 1000

# Client-side typing indicator
TYPING_TTL = 5.0  # seconds before a typing indicator ages out

# Logging
LOG_DIR = 'logs'
CHAT_LOG_FILE = 'chat_history.log'


# Protocol markers
class Prefixes:
    # Client to Server
    JOIN = '__JOIN__:'
    TYPING = '__TYPING__:'
    WHISPER = '/w'

    # Server to Client
    SYSTEM_TAG = 'SYS'


class SystemPayloads:
    USERS = 'USERS'
    TYPING = 'TYPING'
    WHISPER = 'WHISPER'
    JOINED_SUFFIX = ' has joined'
    LEFT_SUFFIX = ' has left'


class TypingStates:
    ON = 'on'
    OFF = 'off'
