"""
Protocol definitions for LAN Chat Relay.

This module defines the line-based wire protocol used between client and
server: classification of incoming client lines, formatting of outgoing
server lines, and the client-side parsing of what the server sends.

Lines are UTF-8 text terminated by a newline. There is no framing and no
escaping; a body that contains a newline is split by the reader.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Union

from chat_relay.common.constants import (
    DEFAULT_DISPLAY_NAME, Prefixes, SystemPayloads, TypingStates
)


@dataclass
class Join:
    """Join handshake (first line only)."""
    name: str


@dataclass
class TypingState:
    """Typing control line."""
    on: bool


@dataclass
class Whisper:
    """Private message command."""
    target: str
    body: str


@dataclass
class MalformedWhisper:
    """Whisper command missing its target or body."""
    reason: str


@dataclass
class Chat:
    """Plain chat line."""
    body: str


ClientMessage = Union[TypingState, Whisper, MalformedWhisper, Chat]


@dataclass
class ServerLine:
    """A line received from the server, split into its parts."""
    timestamp: Optional[str]
    tag: str
    body: str

    @property
    def is_system(self) -> bool:
        return self.tag.upper() == Prefixes.SYSTEM_TAG


@dataclass
class SystemEvent:
    """Structured view of a [SYS] payload."""
    kind: str  # users | joined | left | typing | whisper | notice
    name: Optional[str] = None
    names: List[str] = field(default_factory=list)
    text: str = ''


_SERVER_LINE_RE = re.compile(
    r'^(?:\[(?P<ts>\d{2}:\d{2}:\d{2})\]\s*)?\[(?P<tag>[^\]]+)\]\s?(?P<body>.*)$'
)


def strip_line(raw: str) -> str:
    """Remove the line terminator (and a Windows carriage return)."""
    return raw.rstrip('\n').rstrip('\r')


def format_timestamp(now: Optional[datetime] = None) -> str:
    """Wall-clock HH:MM:SS, zero padded, no date."""
    return (now or datetime.now()).strftime('%H:%M:%S')


# Client -> Server parsing

def parse_join_line(line: str) -> Optional[Join]:
    """
    Parse the join handshake, or return None if the line is not a join line.
    An empty name falls back to the default display name.
    """
    if not line.startswith(Prefixes.JOIN):
        return None
    name = line[len(Prefixes.JOIN):].strip()
    return Join(name=name or DEFAULT_DISPLAY_NAME)


def parse_line(line: str) -> ClientMessage:
    """Classify a line received from a joined client."""
    if line.startswith(Prefixes.TYPING):
        state = line[len(Prefixes.TYPING):].strip().lower()
        return TypingState(on=(state == TypingStates.ON))

    if _is_whisper_command(line):
        parts = line[len(Prefixes.WHISPER):].strip().split(None, 1)
        if not parts:
            return MalformedWhisper("missing target")
        if len(parts) < 2 or not parts[1].strip():
            return MalformedWhisper("missing message")
        return Whisper(target=parts[0], body=parts[1].strip())

    return Chat(body=line)


def _is_whisper_command(line: str) -> bool:
    if not line.startswith(Prefixes.WHISPER):
        return False
    rest = line[len(Prefixes.WHISPER):]
    return rest == '' or rest[0].isspace()


# Server -> Client formatting

def create_chat_line(sender: str, body: str, now: Optional[datetime] = None) -> str:
    """[HH:MM:SS] [sender] body"""
    return f"[{format_timestamp(now)}] [{sender}] {body}"


def create_system_notice(text: str, now: Optional[datetime] = None) -> str:
    """[HH:MM:SS] [SYS] text, broadcast to everyone."""
    return f"[{format_timestamp(now)}] [{Prefixes.SYSTEM_TAG}] {text}"


def create_direct_reply(text: str) -> str:
    """[SYS] text, sent to a single recipient."""
    return f"[{Prefixes.SYSTEM_TAG}] {text}"


def create_users_message(names: List[str]) -> str:
    return create_direct_reply(f"{SystemPayloads.USERS} {','.join(names)}")


def create_joined_notice(name: str, now: Optional[datetime] = None) -> str:
    return create_system_notice(f"{name}{SystemPayloads.JOINED_SUFFIX}", now)


def create_left_notice(name: str, now: Optional[datetime] = None) -> str:
    return create_system_notice(f"{name}{SystemPayloads.LEFT_SUFFIX}", now)


def create_typing_notice(name: str, now: Optional[datetime] = None) -> str:
    return create_system_notice(f"{SystemPayloads.TYPING} {name} {TypingStates.ON}", now)


def create_whisper_line(sender: str, target: str, body: str) -> str:
    """Single line delivered to the whisper target and echoed to the sender."""
    return create_direct_reply(f"{SystemPayloads.WHISPER} {sender} -> {target}: {body}")


def create_whisper_not_found_message(target: str) -> str:
    return create_direct_reply(f"User '{target}' not found")


def create_whisper_usage_message(reason: str) -> str:
    return create_direct_reply(f"Invalid whisper ({reason}). Usage: {Prefixes.WHISPER} <name> <message>")


def create_line_too_long_message(limit: int) -> str:
    return create_direct_reply(f"Message too long (limit {limit} bytes)")


# Client -> Server formatting

def create_join_line(name: str) -> str:
    return f"{Prefixes.JOIN}{name.strip() or DEFAULT_DISPLAY_NAME}"


def create_typing_line(on: bool) -> str:
    return f"{Prefixes.TYPING}{TypingStates.ON if on else TypingStates.OFF}"


def create_whisper_command(target: str, body: str) -> str:
    return f"{Prefixes.WHISPER} {target} {body}"


# Server -> Client parsing

def parse_server_line(line: str) -> Optional[ServerLine]:
    """Split a server line into timestamp, tag and body. None if unrecognised."""
    # Strip BOM and zero-width characters some clients emit
    text = line.lstrip('\ufeff\u200b\u200c\u200d \t')
    match = _SERVER_LINE_RE.match(strip_line(text))
    if not match:
        return None
    return ServerLine(
        timestamp=match.group('ts'),
        tag=match.group('tag').strip(),
        body=match.group('body'),
    )


def parse_system_payload(body: str) -> SystemEvent:
    """Classify the body of a [SYS] line."""
    users_prefix = SystemPayloads.USERS + ' '
    typing_prefix = SystemPayloads.TYPING + ' '
    whisper_prefix = SystemPayloads.WHISPER + ' '

    if body == SystemPayloads.USERS or body.startswith(users_prefix):
        csv = body[len(SystemPayloads.USERS):].strip()
        names = [n.strip() for n in csv.split(',') if n.strip()]
        return SystemEvent(kind='users', names=names, text=body)

    if body.startswith(typing_prefix):
        rest = body[len(typing_prefix):]
        name, _, state = rest.rpartition(' ')
        if name and state == TypingStates.ON:
            return SystemEvent(kind='typing', name=name, text=body)

    if body.startswith(whisper_prefix):
        return SystemEvent(kind='whisper', text=body[len(whisper_prefix):])

    if body.endswith(SystemPayloads.JOINED_SUFFIX):
        name = body[:-len(SystemPayloads.JOINED_SUFFIX)].strip()
        if name:
            return SystemEvent(kind='joined', name=name, text=body)

    if body.endswith(SystemPayloads.LEFT_SUFFIX):
        name = body[:-len(SystemPayloads.LEFT_SUFFIX)].strip()
        if name:
            return SystemEvent(kind='left', name=name, text=body)

    return SystemEvent(kind='notice', text=body)
