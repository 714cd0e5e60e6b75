"""
Client-side presence and typing state.

The server sends a full roster only when a client joins and after someone
leaves; in between the client keeps its roster current from the join/leave
notices. Typing notices are only ever sent for "on", so typing state is aged
out locally.
"""

import time
from typing import Callable, Dict, Iterable, List, Tuple


class PresenceTracker:
    """Ordered, case-insensitive set of online display names."""

    def __init__(self):
        self._names: List[str] = []

    def names(self) -> List[str]:
        return list(self._names)

    def __contains__(self, name: str):
        return self._index(name) is not None

    def __len__(self):
        return len(self._names)

    def replace(self, names: Iterable[str]) -> bool:
        """Replace the roster. Returns True if it changed."""
        before = list(self._names)
        self._names = []
        for name in names:
            self.add(name)
        return before != self._names

    def add(self, name: str) -> bool:
        name = name.strip()
        if not name or name in self:
            return False
        self._names.append(name)
        return True

    def remove(self, name: str) -> bool:
        index = self._index(name.strip())
        if index is None:
            return False
        del self._names[index]
        return True

    def clear(self):
        self._names = []

    def _index(self, name: str):
        wanted = name.casefold()
        for i, existing in enumerate(self._names):
            if existing.casefold() == wanted:
                return i
        return None


class TypingTracker:
    """Who is typing right now, with entries expiring after a TTL."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._last_seen: Dict[str, Tuple[str, float]] = {}  # casefolded -> (name, time)

    def mark(self, name: str):
        self._last_seen[name.casefold()] = (name, self.clock())

    def clear(self, name: str):
        self._last_seen.pop(name.casefold(), None)

    def is_typing(self, name: str) -> bool:
        entry = self._last_seen.get(name.casefold())
        return entry is not None and self.clock() - entry[1] < self.ttl

    def active(self) -> List[str]:
        """Names whose typing indicator has not expired. Prunes the rest."""
        now = self.clock()
        for key, (_, seen) in list(self._last_seen.items()):
            if now - seen >= self.ttl:
                del self._last_seen[key]
        return [name for name, _ in self._last_seen.values()]
