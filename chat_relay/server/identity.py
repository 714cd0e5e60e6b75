"""
Session identity module.

Derives a human-readable session id from a display name: the alphanumeric
characters of the name in shuffled order, a hyphen, and a short random
suffix. Ids only need to be unique within one running server; the registry
rejects collisions and the caller asks for a fresh id.
"""

import random
from typing import Optional

from chat_relay.common.constants import (
    DEFAULT_DISPLAY_NAME, FALLBACK_ID_BASE, ID_SUFFIX_LENGTH, ID_SUFFIX_ALPHABET
)


class IdentityGenerator:
    """Generates session ids from display names."""

    def __init__(self, rng: Optional[random.Random] = None,
                 suffix_length: int = ID_SUFFIX_LENGTH, alphabet: str = ID_SUFFIX_ALPHABET):
        # Owned by this instance; no module-level random state.
        self.rng = rng or random.Random()
        self.suffix_length = suffix_length
        self.alphabet = alphabet

    @staticmethod
    def normalize_name(raw_name: Optional[str]) -> str:
        """Trim a requested display name, falling back to the default."""
        if raw_name is None or not raw_name.strip():
            return DEFAULT_DISPLAY_NAME
        return raw_name.strip()

    def id_base(self, display_name: str) -> str:
        """Alphanumeric characters of the name, shuffled."""
        chars = [c for c in self.normalize_name(display_name) if c.isalnum()]
        if not chars:
            chars = list(FALLBACK_ID_BASE)
        self.rng.shuffle(chars)
        return ''.join(chars)

    def suffix(self) -> str:
        return ''.join(self.rng.choice(self.alphabet) for _ in range(self.suffix_length))

    def generate(self, display_name: str) -> str:
        """Generate a candidate id for a display name."""
        return f"{self.id_base(display_name)}-{self.suffix()}"

    def regenerate(self, previous_id: str, attempt: int, max_attempts: int) -> str:
        """
        Produce a replacement for an id that collided in the registry.

        The suffix is redrawn; once `max_attempts` is exceeded the attempt
        counter is appended as well so the loop always terminates.
        """
        base = previous_id.rsplit('-', 1)[0]
        candidate = f"{base}-{self.suffix()}"
        if attempt >= max_attempts:
            candidate = f"{candidate}_{attempt}"
        return candidate
