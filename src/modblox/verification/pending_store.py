"""
Short-lived verification codes.

``/verify`` issues a code that the user pastes into their Roblox profile
description; the code is valid for ``ttl_ms`` (ten minutes by default).
Expiry is checked when a code is read, and every ``issue`` sweeps out stale
entries, so no background task is involved.
"""

from __future__ import annotations

import secrets
from typing import Callable, Dict, Optional

from modblox.datatypes.discord_datatypes import UserID
from modblox.datatypes.verification_datatypes import PendingVerification
from modblox.util.logger import get_logger
from modblox.util.time_utils import Clock, now_ms

logger = get_logger("pending_verification_store")

DEFAULT_TTL_MS = 10 * 60 * 1000

ADJECTIVES = (
    "happy", "bright", "calm", "bold", "sweet", "fresh", "warm", "cool", "soft", "smooth",
    "quick", "gentle", "strong", "light", "dark", "clear", "pure", "wild", "free", "brave",
    "kind", "wise", "fast", "slow", "tall", "short", "big", "small", "old", "new",
    "pink", "blue", "green", "red", "gold", "silver", "white", "black", "orange", "purple",
)

NOUNS = (
    "apple", "banana", "cherry", "grape", "lemon", "orange", "peach", "berry", "mango", "kiwi",
    "cookie", "cake", "bread", "soup", "pizza", "pasta", "rice", "tea", "coffee", "milk",
    "book", "pen", "desk", "chair", "lamp", "clock", "phone", "key", "box", "bag",
    "cat", "dog", "bird", "fish", "bear", "fox", "owl", "bee", "ant", "duck",
    "tree", "flower", "grass", "leaf", "rock", "sand", "star", "moon", "sun", "cloud",
    "ocean", "river", "lake", "hill", "path", "bridge", "house", "garden", "park", "beach",
)


def generate_code() -> str:
    """Return an ``adjective noun noun`` phrase with two different nouns."""
    adjective = secrets.choice(ADJECTIVES)
    first = secrets.choice(NOUNS)
    second = secrets.choice(NOUNS)
    while second == first:
        second = secrets.choice(NOUNS)
    return f"{adjective} {first} {second}"


def is_valid_code(code: str) -> bool:
    """True if ``code`` has the shape produced by :func:`generate_code`."""
    words = code.lower().strip().split(" ")
    if len(words) != 3:
        return False
    adjective, first, second = words
    return adjective in ADJECTIVES and first in NOUNS and second in NOUNS


class PendingVerificationStore:
    """Owns the codes that have been issued but not yet redeemed.

    Args:
        clock: Source of unix-millisecond timestamps.
        ttl_ms: How long an issued code stays valid.
        code_factory: Produces new codes.
    """

    def __init__(
        self,
        clock: Clock = now_ms,
        ttl_ms: int = DEFAULT_TTL_MS,
        code_factory: Callable[[], str] = generate_code,
    ) -> None:
        self._clock = clock
        self.ttl_ms = ttl_ms
        self._code_factory = code_factory
        self._pending: Dict[str, PendingVerification] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def _is_expired(self, entry: PendingVerification, now: int) -> bool:
        return now - entry.issued_at > self.ttl_ms

    def issue(self, discord_id: UserID) -> PendingVerification:
        """Create (or replace) the pending code for ``discord_id``."""
        now = self._clock()
        self.sweep(now)
        entry = PendingVerification(
            discord_id=UserID(discord_id),
            code=self._code_factory(),
            issued_at=now,
        )
        self._pending[str(discord_id)] = entry
        return entry

    def get(self, discord_id: UserID) -> Optional[PendingVerification]:
        """The live entry for ``discord_id``; an expired entry is dropped and None returned."""
        entry = self._pending.get(str(discord_id))
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            del self._pending[str(discord_id)]
            return None
        return entry

    def consume(self, discord_id: UserID) -> Optional[PendingVerification]:
        """Remove and return the entry for ``discord_id`` if it is still live."""
        entry = self.get(discord_id)
        if entry is not None:
            del self._pending[str(discord_id)]
        return entry

    def sweep(self, now: Optional[int] = None) -> int:
        """Drop every expired entry; returns how many were removed."""
        at = self._clock() if now is None else now
        stale = [key for key, entry in self._pending.items() if self._is_expired(entry, at)]
        for key in stale:
            del self._pending[key]
        if stale:
            logger.debug("[VERIFICATION] Swept %d expired verification code(s)", len(stale))
        return len(stale)
