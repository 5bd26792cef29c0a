"""
Message-based leveling.

Every message a member sends is offered to :meth:`LevelingEngine.ingest_message`.
A message counts only if at least ``COOLDOWN_MS`` have passed since the last
counted one; messages inside the cooldown are ignored completely.

Completing level ``L`` takes ``max(10, floor(L ** 1.5) * 10)`` messages, so
the cumulative thresholds start 10, 30, 80, 160, ... A user's level is the
largest ``L`` whose cumulative threshold their message count has reached,
capped at ``MAX_LEVEL``. Levels never go down.
"""

from __future__ import annotations

import asyncio
import math
import weakref
from bisect import bisect_right
from typing import List, Optional, Tuple

from modblox.datatypes.discord_datatypes import UserID
from modblox.datatypes.level_datatypes import (
    LevelingStats,
    LevelProgress,
    LevelUpResult,
    UserLevelProfile,
)
from modblox.leveling.level_store import LevelStore
from modblox.util.logger import get_logger
from modblox.util.time_utils import Clock, ensure_timestamp, now_ms

logger = get_logger("leveling_engine")

MAX_LEVEL = 100
COOLDOWN_MS = 60_000
MIN_MESSAGES_PER_LEVEL = 10


def messages_for_level(level: int) -> int:
    """Messages needed to go from ``level - 1`` to ``level``."""
    if level < 1:
        return 0
    # floor(level ** 1.5) computed exactly in integers
    return max(MIN_MESSAGES_PER_LEVEL, math.isqrt(level ** 3) * 10)


def _build_cumulative(max_level: int) -> Tuple[int, ...]:
    totals = [0]
    for level in range(1, max_level + 1):
        totals.append(totals[-1] + messages_for_level(level))
    return tuple(totals)


# CUMULATIVE_THRESHOLDS[L] is the total message count needed to reach level L.
CUMULATIVE_THRESHOLDS: Tuple[int, ...] = _build_cumulative(MAX_LEVEL)


def cumulative_threshold(level: int) -> int:
    """Total messages needed to have reached ``level`` (0 for level 0)."""
    if not 0 <= level <= MAX_LEVEL:
        raise ValueError(f"level must be between 0 and {MAX_LEVEL}, got {level}")
    return CUMULATIVE_THRESHOLDS[level]


def level_for_count(message_count: int) -> int:
    """Largest level whose cumulative threshold ``message_count`` has reached."""
    if message_count <= 0:
        return 0
    return min(bisect_right(CUMULATIVE_THRESHOLDS, message_count) - 1, MAX_LEVEL)


class LevelingEngine:
    """Cooldown-gated message counter with monotonic levels.

    Args:
        store: Where profiles live; an in-memory or SQLite-backed store.
        clock: Source of unix-millisecond timestamps when callers pass none.
        cooldown_ms: Minimum gap between two counted messages.
    """

    def __init__(self, store: LevelStore, clock: Clock = now_ms, cooldown_ms: int = COOLDOWN_MS) -> None:
        self._store = store
        self._clock = clock
        self.cooldown_ms = cooldown_ms
        self._per_user_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: UserID) -> asyncio.Lock:
        key = str(user_id)
        lock = self._per_user_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._per_user_locks[key] = lock
        return lock

    async def get_profile(self, user_id: UserID) -> UserLevelProfile:
        """Stored profile for ``user_id``, or a zeroed one (not persisted)."""
        profile = await self._store.get(user_id)
        if profile is None:
            return UserLevelProfile(user_id=UserID(user_id))
        return profile

    async def ingest_message(self, user_id: UserID, now: Optional[int] = None) -> LevelUpResult:
        """Count one message for ``user_id`` unless it falls inside the cooldown.

        Raises:
            ValidationError: If ``now`` is negative, NaN or not a number.
        """
        at = ensure_timestamp(self._clock() if now is None else now, "now")

        async with self._lock_for(user_id):
            profile = await self.get_profile(user_id)

            if profile.message_count > 0 and at - profile.last_message_time < self.cooldown_ms:
                return LevelUpResult.unchanged()

            old_level = profile.level
            updated = UserLevelProfile(
                user_id=profile.user_id,
                message_count=profile.message_count + 1,
                level=max(old_level, level_for_count(profile.message_count + 1)),
                last_message_time=at,
            )
            await self._store.save(updated)

        if updated.level > old_level:
            logger.info("[LEVELING] %s leveled up %d -> %d", user_id, old_level, updated.level)
            return LevelUpResult(leveled_up=True, old_level=old_level, new_level=updated.level)
        return LevelUpResult.unchanged()

    async def get_progress(self, user_id: UserID) -> LevelProgress:
        """Read-only progress toward the next level."""
        profile = await self.get_profile(user_id)
        current = profile.level
        progress = max(0, profile.message_count - cumulative_threshold(current))

        if current >= MAX_LEVEL:
            return LevelProgress(
                current_level=current,
                message_count=profile.message_count,
                messages_for_next_level=None,
                total_messages_for_next=None,
                progress_to_next=progress,
                is_max_level=True,
            )

        return LevelProgress(
            current_level=current,
            message_count=profile.message_count,
            messages_for_next_level=messages_for_level(current + 1),
            total_messages_for_next=cumulative_threshold(current + 1),
            progress_to_next=progress,
            is_max_level=False,
        )

    async def leaderboard(self, limit: int = 10) -> List[UserLevelProfile]:
        """Highest level first, then most messages."""
        profiles = await self._store.all()
        ranked = sorted(profiles, key=lambda p: (-p.level, -p.message_count, str(p.user_id)))
        return ranked[: max(0, limit)]

    async def stats(self) -> LevelingStats:
        profiles = await self._store.all()
        if not profiles:
            return LevelingStats(total_users=0, max_level=MAX_LEVEL, average_level=0.0, total_messages=0)
        return LevelingStats(
            total_users=len(profiles),
            max_level=MAX_LEVEL,
            average_level=round(sum(p.level for p in profiles) / len(profiles), 2),
            total_messages=sum(p.message_count for p in profiles),
        )
