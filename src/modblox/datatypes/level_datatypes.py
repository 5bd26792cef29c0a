"""Data structures for the leveling engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from modblox.datatypes.discord_datatypes import UserID


@dataclass(slots=True)
class UserLevelProfile:
    """Leveling state of one user.

    Attributes:
        user_id: Discord user the profile belongs to.
        message_count: Messages that passed the cooldown gate.
        level: Current level, derived from ``message_count``.
        last_message_time: Unix milliseconds of the last counted message, 0 if none.
    """

    user_id: UserID
    message_count: int = 0
    level: int = 0
    last_message_time: int = 0


@dataclass(frozen=True, slots=True)
class LevelUpResult:
    """Outcome of ingesting one message."""

    leveled_up: bool
    old_level: Optional[int] = None
    new_level: Optional[int] = None

    @classmethod
    def unchanged(cls) -> "LevelUpResult":
        return cls(leveled_up=False)


@dataclass(frozen=True, slots=True)
class LevelProgress:
    """Read-only view of a user's progress toward the next level.

    ``messages_for_next_level`` is the per-level requirement of the next level
    and ``total_messages_for_next`` the cumulative threshold to reach it; both
    are None once ``is_max_level`` is set.
    """

    current_level: int
    message_count: int
    messages_for_next_level: Optional[int]
    total_messages_for_next: Optional[int]
    progress_to_next: int
    is_max_level: bool

    @property
    def messages_remaining(self) -> int:
        if self.total_messages_for_next is None:
            return 0
        return max(0, self.total_messages_for_next - self.message_count)


@dataclass(frozen=True, slots=True)
class LevelingStats:
    """Aggregate figures over every known profile."""

    total_users: int
    max_level: int
    average_level: float
    total_messages: int
