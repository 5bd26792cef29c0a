"""
Action kinds and the moderation ledger record.

This module defines the closed ActionKind enum, the mutually exclusive kind
groups, and the immutable ModerationAction snapshot returned by the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional, assert_never

from modblox.datatypes.discord_datatypes import GuildID, UserID
from modblox.errors import ValidationError


class ActionKind(Enum):
    """Enumeration of every moderation action the ledger records."""

    BAN = "ban"
    UNBAN = "unban"
    MUTE = "mute"
    UNMUTE = "unmute"
    KICK = "kick"
    TIMEOUT = "timeout"
    UNTIMEOUT = "untimeout"
    GAMEBAN = "gameban"
    WARNING = "warning"
    COMMUNITYBAN = "communityban"

    def __str__(self) -> str:
        return self.value

    @property
    def has_effect(self) -> bool:
        """True for kinds whose records start active (ongoing state)."""
        return self in EFFECT_KINDS

    @property
    def is_accumulating(self) -> bool:
        """True for kinds where several simultaneous active records are legal."""
        return self in ACCUMULATING_KINDS

    @property
    def can_expire(self) -> bool:
        """True for kinds that accept a duration."""
        return self in EXPIRING_KINDS

    @property
    def label(self) -> str:
        """Human readable name, e.g. ``community ban``."""
        return _LABELS[self]


EFFECT_KINDS: FrozenSet[ActionKind] = frozenset({
    ActionKind.BAN,
    ActionKind.MUTE,
    ActionKind.TIMEOUT,
    ActionKind.WARNING,
    ActionKind.COMMUNITYBAN,
    ActionKind.GAMEBAN,
})

ACCUMULATING_KINDS: FrozenSet[ActionKind] = frozenset({
    ActionKind.WARNING,
    ActionKind.COMMUNITYBAN,
    ActionKind.GAMEBAN,
})

EXPIRING_KINDS: FrozenSet[ActionKind] = frozenset({
    ActionKind.BAN,
    ActionKind.MUTE,
    ActionKind.TIMEOUT,
})

_LABELS = {
    ActionKind.BAN: "ban",
    ActionKind.UNBAN: "unban",
    ActionKind.MUTE: "mute",
    ActionKind.UNMUTE: "unmute",
    ActionKind.KICK: "kick",
    ActionKind.TIMEOUT: "timeout",
    ActionKind.UNTIMEOUT: "untimeout",
    ActionKind.GAMEBAN: "game ban",
    ActionKind.WARNING: "warning",
    ActionKind.COMMUNITYBAN: "community ban",
}


class KindGroup(Enum):
    """Kinds that cannot be simultaneously in effect for one (guild, target)."""

    BAN = frozenset({ActionKind.BAN})
    MUTE = frozenset({ActionKind.MUTE, ActionKind.TIMEOUT})

    @property
    def kinds(self) -> FrozenSet[ActionKind]:
        return self.value

    @classmethod
    def of(cls, kind: ActionKind) -> Optional["KindGroup"]:
        """Return the singleton group containing ``kind``, or None."""
        for group in cls:
            if kind in group.kinds:
                return group
        return None


def reversal_kind(kind: ActionKind) -> ActionKind:
    """Kind of the record appended when an active ``kind`` record is reversed.

    Accumulating kinds are removed with a same-kind marker record.

    Raises:
        ValidationError: If ``kind`` is itself a point-in-time event.
    """
    match kind:
        case ActionKind.BAN:
            return ActionKind.UNBAN
        case ActionKind.MUTE:
            return ActionKind.UNMUTE
        case ActionKind.TIMEOUT:
            return ActionKind.UNTIMEOUT
        case ActionKind.WARNING | ActionKind.COMMUNITYBAN | ActionKind.GAMEBAN:
            return kind
        case ActionKind.UNBAN | ActionKind.UNMUTE | ActionKind.UNTIMEOUT | ActionKind.KICK:
            raise ValidationError(f"A {kind.label} cannot be reversed")
        case _:
            assert_never(kind)


def removal_reason(kind: ActionKind, reason: str) -> str:
    """Reason text for the marker record that removes an accumulating record."""
    return f"Removed {kind.label}: {reason}"


@dataclass(frozen=True, slots=True)
class ModerationAction:
    """Immutable snapshot of one ledger record.

    Attributes:
        id: Case ID, assigned by the store, never reused.
        guild_id: Guild the action applies to.
        target_id: User the action was taken against.
        moderator_id: User who issued the action.
        kind: Action kind.
        reason: Non-empty justification.
        created_at: Creation time in unix milliseconds.
        duration: Length in milliseconds for expiring actions, else None.
        expires_at: ``created_at + duration`` or None.
        is_active: Whether the record still has effect (or, for accumulating
            kinds, has not been removed).
    """

    id: int
    guild_id: GuildID
    target_id: UserID
    moderator_id: UserID
    kind: ActionKind
    reason: str
    created_at: int
    duration: Optional[int] = None
    expires_at: Optional[int] = None
    is_active: bool = True

    def __post_init__(self) -> None:
        if not self.reason or not self.reason.strip():
            raise ValidationError("A reason is required")
        if (self.duration is None) != (self.expires_at is None):
            raise ValidationError("duration and expires_at must both be set or both be empty")

    def is_expired(self, now: int) -> bool:
        """True once ``now`` has reached ``expires_at``."""
        return self.expires_at is not None and self.expires_at <= now

    def is_in_effect(self, now: int) -> bool:
        """Active and not yet expired at ``now``."""
        return self.is_active and not self.is_expired(now)

    @property
    def is_permanent(self) -> bool:
        return self.duration is None


@dataclass(frozen=True, slots=True)
class HistoryFilter:
    """Optional filters for ledger history queries."""

    target_id: Optional[UserID] = None
    moderator_id: Optional[UserID] = None
    kind: Optional[ActionKind] = None
