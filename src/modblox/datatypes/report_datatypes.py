"""Read-model types produced by the cross-reference resolver."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from modblox.datatypes.action_datatypes import ActionKind, ModerationAction
from modblox.datatypes.discord_datatypes import UserID
from modblox.datatypes.verification_datatypes import RobloxGroupRole, RobloxUser, VerifiedUser


@dataclass(frozen=True, slots=True)
class ModerationSummary:
    """Active accumulating records and the latest history for one target."""

    warnings: int
    community_bans: int
    game_bans: int
    recent_history: List[ModerationAction] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class GuildStats:
    """Guild-wide moderation figures over a time window."""

    total_actions: int
    by_kind: List[Tuple[ActionKind, int]]
    top_moderators: List[Tuple[UserID, int]]
    recent_activity: List[ModerationAction]
    active_bans: int
    active_mutes: int
    since: Optional[int] = None

    def share(self, count: int) -> float:
        """Percentage of ``total_actions`` represented by ``count``, one decimal."""
        if self.total_actions == 0:
            return 0.0
        return round(count / self.total_actions * 100, 1)

    def kind_counts(self) -> Dict[ActionKind, int]:
        return dict(self.by_kind)


@dataclass(frozen=True, slots=True)
class AccountAge:
    days: int
    years: int
    months: int


@dataclass(frozen=True, slots=True)
class PlayerReport:
    """Everything known about a Roblox player for ``/check``."""

    roblox_user: RobloxUser
    account_age: AccountAge
    thumbnail_url: Optional[str]
    community_groups: List[RobloxGroupRole]
    link: Optional[VerifiedUser]
    summary: Optional[ModerationSummary]
