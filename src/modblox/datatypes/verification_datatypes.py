"""Data structures for Discord to Roblox account links."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from modblox.datatypes.discord_datatypes import UserID


@dataclass(frozen=True, slots=True)
class PreviousAccount:
    """A Roblox account that used to be linked to a Discord user."""

    roblox_id: int
    roblox_username: str
    linked_at: int
    unlinked_at: int


@dataclass(frozen=True, slots=True)
class VerifiedUser:
    """A current Discord to Roblox link. Timestamps are unix milliseconds."""

    discord_id: UserID
    roblox_id: int
    roblox_username: str
    verified_at: int
    previous_accounts: List[PreviousAccount] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class PendingVerification:
    """A verification code issued to a Discord user and not yet redeemed."""

    discord_id: UserID
    code: str
    issued_at: int


@dataclass(frozen=True, slots=True)
class RobloxUser:
    """Subset of the Roblox users API profile used by the bot."""

    id: int
    name: str
    display_name: str
    description: str
    created: str
    is_banned: bool = False
    has_verified_badge: bool = False

    @classmethod
    def from_payload(cls, payload: dict) -> "RobloxUser":
        return cls(
            id=int(payload["id"]),
            name=str(payload.get("name", "")),
            display_name=str(payload.get("displayName") or payload.get("name", "")),
            description=str(payload.get("description") or ""),
            created=str(payload.get("created", "")),
            is_banned=bool(payload.get("isBanned", False)),
            has_verified_badge=bool(payload.get("hasVerifiedBadge", False)),
        )


@dataclass(frozen=True, slots=True)
class RobloxGroupRole:
    """A user's membership in a Roblox group."""

    group_id: int
    group_name: str
    role_name: str
    rank: int
    member_count: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "RobloxGroupRole":
        group = payload.get("group") or {}
        role = payload.get("role") or {}
        return cls(
            group_id=int(group["id"]),
            group_name=str(group.get("name", "")),
            role_name=str(role.get("name", "")),
            rank=int(role.get("rank", 0)),
            member_count=group.get("memberCount"),
        )
