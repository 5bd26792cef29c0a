"""
Cross-reference resolver: what do we know about this person?

Composes ledger reads with the Discord to Roblox identity link and, for
``/check``, the Roblox profile itself. Nothing here writes; ledger errors are
propagated unchanged.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, List, Optional, Protocol, Tuple

from modblox.datatypes.action_datatypes import ActionKind, HistoryFilter, KindGroup
from modblox.datatypes.discord_datatypes import GuildID, UserID
from modblox.datatypes.report_datatypes import GuildStats, ModerationSummary, PlayerReport
from modblox.datatypes.verification_datatypes import RobloxUser, VerifiedUser
from modblox.errors import NotFoundError
from modblox.moderation.ledger import ModerationLedger
from modblox.roblox.roblox_api import RobloxAPI, calculate_account_age
from modblox.util.logger import get_logger

logger = get_logger("cross_reference")

RECENT_HISTORY_LIMIT = 5
TOP_MODERATOR_LIMIT = 5


class IdentityLinks(Protocol):
    """Read-only Discord to Roblox lookup, implemented by VerificationService."""

    async def lookup_by_local_id(self, discord_id: UserID) -> Optional[VerifiedUser]: ...

    async def lookup_link_by_external_id(self, roblox_id: int) -> Optional[VerifiedUser]: ...


class CrossReferenceResolver:
    """Read paths behind ``/check``, ``/history`` and ``/modstats``."""

    def __init__(
        self,
        ledger: ModerationLedger,
        links: IdentityLinks,
        roblox: Optional[RobloxAPI] = None,
        community_group_ids: Iterable[int] = (),
    ) -> None:
        self._ledger = ledger
        self._links = links
        self._roblox = roblox
        self._community_group_ids = tuple(community_group_ids)

    async def summarize(self, guild_id: GuildID, target_id: UserID) -> ModerationSummary:
        """Active warning, community-ban and game-ban counts plus the last five records."""
        warnings = await self._ledger.count_active_of_kind(guild_id, target_id, ActionKind.WARNING)
        community_bans = await self._ledger.count_active_of_kind(guild_id, target_id, ActionKind.COMMUNITYBAN)
        game_bans = await self._ledger.count_active_of_kind(guild_id, target_id, ActionKind.GAMEBAN)
        recent = await self._ledger.query_history(
            guild_id, HistoryFilter(target_id=target_id), limit=RECENT_HISTORY_LIMIT
        )
        return ModerationSummary(
            warnings=warnings,
            community_bans=community_bans,
            game_bans=game_bans,
            recent_history=recent,
        )

    async def lookup_member(
        self, guild_id: GuildID, discord_id: UserID
    ) -> Tuple[Optional[VerifiedUser], ModerationSummary]:
        """Roblox link (if any) and moderation summary for a Discord user."""
        link = await self._links.lookup_by_local_id(discord_id)
        summary = await self.summarize(guild_id, discord_id)
        return link, summary

    def _require_roblox(self) -> RobloxAPI:
        if self._roblox is None:
            raise RuntimeError("CrossReferenceResolver was built without a Roblox client")
        return self._roblox

    async def _resolve_roblox_user(self, roblox: RobloxAPI, query: str) -> Optional[RobloxUser]:
        query = query.strip()
        if query.isdigit():
            return await roblox.get_user_by_id(int(query))
        return await roblox.get_user_by_username(query)

    async def lookup_roblox(self, guild_id: GuildID, query: str) -> PlayerReport:
        """Everything known about a Roblox player given a username or numeric id.

        Raises:
            NotFoundError: If Roblox has no such user.
        """
        roblox = self._require_roblox()
        roblox_user = await self._resolve_roblox_user(roblox, query)
        if roblox_user is None:
            raise NotFoundError(f"Could not find a Roblox user named {query!r}")

        thumbnail, groups, link = await asyncio.gather(
            roblox.get_user_thumbnail(roblox_user.id),
            roblox.get_community_groups(roblox_user.id, self._community_group_ids),
            self._links.lookup_link_by_external_id(roblox_user.id),
        )

        summary: Optional[ModerationSummary] = None
        if link is not None:
            full_link = await self._links.lookup_by_local_id(link.discord_id)
            link = full_link or link
            summary = await self.summarize(guild_id, link.discord_id)

        return PlayerReport(
            roblox_user=roblox_user,
            account_age=calculate_account_age(roblox_user.created),
            thumbnail_url=thumbnail,
            community_groups=groups,
            link=link,
            summary=summary,
        )

    async def guild_stats(self, guild_id: GuildID, since: Optional[int] = None) -> GuildStats:
        """Guild-wide figures, optionally limited to records created at or after ``since``."""
        total = await self._ledger.count_actions(guild_id, since=since)
        by_kind_raw = await self._ledger.count_by(guild_id, "kind", since=since)
        top_raw = await self._ledger.count_by(guild_id, "moderator_id", since=since, limit=TOP_MODERATOR_LIMIT)

        recent = await self._ledger.query_history(guild_id, limit=RECENT_HISTORY_LIMIT)
        if since is not None:
            recent = [record for record in recent if record.created_at >= since]

        by_kind: List[Tuple[ActionKind, int]] = [(ActionKind(kind), count) for kind, count in by_kind_raw]
        top_moderators: List[Tuple[UserID, int]] = [(UserID(mod), count) for mod, count in top_raw]

        return GuildStats(
            total_actions=total,
            by_kind=by_kind,
            top_moderators=top_moderators,
            recent_activity=recent,
            active_bans=await self._ledger.count_in_effect(guild_id, KindGroup.BAN),
            active_mutes=await self._ledger.count_in_effect(guild_id, KindGroup.MUTE),
            since=since,
        )
