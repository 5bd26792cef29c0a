"""History and statistics commands backed by the moderation ledger."""

from __future__ import annotations

from typing import Dict, Optional

import discord
from discord import Option
from discord.ext import commands

from modblox.bot.bot_services import BotServices, bot_services
from modblox.datatypes.action_datatypes import ActionKind, HistoryFilter, KindGroup
from modblox.datatypes.discord_datatypes import GuildID, UserID
from modblox.errors import ModbloxError, NotFoundError
from modblox.moderation.duration import DAY_MS
from modblox.moderation.ledger import HISTORY_HARD_CAP
from modblox.ui.embeds import command_history_embed, error_embed, history_embed, modstats_embed
from modblox.util.discord_utils import discord_timestamp, has_permissions, has_staff_role
from modblox.util.logger import get_logger

logger = get_logger("history_cog")

HISTORY_LIMIT_MAX = 25

TIMEFRAMES: Dict[str, Optional[int]] = {
    "1d": DAY_MS,
    "7d": 7 * DAY_MS,
    "30d": 30 * DAY_MS,
    "90d": 90 * DAY_MS,
    "all": None,
}

TIMEFRAME_LABELS = {
    "1d": "Last 24 hours",
    "7d": "Last 7 days",
    "30d": "Last 30 days",
    "90d": "Last 90 days",
    "all": "All time",
}

ACTION_CHOICES = [kind.value for kind in ActionKind]


class HistoryCog(commands.Cog):
    """Read-only views over the ledger: /history, /cmdhistory and /modstats."""

    def __init__(self, discord_bot_instance, services: Optional[BotServices] = None):
        self.discord_bot_instance = discord_bot_instance
        self.services = services or bot_services
        logger.info("History cog loaded")

    def _is_staff(self, ctx: discord.ApplicationContext) -> bool:
        config = self.services.config
        return isinstance(ctx.author, discord.Member) and has_staff_role(
            ctx.author, config.staff_role_ids, config.staff_guild_id
        )

    async def _status_line(self, guild_id: GuildID, target_id: UserID) -> str:
        """Banned / Muted / Clean, with expiry, from the ledger's in-effect records."""
        ledger = self.services.ledger
        lines = []
        for group, label in ((KindGroup.BAN, "🔨 Banned"), (KindGroup.MUTE, "🔇 Muted")):
            effect = await ledger.get_active_effect(guild_id, target_id, group)
            if effect is None:
                continue
            if effect.expires_at is None:
                lines.append(f"{label} permanently (case #{effect.id})")
            else:
                lines.append(f"{label} until {discord_timestamp(effect.expires_at, 'F')} (case #{effect.id})")
        return "\n".join(lines) if lines else "✅ Clean"

    @commands.slash_command(name="history", description="Show a user's moderation history.")
    async def history(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user to look up.", required=True),  # type: ignore
        limit: Option(int, "Number of records to show (max 25).", min_value=1, max_value=HISTORY_LIMIT_MAX, default=10),  # type: ignore
    ) -> None:
        """Current status plus the newest records for one user."""
        await ctx.defer(ephemeral=True)
        if ctx.guild is None or not has_permissions(ctx, moderate_members=True):
            await ctx.send_followup("You do not have permission to use this command.", ephemeral=True)
            return

        guild_id = GuildID.from_guild(ctx.guild)
        target_id = UserID.from_user(user)
        try:
            records = await self.services.ledger.query_history(
                guild_id, HistoryFilter(target_id=target_id), limit=min(limit, HISTORY_LIMIT_MAX)
            )
            summary = await self.services.cross_reference.summarize(guild_id, target_id)
            status = await self._status_line(guild_id, target_id)
        except ModbloxError as exc:
            await ctx.send_followup(embed=error_embed("History Unavailable", str(exc)), ephemeral=True)
            return

        embed = history_embed(user, records, summary)
        embed.insert_field_at(0, name="Current Status", value=status, inline=False)
        await ctx.send_followup(embed=embed, ephemeral=True)

    async def _show_case(self, ctx: discord.ApplicationContext, case_id: int) -> None:
        """Reply with one case; cases from other guilds are reported as missing."""
        try:
            record = await self.services.ledger.get_case(case_id)
            if record.guild_id != GuildID.from_guild(ctx.guild):
                raise NotFoundError(f"Case #{case_id} does not exist")
        except ModbloxError as exc:
            await ctx.send_followup(embed=error_embed("Case Not Found", str(exc)), ephemeral=True)
            return
        await ctx.send_followup(embed=command_history_embed([record], f"Case #{case_id}"), ephemeral=True)

    @commands.slash_command(name="cmdhistory", description="Search recent moderation commands.")
    async def cmdhistory(
        self,
        ctx: discord.ApplicationContext,
        moderator: Option(discord.User, "Only actions by this moderator.", required=False, default=None),  # type: ignore
        target: Option(discord.User, "Only actions against this user.", required=False, default=None),  # type: ignore
        action: Option(str, "Only this kind of action.", choices=ACTION_CHOICES, required=False, default=None),  # type: ignore
        limit: Option(int, "Number of records to show (max 50).", min_value=1, max_value=HISTORY_HARD_CAP, default=10),  # type: ignore
        case: Option(int, "Show a single case by its number.", min_value=1, required=False, default=None),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        if ctx.guild is None or not self._is_staff(ctx):
            await ctx.send_followup("Only staff members can use this command.", ephemeral=True)
            return

        if case is not None:
            await self._show_case(ctx, case)
            return

        filters = HistoryFilter(
            target_id=UserID.from_user(target) if target else None,
            moderator_id=UserID.from_user(moderator) if moderator else None,
            kind=ActionKind(action) if action else None,
        )
        try:
            records = await self.services.ledger.query_history(
                GuildID.from_guild(ctx.guild), filters, limit=limit
            )
        except ModbloxError as exc:
            await ctx.send_followup(embed=error_embed("History Unavailable", str(exc)), ephemeral=True)
            return

        parts = []
        if moderator:
            parts.append(f"Moderator: {moderator.mention}")
        if target:
            parts.append(f"Target: {target.mention}")
        if action:
            parts.append(f"Action: {action}")
        await ctx.send_followup(embed=command_history_embed(records, " • ".join(parts)), ephemeral=True)

    @commands.slash_command(name="modstats", description="Show moderation statistics for this server.")
    async def modstats(
        self,
        ctx: discord.ApplicationContext,
        timeframe: Option(str, "Time window.", choices=list(TIMEFRAMES), default="30d"),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        if ctx.guild is None or not has_permissions(ctx, moderate_members=True):
            await ctx.send_followup("You do not have permission to use this command.", ephemeral=True)
            return

        window = TIMEFRAMES.get(timeframe)
        since = self.services.clock() - window if window is not None else None
        stats = await self.services.cross_reference.guild_stats(GuildID.from_guild(ctx.guild), since=since)
        embed = modstats_embed(ctx.guild.name, stats, TIMEFRAME_LABELS.get(timeframe, timeframe))
        await ctx.send_followup(embed=embed, ephemeral=True)


def setup(discord_bot_instance):
    """Register the HistoryCog with the bot."""
    discord_bot_instance.add_cog(HistoryCog(discord_bot_instance))
