"""Leveling Cog for Modblox.

Counts guild messages through the leveling engine, announces level-ups with
the configured reward role, and exposes /levels, /leaderboard and /levelrole.
"""

from __future__ import annotations

from typing import Optional

import discord
from discord import Option
from discord.ext import commands

from modblox.bot.bot_services import BotServices, bot_services
from modblox.datatypes.discord_datatypes import RoleID, UserID
from modblox.datatypes.level_datatypes import LevelUpResult
from modblox.errors import ModbloxError
from modblox.leveling.engine import MAX_LEVEL
from modblox.ui.embeds import error_embed, leaderboard_embed, level_embed
from modblox.util.discord_utils import add_role, has_permissions
from modblox.util.logger import get_logger

logger = get_logger("leveling_cog")

MILESTONE_MESSAGES = {
    100: "👑 **Maximum Level Achieved!** You're a server legend!",
    50: "⭐ **Halfway to the top!** Keep up the amazing participation!",
    25: "🌟 **Quarter Century!** You're becoming a server veteran!",
    10: "🎯 **Double digits!** You're really getting active!",
}

LEADERBOARD_MAX = 25


class LevelingCog(commands.Cog):
    """Message counting listener and leveling commands."""

    levelrole = discord.SlashCommandGroup("levelrole", "Configure roles awarded at levels.")

    def __init__(self, discord_bot_instance, services: Optional[BotServices] = None):
        self.bot = discord_bot_instance
        self.discord_bot_instance = discord_bot_instance
        self.services = services or bot_services
        logger.info("Leveling cog loaded")

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message) -> None:
        """Count the message and announce a level-up if one happened."""
        if message.author.bot or message.guild is None:
            return
        if not self.services.config.leveling_enabled:
            return

        try:
            result = await self.services.leveling.ingest_message(UserID.from_user(message.author))
        except ModbloxError as exc:
            logger.warning("[LEVELING] Could not count message %s: %s", message.id, exc)
            return

        if result.leveled_up:
            await self.handle_level_up(message, result)

    async def handle_level_up(self, message: discord.Message, result: LevelUpResult) -> None:
        member = message.author
        new_level = result.new_level
        text = f"🎉 Congratulations {member.mention}! You've reached **Level {new_level}**!"

        role_id = self.services.level_roles.get(new_level)
        if role_id is not None and isinstance(member, discord.Member):
            role = await add_role(member, role_id, f"Level {new_level} reward")
            if role is not None:
                text += f"\n🎭 You've been awarded the **{role.name}** role!"

        milestone = MILESTONE_MESSAGES.get(new_level)
        if milestone:
            text += f"\n{milestone}"

        try:
            await message.channel.send(text)
        except discord.HTTPException as exc:
            logger.warning("[LEVELING] Failed to announce level-up in %s: %s", message.channel, exc)

    @commands.slash_command(name="levels", description="Show leveling progress.")
    async def levels(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "Whose progress to show (defaults to you).", required=False, default=None),  # type: ignore
    ) -> None:
        target = user or ctx.author
        progress = await self.services.leveling.get_progress(UserID.from_user(target))
        await ctx.respond(embed=level_embed(target, progress, is_own=target.id == ctx.author.id))

    @commands.slash_command(name="leaderboard", description="Show the most active members.")
    async def leaderboard(
        self,
        ctx: discord.ApplicationContext,
        limit: Option(int, "Number of members to show (max 25).", min_value=1, max_value=LEADERBOARD_MAX, default=10),  # type: ignore
    ) -> None:
        entries = await self.services.leveling.leaderboard(min(limit, LEADERBOARD_MAX))
        stats = await self.services.leveling.stats()
        embed = leaderboard_embed(entries)
        embed.set_footer(
            text=(
                f"{stats.total_users} members • average level {stats.average_level} • "
                f"{stats.total_messages} messages counted"
            )
        )
        await ctx.respond(embed=embed)

    async def _require_manage_roles(self, ctx: discord.ApplicationContext) -> bool:
        if not has_permissions(ctx, manage_roles=True):
            await ctx.respond("You do not have permission to use this command.", ephemeral=True)
            return False
        return True

    @levelrole.command(name="set", description="Award a role when members reach a level.")
    async def levelrole_set(
        self,
        ctx: discord.ApplicationContext,
        level: Option(int, "Level that awards the role.", min_value=1, max_value=MAX_LEVEL),  # type: ignore
        role: Option(discord.Role, "Role to award."),  # type: ignore
    ) -> None:
        if not await self._require_manage_roles(ctx):
            return
        try:
            await self.services.level_roles.set(level, RoleID(role.id))
        except ModbloxError as exc:
            await ctx.respond(embed=error_embed("Invalid Level", str(exc)), ephemeral=True)
            return
        await ctx.respond(f"✅ Members reaching level {level} will receive {role.mention}.", ephemeral=True)

    @levelrole.command(name="remove", description="Stop awarding a role at a level.")
    async def levelrole_remove(
        self,
        ctx: discord.ApplicationContext,
        level: Option(int, "Level to clear.", min_value=1, max_value=MAX_LEVEL),  # type: ignore
    ) -> None:
        if not await self._require_manage_roles(ctx):
            return
        try:
            removed = await self.services.level_roles.remove(level)
        except ModbloxError as exc:
            await ctx.respond(embed=error_embed("Invalid Level", str(exc)), ephemeral=True)
            return
        if removed:
            await ctx.respond(f"✅ Level {level} no longer awards a role.", ephemeral=True)
        else:
            await ctx.respond(f"No role is configured for level {level}.", ephemeral=True)

    @levelrole.command(name="list", description="List the level reward roles.")
    async def levelrole_list(self, ctx: discord.ApplicationContext) -> None:
        roles = self.services.level_roles.all()
        if not roles:
            await ctx.respond("No level roles are configured.", ephemeral=True)
            return
        lines = [f"Level {level}: <@&{role_id}>" for level, role_id in roles.items()]
        await ctx.respond("\n".join(lines), ephemeral=True)


def setup(discord_bot_instance):
    """Register the LevelingCog with the bot."""
    discord_bot_instance.add_cog(LevelingCog(discord_bot_instance))
