"""
Moderation cog: slash commands that record disciplinary actions.

Every command follows the same sequence:

1. permission checks (Discord permission, or staff role for the ledger-only
   kinds warning / community ban / game ban),
2. duration parsing for the commands that take one,
3. the ledger write, which decides whether the action is allowed at all
   (an active ban or mute is a conflict, a reversal needs something to
   reverse),
4. the Discord side effect (ban, kick, timeout, unban),
5. best-effort DM to the target and a post in the moderation log channel.

The ledger record stands even when the Discord side effect fails; the reply
then carries a note saying so.

Quick usage example
    from modblox.bot.cogs.moderation_cmds import ModerationActionCog
    bot.add_cog(ModerationActionCog(bot))
"""

from __future__ import annotations

import datetime
from typing import Awaitable, Optional

import discord
from discord import Option
from discord.ext import commands

from modblox.bot.bot_services import BotServices, bot_services
from modblox.datatypes.action_datatypes import ActionKind, KindGroup, ModerationAction
from modblox.datatypes.discord_datatypes import GuildID, UserID
from modblox.errors import ConflictError, ModbloxError, ReversalError
from modblox.moderation import duration as durations
from modblox.ui.embeds import action_embed, dm_embed, error_embed
from modblox.util.discord_utils import has_permissions, has_staff_role, send_dm, send_to_mod_log
from modblox.util.logger import get_logger

logger = get_logger("moderation_cog")


class ModerationActionCog(commands.Cog):
    """Cog containing the moderation slash commands.

    Each command defers its response ephemerally, runs the shared checks,
    writes to the ledger through ``services.ledger`` and only then touches
    Discord.
    """

    warning = discord.SlashCommandGroup("warning", "Add or remove warnings.")
    communityban = discord.SlashCommandGroup("communityban", "Add or remove community bans.")
    gameban = discord.SlashCommandGroup("gameban", "Add or remove game bans.")

    def __init__(self, discord_bot_instance, services: Optional[BotServices] = None):
        self.discord_bot_instance = discord_bot_instance
        self.services = services or bot_services
        logger.info("Moderation cog loaded")

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    async def _reply(
        self,
        ctx: discord.ApplicationContext,
        message: Optional[str] = None,
        embed: Optional[discord.Embed] = None,
    ) -> None:
        await ctx.send_followup(content=message, embed=embed, ephemeral=True)

    async def check_moderation_permissions(
        self,
        application_context: discord.ApplicationContext,
        target_user: discord.abc.User,
        required_permission_name: Optional[str] = None,
        staff_only: bool = False,
    ) -> bool:
        """Run shared pre-checks for moderation commands.

        Parameters
        ----------
        application_context:
            Slash command context for the invoking moderator.
        target_user:
            User the moderation action targets.
        required_permission_name:
            Discord permission attribute required for the action, if any.
        staff_only:
            Require one of the configured staff roles instead.

        Returns
        -------
        bool
            ``True`` when allowed to proceed; ``False`` if an error was sent to invoker.
        """
        if application_context.guild is None:
            await self._reply(application_context, "This command can only be used in a server.")
            return False

        if required_permission_name and not has_permissions(
            application_context, **{required_permission_name: True}
        ):
            await self._reply(application_context, "You do not have permission to use this command.")
            return False

        if staff_only:
            config = self.services.config
            author = application_context.author
            if not isinstance(author, discord.Member) or not has_staff_role(
                author, config.staff_role_ids, config.staff_guild_id
            ):
                await self._reply(application_context, "Only staff members can use this command.")
                return False

        if target_user.id == application_context.user.id:
            await self._reply(application_context, "You cannot perform moderation actions on yourself.")
            return False

        if isinstance(target_user, discord.Member) and target_user.guild_permissions.administrator:
            await self._reply(
                application_context, "You cannot perform moderation actions against administrators."
            )
            return False

        return True

    def _parse_duration(self, text: Optional[str], units) -> Optional[int]:
        return durations.parse_optional(text.strip() if text else text, units)

    async def _record(
        self,
        ctx: discord.ApplicationContext,
        user: discord.abc.User,
        kind: ActionKind,
        reason: str,
        duration: Optional[int] = None,
    ) -> Optional[ModerationAction]:
        """Write ``kind`` to the ledger, replying with the error and returning None on refusal."""
        try:
            return await self.services.ledger.record_action(
                GuildID.from_guild(ctx.guild),
                UserID.from_user(user),
                UserID.from_user(ctx.author),
                kind,
                reason,
                duration,
            )
        except ConflictError as exc:
            await self._reply(ctx, embed=error_embed("Already Active", f"{user.mention}: {exc}"))
        except ModbloxError as exc:
            await self._reply(ctx, embed=error_embed("Invalid Request", str(exc)))
        return None

    async def _reverse(
        self,
        ctx: discord.ApplicationContext,
        user: discord.abc.User,
        kind: ActionKind,
        reason: str,
    ) -> Optional[ModerationAction]:
        try:
            return await self.services.ledger.reverse_latest(
                GuildID.from_guild(ctx.guild),
                UserID.from_user(user),
                kind,
                UserID.from_user(ctx.author),
                reason,
            )
        except ReversalError:
            await self._reply(
                ctx,
                embed=error_embed("Nothing To Reverse", f"{user.mention} has no active {kind.label}."),
            )
        except ModbloxError as exc:
            await self._reply(ctx, embed=error_embed("Invalid Request", str(exc)))
        return None

    async def _platform_action(self, description: str, action: Awaitable) -> Optional[str]:
        """Await a Discord call; returns a note for the reply if it failed."""
        try:
            await action
            return None
        except discord.Forbidden:
            logger.warning("Missing permission to %s", description)
            return f"Recorded, but I lack permission to {description}."
        except discord.HTTPException as exc:
            logger.error("Discord rejected %s: %s", description, exc)
            return f"Recorded, but Discord rejected the request to {description}."

    def _member(self, ctx: discord.ApplicationContext, user: discord.abc.User) -> Optional[discord.Member]:
        if isinstance(user, discord.Member):
            return user
        return ctx.guild.get_member(user.id)

    async def _notify(self, ctx: discord.ApplicationContext, user: discord.abc.User, record: ModerationAction) -> None:
        if self.services.config.dm_targets and not user.bot:
            await send_dm(user, dm_embed(record, ctx.guild.name))

    async def _announce(
        self,
        ctx: discord.ApplicationContext,
        user: discord.abc.User,
        record: ModerationAction,
        note: Optional[str] = None,
    ) -> None:
        embed = action_embed(record, user, ctx.author, note=note)
        await self._reply(ctx, embed=embed)
        await send_to_mod_log(ctx.guild, self.services.config.mod_log_channel_keywords, embed)

    async def _run_guarded(self, ctx: discord.ApplicationContext, coroutine: Awaitable) -> None:
        try:
            await coroutine
        except Exception as e:
            logger.exception("Error executing moderation action: %s", e)
            try:
                await self._reply(ctx, "An error occurred while processing the command.")
            except discord.HTTPException:
                logger.error("Failed to send error response to user.")

    # ------------------------------------------------------------------
    # Ban family
    # ------------------------------------------------------------------

    @commands.slash_command(name="ban", description="Ban a user from the server.")
    async def ban(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user to ban.", required=True),  # type: ignore
        reason: Option(str, "Reason for the ban.", required=True),  # type: ignore
        duration: Option(str, "Ban length, e.g. 7d, 2w, 3mo, 1y. Leave empty for permanent.", required=False, default=None),  # type: ignore
    ) -> None:
        """Ban a user, optionally for a limited time."""
        await ctx.defer(ephemeral=True)
        if not await self.check_moderation_permissions(ctx, user, "ban_members"):
            return
        await self._run_guarded(ctx, self._ban(ctx, user, reason, duration))

    async def _ban(self, ctx, user, reason: str, duration_text: Optional[str]) -> None:
        try:
            duration = self._parse_duration(duration_text, durations.BAN_UNITS)
        except ModbloxError as exc:
            await self._reply(ctx, embed=error_embed("Invalid Duration", str(exc)))
            return

        record = await self._record(ctx, user, ActionKind.BAN, reason, duration)
        if record is None:
            return
        await self._notify(ctx, user, record)
        note = await self._platform_action(
            f"ban {user}", ctx.guild.ban(user, reason=f"{reason} | Moderator: {ctx.author}")
        )
        await self._announce(ctx, user, record, note)

    @commands.slash_command(name="unban", description="Unban a user.")
    async def unban(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user to unban.", required=True),  # type: ignore
        reason: Option(str, "Reason for the unban.", required=True),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        if not await self.check_moderation_permissions(ctx, user, "ban_members"):
            return
        await self._run_guarded(ctx, self._unban(ctx, user, reason))

    async def _unban(self, ctx, user, reason: str) -> None:
        record = await self._reverse(ctx, user, ActionKind.BAN, reason)
        if record is None:
            return
        note = await self._platform_action(
            f"unban {user}", ctx.guild.unban(user, reason=f"{reason} | Moderator: {ctx.author}")
        )
        await self._notify(ctx, user, record)
        await self._announce(ctx, user, record, note)

    @commands.slash_command(name="kick", description="Kick a user from the server.")
    async def kick(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The user to kick.", required=True),  # type: ignore
        reason: Option(str, "Reason for the kick.", required=True),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        if not await self.check_moderation_permissions(ctx, user, "kick_members"):
            return
        await self._run_guarded(ctx, self._kick(ctx, user, reason))

    async def _kick(self, ctx, user, reason: str) -> None:
        member = self._member(ctx, user)
        if member is None:
            await self._reply(ctx, "The specified user is not a member of this server.")
            return
        record = await self._record(ctx, member, ActionKind.KICK, reason)
        if record is None:
            return
        await self._notify(ctx, member, record)
        note = await self._platform_action(
            f"kick {member}", member.kick(reason=f"{reason} | Moderator: {ctx.author}")
        )
        await self._announce(ctx, member, record, note)

    # ------------------------------------------------------------------
    # Mute family
    # ------------------------------------------------------------------

    async def _apply_timeout(self, ctx, user, record: ModerationAction) -> Optional[str]:
        if record.kind is not ActionKind.TIMEOUT or record.duration is None:
            return None
        member = self._member(ctx, user)
        if member is None:
            return "Recorded, but the user is not in the server so no Discord timeout was applied."
        return await self._platform_action(
            f"time out {member}",
            member.timeout_for(
                datetime.timedelta(milliseconds=record.duration),
                reason=f"{record.reason} | Moderator: {ctx.author}",
            ),
        )

    async def _remove_timeout(self, ctx, user, reason: str) -> Optional[str]:
        member = self._member(ctx, user)
        if member is None:
            return None
        return await self._platform_action(
            f"remove the timeout of {member}",
            member.remove_timeout(reason=f"{reason} | Moderator: {ctx.author}"),
        )

    @commands.slash_command(name="mute", description="Mute a user.")
    async def mute(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user to mute.", required=True),  # type: ignore
        reason: Option(str, "Reason for the mute.", required=True),  # type: ignore
        duration: Option(str, "Mute length, e.g. 1h, 1d, 1w. Leave empty for permanent.", required=False, default=None),  # type: ignore
    ) -> None:
        """Mute a user. Durations up to 28 days become a native Discord timeout."""
        await ctx.defer(ephemeral=True)
        if not await self.check_moderation_permissions(ctx, user, "moderate_members"):
            return
        await self._run_guarded(ctx, self._mute(ctx, user, reason, duration, durations.MUTE_UNITS))

    @commands.slash_command(name="timeout", description="Timeout a user for a specified duration.")
    async def timeout(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The user to timeout.", required=True),  # type: ignore
        duration: Option(str, "Timeout length, e.g. 30m, 12h, 7d (max 28d).", required=True),  # type: ignore
        reason: Option(str, "Reason for the timeout.", required=True),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        if not await self.check_moderation_permissions(ctx, user, "moderate_members"):
            return
        await self._run_guarded(
            ctx, self._mute(ctx, user, reason, duration, durations.TIMEOUT_UNITS, force_timeout=True)
        )

    async def _mute(
        self,
        ctx,
        user,
        reason: str,
        duration_text: Optional[str],
        units,
        force_timeout: bool = False,
    ) -> None:
        try:
            if force_timeout:
                duration: Optional[int] = durations.parse(duration_text.strip(), units)
            else:
                duration = self._parse_duration(duration_text, units)
        except ModbloxError as exc:
            await self._reply(ctx, embed=error_embed("Invalid Duration", str(exc)))
            return

        kind = ActionKind.TIMEOUT if force_timeout else durations.select_mute_kind(duration)
        record = await self._record(ctx, user, kind, reason, duration)
        if record is None:
            return
        note = await self._apply_timeout(ctx, user, record)
        await self._notify(ctx, user, record)
        await self._announce(ctx, user, record, note)

    @commands.slash_command(name="unmute", description="Unmute a user.")
    async def unmute(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user to unmute.", required=True),  # type: ignore
        reason: Option(str, "Reason for the unmute.", required=True),  # type: ignore
    ) -> None:
        """Lift whichever mute or timeout is currently in effect."""
        await ctx.defer(ephemeral=True)
        if not await self.check_moderation_permissions(ctx, user, "moderate_members"):
            return
        await self._run_guarded(ctx, self._unmute(ctx, user, reason))

    async def _unmute(self, ctx, user, reason: str) -> None:
        current = await self.services.ledger.get_active_effect(
            GuildID.from_guild(ctx.guild), UserID.from_user(user), KindGroup.MUTE
        )
        if current is None:
            await self._reply(ctx, embed=error_embed("Not Muted", f"{user.mention} is not muted."))
            return
        record = await self._reverse(ctx, user, current.kind, reason)
        if record is None:
            return
        note = None
        if current.kind is ActionKind.TIMEOUT:
            note = await self._remove_timeout(ctx, user, reason)
        await self._notify(ctx, user, record)
        await self._announce(ctx, user, record, note)

    @commands.slash_command(name="untimeout", description="Remove a user's timeout.")
    async def untimeout(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The user to remove the timeout from.", required=True),  # type: ignore
        reason: Option(str, "Reason for removing the timeout.", required=True),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        if not await self.check_moderation_permissions(ctx, user, "moderate_members"):
            return
        await self._run_guarded(ctx, self._untimeout(ctx, user, reason))

    async def _untimeout(self, ctx, user, reason: str) -> None:
        record = await self._reverse(ctx, user, ActionKind.TIMEOUT, reason)
        if record is None:
            return
        note = await self._remove_timeout(ctx, user, reason)
        await self._notify(ctx, user, record)
        await self._announce(ctx, user, record, note)

    # ------------------------------------------------------------------
    # Ledger-only kinds (staff role)
    # ------------------------------------------------------------------

    async def _add_marker(self, ctx, user, kind: ActionKind, reason: str) -> None:
        if not await self.check_moderation_permissions(ctx, user, staff_only=True):
            return
        record = await self._record(ctx, user, kind, reason)
        if record is None:
            return
        total = await self.services.ledger.count_active_of_kind(
            GuildID.from_guild(ctx.guild), UserID.from_user(user), kind
        )
        await self._notify(ctx, user, record)
        await self._announce(ctx, user, record, f"Active {kind.label}s: {total}")

    async def _remove_marker(self, ctx, user, kind: ActionKind, reason: str) -> None:
        if not await self.check_moderation_permissions(ctx, user, staff_only=True):
            return
        record = await self._reverse(ctx, user, kind, reason)
        if record is None:
            return
        total = await self.services.ledger.count_active_of_kind(
            GuildID.from_guild(ctx.guild), UserID.from_user(user), kind
        )
        await self._announce(ctx, user, record, f"Active {kind.label}s: {total}")

    @warning.command(name="add", description="Warn a user.")
    async def warning_add(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user to warn.", required=True),  # type: ignore
        reason: Option(str, "Reason for the warning.", required=True),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        await self._run_guarded(ctx, self._add_marker(ctx, user, ActionKind.WARNING, reason))

    @warning.command(name="remove", description="Remove a user's latest warning.")
    async def warning_remove(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user whose warning to remove.", required=True),  # type: ignore
        reason: Option(str, "Reason for removing the warning.", required=True),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        await self._run_guarded(ctx, self._remove_marker(ctx, user, ActionKind.WARNING, reason))

    @communityban.command(name="add", description="Community-ban a user.")
    async def communityban_add(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user to community-ban.", required=True),  # type: ignore
        reason: Option(str, "Reason for the community ban.", required=True),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        await self._run_guarded(ctx, self._add_marker(ctx, user, ActionKind.COMMUNITYBAN, reason))

    @communityban.command(name="remove", description="Remove a user's latest community ban.")
    async def communityban_remove(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user whose community ban to remove.", required=True),  # type: ignore
        reason: Option(str, "Reason for removing the community ban.", required=True),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        await self._run_guarded(ctx, self._remove_marker(ctx, user, ActionKind.COMMUNITYBAN, reason))

    @gameban.command(name="add", description="Game-ban a user.")
    async def gameban_add(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user to game-ban.", required=True),  # type: ignore
        reason: Option(str, "Reason for the game ban.", required=True),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        await self._run_guarded(ctx, self._add_marker(ctx, user, ActionKind.GAMEBAN, reason))

    @gameban.command(name="remove", description="Remove a user's latest game ban.")
    async def gameban_remove(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user whose game ban to remove.", required=True),  # type: ignore
        reason: Option(str, "Reason for removing the game ban.", required=True),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        await self._run_guarded(ctx, self._remove_marker(ctx, user, ActionKind.GAMEBAN, reason))


def setup(discord_bot_instance):
    """Cog setup entry point.

    This function is used by the bot loader to register the cog with the
    running bot instance.
    """
    discord_bot_instance.add_cog(ModerationActionCog(discord_bot_instance))
