"""
Verification cog: links Discord members to Roblox accounts.

Flow
- ``/verify`` issues a phrase code and shows a "Complete Verification" button.
- The button opens a modal asking for the Roblox username.
- On submit the Roblox profile is fetched, the code must appear in its
  description, and the accounts are linked. The member nickname is then
  synced to the Roblox username.

``/unverify`` removes a link after confirmation and ``/check`` renders what is
known about a Roblox player or a verified member.
"""

from __future__ import annotations

from typing import Optional

import discord
from discord import Option
from discord.ext import commands

from modblox.bot.bot_services import BotServices, bot_services
from modblox.datatypes.discord_datatypes import GuildID, UserID
from modblox.datatypes.verification_datatypes import VerifiedUser
from modblox.errors import ModbloxError, NotFoundError
from modblox.roblox.roblox_api import calculate_account_age, format_account_age
from modblox.ui.embeds import (
    already_verified_embed,
    error_embed,
    player_report_embed,
    verification_instructions_embed,
    verification_success_embed,
)
from modblox.ui.verification_ui import UnverifyConfirmView, VerificationView
from modblox.util.discord_utils import has_staff_role, set_member_nickname
from modblox.util.logger import get_logger

logger = get_logger("verification_cog")


class VerificationCog(commands.Cog):
    """Slash commands and interaction handlers for Roblox verification."""

    def __init__(self, discord_bot_instance, services: Optional[BotServices] = None):
        self.bot = discord_bot_instance
        self.discord_bot_instance = discord_bot_instance
        self.services = services or bot_services
        logger.info("Verification cog loaded")

    def _is_staff(self, member) -> bool:
        config = self.services.config
        return isinstance(member, discord.Member) and has_staff_role(
            member, config.staff_role_ids, config.staff_guild_id
        )

    # ------------------------------------------------------------------
    # /verify
    # ------------------------------------------------------------------

    @commands.slash_command(name="verify", description="Link your Discord account to your Roblox account.")
    async def verify(self, ctx: discord.ApplicationContext) -> None:
        discord_id = UserID.from_user(ctx.author)
        existing = await self.services.verification.lookup_by_local_id(discord_id)
        if existing is not None:
            await ctx.respond(embed=already_verified_embed(existing), ephemeral=True)
            return

        pending = self.services.pending_verifications.issue(discord_id)
        ttl_minutes = max(1, self.services.pending_verifications.ttl_ms // 60_000)
        view = VerificationView(ctx.author.id, self.complete_verification)
        await ctx.respond(
            embed=verification_instructions_embed(pending.code, ttl_minutes),
            view=view,
            ephemeral=True,
        )
        logger.info("[VERIFICATION] Issued verification code to %s", discord_id)

    async def complete_verification(self, interaction: discord.Interaction, roblox_username: str) -> None:
        """Handle the username modal: check the code and link the accounts."""
        await interaction.response.defer(ephemeral=True)
        discord_id = UserID.from_user(interaction.user)

        pending = self.services.pending_verifications.get(discord_id)
        if pending is None:
            await interaction.followup.send(
                embed=error_embed(
                    "Verification Expired",
                    "Your verification session has expired. Please use `/verify` again.",
                ),
                ephemeral=True,
            )
            return

        roblox_user = await self.services.roblox.get_user_by_username(roblox_username)
        if roblox_user is None:
            await interaction.followup.send(
                embed=error_embed(
                    "User Not Found", f"Could not find a Roblox user with the username **{roblox_username}**"
                ),
                ephemeral=True,
            )
            return

        owner = await self.services.verification.lookup_by_external_id(roblox_user.id)
        if owner is not None and owner != discord_id:
            await interaction.followup.send(
                embed=error_embed(
                    "Account Already Linked",
                    f"The Roblox account **{roblox_user.name}** is already linked to another Discord account.",
                ),
                ephemeral=True,
            )
            return

        if pending.code not in roblox_user.description:
            embed = error_embed(
                "Verification Code Not Found",
                f"The verification code `{pending.code}` was not found in your Roblox profile description.",
            )
            embed.add_field(
                name="Make sure to:",
                value=(
                    "• Add the code to your profile description\n"
                    "• Save your profile changes\n"
                    "• Wait a few minutes for changes to sync"
                ),
            )
            await interaction.followup.send(embed=embed, ephemeral=True)
            return

        try:
            await self.services.verification.verify_user(discord_id, roblox_user.id, roblox_user.name)
        except ModbloxError as exc:
            await interaction.followup.send(embed=error_embed("Verification Failed", str(exc)), ephemeral=True)
            return
        self.services.pending_verifications.consume(discord_id)

        nickname_updated = False
        guild = interaction.guild
        member = guild.get_member(interaction.user.id) if guild is not None else None
        if member is not None:
            nickname_updated = await set_member_nickname(member, roblox_user.name, "Roblox verification")

        thumbnail = await self.services.roblox.get_user_thumbnail(roblox_user.id)
        age = format_account_age(calculate_account_age(roblox_user.created))
        await interaction.followup.send(
            embed=verification_success_embed(roblox_user, age, thumbnail, nickname_updated),
            ephemeral=True,
        )

    # ------------------------------------------------------------------
    # /unverify
    # ------------------------------------------------------------------

    @commands.slash_command(name="unverify", description="Unlink a Discord account from its Roblox account.")
    async def unverify(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "Staff only: the member to unverify.", required=False, default=None),  # type: ignore
    ) -> None:
        target = user or ctx.author
        if target.id != ctx.author.id and not self._is_staff(ctx.author):
            await ctx.respond("Only staff members can unverify other users.", ephemeral=True)
            return

        link = await self.services.verification.lookup_by_local_id(UserID.from_user(target))
        if link is None:
            message = "You are not verified." if target.id == ctx.author.id else f"{target.mention} is not verified."
            await ctx.respond(embed=error_embed("Not Verified", message), ephemeral=True)
            return

        async def on_confirm(interaction: discord.Interaction) -> None:
            await self.confirm_unverify(interaction, target, link)

        embed = discord.Embed(
            title="⚠️ Confirm Unverification",
            description=f"Unlink {target.mention} from the Roblox account **{link.roblox_username}**?",
            color=discord.Color.orange(),
        )
        await ctx.respond(embed=embed, view=UnverifyConfirmView(ctx.author.id, on_confirm), ephemeral=True)

    async def confirm_unverify(
        self, interaction: discord.Interaction, target: discord.abc.User, link: VerifiedUser
    ) -> None:
        try:
            removed = await self.services.verification.unverify_user(UserID.from_user(target))
        except NotFoundError as exc:
            await interaction.response.edit_message(embed=error_embed("Not Verified", str(exc)), view=None)
            return

        guild = interaction.guild
        member = guild.get_member(target.id) if guild is not None else None
        if member is not None and member.nick == removed.roblox_username:
            await set_member_nickname(member, None, "Roblox unverification")

        embed = discord.Embed(
            title="🔓 Unverified",
            description=f"{target.mention} is no longer linked to **{removed.roblox_username}**.",
            color=discord.Color.green(),
        )
        await interaction.response.edit_message(embed=embed, view=None)

    # ------------------------------------------------------------------
    # /check
    # ------------------------------------------------------------------

    @commands.slash_command(name="check", description="Look up a Roblox player or a verified member.")
    async def check(
        self,
        ctx: discord.ApplicationContext,
        roblox_username: Option(str, "Roblox username or user id.", required=False, default=None),  # type: ignore
        user: Option(discord.User, "Verified Discord member.", required=False, default=None),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        if ctx.guild is None or not self._is_staff(ctx.author):
            await ctx.send_followup("Only staff members can use this command.", ephemeral=True)
            return

        guild_id = GuildID.from_guild(ctx.guild)
        query = roblox_username
        if not query and user is not None:
            link, summary = await self.services.cross_reference.lookup_member(guild_id, UserID.from_user(user))
            if link is None:
                embed = error_embed("Not Verified", f"{user.mention} has not linked a Roblox account.")
                embed.add_field(
                    name="Moderation",
                    value=(
                        f"⚠️ Warnings: {summary.warnings}\n"
                        f"🚫 Community bans: {summary.community_bans}\n"
                        f"🎮 Game bans: {summary.game_bans}"
                    ),
                )
                await ctx.send_followup(embed=embed, ephemeral=True)
                return
            query = str(link.roblox_id)

        if not query:
            await ctx.send_followup("Provide a Roblox username or a Discord user.", ephemeral=True)
            return

        try:
            report = await self.services.cross_reference.lookup_roblox(guild_id, query)
        except NotFoundError as exc:
            await ctx.send_followup(embed=error_embed("User Not Found", str(exc)), ephemeral=True)
            return
        await ctx.send_followup(embed=player_report_embed(report), ephemeral=True)


def setup(discord_bot_instance):
    """Register the VerificationCog with the bot."""
    discord_bot_instance.add_cog(VerificationCog(discord_bot_instance))
