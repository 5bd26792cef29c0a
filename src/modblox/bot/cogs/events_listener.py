"""Event listener Cog for Modblox.

This cog handles bot lifecycle events (on_ready), nickname sync for verified
members who join a guild, and command error handling.
"""

from typing import Optional

import discord
from discord.ext import commands

from modblox.bot.bot_services import BotServices, bot_services
from modblox.datatypes.discord_datatypes import UserID
from modblox.util.discord_utils import set_member_nickname
from modblox.util.logger import get_logger

logger = get_logger("events_listener_cog")


class EventsListenerCog(commands.Cog):
    """Cog containing bot lifecycle, member join and command error handlers."""

    def __init__(self, discord_bot_instance, services: Optional[BotServices] = None):
        """Initialize the events listener cog.

        Parameters
        ----------
        discord_bot_instance:
            The Discord bot instance to attach this cog to.
        services:
            Shared runtime services; defaults to the process-wide instance.
        """
        self.bot = discord_bot_instance
        self.discord_bot_instance = discord_bot_instance
        self.services = services or bot_services
        logger.info("Events listener cog loaded")

    @commands.Cog.listener(name='on_ready')
    async def on_ready(self):
        """Log the connection and set the bot's presence."""
        if self.bot.user:
            await self.bot.change_presence(
                status=discord.Status.online,
                activity=discord.Activity(type=discord.ActivityType.watching, name="over the community"),
            )
            logger.info(f"Bot connected as {self.bot.user} (ID: {self.bot.user.id})")
        else:
            logger.warning("Bot partially connected, but user information not yet available.")

        logger.info("--==--==--==--==--==--==--==--==--==--==--==--==--==--==--==--==--")

    @commands.Cog.listener(name='on_member_join')
    async def on_member_join(self, member: discord.Member):
        """Give verified members their Roblox username as nickname when they join."""
        if member.bot:
            return
        link = await self.services.verification.lookup_by_local_id(UserID.from_user(member))
        if link is None:
            return

        logger.info(f"Verified user {member} joined {member.guild.name}")
        if await set_member_nickname(member, link.roblox_username, "Roblox verification sync"):
            logger.info(f"Updated nickname for {member} to {link.roblox_username}")
        else:
            logger.info(f"Could not update nickname for {member}")

    @commands.Cog.listener(name='on_application_command_error')
    async def on_application_command_error(self, application_context: discord.ApplicationContext, error: Exception):
        """Handle errors from application commands with logging and user feedback.

        Parameters
        ----------
        application_context:
            The command invocation context.
        error:
            The exception raised during command execution.
        """
        # Ignore commands that don't exist
        if isinstance(error, commands.CommandNotFound):
            return

        command_name = getattr(application_context.command, 'name', '<unknown>')
        logger.error(f"Error in command '{command_name}': {error}", exc_info=True)

        error_message = "Something went wrong while running this command."
        try:
            await application_context.respond(error_message, ephemeral=True)
        except discord.InteractionResponded:
            await application_context.followup.send(error_message, ephemeral=True)


def setup(discord_bot_instance):
    """Register the EventsListenerCog with the bot.

    Parameters
    ----------
    discord_bot_instance:
        The Discord bot instance to add this cog to.
    """
    discord_bot_instance.add_cog(EventsListenerCog(discord_bot_instance))
