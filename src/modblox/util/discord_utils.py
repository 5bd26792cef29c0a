"""
discord_utils.py
================

Stateless Discord helpers for Modblox: permission and staff-role checks,
moderation log channel discovery, DMs and nickname sync.

Every helper that talks to Discord reports failure through its return value
and logs the cause; callers treat Discord side effects as best-effort because
the ledger record has already been committed.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

import discord

from modblox.datatypes.discord_datatypes import GuildID, RoleID
from modblox.util.logger import get_logger

logger = get_logger("discord_utils")


def has_permissions(application_context: discord.ApplicationContext, **required_permissions) -> bool:
    """
    Check if the command issuer has all specified permissions in the guild.

    Args:
        application_context (discord.ApplicationContext): The command context.
        **required_permissions: Permission flags to check.

    Returns:
        bool: True if all permissions are present, False otherwise.
    """
    if not isinstance(application_context.author, discord.Member):
        return False
    permissions = application_context.author.guild_permissions
    return all(getattr(permissions, name, False) for name in required_permissions)


def has_staff_role(
    member: discord.Member,
    staff_role_ids: Sequence[RoleID],
    staff_guild_id: Optional[GuildID] = None,
) -> bool:
    """
    Check a member against the configured staff roles.

    An empty ``staff_role_ids`` lets everyone through. When ``staff_guild_id``
    is set, members of any other guild are rejected.
    """
    guild = getattr(member, "guild", None)
    if staff_guild_id is not None and guild is not None and GuildID(guild.id) != staff_guild_id:
        return False
    if not staff_role_ids:
        return True
    member_roles = {RoleID(role.id) for role in getattr(member, "roles", [])}
    return any(role_id in member_roles for role_id in staff_role_ids)


def find_mod_log_channel(guild: discord.Guild, keywords: Iterable[str]) -> Optional[discord.TextChannel]:
    """
    Return the first text channel whose name contains one of ``keywords``.

    Keywords are tried in order so the more specific names win.
    """
    channels = list(getattr(guild, "text_channels", []))
    for keyword in keywords:
        for channel in channels:
            if keyword in channel.name.lower():
                return channel
    return None


async def send_to_mod_log(guild: discord.Guild, keywords: Iterable[str], embed: discord.Embed) -> bool:
    channel = find_mod_log_channel(guild, keywords)
    if channel is None:
        logger.debug("No moderation log channel found in guild %s", guild.id)
        return False
    try:
        await channel.send(embed=embed)
        return True
    except discord.Forbidden:
        logger.warning("Missing permission to post in %s (guild %s)", channel.name, guild.id)
    except discord.HTTPException as exc:
        logger.error("Failed to post moderation log in %s: %s", channel.name, exc)
    return False


async def send_dm(user: discord.abc.User, embed: discord.Embed) -> bool:
    """
    Attempt to send a direct message embed to a user.

    Returns:
        bool: True if the DM was delivered, False otherwise.
    """
    try:
        await user.send(embed=embed)
        return True
    except discord.Forbidden:
        logger.info("Could not DM %s: they may have DMs disabled.", user)
    except discord.HTTPException as exc:
        logger.error("Failed to send DM to %s: %s", user, exc)
    return False


def can_manage_nicknames(guild: discord.Guild) -> bool:
    me = getattr(guild, "me", None)
    if me is None:
        return False
    return bool(me.guild_permissions.manage_nicknames)


async def set_member_nickname(member: discord.Member, nickname: Optional[str], reason: str) -> bool:
    """
    Set (or with ``None`` reset) a member's nickname if the bot is allowed to.

    Members above the bot in the role hierarchy are skipped.
    """
    if not can_manage_nicknames(member.guild):
        logger.info("Bot lacks MANAGE_NICKNAMES in guild %s", member.guild.id)
        return False
    me = member.guild.me
    if member.guild.owner_id == member.id or member.top_role >= me.top_role:
        logger.info("Cannot manage nickname of %s: they outrank the bot", member)
        return False
    try:
        await member.edit(nick=nickname, reason=reason)
        return True
    except discord.Forbidden:
        logger.warning("Forbidden from changing nickname of %s", member)
    except discord.HTTPException as exc:
        logger.error("Failed to change nickname of %s: %s", member, exc)
    return False


async def add_role(member: discord.Member, role_id: RoleID, reason: str) -> Optional[discord.Role]:
    """Give ``member`` the role with ``role_id``; returns the role on success."""
    role = member.guild.get_role(role_id.to_int())
    if role is None:
        logger.warning("Role %s not found in guild %s", role_id, member.guild.id)
        return None
    try:
        await member.add_roles(role, reason=reason)
        return role
    except discord.Forbidden:
        logger.warning("Forbidden from adding role %s to %s", role.name, member)
    except discord.HTTPException as exc:
        logger.error("Failed to add role %s to %s: %s", role.name, member, exc)
    return None


def discord_timestamp(ms: int, style: str = "R") -> str:
    """Discord ``<t:...>`` markup for a unix-millisecond timestamp."""
    return f"<t:{ms // 1000}:{style}>"
