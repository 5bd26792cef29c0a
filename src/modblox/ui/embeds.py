"""
Embed builders for moderation, leveling, verification and lookup responses.

Functions here only format data they are given; they never query the ledger
or Discord.
"""

from __future__ import annotations

import datetime
from typing import List, Optional, Sequence

import discord

from modblox.datatypes.action_datatypes import ActionKind, ModerationAction
from modblox.datatypes.level_datatypes import LevelProgress, UserLevelProfile
from modblox.datatypes.report_datatypes import GuildStats, ModerationSummary, PlayerReport
from modblox.datatypes.verification_datatypes import RobloxUser, VerifiedUser
from modblox.moderation.duration import format_optional
from modblox.roblox.roblox_api import format_account_age, profile_url
from modblox.util.discord_utils import discord_timestamp

ACTION_EMOJIS = {
    ActionKind.BAN: "🔨",
    ActionKind.UNBAN: "🔓",
    ActionKind.MUTE: "🔇",
    ActionKind.UNMUTE: "🔊",
    ActionKind.KICK: "👢",
    ActionKind.TIMEOUT: "⏱️",
    ActionKind.UNTIMEOUT: "⏰",
    ActionKind.GAMEBAN: "🎮",
    ActionKind.WARNING: "⚠️",
    ActionKind.COMMUNITYBAN: "🚫",
}

ACTION_COLORS = {
    ActionKind.BAN: discord.Color.dark_red(),
    ActionKind.UNBAN: discord.Color.green(),
    ActionKind.MUTE: discord.Color.orange(),
    ActionKind.UNMUTE: discord.Color.green(),
    ActionKind.KICK: discord.Color.red(),
    ActionKind.TIMEOUT: discord.Color.orange(),
    ActionKind.UNTIMEOUT: discord.Color.green(),
    ActionKind.GAMEBAN: discord.Color.dark_red(),
    ActionKind.WARNING: discord.Color.gold(),
    ActionKind.COMMUNITYBAN: discord.Color.red(),
}

MAX_FIELD_LENGTH = 1024


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _clip(text: str, limit: int = MAX_FIELD_LENGTH) -> str:
    return text if len(text) <= limit else text[: limit - 1] + "…"


def _title(kind: ActionKind) -> str:
    return kind.label.title()


def format_record_line(record: ModerationAction, show_target: bool = False) -> str:
    """One-line rendering of a ledger record for history lists."""
    emoji = ACTION_EMOJIS.get(record.kind, "⚙️")
    status = " (active)" if record.is_active and record.kind.has_effect else ""
    who = f" <@{record.target_id}>" if show_target else ""
    return (
        f"{emoji} **#{record.id} {record.kind.value.upper()}**{status}{who} "
        f"{discord_timestamp(record.created_at)}\n"
        f"└ {_clip(record.reason, 150)} (by <@{record.moderator_id}>)"
    )


def error_embed(title: str, description: str) -> discord.Embed:
    return discord.Embed(
        title=f"❌ {title}",
        description=description,
        color=discord.Color.red(),
        timestamp=_now(),
    )


def action_embed(
    record: ModerationAction,
    target: discord.abc.User,
    moderator: discord.abc.User,
    note: Optional[str] = None,
) -> discord.Embed:
    """Confirmation and mod-log embed for a freshly recorded action."""
    embed = discord.Embed(
        title=f"{ACTION_EMOJIS.get(record.kind, '⚙️')} {_title(record.kind)} Issued",
        description=f"{target.mention} ({target.id})",
        color=ACTION_COLORS.get(record.kind, discord.Color.red()),
        timestamp=_now(),
    )
    embed.add_field(name="Case", value=f"#{record.id}", inline=True)
    embed.add_field(name="Moderator", value=moderator.mention, inline=True)
    if record.kind.can_expire:
        duration = format_optional(record.duration)
        if record.expires_at is not None:
            duration = f"{duration} (expires {discord_timestamp(record.expires_at)})"
        embed.add_field(name="Duration", value=duration, inline=True)
    embed.add_field(name="Reason", value=_clip(record.reason), inline=False)
    if note:
        embed.add_field(name="Note", value=_clip(note), inline=False)
    return embed


def dm_embed(record: ModerationAction, guild_name: str) -> discord.Embed:
    """Embed DMed to the target of an action."""
    embed = discord.Embed(
        title=f"{ACTION_EMOJIS.get(record.kind, '⚙️')} You received a {record.kind.label}",
        description=f"Server: **{guild_name}**",
        color=ACTION_COLORS.get(record.kind, discord.Color.red()),
        timestamp=_now(),
    )
    embed.add_field(name="Reason", value=_clip(record.reason), inline=False)
    if record.kind.can_expire:
        embed.add_field(name="Duration", value=format_optional(record.duration), inline=True)
    embed.set_footer(text=f"Case #{record.id}")
    return embed


def history_embed(
    target: discord.abc.User,
    records: Sequence[ModerationAction],
    summary: ModerationSummary,
) -> discord.Embed:
    embed = discord.Embed(
        title=f"📋 Moderation History: {target}",
        color=discord.Color.blurple(),
        timestamp=_now(),
    )
    embed.add_field(name="⚠️ Active warnings", value=str(summary.warnings), inline=True)
    embed.add_field(name="🚫 Community bans", value=str(summary.community_bans), inline=True)
    embed.add_field(name="🎮 Game bans", value=str(summary.game_bans), inline=True)
    if records:
        embed.add_field(
            name=f"Records ({len(records)})",
            value=_clip("\n".join(format_record_line(record) for record in records)),
            inline=False,
        )
    else:
        embed.add_field(name="Records", value="No moderation history.", inline=False)
    return embed


def command_history_embed(records: Sequence[ModerationAction], filters_text: str) -> discord.Embed:
    embed = discord.Embed(
        title="🗂️ Command History",
        description=filters_text or "All moderation commands",
        color=discord.Color.blurple(),
        timestamp=_now(),
    )
    if not records:
        embed.add_field(name="Results", value="No matching records.", inline=False)
        return embed
    embed.add_field(
        name=f"Results ({len(records)})",
        value=_clip("\n".join(format_record_line(record, show_target=True) for record in records)),
        inline=False,
    )
    return embed


def modstats_embed(guild_name: str, stats: GuildStats, timeframe: str) -> discord.Embed:
    embed = discord.Embed(
        title="📊 Moderation Statistics",
        description=f"Statistics for **{guild_name}**",
        color=discord.Color.blue(),
        timestamp=_now(),
    )
    embed.add_field(
        name="📅 Timeframe",
        value=f"{timeframe} • **{stats.total_actions}** total actions",
        inline=False,
    )
    if stats.total_actions == 0:
        embed.add_field(name="📋 Action Breakdown", value="No moderation actions.", inline=False)
    else:
        breakdown = "\n".join(
            f"{ACTION_EMOJIS.get(kind, '⚙️')} **{kind.value.upper()}**: {count} ({stats.share(count)}%)"
            for kind, count in stats.by_kind
        )
        embed.add_field(name="📋 Action Breakdown", value=_clip(breakdown), inline=False)
    if stats.top_moderators:
        moderators = "\n".join(
            f"{index}. <@{moderator}>: {count} ({stats.share(count)}%)"
            for index, (moderator, count) in enumerate(stats.top_moderators, start=1)
        )
        embed.add_field(name="👮 Most Active Moderators", value=moderators, inline=False)
    if stats.recent_activity:
        embed.add_field(
            name="🕐 Recent Activity",
            value=_clip("\n".join(format_record_line(r, show_target=True) for r in stats.recent_activity)),
            inline=False,
        )
    embed.add_field(name="🔨 Active bans", value=str(stats.active_bans), inline=True)
    embed.add_field(name="🔇 Active mutes", value=str(stats.active_mutes), inline=True)
    return embed


def _progress_bar(current: int, total: int, width: int = 10) -> str:
    filled = width if total <= 0 else min(width, current * width // total)
    return "█" * filled + "░" * (width - filled)


def level_embed(user: discord.abc.User, progress: LevelProgress, is_own: bool) -> discord.Embed:
    owner = "Your" if is_own else f"{user.display_name}'s"
    embed = discord.Embed(
        title=f"📈 {owner} Level",
        color=discord.Color.purple(),
        timestamp=_now(),
    )
    embed.set_thumbnail(url=user.display_avatar.url)
    embed.add_field(name="Level", value=str(progress.current_level), inline=True)
    embed.add_field(name="Messages", value=str(progress.message_count), inline=True)
    if progress.is_max_level:
        embed.add_field(name="Progress", value="👑 Maximum level reached!", inline=False)
    else:
        needed = progress.messages_for_next_level or 0
        embed.add_field(
            name=f"Progress to level {progress.current_level + 1}",
            value=(
                f"{_progress_bar(progress.progress_to_next, needed)} "
                f"{progress.progress_to_next}/{needed}\n"
                f"{progress.messages_remaining} more message(s) needed"
            ),
            inline=False,
        )
    return embed


def leaderboard_embed(entries: Sequence[UserLevelProfile]) -> discord.Embed:
    embed = discord.Embed(title="🏆 Level Leaderboard", color=discord.Color.gold(), timestamp=_now())
    if not entries:
        embed.description = "Nobody has earned any levels yet."
        return embed
    medals = {1: "🥇", 2: "🥈", 3: "🥉"}
    embed.description = "\n".join(
        f"{medals.get(rank, f'{rank}.')} <@{entry.user_id}> • Level {entry.level} • {entry.message_count} messages"
        for rank, entry in enumerate(entries, start=1)
    )
    return embed


def verification_instructions_embed(code: str, ttl_minutes: int) -> discord.Embed:
    embed = discord.Embed(
        title="🔐 Roblox Verification",
        description="To verify your Roblox account, follow these steps:",
        color=discord.Color.green(),
        timestamp=_now(),
    )
    embed.add_field(name="1️⃣ Copy this code:", value=f"```{code}```", inline=False)
    embed.add_field(
        name="2️⃣ Add it to your Roblox profile description:",
        value=(
            "• Go to [Roblox.com](https://www.roblox.com)\n"
            "• Open your profile and click **Edit Profile**\n"
            "• Paste the code into your description and save"
        ),
        inline=False,
    )
    embed.add_field(name="3️⃣ Complete verification:", value="Press the button below.", inline=False)
    embed.set_footer(text=f"This code expires in {ttl_minutes} minutes")
    return embed


def already_verified_embed(link: VerifiedUser) -> discord.Embed:
    embed = error_embed("Already Verified", f"You are already verified as **{link.roblox_username}**")
    embed.add_field(
        name="Roblox Profile",
        value=f"[{link.roblox_username}]({profile_url(link.roblox_id)})",
        inline=True,
    )
    embed.add_field(name="Verified Since", value=discord_timestamp(link.verified_at), inline=True)
    return embed


def verification_success_embed(
    roblox_user: RobloxUser,
    account_age_text: str,
    thumbnail_url: Optional[str],
    nickname_updated: bool,
) -> discord.Embed:
    embed = discord.Embed(
        title="✅ Verification Successful!",
        description=f"Your Discord account is now linked to **{roblox_user.name}**",
        color=discord.Color.green(),
        timestamp=_now(),
    )
    embed.add_field(name="Roblox Username", value=roblox_user.name, inline=True)
    embed.add_field(name="Display Name", value=roblox_user.display_name, inline=True)
    embed.add_field(name="Account Age", value=account_age_text, inline=True)
    embed.add_field(name="Profile Link", value=f"[View Profile]({profile_url(roblox_user.id)})", inline=True)
    embed.add_field(
        name="Nickname",
        value="✅ Updated to your Roblox username" if nickname_updated else "❌ Could not update",
        inline=False,
    )
    if thumbnail_url:
        embed.set_thumbnail(url=thumbnail_url)
    return embed


def player_report_embed(report: PlayerReport) -> discord.Embed:
    user = report.roblox_user
    embed = discord.Embed(
        title=f"Player Information: {user.name}",
        color=discord.Color.from_rgb(0, 175, 244),
        timestamp=_now(),
    )
    if report.thumbnail_url:
        embed.set_thumbnail(url=report.thumbnail_url)
    embed.add_field(name="Username", value=user.name, inline=True)
    embed.add_field(name="Display Name", value=user.display_name, inline=True)
    embed.add_field(name="Roblox ID", value=str(user.id), inline=True)
    embed.add_field(name="Account Age", value=format_account_age(report.account_age), inline=True)
    if user.is_banned:
        embed.add_field(name="Roblox Status", value="⛔ Banned on Roblox", inline=True)
    embed.add_field(name="Profile Link", value=f"[View on Roblox]({profile_url(user.id)})", inline=False)
    if user.description.strip():
        embed.add_field(name="Description", value=_clip(user.description, 200), inline=False)

    if report.community_groups:
        groups: List[str] = [
            f"**{group.group_name}**: {group.role_name} (rank {group.rank})"
            for group in report.community_groups[:10]
        ]
        embed.add_field(name="Community Groups", value=_clip("\n".join(groups)), inline=False)
    else:
        embed.add_field(name="Community Groups", value="Not in any community groups", inline=False)

    if report.link is None:
        embed.add_field(name="Discord", value="Not linked to a Discord account", inline=False)
    else:
        link = report.link
        embed.add_field(
            name="Discord",
            value=f"<@{link.discord_id}> (verified {discord_timestamp(link.verified_at)})",
            inline=False,
        )
        if link.previous_accounts:
            previous = "\n".join(
                f"{account.roblox_username} ({account.roblox_id})" for account in link.previous_accounts[:5]
            )
            embed.add_field(name="Previous Accounts", value=_clip(previous), inline=False)

    if report.summary is not None:
        summary = report.summary
        embed.add_field(
            name="Moderation",
            value=(
                f"⚠️ Warnings: {summary.warnings}\n"
                f"🚫 Community bans: {summary.community_bans}\n"
                f"🎮 Game bans: {summary.game_bans}"
            ),
            inline=False,
        )
        if summary.recent_history:
            embed.add_field(
                name="Recent Records",
                value=_clip("\n".join(format_record_line(record) for record in summary.recent_history)),
                inline=False,
            )
    return embed
