"""
Tests for the embed builders.
"""

from types import SimpleNamespace

import discord

from modblox.datatypes.action_datatypes import ActionKind, ModerationAction
from modblox.datatypes.discord_datatypes import GuildID, UserID
from modblox.datatypes.level_datatypes import LevelProgress, UserLevelProfile
from modblox.datatypes.report_datatypes import AccountAge, GuildStats, ModerationSummary, PlayerReport
from modblox.datatypes.verification_datatypes import PreviousAccount, RobloxUser, VerifiedUser
from modblox.moderation.duration import DAY_MS
from modblox.ui import embeds


def make_record(kind=ActionKind.BAN, case_id=1, reason="raiding", duration=None, is_active=True):
    return ModerationAction(
        id=case_id,
        guild_id=GuildID(1),
        target_id=UserID(1001),
        moderator_id=UserID(9001),
        kind=kind,
        reason=reason,
        created_at=1_700_000_000_000,
        duration=duration,
        expires_at=1_700_000_000_000 + duration if duration else None,
        is_active=is_active,
    )


def make_user(user_id=1001, name="target"):
    return SimpleNamespace(
        id=user_id,
        mention=f"<@{user_id}>",
        display_name=name,
        display_avatar=SimpleNamespace(url="https://example.invalid/avatar.png"),
    )


def field(embed, name):
    return next(f for f in embed.fields if f.name == name)


def test_action_embed_for_permanent_ban():
    embed = embeds.action_embed(make_record(), make_user(), make_user(9001, "mod"))

    assert embed.title == "🔨 Ban Issued"
    assert embed.color == discord.Color.dark_red()
    assert field(embed, "Case").value == "#1"
    assert field(embed, "Duration").value == "Permanent"
    assert field(embed, "Reason").value == "raiding"


def test_action_embed_for_timeout_shows_expiry_and_note():
    record = make_record(ActionKind.TIMEOUT, duration=DAY_MS)

    embed = embeds.action_embed(record, make_user(), make_user(9001), note="Could not DM the user")

    assert field(embed, "Duration").value.startswith("1 day (expires <t:")
    assert field(embed, "Note").value == "Could not DM the user"


def test_action_embed_for_kick_has_no_duration():
    embed = embeds.action_embed(make_record(ActionKind.KICK, is_active=False), make_user(), make_user(9001))

    assert "Duration" not in [f.name for f in embed.fields]


def test_long_reason_is_clipped():
    embed = embeds.action_embed(make_record(reason="x" * 2000), make_user(), make_user(9001))

    value = field(embed, "Reason").value
    assert len(value) == embeds.MAX_FIELD_LENGTH
    assert value.endswith("…")


def test_dm_embed():
    embed = embeds.dm_embed(make_record(ActionKind.WARNING, case_id=7, reason="spam"), "Builders Club")

    assert "warning" in embed.title
    assert "Builders Club" in embed.description
    assert embed.footer.text == "Case #7"


def test_format_record_line_marks_active_effects():
    line = embeds.format_record_line(make_record(), show_target=True)

    assert "#1 BAN" in line
    assert "(active)" in line
    assert "<@1001>" in line
    assert "(active)" not in embeds.format_record_line(make_record(ActionKind.KICK, is_active=False))


def test_history_embed_without_records():
    summary = ModerationSummary(warnings=0, community_bans=0, game_bans=0)

    embed = embeds.history_embed(make_user(), [], summary)

    assert field(embed, "Records").value == "No moderation history."


def test_history_embed_lists_records():
    records = [make_record(ActionKind.WARNING, case_id=2), make_record(case_id=1)]
    summary = ModerationSummary(warnings=1, community_bans=0, game_bans=2, recent_history=records)

    embed = embeds.history_embed(make_user(), records, summary)

    assert field(embed, "⚠️ Active warnings").value == "1"
    assert field(embed, "🎮 Game bans").value == "2"
    assert "#2 WARNING" in field(embed, "Records (2)").value


def test_modstats_embed_breakdown_uses_percentages():
    stats = GuildStats(
        total_actions=4,
        by_kind=[(ActionKind.WARNING, 3), (ActionKind.BAN, 1)],
        top_moderators=[(UserID(9001), 4)],
        recent_activity=[],
        active_bans=1,
        active_mutes=0,
    )

    embed = embeds.modstats_embed("Builders Club", stats, "Last 7 days")

    breakdown = field(embed, "📋 Action Breakdown").value
    assert "**WARNING**: 3 (75.0%)" in breakdown
    assert "1. <@9001>: 4 (100.0%)" in field(embed, "👮 Most Active Moderators").value
    assert field(embed, "🔨 Active bans").value == "1"


def test_modstats_embed_empty():
    stats = GuildStats(total_actions=0, by_kind=[], top_moderators=[], recent_activity=[], active_bans=0, active_mutes=0)

    embed = embeds.modstats_embed("Builders Club", stats, "All time")

    assert field(embed, "📋 Action Breakdown").value == "No moderation actions."


def test_level_embed_progress():
    progress = LevelProgress(
        current_level=1,
        message_count=15,
        messages_for_next_level=20,
        total_messages_for_next=30,
        progress_to_next=5,
        is_max_level=False,
    )

    embed = embeds.level_embed(make_user(), progress, is_own=True)

    assert embed.title == "📈 Your Level"
    value = field(embed, "Progress to level 2").value
    assert "██░░░░░░░░ 5/20" in value
    assert "15 more message(s) needed" in value


def test_level_embed_max_level_for_other_user():
    progress = LevelProgress(
        current_level=100,
        message_count=10**6,
        messages_for_next_level=None,
        total_messages_for_next=None,
        progress_to_next=0,
        is_max_level=True,
    )

    embed = embeds.level_embed(make_user(name="Alice"), progress, is_own=False)

    assert embed.title == "📈 Alice's Level"
    assert "Maximum level" in field(embed, "Progress").value


def test_leaderboard_embed():
    entries = [
        UserLevelProfile(user_id=UserID(1), message_count=90, level=3),
        UserLevelProfile(user_id=UserID(2), message_count=40, level=2),
        UserLevelProfile(user_id=UserID(3), message_count=30, level=2),
        UserLevelProfile(user_id=UserID(4), message_count=10, level=1),
    ]

    lines = embeds.leaderboard_embed(entries).description.splitlines()

    assert lines[0].startswith("🥇 <@1>")
    assert lines[3].startswith("4. <@4>")
    assert embeds.leaderboard_embed([]).description == "Nobody has earned any levels yet."


def test_verification_instructions_embed():
    embed = embeds.verification_instructions_embed("ABC123", 10)

    assert "ABC123" in embed.fields[0].value
    assert embed.footer.text == "This code expires in 10 minutes"


def test_player_report_embed_for_linked_player():
    roblox_user = RobloxUser(
        id=5555, name="BuilderBob", display_name="Bob", description="", created="2020-01-01T00:00:00Z", is_banned=True
    )
    link = VerifiedUser(
        discord_id=UserID(1001),
        roblox_id=5555,
        roblox_username="BuilderBob",
        verified_at=1_700_000_000_000,
        previous_accounts=[PreviousAccount(1234, "OldBob", 0, 1000)],
    )
    report = PlayerReport(
        roblox_user=roblox_user,
        account_age=AccountAge(days=800, years=2, months=2),
        thumbnail_url=None,
        community_groups=[],
        link=link,
        summary=ModerationSummary(warnings=2, community_bans=0, game_bans=1),
    )

    embed = embeds.player_report_embed(report)
    names = [f.name for f in embed.fields]

    assert field(embed, "Account Age").value == "2 years, 2 months"
    assert field(embed, "Roblox Status").value == "⛔ Banned on Roblox"
    assert "Description" not in names
    assert field(embed, "Community Groups").value == "Not in any community groups"
    assert "<@1001>" in field(embed, "Discord").value
    assert field(embed, "Previous Accounts").value == "OldBob (1234)"
    assert "Warnings: 2" in field(embed, "Moderation").value


def test_player_report_embed_for_unlinked_player():
    roblox_user = RobloxUser(id=5555, name="BuilderBob", display_name="Bob", description="hi", created="")
    report = PlayerReport(
        roblox_user=roblox_user,
        account_age=AccountAge(days=3, years=0, months=0),
        thumbnail_url="https://example.invalid/bob.png",
        community_groups=[],
        link=None,
        summary=None,
    )

    embed = embeds.player_report_embed(report)

    assert embed.thumbnail.url == "https://example.invalid/bob.png"
    assert field(embed, "Discord").value == "Not linked to a Discord account"
    assert "Moderation" not in [f.name for f in embed.fields]
