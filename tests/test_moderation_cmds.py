import datetime
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest
import pytest_asyncio

from modblox.bot.cogs import moderation_cmds
from modblox.datatypes.action_datatypes import ActionKind, HistoryFilter, KindGroup
from modblox.datatypes.discord_datatypes import GuildID, UserID
from modblox.moderation.duration import DAY_MS
from modblox.moderation.ledger import ModerationLedger

GUILD_ID = 99
MOD_ID = 1
TARGET_ID = 2


def make_user(user_id=TARGET_ID, bot=False):
    return SimpleNamespace(id=user_id, mention=f"<@{user_id}>", bot=bot)


class Ctx:
    def __init__(self, author=None, member=None):
        self.author = author or make_user(MOD_ID)
        self.user = self.author
        self.guild = SimpleNamespace(
            id=GUILD_ID,
            name="Builders Club",
            ban=AsyncMock(),
            unban=AsyncMock(),
            get_member=lambda member_id: member,
        )
        self.defer = AsyncMock()
        self.send_followup = AsyncMock()

    @property
    def last_embed(self):
        return self.send_followup.call_args.kwargs["embed"]

    @property
    def last_content(self):
        return self.send_followup.call_args.kwargs.get("content")


def staff_author():
    author = MagicMock(spec=discord.Member)
    author.id = MOD_ID
    author.mention = f"<@{MOD_ID}>"
    author.roles = []
    return author


def note_of(embed):
    return next((f.value for f in embed.fields if f.name == "Note"), None)


@pytest_asyncio.fixture
async def services(db, clock):
    clock.now = 1_000_000
    return SimpleNamespace(
        ledger=ModerationLedger(db, clock),
        clock=clock,
        config=SimpleNamespace(
            dm_targets=True,
            mod_log_channel_keywords=["mod-log"],
            staff_role_ids=[],
            staff_guild_id=None,
        ),
    )


@pytest.fixture
def cog(services, monkeypatch):
    monkeypatch.setattr(moderation_cmds, "has_permissions", lambda ctx, **_: True)
    monkeypatch.setattr(moderation_cmds, "send_dm", AsyncMock(return_value=True))
    monkeypatch.setattr(moderation_cmds, "send_to_mod_log", AsyncMock(return_value=True))
    return moderation_cmds.ModerationActionCog(SimpleNamespace(), services)


def test_setup_registers_handlers():
    captured = {}

    def fake_add_cog(cog):
        captured["cog"] = cog

    fake_bot = SimpleNamespace(add_cog=fake_add_cog)
    moderation_cmds.setup(fake_bot)
    assert "cog" in captured
    assert isinstance(captured["cog"], moderation_cmds.ModerationActionCog)


@pytest.mark.asyncio
async def test_check_permissions_denied_without_required_permission(monkeypatch, services):
    monkeypatch.setattr(moderation_cmds, "has_permissions", lambda ctx, **_: False)
    cog = moderation_cmds.ModerationActionCog(SimpleNamespace(), services)
    ctx: Any = Ctx()

    allowed = await cog.check_moderation_permissions(ctx, make_user(), "kick_members")

    assert allowed is False
    assert "permission" in ctx.last_content


@pytest.mark.asyncio
async def test_check_permissions_rejects_self_target(cog):
    ctx: Any = Ctx()

    assert await cog.check_moderation_permissions(ctx, make_user(MOD_ID), "ban_members") is False
    assert "yourself" in ctx.last_content


@pytest.mark.asyncio
async def test_check_permissions_rejects_administrators(cog):
    ctx: Any = Ctx()
    admin = MagicMock(spec=discord.Member)
    admin.id = 5
    admin.guild_permissions = SimpleNamespace(administrator=True)

    assert await cog.check_moderation_permissions(ctx, admin, "ban_members") is False
    assert "administrators" in ctx.last_content


@pytest.mark.asyncio
async def test_check_permissions_outside_guild(cog):
    ctx: Any = Ctx()
    ctx.guild = None

    assert await cog.check_moderation_permissions(ctx, make_user(), "ban_members") is False


@pytest.mark.asyncio
async def test_staff_only_requires_member_author(cog):
    ctx: Any = Ctx()

    assert await cog.check_moderation_permissions(ctx, make_user(), staff_only=True) is False
    assert "staff" in ctx.last_content


@pytest.mark.asyncio
async def test_ban_records_and_bans(cog, services):
    ctx: Any = Ctx()
    user = make_user()

    await moderation_cmds.ModerationActionCog.ban.callback(cog, ctx, user, "raiding", "7d")

    effect = await services.ledger.get_active_effect(GuildID(GUILD_ID), UserID(TARGET_ID), KindGroup.BAN)
    assert effect.kind is ActionKind.BAN
    assert effect.duration == 7 * DAY_MS
    ctx.guild.ban.assert_awaited_once()
    moderation_cmds.send_dm.assert_awaited_once()
    moderation_cmds.send_to_mod_log.assert_awaited_once()
    assert ctx.last_embed.title == "🔨 Ban Issued"
    assert note_of(ctx.last_embed) is None


@pytest.mark.asyncio
async def test_second_ban_conflicts(cog, services):
    ctx: Any = Ctx()
    user = make_user()
    await moderation_cmds.ModerationActionCog.ban.callback(cog, ctx, user, "raiding", None)

    await moderation_cmds.ModerationActionCog.ban.callback(cog, ctx, user, "again", None)

    assert ctx.last_embed.title == "❌ Already Active"
    assert ctx.guild.ban.await_count == 1
    assert await services.ledger.count_actions(GuildID(GUILD_ID)) == 1


@pytest.mark.asyncio
async def test_ban_with_invalid_duration_writes_nothing(cog, services):
    ctx: Any = Ctx()

    await moderation_cmds.ModerationActionCog.ban.callback(cog, ctx, make_user(), "raiding", "30m")

    assert ctx.last_embed.title == "❌ Invalid Duration"
    assert await services.ledger.count_actions(GuildID(GUILD_ID)) == 0


@pytest.mark.asyncio
async def test_ban_forbidden_keeps_record_with_note(cog, services):
    ctx: Any = Ctx()
    ctx.guild.ban = AsyncMock(side_effect=discord.Forbidden(MagicMock(), "Forbidden"))

    await moderation_cmds.ModerationActionCog.ban.callback(cog, ctx, make_user(), "raiding", None)

    assert "lack permission" in note_of(ctx.last_embed)
    assert await services.ledger.count_actions(GuildID(GUILD_ID), kind=ActionKind.BAN) == 1


@pytest.mark.asyncio
async def test_unban_reverses_active_ban(cog, services):
    ctx: Any = Ctx()
    user = make_user()
    await moderation_cmds.ModerationActionCog.ban.callback(cog, ctx, user, "raiding", None)

    await moderation_cmds.ModerationActionCog.unban.callback(cog, ctx, user, "appeal")

    ctx.guild.unban.assert_awaited_once()
    assert await services.ledger.get_active_effect(GuildID(GUILD_ID), UserID(TARGET_ID), KindGroup.BAN) is None
    records = await services.ledger.query_history(GuildID(GUILD_ID), HistoryFilter(target_id=UserID(TARGET_ID)))
    assert records[0].kind is ActionKind.UNBAN


@pytest.mark.asyncio
async def test_unban_without_ban(cog):
    ctx: Any = Ctx()

    await moderation_cmds.ModerationActionCog.unban.callback(cog, ctx, make_user(), "appeal")

    assert ctx.last_embed.title == "❌ Nothing To Reverse"
    ctx.guild.unban.assert_not_awaited()


@pytest.mark.asyncio
async def test_kick_requires_guild_member(cog, services):
    ctx: Any = Ctx(member=None)

    await moderation_cmds.ModerationActionCog.kick.callback(cog, ctx, make_user(), "spam")

    assert "not a member" in ctx.last_content
    assert await services.ledger.count_actions(GuildID(GUILD_ID)) == 0


@pytest.mark.asyncio
async def test_kick_member(cog, services):
    member = make_user()
    member.kick = AsyncMock()
    ctx: Any = Ctx(member=member)

    await moderation_cmds.ModerationActionCog.kick.callback(cog, ctx, make_user(), "spam")

    member.kick.assert_awaited_once()
    assert await services.ledger.count_actions(GuildID(GUILD_ID), kind=ActionKind.KICK) == 1


@pytest.mark.asyncio
async def test_short_mute_becomes_native_timeout(cog, services):
    member = make_user()
    member.timeout_for = AsyncMock()
    ctx: Any = Ctx(member=member)

    await moderation_cmds.ModerationActionCog.mute.callback(cog, ctx, make_user(), "spam", "1d")

    effect = await services.ledger.get_active_effect(GuildID(GUILD_ID), UserID(TARGET_ID), KindGroup.MUTE)
    assert effect.kind is ActionKind.TIMEOUT
    assert member.timeout_for.await_args.args[0] == datetime.timedelta(days=1)


@pytest.mark.asyncio
async def test_long_mute_is_ledger_only(cog, services):
    member = make_user()
    member.timeout_for = AsyncMock()
    ctx: Any = Ctx(member=member)

    await moderation_cmds.ModerationActionCog.mute.callback(cog, ctx, make_user(), "spam", "2mo")

    effect = await services.ledger.get_active_effect(GuildID(GUILD_ID), UserID(TARGET_ID), KindGroup.MUTE)
    assert effect.kind is ActionKind.MUTE
    member.timeout_for.assert_not_awaited()


@pytest.mark.asyncio
async def test_timeout_rejects_units_outside_timeout_set(cog, services):
    ctx: Any = Ctx()

    await moderation_cmds.ModerationActionCog.timeout.callback(cog, ctx, make_user(), "2w", "spam")

    assert ctx.last_embed.title == "❌ Invalid Duration"
    assert await services.ledger.count_actions(GuildID(GUILD_ID)) == 0


@pytest.mark.asyncio
async def test_unmute_when_not_muted(cog):
    ctx: Any = Ctx()

    await moderation_cmds.ModerationActionCog.unmute.callback(cog, ctx, make_user(), "served")

    assert ctx.last_embed.title == "❌ Not Muted"


@pytest.mark.asyncio
async def test_unmute_lifts_timeout(cog, services):
    member = make_user()
    member.timeout_for = AsyncMock()
    member.remove_timeout = AsyncMock()
    ctx: Any = Ctx(member=member)
    await moderation_cmds.ModerationActionCog.timeout.callback(cog, ctx, make_user(), "1h", "spam")

    await moderation_cmds.ModerationActionCog.unmute.callback(cog, ctx, make_user(), "served")

    member.remove_timeout.assert_awaited_once()
    records = await services.ledger.query_history(GuildID(GUILD_ID), HistoryFilter(target_id=UserID(TARGET_ID)))
    assert records[0].kind is ActionKind.UNTIMEOUT


@pytest.mark.asyncio
async def test_warning_add_and_remove_report_active_count(cog):
    ctx: Any = Ctx(author=staff_author())
    user = make_user()

    for _ in range(3):
        await moderation_cmds.ModerationActionCog.warning_add.callback(cog, ctx, user, "spam")
    assert note_of(ctx.last_embed) == "Active warnings: 3"

    await moderation_cmds.ModerationActionCog.warning_remove.callback(cog, ctx, user, "mistake")
    assert note_of(ctx.last_embed) == "Active warnings: 2"


@pytest.mark.asyncio
async def test_gameban_remove_without_gameban(cog):
    ctx: Any = Ctx(author=staff_author())

    await moderation_cmds.ModerationActionCog.gameban_remove.callback(cog, ctx, make_user(), "appeal")

    assert ctx.last_embed.title == "❌ Nothing To Reverse"


@pytest.mark.asyncio
async def test_unexpected_errors_reply_generically(cog, services):
    services.ledger = SimpleNamespace(record_action=AsyncMock(side_effect=RuntimeError("db down")))
    ctx: Any = Ctx()

    await moderation_cmds.ModerationActionCog.ban.callback(cog, ctx, make_user(), "raiding", None)

    assert ctx.last_content == "An error occurred while processing the command."
