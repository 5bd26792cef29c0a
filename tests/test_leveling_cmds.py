from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from modblox.bot.cogs import leveling_cmds
from modblox.datatypes.discord_datatypes import RoleID, UserID
from modblox.datatypes.level_datatypes import LevelUpResult, UserLevelProfile
from modblox.leveling.engine import COOLDOWN_MS, LevelingEngine
from modblox.leveling.level_roles import LevelRoleTable
from modblox.leveling.level_store import InMemoryLevelStore


def make_services(clock, enabled=True, roles=None):
    store = InMemoryLevelStore()
    return SimpleNamespace(
        level_store=store,
        leveling=LevelingEngine(store, clock),
        level_roles=LevelRoleTable(roles or {}),
        config=SimpleNamespace(leveling_enabled=enabled),
    )


def make_message(author=None, guild=True):
    return SimpleNamespace(
        id=1,
        author=author or SimpleNamespace(id=7, bot=False, mention="<@7>"),
        guild=SimpleNamespace(id=99) if guild else None,
        channel=SimpleNamespace(send=AsyncMock()),
    )


def test_setup_registers_handlers():
    captured = {}
    leveling_cmds.setup(SimpleNamespace(add_cog=lambda cog: captured.setdefault("cog", cog)))
    assert isinstance(captured["cog"], leveling_cmds.LevelingCog)


@pytest.mark.asyncio
async def test_on_message_counts_and_announces_level_up(clock):
    services = make_services(clock)
    cog = leveling_cmds.LevelingCog(SimpleNamespace(), services)
    message = make_message()

    for _ in range(10):
        await cog.on_message(message)
        clock.advance(COOLDOWN_MS)

    profile = await services.leveling.get_profile(UserID(7))
    assert profile.message_count == 10
    message.channel.send.assert_awaited_once()
    assert "Level 1" in message.channel.send.await_args.args[0]


@pytest.mark.asyncio
async def test_on_message_ignores_bots_dms_and_disabled_leveling(clock):
    services = make_services(clock)
    cog = leveling_cmds.LevelingCog(SimpleNamespace(), services)

    await cog.on_message(make_message(author=SimpleNamespace(id=8, bot=True)))
    await cog.on_message(make_message(guild=False))
    assert await services.leveling.leaderboard() == []

    disabled = make_services(clock, enabled=False)
    await leveling_cmds.LevelingCog(SimpleNamespace(), disabled).on_message(make_message())
    assert await disabled.leveling.leaderboard() == []


@pytest.mark.asyncio
async def test_level_up_awards_configured_role_and_milestone(clock, monkeypatch):
    services = make_services(clock, roles={10: RoleID(555)})
    cog = leveling_cmds.LevelingCog(SimpleNamespace(), services)
    add_role = AsyncMock(return_value=SimpleNamespace(name="Regular"))
    monkeypatch.setattr(leveling_cmds, "add_role", add_role)
    member = MagicMock(spec=discord.Member)
    member.mention = "<@7>"
    message = make_message(author=member)

    await cog.handle_level_up(message, LevelUpResult(leveled_up=True, old_level=9, new_level=10))

    add_role.assert_awaited_once_with(member, RoleID(555), "Level 10 reward")
    text = message.channel.send.await_args.args[0]
    assert "**Regular**" in text
    assert leveling_cmds.MILESTONE_MESSAGES[10] in text


@pytest.mark.asyncio
async def test_level_up_announcement_failure_is_logged(clock):
    cog = leveling_cmds.LevelingCog(SimpleNamespace(), make_services(clock))
    message = make_message()
    message.channel.send = AsyncMock(side_effect=discord.HTTPException(MagicMock(), "boom"))

    await cog.handle_level_up(message, LevelUpResult(leveled_up=True, old_level=0, new_level=1))


@pytest.mark.asyncio
async def test_levels_shows_own_progress(clock):
    services = make_services(clock)
    await services.level_store.save(UserLevelProfile(user_id=UserID(7), message_count=15, level=1))
    cog = leveling_cmds.LevelingCog(SimpleNamespace(), services)
    author = SimpleNamespace(id=7, display_name="Alice", display_avatar=SimpleNamespace(url="https://x.invalid/a.png"))
    ctx: Any = SimpleNamespace(author=author, respond=AsyncMock())

    await leveling_cmds.LevelingCog.levels.callback(cog, ctx, None)

    embed = ctx.respond.await_args.kwargs["embed"]
    assert embed.title == "📈 Your Level"


@pytest.mark.asyncio
async def test_leaderboard_footer(clock):
    services = make_services(clock)
    await services.level_store.save(UserLevelProfile(user_id=UserID(1), message_count=30, level=2))
    cog = leveling_cmds.LevelingCog(SimpleNamespace(), services)
    ctx: Any = SimpleNamespace(respond=AsyncMock())

    await leveling_cmds.LevelingCog.leaderboard.callback(cog, ctx, 10)

    embed = ctx.respond.await_args.kwargs["embed"]
    assert embed.footer.text.startswith("1 members")
    assert "<@1>" in embed.description


@pytest.mark.asyncio
async def test_levelrole_set_and_list(clock, monkeypatch):
    monkeypatch.setattr(leveling_cmds, "has_permissions", lambda ctx, **_: True)
    services = make_services(clock)
    cog = leveling_cmds.LevelingCog(SimpleNamespace(), services)
    ctx: Any = SimpleNamespace(respond=AsyncMock())

    await leveling_cmds.LevelingCog.levelrole_set.callback(cog, ctx, 5, SimpleNamespace(id=555, mention="<@&555>"))
    assert services.level_roles.get(5) == RoleID(555)

    await leveling_cmds.LevelingCog.levelrole_list.callback(cog, ctx)
    assert ctx.respond.await_args.args[0] == "Level 5: <@&555>"

    await leveling_cmds.LevelingCog.levelrole_remove.callback(cog, ctx, 5)
    assert services.level_roles.get(5) is None


@pytest.mark.asyncio
async def test_levelrole_requires_manage_roles(clock, monkeypatch):
    monkeypatch.setattr(leveling_cmds, "has_permissions", lambda ctx, **_: False)
    services = make_services(clock)
    cog = leveling_cmds.LevelingCog(SimpleNamespace(), services)
    ctx: Any = SimpleNamespace(respond=AsyncMock())

    await leveling_cmds.LevelingCog.levelrole_set.callback(cog, ctx, 5, SimpleNamespace(id=555, mention="<@&555>"))

    assert services.level_roles.all() == {}
    assert "permission" in ctx.respond.await_args.args[0]
