"""Tests for the moderation ledger against a real SQLite database."""

import asyncio
import gc
import sqlite3

import pytest
import pytest_asyncio

from modblox.datatypes.action_datatypes import ActionKind, HistoryFilter, KindGroup
from modblox.datatypes.discord_datatypes import GuildID, UserID
from modblox.errors import ConflictError, NotFoundError, ReversalError, ValidationError
from modblox.moderation.duration import DAY_MS, HOUR_MS, TIMEOUT_CEILING_MS
from modblox.moderation.ledger import HISTORY_HARD_CAP, ModerationLedger
from modblox.repositories.moderation_log_repo import ModerationLogRepository

GUILD = GuildID(111)
OTHER_GUILD = GuildID(222)
TARGET = UserID(1001)
OTHER_TARGET = UserID(1002)
MOD = UserID(9001)
OTHER_MOD = UserID(9002)


@pytest_asyncio.fixture
async def ledger(db, clock):
    return ModerationLedger(db, clock)


@pytest.mark.asyncio
async def test_record_ban_assigns_case_id_and_starts_active(ledger):
    record = await ledger.record_action(GUILD, TARGET, MOD, ActionKind.BAN, "raiding")

    assert record.id == 1
    assert record.kind is ActionKind.BAN
    assert record.is_active is True
    assert record.duration is None and record.expires_at is None
    assert record.guild_id == GUILD and record.target_id == TARGET and record.moderator_id == MOD


@pytest.mark.asyncio
async def test_second_ban_conflicts_with_existing_record(ledger):
    await ledger.record_action(GUILD, TARGET, MOD, ActionKind.BAN, "spam")

    with pytest.raises(ConflictError) as exc_info:
        await ledger.record_action(GUILD, TARGET, OTHER_MOD, ActionKind.BAN, "again")

    assert exc_info.value.existing.id == 1
    assert exc_info.value.existing.reason == "spam"
    assert len(await ledger.query_history(GUILD)) == 1


@pytest.mark.asyncio
async def test_ban_in_one_guild_does_not_block_another(ledger):
    await ledger.record_action(GUILD, TARGET, MOD, ActionKind.BAN, "spam")
    record = await ledger.record_action(OTHER_GUILD, TARGET, MOD, ActionKind.BAN, "spam")
    assert record.id == 2


@pytest.mark.asyncio
async def test_timeout_expires_lazily(ledger, clock):
    record = await ledger.record_action(GUILD, TARGET, MOD, ActionKind.TIMEOUT, "flood", 3_600_000)
    assert record.expires_at == 3_600_000

    clock.now = 3_700_000
    assert await ledger.get_active_effect(GUILD, TARGET, KindGroup.MUTE) is None

    stored = await ledger.get_case(record.id)
    assert stored.is_active is True


@pytest.mark.asyncio
async def test_expired_record_is_closed_by_next_write(ledger, clock):
    first = await ledger.record_action(GUILD, TARGET, MOD, ActionKind.TIMEOUT, "flood", HOUR_MS)
    clock.advance(2 * HOUR_MS)

    second = await ledger.record_action(GUILD, TARGET, MOD, ActionKind.MUTE, "flood again")

    assert (await ledger.get_case(first.id)).is_active is False
    effect = await ledger.get_active_effect(GUILD, TARGET, KindGroup.MUTE)
    assert effect is not None and effect.id == second.id


@pytest.mark.asyncio
async def test_expiry_boundary_is_inclusive(ledger, clock):
    await ledger.record_action(GUILD, TARGET, MOD, ActionKind.BAN, "temp", DAY_MS)

    assert await ledger.get_active_effect(GUILD, TARGET, KindGroup.BAN, now=DAY_MS - 1) is not None
    assert await ledger.get_active_effect(GUILD, TARGET, KindGroup.BAN, now=DAY_MS) is None


@pytest.mark.asyncio
async def test_mute_and_timeout_are_mutually_exclusive(ledger):
    await ledger.record_action(GUILD, TARGET, MOD, ActionKind.MUTE, "rude")
    with pytest.raises(ConflictError):
        await ledger.record_action(GUILD, TARGET, MOD, ActionKind.TIMEOUT, "rude", HOUR_MS)

    await ledger.record_action(GUILD, OTHER_TARGET, MOD, ActionKind.TIMEOUT, "rude", HOUR_MS)
    with pytest.raises(ConflictError):
        await ledger.record_action(GUILD, OTHER_TARGET, MOD, ActionKind.MUTE, "rude")


@pytest.mark.asyncio
async def test_ban_and_mute_can_coexist(ledger):
    await ledger.record_action(GUILD, TARGET, MOD, ActionKind.MUTE, "rude")
    await ledger.record_action(GUILD, TARGET, MOD, ActionKind.BAN, "very rude")

    assert await ledger.get_active_effect(GUILD, TARGET, KindGroup.BAN) is not None
    assert await ledger.get_active_effect(GUILD, TARGET, KindGroup.MUTE) is not None


@pytest.mark.asyncio
async def test_concurrent_bans_for_same_target_allow_only_one(ledger):
    results = await asyncio.gather(
        ledger.record_action(GUILD, TARGET, MOD, ActionKind.BAN, "first"),
        ledger.record_action(GUILD, TARGET, OTHER_MOD, ActionKind.BAN, "second"),
        return_exceptions=True,
    )

    conflicts = [r for r in results if isinstance(r, ConflictError)]
    records = [r for r in results if not isinstance(r, BaseException)]
    assert len(conflicts) == 1
    assert len(records) == 1


@pytest.mark.asyncio
async def test_point_in_time_kinds_are_stored_inactive(ledger):
    kick = await ledger.record_action(GUILD, TARGET, MOD, ActionKind.KICK, "leave")
    assert kick.is_active is False
    assert (await ledger.get_case(kick.id)).is_active is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kind, reason, duration",
    [
        (ActionKind.BAN, "", None),
        (ActionKind.BAN, "   ", None),
        (ActionKind.BAN, "spam", -1),
        (ActionKind.WARNING, "spam", HOUR_MS),
        (ActionKind.KICK, "spam", HOUR_MS),
        (ActionKind.TIMEOUT, "spam", None),
        (ActionKind.TIMEOUT, "spam", TIMEOUT_CEILING_MS + 1),
    ],
)
async def test_record_action_validation(ledger, kind, reason, duration):
    with pytest.raises(ValidationError):
        await ledger.record_action(GUILD, TARGET, MOD, kind, reason, duration)
    assert await ledger.query_history(GUILD) == []


@pytest.mark.asyncio
async def test_reverse_ban_appends_unban_and_deactivates(ledger, clock):
    ban = await ledger.record_action(GUILD, TARGET, MOD, ActionKind.BAN, "spam")
    clock.advance(1000)

    unban = await ledger.reverse_latest(GUILD, TARGET, ActionKind.BAN, OTHER_MOD, "appeal accepted")

    assert unban.kind is ActionKind.UNBAN
    assert unban.is_active is False
    assert unban.id == ban.id + 1
    assert unban.created_at == 1000
    assert (await ledger.get_case(ban.id)).is_active is False
    assert await ledger.get_active_effect(GUILD, TARGET, KindGroup.BAN) is None

    again = await ledger.record_action(GUILD, TARGET, MOD, ActionKind.BAN, "back at it")
    assert again.is_active is True


@pytest.mark.asyncio
async def test_reverse_timeout_appends_untimeout(ledger):
    await ledger.record_action(GUILD, TARGET, MOD, ActionKind.TIMEOUT, "flood", HOUR_MS)
    undo = await ledger.reverse_latest(GUILD, TARGET, ActionKind.TIMEOUT, MOD, "served")
    assert undo.kind is ActionKind.UNTIMEOUT


@pytest.mark.asyncio
async def test_reverse_without_active_record_fails(ledger):
    with pytest.raises(ReversalError):
        await ledger.reverse_latest(GUILD, TARGET, ActionKind.BAN, MOD, "nothing")

    await ledger.record_action(GUILD, TARGET, MOD, ActionKind.MUTE, "rude")
    with pytest.raises(ReversalError):
        await ledger.reverse_latest(GUILD, TARGET, ActionKind.TIMEOUT, MOD, "wrong kind")


@pytest.mark.asyncio
async def test_reverse_point_in_time_kind_is_rejected(ledger):
    with pytest.raises(ValidationError):
        await ledger.reverse_latest(GUILD, TARGET, ActionKind.KICK, MOD, "undo")


@pytest.mark.asyncio
async def test_warnings_accumulate_and_removal_marks_newest(ledger, clock):
    for reason in ("one", "two", "three"):
        await ledger.record_action(GUILD, TARGET, MOD, ActionKind.WARNING, reason)
        clock.advance(1)
    assert await ledger.count_active_of_kind(GUILD, TARGET, ActionKind.WARNING) == 3

    marker = await ledger.reverse_latest(GUILD, TARGET, ActionKind.WARNING, MOD, "mistake")

    assert marker.kind is ActionKind.WARNING
    assert marker.is_active is False
    assert marker.reason == "Removed warning: mistake"
    assert await ledger.count_active_of_kind(GUILD, TARGET, ActionKind.WARNING) == 2
    assert (await ledger.get_case(3)).is_active is False
    assert (await ledger.get_case(1)).is_active is True


@pytest.mark.asyncio
async def test_same_timestamp_records_order_by_case_id(ledger):
    for reason in ("one", "two", "three"):
        await ledger.record_action(GUILD, TARGET, MOD, ActionKind.WARNING, reason)

    history = await ledger.query_history(GUILD)
    assert [record.id for record in history] == [3, 2, 1]

    await ledger.reverse_latest(GUILD, TARGET, ActionKind.WARNING, MOD, "mistake")

    assert (await ledger.get_case(3)).is_active is False
    assert (await ledger.get_case(2)).is_active is True
    assert (await ledger.get_case(1)).is_active is True


async def _insert_raw(db, kind, created_at, expires_at):
    async with db.transaction() as conn:
        return await ModerationLogRepository.insert(
            conn,
            guild_id=GUILD,
            target_id=TARGET,
            moderator_id=MOD,
            kind=kind,
            reason=f"{kind.value} at {created_at}",
            created_at=created_at,
            duration=None if expires_at is None else expires_at - created_at,
            expires_at=expires_at,
            is_active=True,
        )


@pytest.mark.asyncio
async def test_active_effect_same_timestamp_newest_case_decides(ledger, db):
    await _insert_raw(db, ActionKind.MUTE, created_at=0, expires_at=None)
    await _insert_raw(db, ActionKind.TIMEOUT, created_at=0, expires_at=HOUR_MS)

    effect = await ledger.get_active_effect(GUILD, TARGET, KindGroup.MUTE, now=HOUR_MS - 1)
    assert effect is not None and effect.id == 2

    # The newest record has expired, so the group reads as clear.
    assert await ledger.get_active_effect(GUILD, TARGET, KindGroup.MUTE, now=HOUR_MS) is None


@pytest.mark.asyncio
async def test_per_key_locks_are_released_after_use(ledger):
    for target in range(50):
        await ledger.record_action(GUILD, UserID(target + 1), MOD, ActionKind.WARNING, "noise")
    await ledger.reverse_latest(GUILD, UserID(1), ActionKind.WARNING, MOD, "undo")

    gc.collect()
    assert len(ledger._per_key_locks) == 0


@pytest.mark.asyncio
async def test_community_and_game_bans_are_counted_separately(ledger):
    await ledger.record_action(GUILD, TARGET, MOD, ActionKind.COMMUNITYBAN, "alt account")
    await ledger.record_action(GUILD, TARGET, MOD, ActionKind.COMMUNITYBAN, "ban evasion")
    await ledger.record_action(GUILD, TARGET, MOD, ActionKind.GAMEBAN, "exploiting")

    assert await ledger.count_active_of_kind(GUILD, TARGET, ActionKind.COMMUNITYBAN) == 2
    assert await ledger.count_active_of_kind(GUILD, TARGET, ActionKind.GAMEBAN) == 1
    assert await ledger.count_active_of_kind(GUILD, TARGET, ActionKind.WARNING) == 0


@pytest.mark.asyncio
async def test_query_history_newest_first_with_filters(ledger, clock):
    await ledger.record_action(GUILD, TARGET, MOD, ActionKind.WARNING, "a")
    clock.advance(10)
    await ledger.record_action(GUILD, OTHER_TARGET, OTHER_MOD, ActionKind.KICK, "b")
    clock.advance(10)
    await ledger.record_action(GUILD, TARGET, OTHER_MOD, ActionKind.WARNING, "c")
    await ledger.record_action(OTHER_GUILD, TARGET, MOD, ActionKind.WARNING, "elsewhere")

    history = await ledger.query_history(GUILD)
    assert [record.reason for record in history] == ["c", "b", "a"]

    by_target = await ledger.query_history(GUILD, HistoryFilter(target_id=TARGET))
    assert [record.reason for record in by_target] == ["c", "a"]

    by_moderator = await ledger.query_history(GUILD, HistoryFilter(moderator_id=OTHER_MOD))
    assert [record.reason for record in by_moderator] == ["c", "b"]

    by_kind = await ledger.query_history(GUILD, HistoryFilter(kind=ActionKind.KICK))
    assert [record.reason for record in by_kind] == ["b"]

    assert len(await ledger.query_history(GUILD, limit=1)) == 1


@pytest.mark.asyncio
async def test_query_history_limit_bounds(ledger):
    for i in range(HISTORY_HARD_CAP + 5):
        await ledger.record_action(GUILD, TARGET, MOD, ActionKind.WARNING, f"w{i}")

    assert len(await ledger.query_history(GUILD, limit=500)) == HISTORY_HARD_CAP
    with pytest.raises(ValidationError):
        await ledger.query_history(GUILD, limit=0)


@pytest.mark.asyncio
async def test_get_case_unknown_id(ledger):
    with pytest.raises(NotFoundError):
        await ledger.get_case(42)


@pytest.mark.asyncio
async def test_guild_counts(ledger, clock):
    await ledger.record_action(GUILD, TARGET, MOD, ActionKind.BAN, "a")
    await ledger.record_action(GUILD, OTHER_TARGET, MOD, ActionKind.BAN, "b", DAY_MS)
    await ledger.record_action(GUILD, TARGET, OTHER_MOD, ActionKind.WARNING, "c")
    clock.advance(2 * DAY_MS)
    await ledger.record_action(GUILD, OTHER_TARGET, OTHER_MOD, ActionKind.MUTE, "d")

    assert await ledger.count_actions(GUILD) == 4
    assert await ledger.count_actions(GUILD, since=DAY_MS) == 1
    assert await ledger.count_actions(GUILD, kind=ActionKind.BAN) == 2
    assert await ledger.count_in_effect(GUILD, KindGroup.BAN) == 1
    assert await ledger.count_in_effect(GUILD, KindGroup.MUTE) == 1

    by_kind = dict(await ledger.count_by(GUILD, "kind"))
    assert by_kind == {"ban": 2, "warning": 1, "mute": 1}
    top = await ledger.count_by(GUILD, "moderator_id", limit=1)
    assert len(top) == 1 and top[0][1] == 2


@pytest.mark.asyncio
async def test_storage_is_append_only(ledger, db):
    record = await ledger.record_action(GUILD, TARGET, MOD, ActionKind.WARNING, "keep me")

    with pytest.raises(sqlite3.IntegrityError):
        async with db.transaction() as conn:
            await conn.execute("DELETE FROM moderation_logs WHERE id = ?", (record.id,))

    with pytest.raises(sqlite3.IntegrityError):
        async with db.transaction() as conn:
            await conn.execute("UPDATE moderation_logs SET reason = 'edited' WHERE id = ?", (record.id,))

    stored = await ledger.get_case(record.id)
    assert stored.reason == "keep me"
