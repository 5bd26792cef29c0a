"""
Moderation action ledger.

The ledger is the authoritative, append-only record of moderation actions and
the single source of truth for "is this user banned / muted right now".

Record lifecycle per (guild, target) for the singleton groups (ban, and the
merged mute/timeout group):

    CLEAN -> ACTIVE -> (EXPIRED | REVERSED) -> CLEAN

- ``record_action`` moves CLEAN to ACTIVE and raises :class:`ConflictError`
  while something in the same group is still in effect.
- Expiry is lazy: readers compare ``expires_at`` with the clock and treat the
  record as inactive without writing anything back. The next write into the
  same group flips stale rows to inactive in the same transaction.
- ``reverse_latest`` flips the newest active record and appends the undo
  record (``unban``, ``unmute``, ``untimeout``).

Warnings, community bans and game bans accumulate instead: several may be
active at once, and reversal appends a same-kind, inactive removal marker.

Check-then-act for a (guild, target) key runs under a per-key asyncio lock
and inside one write transaction, so two handlers cannot both pass the
"already banned" check.
"""

from __future__ import annotations

import asyncio
import weakref
from typing import List, Optional, Tuple

from modblox.database.db_connection import ConnectionManager, db_connection
from modblox.datatypes.action_datatypes import (
    ActionKind,
    HistoryFilter,
    KindGroup,
    ModerationAction,
    removal_reason,
    reversal_kind,
)
from modblox.datatypes.discord_datatypes import GuildID, UserID
from modblox.errors import ConflictError, NotFoundError, ReversalError, ValidationError
from modblox.moderation.duration import TIMEOUT_CEILING_MS, format_duration
from modblox.repositories.moderation_log_repo import LogFilter, ModerationLogRepository
from modblox.util.logger import get_logger
from modblox.util.time_utils import Clock, ensure_timestamp, now_ms

logger = get_logger("moderation_ledger")

HISTORY_HARD_CAP = 50


def _validate_reason(reason: str) -> str:
    if not reason or not reason.strip():
        raise ValidationError("A reason is required")
    return reason.strip()


def _validate_duration(kind: ActionKind, duration: Optional[int]) -> None:
    if duration is None:
        if kind is ActionKind.TIMEOUT:
            raise ValidationError("A timeout requires a duration")
        return
    if isinstance(duration, bool) or not isinstance(duration, int):
        raise ValidationError(f"Duration must be whole milliseconds, got {duration!r}")
    if duration < 0:
        raise ValidationError("Duration cannot be negative")
    if not kind.can_expire:
        raise ValidationError(f"A {kind.label} cannot have a duration")
    if kind is ActionKind.TIMEOUT and duration > TIMEOUT_CEILING_MS:
        raise ValidationError(
            f"A timeout cannot exceed {format_duration(TIMEOUT_CEILING_MS)}; use a mute instead"
        )


class ModerationLedger:
    """Append-only store of moderation actions with lazy expiry.

    Args:
        connection: Database connection manager; defaults to the process-wide one.
        clock: Source of unix-millisecond timestamps.
    """

    def __init__(self, connection: ConnectionManager = db_connection, clock: Clock = now_ms) -> None:
        self._db = connection
        self._clock = clock
        # Entries vanish once no coroutine holds or awaits the lock.
        self._per_key_locks: weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, guild_id: GuildID, target_id: UserID) -> asyncio.Lock:
        key = (str(guild_id), str(target_id))
        lock = self._per_key_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._per_key_locks[key] = lock
        return lock

    def _now(self) -> int:
        return ensure_timestamp(self._clock(), "clock")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def record_action(
        self,
        guild_id: GuildID,
        target_id: UserID,
        moderator_id: UserID,
        kind: ActionKind,
        reason: str,
        duration: Optional[int] = None,
    ) -> ModerationAction:
        """Append a new action and return the stored record.

        Effect-bearing kinds start active; kicks and the undo kinds are
        point-in-time events stored inactive.

        Raises:
            ValidationError: Empty reason, negative duration, a duration on a
                kind that cannot expire, or a timeout without a valid duration.
            ConflictError: ``kind`` belongs to the ban or mute group and a
                record of that group is still in effect for the target.
        """
        reason = _validate_reason(reason)
        _validate_duration(kind, duration)
        group = KindGroup.of(kind)

        async with self._lock_for(guild_id, target_id):
            now = self._now()
            expires_at = now + duration if duration is not None else None

            async with self._db.transaction() as conn:
                if group is not None:
                    group_filter = LogFilter(
                        guild_id=guild_id, target_id=target_id, kinds=group.kinds, is_active=True
                    )
                    current = await ModerationLogRepository.find_one(conn, group_filter)
                    if current is not None and current.is_in_effect(now):
                        raise ConflictError(
                            f"User already has an active {current.kind.label} "
                            f"(case #{current.id}): {current.reason}",
                            existing=current,
                        )
                    stale = await ModerationLogRepository.deactivate_expired(conn, group_filter, now)
                    if stale:
                        logger.debug(
                            "[LEDGER] Closed %d expired %s record(s) for %s in guild %s",
                            stale, group.name.lower(), target_id, guild_id,
                        )

                case_id = await ModerationLogRepository.insert(
                    conn,
                    guild_id=guild_id,
                    target_id=target_id,
                    moderator_id=moderator_id,
                    kind=kind,
                    reason=reason,
                    created_at=now,
                    duration=duration,
                    expires_at=expires_at,
                    is_active=kind.has_effect,
                )

        logger.info(
            "[LEDGER] Case #%d: %s on %s by %s in guild %s",
            case_id, kind, target_id, moderator_id, guild_id,
        )
        return ModerationAction(
            id=case_id,
            guild_id=GuildID(guild_id),
            target_id=UserID(target_id),
            moderator_id=UserID(moderator_id),
            kind=kind,
            reason=reason,
            created_at=now,
            duration=duration,
            expires_at=expires_at,
            is_active=kind.has_effect,
        )

    async def reverse_latest(
        self,
        guild_id: GuildID,
        target_id: UserID,
        kind: ActionKind,
        moderator_id: UserID,
        reason: str,
    ) -> ModerationAction:
        """Deactivate the newest active ``kind`` record and append its undo record.

        Returns:
            The newly appended record (``unban``/``unmute``/``untimeout``, or a
            same-kind removal marker for accumulating kinds).

        Raises:
            ValidationError: Empty reason, or ``kind`` is a point-in-time kind.
            ReversalError: No active record of ``kind`` exists.
        """
        reason = _validate_reason(reason)
        undo_kind = reversal_kind(kind)
        if kind.is_accumulating:
            undo_reason = removal_reason(kind, reason)
        else:
            undo_reason = reason

        async with self._lock_for(guild_id, target_id):
            now = self._now()
            async with self._db.transaction() as conn:
                latest = await ModerationLogRepository.find_one(
                    conn,
                    LogFilter(
                        guild_id=guild_id,
                        target_id=target_id,
                        kinds=frozenset({kind}),
                        is_active=True,
                    ),
                )
                if latest is None:
                    raise ReversalError(f"nothing to reverse: no active {kind.label} on record")

                await ModerationLogRepository.set_active(conn, latest.id, False)
                case_id = await ModerationLogRepository.insert(
                    conn,
                    guild_id=guild_id,
                    target_id=target_id,
                    moderator_id=moderator_id,
                    kind=undo_kind,
                    reason=undo_reason,
                    created_at=now,
                    duration=None,
                    expires_at=None,
                    is_active=False,
                )

        logger.info(
            "[LEDGER] Case #%d: reversed case #%d (%s) on %s in guild %s",
            case_id, latest.id, kind, target_id, guild_id,
        )
        return ModerationAction(
            id=case_id,
            guild_id=GuildID(guild_id),
            target_id=UserID(target_id),
            moderator_id=UserID(moderator_id),
            kind=undo_kind,
            reason=undo_reason,
            created_at=now,
            is_active=False,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_active_effect(
        self,
        guild_id: GuildID,
        target_id: UserID,
        group: KindGroup,
        now: Optional[int] = None,
    ) -> Optional[ModerationAction]:
        """Newest active record of ``group``, or None if there is none or it has expired.

        Nothing is written back when an expired record is found.
        """
        at = self._now() if now is None else ensure_timestamp(now, "now")
        async with self._db.read() as conn:
            latest = await ModerationLogRepository.find_one(
                conn,
                LogFilter(guild_id=guild_id, target_id=target_id, kinds=group.kinds, is_active=True),
            )
        if latest is None or latest.is_expired(at):
            return None
        return latest

    async def count_active_of_kind(self, guild_id: GuildID, target_id: UserID, kind: ActionKind) -> int:
        """Number of active records of exactly ``kind`` for the target."""
        async with self._db.read() as conn:
            return await ModerationLogRepository.count(
                conn,
                LogFilter(
                    guild_id=guild_id, target_id=target_id, kinds=frozenset({kind}), is_active=True
                ),
            )

    async def query_history(
        self,
        guild_id: GuildID,
        filters: Optional[HistoryFilter] = None,
        limit: int = 10,
    ) -> List[ModerationAction]:
        """Records for a guild, newest first, at most ``HISTORY_HARD_CAP`` of them.

        Raises:
            ValidationError: If ``limit`` is less than one.
        """
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        filters = filters or HistoryFilter()
        log_filter = LogFilter(
            guild_id=guild_id,
            target_id=filters.target_id,
            moderator_id=filters.moderator_id,
            kinds=frozenset({filters.kind}) if filters.kind is not None else frozenset(),
        )
        async with self._db.read() as conn:
            return await ModerationLogRepository.find_all(
                conn, log_filter, limit=min(limit, HISTORY_HARD_CAP)
            )

    async def get_case(self, case_id: int) -> ModerationAction:
        """Look up a record by case ID.

        Raises:
            NotFoundError: If no record has that ID.
        """
        async with self._db.read() as conn:
            record = await ModerationLogRepository.get(conn, case_id)
        if record is None:
            raise NotFoundError(f"Case #{case_id} does not exist")
        return record

    async def count_actions(
        self,
        guild_id: GuildID,
        since: Optional[int] = None,
        kind: Optional[ActionKind] = None,
        active_only: bool = False,
    ) -> int:
        """Number of records in a guild, optionally filtered by time window, kind and activity."""
        log_filter = LogFilter(
            guild_id=guild_id,
            kinds=frozenset({kind}) if kind is not None else frozenset(),
            is_active=True if active_only else None,
            created_since=since,
        )
        async with self._db.read() as conn:
            return await ModerationLogRepository.count(conn, log_filter)

    async def count_by(
        self,
        guild_id: GuildID,
        field_name: str,
        since: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Tuple[str, int]]:
        """``(value, count)`` pairs for ``kind``, ``moderator_id`` or ``target_id``."""
        log_filter = LogFilter(guild_id=guild_id, created_since=since)
        async with self._db.read() as conn:
            return await ModerationLogRepository.aggregate_count_by_field(
                conn, log_filter, field_name, limit=limit
            )

    async def count_in_effect(self, guild_id: GuildID, group: KindGroup, now: Optional[int] = None) -> int:
        """Number of distinct targets with an unexpired active record of ``group``."""
        at = self._now() if now is None else ensure_timestamp(now, "now")
        async with self._db.read() as conn:
            records = await ModerationLogRepository.find_all(
                conn, LogFilter(guild_id=guild_id, kinds=group.kinds, is_active=True)
            )
        return len({record.target_id for record in records if not record.is_expired(at)})
