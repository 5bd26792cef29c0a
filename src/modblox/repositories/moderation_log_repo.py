"""
Repository for the ``moderation_logs`` table.

Only SQL lives here. The ledger decides what to write and when; this module
turns filters into WHERE clauses and rows into :class:`ModerationAction`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, FrozenSet, List, Optional, Tuple

import aiosqlite

from modblox.datatypes.action_datatypes import ActionKind, ModerationAction
from modblox.datatypes.discord_datatypes import GuildID, UserID
from modblox.util.logger import get_logger

logger = get_logger("moderation_log_repo")

_COLUMNS = (
    "id, guild_id, target_id, moderator_id, kind, reason, "
    "duration, expires_at, is_active, created_at"
)

# Columns that aggregate_count_by_field may group on.
_GROUPABLE = frozenset({"kind", "moderator_id", "target_id"})


@dataclass(frozen=True, slots=True)
class LogFilter:
    """Conjunction of predicates over ``moderation_logs``.

    ``kinds`` is a "value in set" predicate; ``created_since`` keeps rows with
    ``created_at >=`` the given millisecond timestamp.
    """

    guild_id: Optional[GuildID] = None
    target_id: Optional[UserID] = None
    moderator_id: Optional[UserID] = None
    kinds: FrozenSet[ActionKind] = field(default_factory=frozenset)
    is_active: Optional[bool] = None
    created_since: Optional[int] = None

    def to_sql(self) -> Tuple[str, List[Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        if self.guild_id is not None:
            clauses.append("guild_id = ?")
            params.append(str(self.guild_id))
        if self.target_id is not None:
            clauses.append("target_id = ?")
            params.append(str(self.target_id))
        if self.moderator_id is not None:
            clauses.append("moderator_id = ?")
            params.append(str(self.moderator_id))
        if self.kinds:
            ordered = sorted(kind.value for kind in self.kinds)
            clauses.append(f"kind IN ({','.join('?' * len(ordered))})")
            params.extend(ordered)
        if self.is_active is not None:
            clauses.append("is_active = ?")
            params.append(int(self.is_active))
        if self.created_since is not None:
            clauses.append("created_at >= ?")
            params.append(self.created_since)

        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params


def _row_to_action(row: aiosqlite.Row) -> ModerationAction:
    return ModerationAction(
        id=row["id"],
        guild_id=GuildID(row["guild_id"]),
        target_id=UserID(row["target_id"]),
        moderator_id=UserID(row["moderator_id"]),
        kind=ActionKind(row["kind"]),
        reason=row["reason"],
        created_at=row["created_at"],
        duration=row["duration"],
        expires_at=row["expires_at"],
        is_active=bool(row["is_active"]),
    )


class ModerationLogRepository:
    """Low-level access to ``moderation_logs``. Rows are never deleted."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def insert(
        conn: aiosqlite.Connection,
        guild_id: GuildID,
        target_id: UserID,
        moderator_id: UserID,
        kind: ActionKind,
        reason: str,
        created_at: int,
        duration: Optional[int],
        expires_at: Optional[int],
        is_active: bool,
    ) -> int:
        """Append a record and return its new case ID."""
        cursor = await conn.execute(
            """
            INSERT INTO moderation_logs
                (guild_id, target_id, moderator_id, kind, reason,
                 duration, expires_at, is_active, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(guild_id),
                str(target_id),
                str(moderator_id),
                kind.value,
                reason,
                duration,
                expires_at,
                int(is_active),
                created_at,
            ),
        )
        case_id = cursor.lastrowid
        await cursor.close()
        if case_id is None:
            raise RuntimeError("moderation_logs insert did not return a row id")
        return case_id

    @staticmethod
    async def set_active(conn: aiosqlite.Connection, case_id: int, is_active: bool) -> None:
        """Patch ``is_active``, the only mutable column."""
        await conn.execute(
            "UPDATE moderation_logs SET is_active = ? WHERE id = ?",
            (int(is_active), case_id),
        )

    @staticmethod
    async def deactivate_expired(
        conn: aiosqlite.Connection, log_filter: LogFilter, now: int
    ) -> int:
        """Flip rows matching ``log_filter`` whose ``expires_at`` has passed; returns the row count."""
        where, params = log_filter.to_sql()
        expiry_clause = "expires_at IS NOT NULL AND expires_at <= ?"
        where = f"{where} AND {expiry_clause}" if where else f" WHERE {expiry_clause}"
        cursor = await conn.execute(
            f"UPDATE moderation_logs SET is_active = 0{where}",
            (*params, now),
        )
        changed = cursor.rowcount
        await cursor.close()
        return changed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def get(conn: aiosqlite.Connection, case_id: int) -> Optional[ModerationAction]:
        async with conn.execute(
            f"SELECT {_COLUMNS} FROM moderation_logs WHERE id = ?", (case_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_action(row) if row is not None else None

    @staticmethod
    async def find_one(
        conn: aiosqlite.Connection, log_filter: LogFilter
    ) -> Optional[ModerationAction]:
        """Newest matching record: latest ``created_at``, ties broken by highest id."""
        records = await ModerationLogRepository.find_all(conn, log_filter, limit=1)
        return records[0] if records else None

    @staticmethod
    async def find_all(
        conn: aiosqlite.Connection, log_filter: LogFilter, limit: Optional[int] = None
    ) -> List[ModerationAction]:
        """Matching records, newest first."""
        where, params = log_filter.to_sql()
        query = f"SELECT {_COLUMNS} FROM moderation_logs{where} ORDER BY created_at DESC, id DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        async with conn.execute(query, params) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_action(row) for row in rows]

    @staticmethod
    async def count(conn: aiosqlite.Connection, log_filter: LogFilter) -> int:
        where, params = log_filter.to_sql()
        async with conn.execute(f"SELECT COUNT(*) FROM moderation_logs{where}", params) as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    @staticmethod
    async def aggregate_count_by_field(
        conn: aiosqlite.Connection,
        log_filter: LogFilter,
        field_name: str,
        limit: Optional[int] = None,
    ) -> List[Tuple[str, int]]:
        """``(value, count)`` pairs grouped on ``field_name``, largest count first."""
        if field_name not in _GROUPABLE:
            raise ValueError(f"Cannot group moderation logs by {field_name!r}")

        where, params = log_filter.to_sql()
        query = (
            f"SELECT {field_name}, COUNT(*) AS total FROM moderation_logs{where} "
            f"GROUP BY {field_name} ORDER BY total DESC, {field_name} ASC"
        )
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        async with conn.execute(query, params) as cursor:
            rows = await cursor.fetchall()
        return [(row[0], int(row[1])) for row in rows]
