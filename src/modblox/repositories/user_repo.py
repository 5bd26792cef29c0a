"""
Repository for the ``users`` table.

A row holds both the Roblox link of a Discord user and their leveling
counters. Rows are created lazily by whichever feature touches the user first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import aiosqlite

from modblox.datatypes.discord_datatypes import UserID
from modblox.datatypes.level_datatypes import UserLevelProfile
from modblox.datatypes.verification_datatypes import VerifiedUser


@dataclass(slots=True)
class UserRow:
    """A single row from ``users``."""

    discord_id: str
    roblox_id: Optional[int]
    roblox_username: Optional[str]
    verified_at: Optional[int]
    message_count: int
    level: int
    last_message_time: int

    @property
    def is_verified(self) -> bool:
        return self.roblox_id is not None and self.verified_at is not None

    def to_verified_user(self) -> Optional[VerifiedUser]:
        if self.roblox_id is None or self.verified_at is None:
            return None
        return VerifiedUser(
            discord_id=UserID(self.discord_id),
            roblox_id=self.roblox_id,
            roblox_username=self.roblox_username or "",
            verified_at=self.verified_at,
        )

    def to_level_profile(self) -> UserLevelProfile:
        return UserLevelProfile(
            user_id=UserID(self.discord_id),
            message_count=self.message_count,
            level=self.level,
            last_message_time=self.last_message_time,
        )


_COLUMNS = "discord_id, roblox_id, roblox_username, verified_at, message_count, level, last_message_time"


def _to_row(row: aiosqlite.Row) -> UserRow:
    return UserRow(
        discord_id=row["discord_id"],
        roblox_id=row["roblox_id"],
        roblox_username=row["roblox_username"],
        verified_at=row["verified_at"],
        message_count=row["message_count"],
        level=row["level"],
        last_message_time=row["last_message_time"],
    )


class UserRepository:
    """CRUD for ``users``."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def ensure(conn: aiosqlite.Connection, discord_id: UserID) -> None:
        """Create an empty row for ``discord_id`` if none exists."""
        await conn.execute(
            "INSERT OR IGNORE INTO users (discord_id) VALUES (?)", (str(discord_id),)
        )

    @staticmethod
    async def set_link(
        conn: aiosqlite.Connection,
        discord_id: UserID,
        roblox_id: int,
        roblox_username: str,
        verified_at: int,
    ) -> None:
        await conn.execute(
            "UPDATE users SET roblox_id = ?, roblox_username = ?, verified_at = ? WHERE discord_id = ?",
            (roblox_id, roblox_username, verified_at, str(discord_id)),
        )

    @staticmethod
    async def clear_link(conn: aiosqlite.Connection, discord_id: UserID) -> None:
        await conn.execute(
            "UPDATE users SET roblox_id = NULL, roblox_username = NULL, verified_at = NULL "
            "WHERE discord_id = ?",
            (str(discord_id),),
        )

    @staticmethod
    async def save_level_profile(conn: aiosqlite.Connection, profile: UserLevelProfile) -> None:
        """Upsert the leveling counters of ``profile``."""
        await conn.execute(
            """
            INSERT INTO users (discord_id, message_count, level, last_message_time)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(discord_id) DO UPDATE SET
                message_count     = excluded.message_count,
                level             = excluded.level,
                last_message_time = excluded.last_message_time
            """,
            (str(profile.user_id), profile.message_count, profile.level, profile.last_message_time),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def get(conn: aiosqlite.Connection, discord_id: UserID) -> Optional[UserRow]:
        async with conn.execute(
            f"SELECT {_COLUMNS} FROM users WHERE discord_id = ?", (str(discord_id),)
        ) as cursor:
            row = await cursor.fetchone()
        return _to_row(row) if row is not None else None

    @staticmethod
    async def get_by_roblox_id(conn: aiosqlite.Connection, roblox_id: int) -> Optional[UserRow]:
        async with conn.execute(
            f"SELECT {_COLUMNS} FROM users WHERE roblox_id = ?", (roblox_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return _to_row(row) if row is not None else None

    @staticmethod
    async def all_verified(conn: aiosqlite.Connection) -> List[UserRow]:
        async with conn.execute(
            f"SELECT {_COLUMNS} FROM users "
            "WHERE roblox_id IS NOT NULL AND verified_at IS NOT NULL "
            "ORDER BY verified_at ASC"
        ) as cursor:
            rows = await cursor.fetchall()
        return [_to_row(row) for row in rows]

    @staticmethod
    async def all_level_profiles(conn: aiosqlite.Connection) -> List[UserLevelProfile]:
        """Every row that has counted at least one message."""
        async with conn.execute(
            f"SELECT {_COLUMNS} FROM users WHERE message_count > 0"
        ) as cursor:
            rows = await cursor.fetchall()
        return [_to_row(row).to_level_profile() for row in rows]
