"""
Repository for ``verification_history``: Roblox accounts a Discord user has
unlinked or replaced.
"""

from __future__ import annotations

from typing import List

import aiosqlite

from modblox.datatypes.discord_datatypes import UserID
from modblox.datatypes.verification_datatypes import PreviousAccount


class VerificationHistoryRepository:
    """Insert and list previous account links."""

    @staticmethod
    async def insert(
        conn: aiosqlite.Connection,
        discord_id: UserID,
        roblox_id: int,
        roblox_username: str,
        linked_at: int,
        unlinked_at: int,
    ) -> None:
        await conn.execute(
            """
            INSERT INTO verification_history
                (discord_id, roblox_id, roblox_username, linked_at, unlinked_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (str(discord_id), roblox_id, roblox_username, linked_at, unlinked_at),
        )

    @staticmethod
    async def for_user(conn: aiosqlite.Connection, discord_id: UserID) -> List[PreviousAccount]:
        """Previous accounts of ``discord_id``, most recently unlinked first."""
        async with conn.execute(
            "SELECT roblox_id, roblox_username, linked_at, unlinked_at "
            "FROM verification_history WHERE discord_id = ? "
            "ORDER BY unlinked_at DESC, id DESC",
            (str(discord_id),),
        ) as cursor:
            rows = await cursor.fetchall()
        return [
            PreviousAccount(
                roblox_id=row[0],
                roblox_username=row[1],
                linked_at=row[2],
                unlinked_at=row[3],
            )
            for row in rows
        ]
