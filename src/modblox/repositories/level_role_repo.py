"""
Repository for ``level_roles``: the level to reward-role side table.
"""

from __future__ import annotations

from typing import Dict

import aiosqlite

from modblox.datatypes.discord_datatypes import RoleID


class LevelRoleRepository:
    """CRUD for ``level_roles``."""

    @staticmethod
    async def get_all(conn: aiosqlite.Connection) -> Dict[int, RoleID]:
        async with conn.execute("SELECT level, role_id FROM level_roles") as cursor:
            rows = await cursor.fetchall()
        return {row[0]: RoleID(row[1]) for row in rows}

    @staticmethod
    async def upsert(conn: aiosqlite.Connection, level: int, role_id: RoleID) -> None:
        await conn.execute(
            """
            INSERT INTO level_roles (level, role_id) VALUES (?, ?)
            ON CONFLICT(level) DO UPDATE SET role_id = excluded.role_id
            """,
            (level, str(role_id)),
        )

    @staticmethod
    async def delete(conn: aiosqlite.Connection, level: int) -> None:
        await conn.execute("DELETE FROM level_roles WHERE level = ?", (level,))
