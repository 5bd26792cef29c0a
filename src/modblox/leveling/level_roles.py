"""
Level to reward-role side table.

The engine never consults this table; the level-up handler looks up the new
level here after :meth:`LevelingEngine.ingest_message` reports a level-up.
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional

from modblox.database.db_connection import ConnectionManager
from modblox.datatypes.discord_datatypes import RoleID
from modblox.errors import ValidationError
from modblox.leveling.engine import MAX_LEVEL
from modblox.repositories.level_role_repo import LevelRoleRepository
from modblox.util.logger import get_logger

logger = get_logger("level_roles")


def _check_level(level: int) -> int:
    if isinstance(level, bool) or not isinstance(level, int) or not 1 <= level <= MAX_LEVEL:
        raise ValidationError(f"Level must be between 1 and {MAX_LEVEL}, got {level!r}")
    return level


class LevelRoleTable:
    """Maps a level to the role awarded on reaching it.

    Args:
        seed: Initial mapping, usually from ``leveling.level_roles`` in the config.
        connection: When given, changes are persisted in ``level_roles`` and
            :meth:`load` merges the stored mapping over the seed.
    """

    def __init__(
        self,
        seed: Optional[Mapping[int, RoleID]] = None,
        connection: Optional[ConnectionManager] = None,
    ) -> None:
        self._db = connection
        self._roles: Dict[int, RoleID] = {}
        for level, role_id in (seed or {}).items():
            self._roles[_check_level(int(level))] = RoleID(role_id)

    async def load(self) -> None:
        if self._db is None:
            return
        async with self._db.read() as conn:
            stored = await LevelRoleRepository.get_all(conn)
        self._roles.update(stored)
        logger.info("[LEVEL ROLES] %d level role(s) configured", len(self._roles))

    def get(self, level: int) -> Optional[RoleID]:
        return self._roles.get(level)

    def all(self) -> Dict[int, RoleID]:
        return dict(sorted(self._roles.items()))

    async def set(self, level: int, role_id: RoleID) -> None:
        level = _check_level(level)
        if self._db is not None:
            async with self._db.transaction() as conn:
                await LevelRoleRepository.upsert(conn, level, role_id)
        self._roles[level] = RoleID(role_id)

    async def remove(self, level: int) -> bool:
        """Forget the role for ``level``; returns False if none was set."""
        level = _check_level(level)
        if level not in self._roles:
            return False
        if self._db is not None:
            async with self._db.transaction() as conn:
                await LevelRoleRepository.delete(conn, level)
        del self._roles[level]
        return True
