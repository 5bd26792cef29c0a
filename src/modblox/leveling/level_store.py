"""
Profile stores for the leveling engine.

``InMemoryLevelStore`` keeps profiles for the process lifetime only.
``SqliteLevelStore`` keeps the same in-memory table but writes every change
through to the ``users`` table before returning, and loads all profiles at
startup.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, List, Optional, Protocol

from modblox.database.db_connection import ConnectionManager, db_connection
from modblox.datatypes.discord_datatypes import UserID
from modblox.datatypes.level_datatypes import UserLevelProfile
from modblox.repositories.user_repo import UserRepository
from modblox.util.logger import get_logger

logger = get_logger("level_store")


class LevelStore(Protocol):
    async def get(self, user_id: UserID) -> Optional[UserLevelProfile]: ...

    async def save(self, profile: UserLevelProfile) -> None: ...

    async def all(self) -> List[UserLevelProfile]: ...


class InMemoryLevelStore:
    """Process-wide profile table, empty at startup."""

    def __init__(self) -> None:
        self._profiles: Dict[str, UserLevelProfile] = {}

    async def get(self, user_id: UserID) -> Optional[UserLevelProfile]:
        profile = self._profiles.get(str(user_id))
        # Callers get a copy so the table only changes through save()
        return replace(profile) if profile is not None else None

    async def save(self, profile: UserLevelProfile) -> None:
        self._profiles[str(profile.user_id)] = replace(profile)

    async def all(self) -> List[UserLevelProfile]:
        return [replace(profile) for profile in self._profiles.values()]


class SqliteLevelStore(InMemoryLevelStore):
    """Write-through store backed by the ``users`` table."""

    def __init__(self, connection: ConnectionManager = db_connection) -> None:
        super().__init__()
        self._db = connection

    async def load(self) -> int:
        """Replace the in-memory table with what is on disk; returns the profile count."""
        async with self._db.read() as conn:
            profiles = await UserRepository.all_level_profiles(conn)
        self._profiles = {str(profile.user_id): profile for profile in profiles}
        logger.info("[LEVEL STORE] Loaded %d leveling profiles", len(self._profiles))
        return len(self._profiles)

    async def save(self, profile: UserLevelProfile) -> None:
        async with self._db.transaction() as conn:
            await UserRepository.save_level_profile(conn, profile)
        await super().save(profile)
